"""
Custom exceptions for the REST Data Service operator.

This module defines all custom exceptions used throughout the operator
for consistent error handling and reporting.
"""
from typing import Optional, Dict, Any


class OperatorException(Exception):
    """
    Base exception for all operator errors.

    All custom exceptions should inherit from this base class.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class KubernetesError(OperatorException):
    """
    Raised when Kubernetes API operations fail.

    Used for K8s API errors other than not-found, optimistic-concurrency
    conflicts, connection issues, etc.
    """

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        self.status = status
        details = dict(details or {})
        if status is not None:
            details.setdefault("status", status)
        super().__init__(message=f"Kubernetes error: {message}", details=details)


class SpecValidationError(OperatorException):
    """
    Raised when the desired spec violates a rule that only a spec change can fix.

    Used for immutable field changes and incompatible persistence settings.
    """

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__(
            message=",".join(self.violations),
            details={"violations": self.violations},
        )


class RemoteCommandError(OperatorException):
    """
    Raised when a command could not be executed inside a pod.

    Carries whatever output was captured before the failure; callers still
    classify results by output markers.
    """

    def __init__(self, pod: str, message: str, output: str = "", details: Optional[Dict[str, Any]] = None):
        self.pod = pod
        self.output = output
        super().__init__(
            message=f"Remote command failed in pod {pod}: {message}",
            details=details or {"pod": pod},
        )


class CleanupError(OperatorException):
    """
    Raised when a teardown step fails.

    The finalizer stays on the object until cleanup succeeds.
    """

    def __init__(self, step: str, reason: str, details: Optional[Dict[str, Any]] = None):
        self.step = step
        self.reason = reason
        super().__init__(
            message=f"Cleanup step '{step}' failed: {reason}",
            details=details or {"step": step, "reason": reason},
        )


# Export all exceptions
__all__ = [
    "OperatorException",
    "KubernetesError",
    "SpecValidationError",
    "RemoteCommandError",
    "CleanupError",
]
