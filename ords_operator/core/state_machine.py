"""
Service State Machine for the REST Data Service operator

This module implements the small state machine surfaced to operators in
``status.status`` of an OracleRestDataService.

States:
- PENDING: Initial state, nothing observed yet
- UPDATING: Long-running remote operation in progress (APEX install)
- READY: Health probe succeeded
- NOT_READY: Health probe failed or no pod is running
- ERROR: Credential or validation failure, requires attention

No state is terminal; the object leaves the machine only by deletion.

Usage:
    >>> from ords_operator.core.state_machine import ServiceState, ServiceStateMachine
    >>>
    >>> ServiceStateMachine.can_transition(ServiceState.PENDING, ServiceState.READY)
    True
    >>> ServiceStateMachine.can_transition(ServiceState.READY, ServiceState.PENDING)
    False
"""

from enum import Enum
from typing import Dict, Set, Optional
import structlog

logger = structlog.get_logger(__name__)


class ServiceState(str, Enum):
    """REST Data Service lifecycle states"""
    PENDING = "Pending"
    UPDATING = "Updating"
    READY = "Ready"
    NOT_READY = "NotReady"
    ERROR = "Error"


class ServiceStateMachine:
    """
    State machine for the REST Data Service status.

    NOT_READY and ERROR are reachable from every state; PENDING is only
    re-entered after an ERROR.
    """

    TRANSITIONS: Dict[ServiceState, Set[ServiceState]] = {
        ServiceState.PENDING: {
            ServiceState.UPDATING,
            ServiceState.READY,
            ServiceState.NOT_READY,
            ServiceState.ERROR,
        },
        ServiceState.UPDATING: {
            ServiceState.READY,        # Install finished
            ServiceState.NOT_READY,
            ServiceState.ERROR,
        },
        ServiceState.READY: {
            ServiceState.UPDATING,     # APEX install after first health check
            ServiceState.NOT_READY,
            ServiceState.ERROR,
        },
        ServiceState.NOT_READY: {
            ServiceState.UPDATING,
            ServiceState.READY,        # Pod recovered
            ServiceState.ERROR,
        },
        ServiceState.ERROR: {
            ServiceState.PENDING,
            ServiceState.UPDATING,
            ServiceState.READY,        # Spec or secret fixed
            ServiceState.NOT_READY,
        },
    }

    @classmethod
    def can_transition(
        cls,
        from_state: ServiceState,
        to_state: ServiceState
    ) -> bool:
        """
        Check if state transition is valid.

        Staying in the same state is always allowed.
        """
        if from_state == to_state:
            return True
        return to_state in cls.TRANSITIONS.get(from_state, set())

    @classmethod
    def validate_transition(
        cls,
        from_state: ServiceState,
        to_state: ServiceState,
        instance: Optional[str] = None
    ) -> None:
        """
        Validate state transition and raise exception if invalid.

        Raises:
            ValueError: If transition is not allowed
        """
        if not cls.can_transition(from_state, to_state):
            error_msg = (
                f"Invalid state transition from {from_state.value} "
                f"to {to_state.value}"
            )
            if instance:
                error_msg += f" for {instance}"

            logger.error(
                "invalid_state_transition",
                instance=instance,
                from_state=from_state.value,
                to_state=to_state.value,
                allowed_states=sorted(s.value for s in cls.TRANSITIONS.get(from_state, set())),
            )
            raise ValueError(error_msg)

        if from_state != to_state:
            logger.info(
                "state_transition",
                instance=instance,
                from_state=from_state.value,
                to_state=to_state.value,
            )

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional[ServiceState]:
        """Map a stored status string to a state, None when unset or unknown."""
        if not value:
            return None
        try:
            return ServiceState(value)
        except ValueError:
            return None
