"""
Small helpers for naming and labelling child objects.
"""
import base64
import secrets
import string
from typing import Dict, Optional, TypeVar

from ords_operator.core.constants import POD_NAME_SUFFIX_LENGTH

T = TypeVar('T')

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def default_or(value: Optional[T], fallback: T) -> T:
    """
    Return ``value`` unless it is unset or empty, else ``fallback``.

    Examples:
        default_or("", "default") -> "default"
        default_or("ORDS_USER", "ORDS_PUBLIC_USER") -> "ORDS_USER"
    """
    if value is None or value == "" or value == {}:
        return fallback
    return value


def random_suffix(length: int = POD_NAME_SUFFIX_LENGTH) -> str:
    """Random lowercase alphanumeric suffix for generated pod names."""
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def app_labels(name: str) -> Dict[str, str]:
    """Labels carried by every child object of an instance."""
    return {"app": name}


def pod_labels(name: str, version: Optional[str]) -> Dict[str, str]:
    """Labels of a worker pod: owner app plus image version."""
    return {"app": name, "version": version or ""}


def label_selector(labels: Dict[str, str]) -> str:
    """Render a label map as a Kubernetes equality selector."""
    return ",".join(f"{key}={value}" for key, value in labels.items() if value)


def decode_secret_value(secret: Dict, key: str) -> str:
    """
    Read one key from a Secret dict.

    ``data`` values are base64 encoded; ``stringData`` (only present on
    objects that were never round-tripped through the API server) is not.
    """
    data = secret.get("data") or {}
    if key in data and data[key] is not None:
        return base64.b64decode(data[key]).decode("utf-8")
    string_data = secret.get("stringData") or {}
    return string_data.get(key, "")
