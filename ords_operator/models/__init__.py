from ords_operator.models.service import (
    ImageSpec,
    PasswordSpec,
    PersistenceSpec,
    RestEnableSchema,
    ServiceInstance,
    ServiceSpec,
    ServiceStatus,
)
from ords_operator.models.database import PrimaryDatabase

__all__ = [
    "ImageSpec",
    "PasswordSpec",
    "PersistenceSpec",
    "RestEnableSchema",
    "ServiceInstance",
    "ServiceSpec",
    "ServiceStatus",
    "PrimaryDatabase",
]
