"""
Pydantic model for the SingleInstanceDatabase custom resource.

The primary database is owned by another controller; only the fields this
operator reads, plus the two status fields it writes back, are modelled.
"""
from typing import Any, Dict

from pydantic import Field

from ords_operator.core.constants import DATABASE_READY_STATES
from ords_operator.models.service import CamelModel, ImageSpec, ObjectMeta, PersistenceSpec


class DatabaseSpec(CamelModel):
    """Desired state of the primary database (read-only here)."""

    sid: str = "ORCLCDB"
    image: ImageSpec = Field(default_factory=ImageSpec)
    persistence: PersistenceSpec = Field(default_factory=PersistenceSpec)


class DatabaseStatus(CamelModel):
    """Observed state of the primary database."""

    status: str = ""
    pdb_name: str = Field(default="", alias="pdbName")
    ords_reference: str = Field(default="", alias="ordsReference")
    apex_installed: bool = Field(default=False, alias="apexInstalled")


class PrimaryDatabase(CamelModel):
    """A SingleInstanceDatabase object."""

    metadata: ObjectMeta
    spec: DatabaseSpec = Field(default_factory=DatabaseSpec)
    status: DatabaseStatus = Field(default_factory=DatabaseStatus)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "PrimaryDatabase":
        """Parse a raw custom object dict."""
        return cls.model_validate({
            "metadata": obj.get("metadata") or {},
            "spec": obj.get("spec") or {},
            "status": obj.get("status") or {},
        })

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def is_ready(self) -> bool:
        return self.status.status in DATABASE_READY_STATES

    @property
    def config_sub_path(self) -> str:
        """Sub-path of the shared volume holding this database's ORDS config."""
        return f"{self.spec.sid.upper()}_ORDS"

    def owned_status_body(self) -> Dict[str, Any]:
        """Merge-patch payload limited to the fields this operator owns."""
        return {
            "ordsReference": self.status.ords_reference,
            "apexInstalled": self.status.apex_installed,
        }
