"""
Pydantic models for the OracleRestDataService custom resource.

The raw custom object is a camelCase dict; models are parsed with aliases
and serialised back with ``by_alias=True`` when status is written.
"""
import copy
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ords_operator.core.constants import (
    CRD_GROUP,
    CRD_VERSION,
    DEFAULT_CLAIM_ACCESS_MODE,
    DEFAULT_ORDS_USER,
    DEFAULT_SECRET_KEY,
    DEFAULT_SERVICE_ACCOUNT,
    FINALIZER,
    SERVICE_KIND,
)
from ords_operator.utils.naming import default_or


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ObjectMeta(CamelModel):
    """Subset of Kubernetes object metadata used by the reconciler."""

    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    deletion_timestamp: Optional[str] = Field(default=None, alias="deletionTimestamp")
    finalizers: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)


class ImageSpec(CamelModel):
    """Container image reference."""

    pull_from: str = Field(default="", alias="pullFrom")
    pull_secrets: str = Field(default="", alias="pullSecrets")
    version: str = ""


class PersistenceSpec(CamelModel):
    """Persistence request; an empty size means sharing the database volume."""

    access_mode: str = Field(default="", alias="accessMode")
    size: str = ""
    storage_class: str = Field(default="", alias="storageClass")

    @property
    def dedicated(self) -> bool:
        """True when the instance asks for a claim of its own."""
        return bool(self.size)

    @property
    def resolved_access_mode(self) -> str:
        return default_or(self.access_mode, DEFAULT_CLAIM_ACCESS_MODE)


class PasswordSpec(CamelModel):
    """Reference to a credential stored in a Secret."""

    secret_name: str = Field(default="", alias="secretName")
    secret_key: str = Field(default=DEFAULT_SECRET_KEY, alias="secretKey")
    keep_secret: bool = Field(default=True, alias="keepSecret")


class RestEnableSchema(CamelModel):
    """One per-schema REST enable/disable rule."""

    schema_name: str = Field(alias="schema")
    pdb: str
    enable: bool = True
    url_mapping: str = Field(default="", alias="urlMapping")

    @property
    def url_pattern(self) -> str:
        """URL segment for the schema, defaulting to the lower-cased schema name."""
        return default_or(self.url_mapping, self.schema_name).lower()


class ServiceSpec(CamelModel):
    """Desired state of a REST Data Service."""

    database_ref: str = Field(alias="databaseRef")
    image: ImageSpec = Field(default_factory=ImageSpec)
    replicas: int = Field(default=1, ge=0)
    persistence: PersistenceSpec = Field(default_factory=PersistenceSpec)
    admin_password: PasswordSpec = Field(default_factory=PasswordSpec, alias="adminPassword")
    ords_password: PasswordSpec = Field(default_factory=PasswordSpec, alias="ordsPassword")
    apex_password: PasswordSpec = Field(default_factory=PasswordSpec, alias="apexPassword")
    rest_enable_schemas: List[RestEnableSchema] = Field(default_factory=list, alias="restEnableSchemas")
    load_balancer: bool = Field(default=False, alias="loadBalancer")
    node_selector: Dict[str, str] = Field(default_factory=dict, alias="nodeSelector")
    service_account_name: str = Field(default="", alias="serviceAccountName")
    oracle_service: str = Field(default="", alias="oracleService")
    ords_user: str = Field(default="", alias="ordsUser")

    @property
    def resolved_ords_user(self) -> str:
        return default_or(self.ords_user, DEFAULT_ORDS_USER)

    @property
    def resolved_service_account(self) -> str:
        return default_or(self.service_account_name, DEFAULT_SERVICE_ACCOUNT)


class ServiceStatus(CamelModel):
    """
    Observed state of a REST Data Service.

    ``ords_installed``, ``apex_configured`` and ``common_users_created`` are
    latches: once true they are never reset by reconciliation.
    """

    status: str = ""
    service_ip: str = Field(default="", alias="serviceIP")
    database_api_url: str = Field(default="", alias="databaseApiUrl")
    database_actions_url: str = Field(default="", alias="databaseActionsUrl")
    apex_url: str = Field(default="", alias="apexUrl")
    ords_installed: bool = Field(default=False, alias="ordsInstalled")
    apex_configured: bool = Field(default=False, alias="apexConfigured")
    common_users_created: bool = Field(default=False, alias="commonUsersCreated")
    replicas: int = 0
    database_ref: str = Field(default="", alias="databaseRef")
    load_balancer: str = Field(default="", alias="loadBalancer")
    image: ImageSpec = Field(default_factory=ImageSpec)


class ServiceInstance(CamelModel):
    """An OracleRestDataService object: metadata, spec and status."""

    metadata: ObjectMeta
    spec: ServiceSpec
    status: ServiceStatus = Field(default_factory=ServiceStatus)

    _raw: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ServiceInstance":
        """Parse a raw custom object dict."""
        instance = cls.model_validate({
            "metadata": obj.get("metadata") or {},
            "spec": obj.get("spec") or {},
            "status": obj.get("status") or {},
        })
        instance._raw = copy.deepcopy(obj)
        return instance

    def to_object(self) -> Dict[str, Any]:
        """
        Raw object carrying the current finalizers, resourceVersion and status.

        Unmodelled fields of the original object are preserved.
        """
        obj = copy.deepcopy(self._raw)
        obj.setdefault("apiVersion", f"{CRD_GROUP}/{CRD_VERSION}")
        obj.setdefault("kind", SERVICE_KIND)
        metadata = obj.setdefault("metadata", {})
        metadata["name"] = self.metadata.name
        metadata["namespace"] = self.metadata.namespace
        metadata["finalizers"] = list(self.metadata.finalizers)
        if self.metadata.resource_version:
            metadata["resourceVersion"] = self.metadata.resource_version
        obj["status"] = self.status_body()
        return obj

    def observe_write(self, obj: Optional[Dict[str, Any]]) -> None:
        """Adopt the resourceVersion returned by a successful write."""
        if not obj:
            return
        version = (obj.get("metadata") or {}).get("resourceVersion")
        if version:
            self.metadata.resource_version = version
            self._raw.setdefault("metadata", {})["resourceVersion"] = version

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def deletion_requested(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @property
    def has_finalizer(self) -> bool:
        return FINALIZER in self.metadata.finalizers

    def add_finalizer(self) -> None:
        if not self.has_finalizer:
            self.metadata.finalizers.append(FINALIZER)

    def remove_finalizer(self) -> None:
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != FINALIZER]

    def owner_reference(self, api_version: str, kind: str) -> Dict[str, Any]:
        """Controller owner reference so the platform cascades deletion to children."""
        return {
            "apiVersion": api_version,
            "kind": kind,
            "name": self.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    def status_body(self) -> Dict[str, Any]:
        """Status subresource payload."""
        return self.status.model_dump(by_alias=True)
