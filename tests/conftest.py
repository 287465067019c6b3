"""
Pytest configuration and fixtures.

The reconcile phases are exercised against in-memory fakes implementing the
same methods as KubeStore, RemoteExecutor and EventRecorder.
"""
import copy
from typing import Optional

import pytest

from ords_operator.config.settings import Settings
from ords_operator.models import PrimaryDatabase, ServiceInstance
from ords_operator.services.context import ReconcileContext
from tests.fakes import (
    NAMESPACE,
    FakeExecutor,
    FakeRecorder,
    FakeStore,
    database_object,
    instance_object,
    secret_object,
)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with zero retry delays."""
    return Settings(
        environment="testing",
        secret_lookup_attempts=2,
        secret_lookup_delay_seconds=0,
        status_update_attempts=2,
        status_update_delay_seconds=0,
        requeue_delay_seconds=0.05,
        resync_interval_seconds=3600,
        max_concurrent_reconciles=2,
    )


@pytest.fixture
def store() -> FakeStore:
    fake = FakeStore()
    fake.databases[(NAMESPACE, "sidb")] = database_object()
    fake.secrets[(NAMESPACE, "db-admin-secret")] = secret_object("db-admin-secret", "AdminPwd_1")
    fake.secrets[(NAMESPACE, "ords-secret")] = secret_object("ords-secret", "OrdsPwd_1")
    fake.nodes = [{"status": {"addresses": [{"type": "InternalIP", "address": "10.0.0.5"}]}}]
    return fake


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def make_ctx(store, executor, recorder, test_settings):
    """Build a ReconcileContext from raw objects (defaults: the stored database)."""

    def _make(instance_obj: Optional[dict] = None, database_obj: Optional[dict] = None) -> ReconcileContext:
        instance_obj = instance_obj or instance_object()
        store.instances[(NAMESPACE, instance_obj["metadata"]["name"])] = copy.deepcopy(instance_obj)
        database_obj = database_obj or store.databases[(NAMESPACE, "sidb")]
        return ReconcileContext(
            instance=ServiceInstance.from_object(instance_obj),
            database=PrimaryDatabase.from_object(database_obj),
            store=store,
            executor=executor,
            recorder=recorder,
            settings=test_settings,
        )

    return _make


