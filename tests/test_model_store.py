from datetime import datetime, timedelta, timezone

import pytest

from core.ports import ModelStore
from models import InMemoryModelStore, JsonFileModelStore, ModelCache
from models.cashflow_model import build_model

from conftest import ORG


class _BrokenStore(ModelStore):
    def load(self, organization_id):
        raise OSError("disk gone")

    def save(self, model):
        raise OSError("disk gone")

    def delete(self, organization_id):
        raise OSError("disk gone")


@pytest.fixture
def artifact(monthly_flows):
    return build_model(ORG, monthly_flows)


def test_artifact_carries_version_and_timestamp(artifact):
    assert artifact.version == "1.0.0"
    assert artifact.trained_at.tzinfo is not None
    assert artifact.data_months == 18
    assert len(artifact.seasonal_indices) == 12
    assert len(artifact.hw_seasonals) == 12


def test_json_store_round_trip(artifact, tmp_path):
    store = JsonFileModelStore(tmp_path / "models")
    assert store.load(ORG) is None

    store.save(artifact)
    assert store.path_for(ORG).name == f"cashflow_forecast_{ORG}.json"
    assert store.load(ORG) == artifact

    assert store.delete(ORG) is True
    assert store.delete(ORG) is False
    assert store.load(ORG) is None


def test_in_memory_store_isolates_copies(artifact):
    store = InMemoryModelStore()
    store.save(artifact)
    loaded = store.load(ORG)
    loaded.data_months = 1
    assert store.load(ORG).data_months == 18


def test_cache_copy_on_read(artifact):
    cache = ModelCache(InMemoryModelStore())
    assert cache.replace(artifact)
    first = cache.get(ORG)
    first.avg_net_cash_flow = -1.0
    assert cache.get(ORG).avg_net_cash_flow == artifact.avg_net_cash_flow


def test_cache_ignores_other_major_version(artifact):
    store = InMemoryModelStore()
    store.save(artifact.model_copy(update={"version": "2.0.0"}))
    assert ModelCache(store).get(ORG) is None


def test_cache_accepts_minor_version_bump(artifact):
    store = InMemoryModelStore()
    store.save(artifact.model_copy(update={"version": "1.4.2"}))
    assert ModelCache(store).get(ORG) is not None


def test_cache_ignores_stale_artifacts(artifact):
    store = InMemoryModelStore()
    old = datetime.now(timezone.utc) - timedelta(days=90)
    store.save(artifact.model_copy(update={"trained_at": old}))
    assert ModelCache(store, max_model_age_days=30).get(ORG) is None
    assert ModelCache(store).get(ORG) is not None


def test_cache_store_failures_are_logged(artifact):
    cache = ModelCache(_BrokenStore())
    assert cache.get(ORG) is None
    assert cache.replace(artifact) is False
    # the in-memory entry is still installed
    assert cache.get(ORG) is not None


def test_invalidate_reloads_from_store(artifact):
    store = InMemoryModelStore()
    cache = ModelCache(store)
    cache.replace(artifact)
    store.save(artifact.model_copy(update={"data_months": 7}))
    assert cache.get(ORG).data_months == 18

    cache.invalidate(ORG)
    assert cache.get(ORG).data_months == 7


def test_lock_is_per_organization():
    cache = ModelCache()
    assert cache.lock_for("a") is cache.lock_for("a")
    assert cache.lock_for("a") is not cache.lock_for("b")
