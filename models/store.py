"""
Model stores and the organization-keyed model cache.

Stores persist one TrainedForecastModel per organization. ModelCache sits in
front of a store: per-organization locks serialize replace/read, readers get
a deep copy, and re-training invalidates the cached entry explicitly.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from core.ports import ModelStore

from .artifact import MODEL_VERSION, TrainedForecastModel, major_version

logger = logging.getLogger(__name__)


class JsonFileModelStore(ModelStore):
    """One JSON file per organization: <base_dir>/cashflow_forecast_<org>.json"""

    def __init__(self, base_dir: Union[str, Path] = Path(".local") / "models"):
        self.base_dir = Path(base_dir)

    def path_for(self, organization_id: str) -> Path:
        return self.base_dir / f"cashflow_forecast_{organization_id}.json"

    def load(self, organization_id: str) -> Optional[TrainedForecastModel]:
        path = self.path_for(organization_id)
        if not path.exists():
            return None
        return TrainedForecastModel.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, model: TrainedForecastModel) -> None:
        path = self.path_for(model.organization_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(model.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp, path)
        logger.info("Saved forecast model to %s", path)

    def delete(self, organization_id: str) -> bool:
        path = self.path_for(organization_id)
        if not path.exists():
            return False
        path.unlink()
        return True


class InMemoryModelStore(ModelStore):
    def __init__(self):
        self._models: Dict[str, TrainedForecastModel] = {}

    def load(self, organization_id: str) -> Optional[TrainedForecastModel]:
        model = self._models.get(organization_id)
        return model.model_copy(deep=True) if model is not None else None

    def save(self, model: TrainedForecastModel) -> None:
        self._models[model.organization_id] = model.model_copy(deep=True)

    def delete(self, organization_id: str) -> bool:
        return self._models.pop(organization_id, None) is not None


class ModelCache:
    """
    Organization-keyed cache over a ModelStore.

    Artifacts from a different major version, or older than
    max_model_age_days, are treated as absent.
    """

    def __init__(self, store: Optional[ModelStore] = None, *, max_model_age_days: Optional[int] = None):
        self.store = store if store is not None else InMemoryModelStore()
        self.max_model_age_days = max_model_age_days
        self._models: Dict[str, TrainedForecastModel] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, organization_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(organization_id)
            if lock is None:
                lock = self._locks[organization_id] = threading.RLock()
            return lock

    def is_usable(self, model: TrainedForecastModel, now: Optional[datetime] = None) -> bool:
        if major_version(model.version) != major_version(MODEL_VERSION):
            logger.warning(
                "Ignoring forecast model for %s: version %s incompatible with %s",
                model.organization_id, model.version, MODEL_VERSION,
            )
            return False
        if self.max_model_age_days is not None:
            now = now or datetime.now(timezone.utc)
            trained_at = model.trained_at
            if trained_at.tzinfo is None:
                trained_at = trained_at.replace(tzinfo=timezone.utc)
            age_days = (now - trained_at).total_seconds() / 86400.0
            if age_days > self.max_model_age_days:
                logger.warning(
                    "Ignoring stale forecast model for %s (trained %s)",
                    model.organization_id, model.trained_at.isoformat(),
                )
                return False
        return True

    def get(self, organization_id: str) -> Optional[TrainedForecastModel]:
        """Copy of the current artifact, loading through the store on a miss."""
        with self.lock_for(organization_id):
            model = self._models.get(organization_id)
            if model is None:
                try:
                    model = self.store.load(organization_id)
                except Exception:
                    logger.exception("Failed to load forecast model for %s", organization_id)
                    return None
                if model is None:
                    return None
                self._models[organization_id] = model
            if not self.is_usable(model):
                return None
            return model.model_copy(deep=True)

    def replace(self, model: TrainedForecastModel) -> bool:
        """
        Install a new artifact for its organization and persist it.

        The in-memory entry is replaced even when the store fails; the return
        value reports whether the artifact was persisted.
        """
        org = model.organization_id
        with self.lock_for(org):
            self._models[org] = model.model_copy(deep=True)
            try:
                self.store.save(model)
            except Exception:
                logger.exception("Forecast model not saved for %s", org)
                return False
        return True

    def invalidate(self, organization_id: str) -> None:
        with self.lock_for(organization_id):
            self._models.pop(organization_id, None)
