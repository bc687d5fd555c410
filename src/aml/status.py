from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import time

import timeago

from aml.io.records import RecordStore, Snapshot, Subscription
from aml.models.types import DatasetRef, ModelRecord

log = logging.getLogger("aml.status")

NO_MODEL = "No model available"
TRAINING = "Training under progress"


def _now_ms() -> int:
    return int(time.time() * 1000)


def time_ago(ts_ms: int, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = _now_ms()
    # clock skew can put a fresh record slightly in the future
    elapsed = max(0, int(now_ms) - int(ts_ms))
    return timeago.format(timedelta(milliseconds=elapsed))


def _latest_valid(models: Snapshot) -> Optional[ModelRecord]:
    for row in models:
        try:
            return ModelRecord.from_record(row)
        except ValueError as e:
            log.warning("skipping unusable model record %r: %s", row.get("name"), e)
    return None


@dataclass
class ModelStatus:
    model_exists: bool
    status_text: str
    training_in_progress: bool = False
    last_trained_ms: Optional[int] = None
    latest: Optional[ModelRecord] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "model_exists": self.model_exists,
            "status_text": self.status_text,
            "training_in_progress": self.training_in_progress,
            "last_trained_ms": self.last_trained_ms,
            "latest_model": self.latest.name if self.latest else None,
        }


def model_status(models: Snapshot, operations: Optional[Snapshot] = None,
                 now_ms: Optional[int] = None) -> ModelStatus:
    """Summarise the newest-first ``models`` rows and ``operations`` rows of a dataset."""
    status = ModelStatus(model_exists=False, status_text=NO_MODEL)
    latest = _latest_valid(models or [])
    if latest is not None:
        status = ModelStatus(
            model_exists=True,
            status_text="Last trained: " + time_ago(latest.generated_at, now_ms),
            last_trained_ms=latest.generated_at,
            latest=latest,
        )

    pending = [op for op in (operations or []) if op.get("done") in (False, 0)]
    if pending:
        status.status_text = TRAINING
        status.training_in_progress = True
    return status


class ModelStatusWatcher:
    """Live status of one dataset, fed by two record-store subscriptions.

    Runs on the store's schedule, independently of any inference session.
    """

    def __init__(self, store: RecordStore, dataset: DatasetRef,
                 on_change: Callable[[ModelStatus], None]):
        self.store = store
        self.dataset = dataset
        self.on_change = on_change
        self._lock = threading.Lock()
        self._models: Snapshot = []
        self._operations: Optional[Snapshot] = None
        self._subs: List[Subscription] = []
        self.current: Optional[ModelStatus] = None

    def start(self) -> "ModelStatusWatcher":
        where = {"dataset_id": self.dataset}
        self._subs.append(self.store.subscribe("models", where, self._on_models,
                                               order_by="generated_at", descending=True))
        self._subs.append(self.store.subscribe("operations", where, self._on_operations))
        return self

    def _on_models(self, rows: Snapshot) -> None:
        with self._lock:
            self._models = rows
        self._emit()

    def _on_operations(self, rows: Snapshot) -> None:
        with self._lock:
            self._operations = rows
        self._emit()

    def _emit(self) -> None:
        with self._lock:
            status = model_status(self._models, self._operations)
            self.current = status
        self.on_change(status)

    def close(self) -> None:
        for sub in self._subs:
            sub.close()
        self._subs.clear()
