from __future__ import annotations
from typing import Optional
import logging

from aml.io.records import RecordStore
from .types import DatasetRef, ModelRecord

log = logging.getLogger("aml.resolver")

MODELS_COLLECTION = "models"


class ModelResolver:
    def __init__(self, store: RecordStore, collection: str = MODELS_COLLECTION):
        self.store = store
        self.collection = collection

    def resolve_latest(self, dataset: DatasetRef) -> Optional[ModelRecord]:
        """Newest model record of ``dataset``, or None when it has none.

        Rows sharing the newest ``generated_at`` resolve to the first one the
        store returns.
        """
        rows = self.store.query(self.collection, {"dataset_id": dataset},
                                order_by="generated_at", descending=True)
        if not rows:
            log.info("No model records for dataset %s", dataset)
            return None
        record = ModelRecord.from_record(rows[0])
        log.info("Latest model for %s: %s (generated_at=%s)", dataset, record.name, record.generated_at)
        return record

    def has_model(self, dataset: DatasetRef) -> bool:
        return bool(self.store.query(self.collection, {"dataset_id": dataset}))
