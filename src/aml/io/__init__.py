from __future__ import annotations
from .minio_client import MinIOClient
from .model_store import MinIOModelStore, DownloadConditions
from .records import RecordStore, MemoryRecordStore, ClickHouseRecordStore
from .resources import BundledResources

__all__ = [
    "MinIOClient", "MinIOModelStore", "DownloadConditions",
    "RecordStore", "MemoryRecordStore", "ClickHouseRecordStore", "BundledResources",
]
