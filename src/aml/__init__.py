from __future__ import annotations
from .models.types import (
    DatasetRef, ModelRecord, ModelRef, LoadedModelHandle,
    DownloadFailed, LoadFailed, Inference,
)
from .models.runtime import OnnxClassifierRuntime
from .models.resolver import ModelResolver
from .models.loader import ModelLoader
from .vision.preprocess import decode_image, preprocess
from .vision.classify import InferenceRunner, RawDetection
from .io.model_store import DownloadConditions, MinIOModelStore
from .io.records import RecordStore, MemoryRecordStore, ClickHouseRecordStore
from .session import SessionController, SessionContext, SessionState
from .status import ModelStatus, ModelStatusWatcher, model_status, time_ago
from .datasets import Dataset, visible_datasets

__all__ = [
    "DatasetRef", "ModelRecord", "ModelRef", "LoadedModelHandle",
    "DownloadFailed", "LoadFailed", "Inference",
    "OnnxClassifierRuntime", "ModelResolver", "ModelLoader",
    "decode_image", "preprocess", "InferenceRunner", "RawDetection",
    "DownloadConditions", "MinIOModelStore",
    "RecordStore", "MemoryRecordStore", "ClickHouseRecordStore",
    "SessionController", "SessionContext", "SessionState",
    "ModelStatus", "ModelStatusWatcher", "model_status", "time_ago",
    "Dataset", "visible_datasets",
]
