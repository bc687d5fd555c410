from __future__ import annotations
from .types import ModelRecord, ModelRef, LoadedModelHandle, DownloadFailed, LoadFailed, Inference
from .runtime import OnnxClassifierRuntime
from .resolver import ModelResolver
from .loader import ModelLoader

__all__ = [
    "ModelRecord", "ModelRef", "LoadedModelHandle", "DownloadFailed", "LoadFailed", "Inference",
    "OnnxClassifierRuntime", "ModelResolver", "ModelLoader",
]
