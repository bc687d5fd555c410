from __future__ import annotations
from pathlib import Path
import logging

from aml.io.model_store import DownloadConditions, MinIOModelStore
from aml.io.resources import BundledResources
from .types import (
    ModelRecord, ModelRef, LoadedModelHandle, DownloadFailed, LoadFailed, LoadOutcome,
)
from .runtime import OnnxClassifierRuntime

log = logging.getLogger("aml.loader")


class ModelLoader:
    def __init__(
        self,
        store: MinIOModelStore,
        runtime: OnnxClassifierRuntime,
        cache_dir: str | Path,
        resources: BundledResources | None = None,
        labels_resource: str = "dict.txt",
        labels_filename: str = "_dict.txt",
        conditions: DownloadConditions = DownloadConditions(),
    ):
        self.store = store
        self.runtime = runtime
        self.cache_dir = Path(cache_dir)
        self.resources = resources or BundledResources()
        self.labels_resource = labels_resource
        self.labels_filename = labels_filename
        self.conditions = conditions

    def ensure_loaded(self, record: ModelRecord) -> LoadOutcome:
        ref = ModelRef.for_record(record)
        log.info("Downloading model %s", ref.name)

        try:
            self.store.download(ref, self.conditions)
            if not self.store.is_downloaded(ref):
                return DownloadFailed(f"model '{ref.name}' is not downloaded")
            model_file = self.store.get_local_file(ref)
        except Exception as e:
            log.error("Failed on downloading model %s: %s", ref.name, e)
            return DownloadFailed(str(e))
        if model_file is None:
            return DownloadFailed(f"no local file for model '{ref.name}'")

        try:
            labels_path = self._copy_labels()
            status = self.runtime.load_model(str(model_file), str(labels_path), is_local_file=True)
        except Exception as e:
            log.error("Failed on loading model %s into the runtime: %s", ref.name, e)
            return LoadFailed(str(e))
        if status != "success":
            return LoadFailed(f"runtime returned {status!r}")

        log.info("model path: %s label path: %s", model_file, labels_path)
        return LoadedModelHandle(
            artifact_name=record.name,
            generated_at=record.generated_at,
            model_path=str(model_file),
            labels_path=str(labels_path),
        )

    def _copy_labels(self) -> Path:
        # always rewritten, the bundled dictionary is not versioned per model
        data = self.resources.load(self.labels_resource)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        out = self.cache_dir / self.labels_filename
        out.write_bytes(data)
        return out
