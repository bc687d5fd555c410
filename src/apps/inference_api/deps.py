from __future__ import annotations
from typing import Dict, Optional, Any, List
from pathlib import Path
import logging
import os

from .config_loader import load_inference_config
from aml.io import (
    MinIOClient, MinIOModelStore, DownloadConditions, BundledResources,
    RecordStore, MemoryRecordStore, ClickHouseRecordStore,
)
from aml.models import OnnxClassifierRuntime, ModelResolver, ModelLoader
from aml.vision import InferenceRunner
from aml.session import SessionController, ImagePicker, ResultsPresenter

log = logging.getLogger("aml.inference_api.deps")


_CFG: Dict[str, Any] | None = None
_RECORDS: Optional[RecordStore] = None
_MINIO: Optional[MinIOClient] = None
_MINIO_ENABLED: bool = True
_STORE: Optional[MinIOModelStore] = None
_RESOURCES: Optional[BundledResources] = None
_RUNTIMES: Dict[str, OnnxClassifierRuntime] = {}
_PROJECT_ROOT: Path | None = None


def init(config_path: str | Path, project_root: str | Path = ".") -> None:
    global _CFG, _RECORDS, _MINIO, _MINIO_ENABLED, _STORE, _RESOURCES, _PROJECT_ROOT
    _PROJECT_ROOT = Path(project_root).resolve()
    _CFG = load_inference_config(config_path, _PROJECT_ROOT)

    rcfg = _CFG["records"]
    if rcfg["backend"] == "memory":
        _RECORDS = MemoryRecordStore()
        log.warning("Record store is in-memory; model records must be added at runtime")
    else:
        _RECORDS = ClickHouseRecordStore(
            http_url=rcfg["http_url"],
            database=rcfg["database"],
            user=rcfg["user"],
            password=rcfg["password"],
            poll_seconds=rcfg["poll_seconds"],
        )
        log.info("Record store ClickHouse @ %s db=%s", rcfg["http_url"], rcfg["database"])

    mcfg = _CFG["minio"]
    env_disable_minio = os.getenv("AML_DISABLE_MINIO", "0").strip() in ("1", "true", "yes")
    cfg_disable_minio = not bool(mcfg.get("enabled", True))
    _MINIO_ENABLED = not (env_disable_minio or cfg_disable_minio)

    models_cfg = _CFG["models"]
    if _MINIO_ENABLED:
        _MINIO = MinIOClient(
            endpoint=str(mcfg.get("endpoint")),
            access_key=str(mcfg.get("access_key")),
            secret_key=str(mcfg.get("secret_key")),
            secure=bool(mcfg.get("secure", False)),
            default_bucket=str(mcfg.get("bucket", "automl")),
        )
        _STORE = MinIOModelStore(_MINIO, models_cfg["cache_dir"], prefix=str(mcfg.get("prefix", "models")))
        log.info("MinIO enabled @ %s bucket=%s", mcfg.get("endpoint"), mcfg.get("bucket", "automl"))
    else:
        _MINIO = None
        _STORE = None
        log.warning("MinIO is DISABLED (AML_DISABLE_MINIO=%s, config.enabled=%s)",
                    env_disable_minio, mcfg.get("enabled", True))

    _RESOURCES = BundledResources(models_cfg["assets_dir"]) if models_cfg.get("assets_dir") else BundledResources()
    _RUNTIMES.clear()

    log.info("deps.init done. records=%s minio_enabled=%s cache_dir=%s",
             rcfg["backend"], _MINIO_ENABLED, models_cfg["cache_dir"])


def shutdown() -> None:
    _RUNTIMES.clear()


def get_config() -> Dict[str, Any]:
    assert _CFG is not None
    return _CFG


def get_records() -> RecordStore:
    assert _RECORDS is not None
    return _RECORDS


def get_minio() -> Optional[MinIOClient]:
    return _MINIO


def minio_enabled() -> bool:
    return bool(_MINIO_ENABLED and _MINIO is not None)


def get_runtime(dataset_id: str) -> OnnxClassifierRuntime:
    # one runtime per dataset; it keeps the last loaded model between sessions
    runtime = _RUNTIMES.get(dataset_id)
    if runtime is None:
        runtime = OnnxClassifierRuntime()
        _RUNTIMES[dataset_id] = runtime
    return runtime


def get_resolver() -> ModelResolver:
    return ModelResolver(get_records())


def get_loader(dataset_id: str) -> ModelLoader:
    if _STORE is None:
        raise RuntimeError("model store unavailable: MinIO is disabled")
    mc = get_config()["models"]
    dl = mc["download"]
    return ModelLoader(
        store=_STORE,
        runtime=get_runtime(dataset_id),
        cache_dir=mc["cache_dir"],
        resources=_RESOURCES,
        labels_resource=mc["labels_resource"],
        labels_filename=mc["labels_filename"],
        conditions=DownloadConditions(
            require_network=dl["require_network"],
            retry_seconds=dl["retry_seconds"],
            max_wait_seconds=dl["max_wait_seconds"],
        ),
    )


def get_session_controller(dataset_id: str, picker: ImagePicker, present: ResultsPresenter) -> SessionController:
    cfg = get_config()
    return SessionController(
        resolver=get_resolver(),
        loader=get_loader(dataset_id),
        runner=InferenceRunner(
            get_runtime(dataset_id),
            per_class_limit=cfg["inference"]["per_class_limit"],
            threshold=cfg["inference"]["threshold"],
        ),
        picker=picker,
        present=present,
        side=cfg["preprocess"]["input_side"],
        decode_side=cfg["preprocess"]["decode_side"],
    )


def list_dataset_rows() -> List[Dict[str, Any]]:
    return get_records().query("datasets", {})
