from __future__ import annotations
from typing import Any, Dict
from pathlib import Path
import os
import yaml


def _env_or(default: str, env_key: str) -> str:
    v = os.getenv(env_key)
    return v if v not in (None, "") else default


def _resolve_path(p: str | None, project_root: Path) -> str | None:
    if not p:
        return p
    pp = Path(p)
    if pp.is_absolute():
        return str(pp)
    return str((project_root / pp).resolve())


def load_inference_config(path: str | Path, project_root: str | Path) -> Dict[str, Any]:
    cfg_path = Path(path).resolve()
    proj = Path(project_root).resolve()

    if not cfg_path.exists():
        raise FileNotFoundError(f"inference.yaml not found: {cfg_path}")

    raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}

    # MinIO
    raw.setdefault("minio", {})
    raw["minio"]["endpoint"] = _env_or(raw["minio"].get("endpoint", "minio:9000"), "MINIO_ENDPOINT")
    raw["minio"]["access_key"] = _env_or(raw["minio"].get("access_key", ""), "MINIO_ACCESS_KEY")
    raw["minio"]["secret_key"] = _env_or(raw["minio"].get("secret_key", ""), "MINIO_SECRET_KEY")
    raw["minio"]["bucket"] = raw["minio"].get("bucket", "automl")
    raw["minio"]["prefix"] = raw["minio"].get("prefix", "models")
    raw["minio"]["secure"] = bool(raw["minio"].get("secure", False))

    # Record store
    raw.setdefault("records", {})
    rc = raw["records"]
    rc["backend"] = str(rc.get("backend", "clickhouse")).lower()
    if rc["backend"] not in ("clickhouse", "memory"):
        raise ValueError(f"records.backend must be 'clickhouse' or 'memory', got {rc['backend']!r}")
    rc["http_url"] = _env_or(rc.get("http_url", "http://clickhouse:8123"), "CLICKHOUSE_URL")
    rc["user"] = _env_or(rc.get("user", "default"), "CLICKHOUSE_USER")
    rc["password"] = _env_or(rc.get("password", ""), "CLICKHOUSE_PASSWORD")
    rc["database"] = rc.get("database", "automl")
    rc["poll_seconds"] = float(rc.get("poll_seconds", 5.0))

    # Model cache & download policy
    raw.setdefault("models", {})
    mc = raw["models"]
    mc["cache_dir"] = _resolve_path(mc.get("cache_dir", "data/models"), proj)
    mc["labels_resource"] = mc.get("labels_resource", "dict.txt")
    mc["labels_filename"] = mc.get("labels_filename", "_dict.txt")
    mc["assets_dir"] = _resolve_path(mc.get("assets_dir"), proj)
    mc.setdefault("download", {})
    dl = mc["download"]
    dl["require_network"] = bool(dl.get("require_network", False))
    dl["retry_seconds"] = float(dl.get("retry_seconds", 5.0))
    max_wait = dl.get("max_wait_seconds")
    dl["max_wait_seconds"] = None if max_wait in (None, "") else float(max_wait)

    # Preprocessing & inference
    raw.setdefault("preprocess", {})
    raw["preprocess"]["input_side"] = int(raw["preprocess"].get("input_side", 224))
    raw["preprocess"]["decode_side"] = int(raw["preprocess"].get("decode_side", 244))
    raw.setdefault("inference", {})
    raw["inference"]["per_class_limit"] = int(raw["inference"].get("per_class_limit", 1))
    raw["inference"]["threshold"] = float(raw["inference"].get("threshold", 0.0))

    return raw
