from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable
from pathlib import Path
import hashlib
import json
import logging
import os
import time

from urllib3.exceptions import HTTPError as Urllib3HTTPError

from aml.models.types import ModelRef
from .minio_client import MinIOClient

log = logging.getLogger("aml.model_store")

MODEL_FILENAME = "model.onnx"
CARD_FILENAME = "model_card.json"


@dataclass(frozen=True)
class DownloadConditions:
    # False: an unreachable store is waited for instead of failing at once
    require_network: bool = False
    retry_seconds: float = 5.0
    max_wait_seconds: Optional[float] = None


def sha256_file(p: Path) -> str:
    h = hashlib.sha256()
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def load_json_safe(p: Path) -> dict:
    if p.exists():
        try:
            return json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            log.warning("Unreadable model card %s", p)
    return {}


class MinIOModelStore:
    """Keeps trained model artifacts from MinIO in a local cache dir.

    Layout::

        <cache_dir>/<name>/model.onnx
        <cache_dir>/<name>/model_card.json

    The card records the ``generated_at`` of the downloaded generation; a
    download is skipped when the card is at least as new as the requested ref.
    """

    def __init__(self, client: MinIOClient, cache_dir: str | Path, prefix: str = "models",
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.cache_dir = Path(cache_dir)
        self.prefix = prefix
        self._sleep = sleep

    def artifact_dir(self, ref: ModelRef) -> Path:
        return self.cache_dir / ref.name

    def object_key(self, ref: ModelRef) -> str:
        return self.client.make_model_key(self.prefix, ref.name, MODEL_FILENAME)

    def read_card(self, ref: ModelRef) -> Dict[str, Any]:
        return load_json_safe(self.artifact_dir(ref) / CARD_FILENAME)

    def is_fresh(self, ref: ModelRef) -> bool:
        if not (self.artifact_dir(ref) / MODEL_FILENAME).exists():
            return False
        stored = self.read_card(ref).get("generated_at")
        try:
            return int(stored) >= int(ref.generated_at)
        except (TypeError, ValueError):
            return False

    def download(self, ref: ModelRef, conditions: DownloadConditions = DownloadConditions()) -> None:
        if self.is_fresh(ref):
            log.info("Using cached model %s (generated_at=%s)", ref.name, ref.generated_at)
            return

        out_dir = self.artifact_dir(ref)
        out_dir.mkdir(parents=True, exist_ok=True)
        dst = out_dir / MODEL_FILENAME
        tmp = out_dir / (MODEL_FILENAME + ".part")
        key = self.object_key(ref)

        started = time.monotonic()
        while True:
            try:
                size = self.client.fget(key, tmp)
                break
            except (Urllib3HTTPError, ConnectionError) as e:
                if conditions.require_network:
                    raise
                waited = time.monotonic() - started
                if conditions.max_wait_seconds is not None and waited >= conditions.max_wait_seconds:
                    raise
                log.warning("Model store unreachable (%s); retrying in %.1fs", e, conditions.retry_seconds)
                self._sleep(conditions.retry_seconds)

        os.replace(tmp, dst)
        card = {
            "name": ref.name,
            "generated_at": int(ref.generated_at),
            "object_key": key,
            "sha256": sha256_file(dst),
            "bytes": int(size),
        }
        (out_dir / CARD_FILENAME).write_text(json.dumps(card, indent=2, ensure_ascii=False), encoding="utf-8")
        log.info("Downloaded model %s -> %s (%d bytes)", key, dst, size)

    def is_downloaded(self, ref: ModelRef) -> bool:
        return (self.artifact_dir(ref) / MODEL_FILENAME).exists() and bool(self.read_card(ref))

    def get_local_file(self, ref: ModelRef) -> Optional[Path]:
        p = self.artifact_dir(ref) / MODEL_FILENAME
        return p if p.exists() else None
