import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from aml.io.records import MemoryRecordStore  # noqa: E402
from aml.models.types import ModelRef  # noqa: E402


def encode_png(img_bgr: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img_bgr)
    assert ok
    return buf.tobytes()


class FakeModelStore:
    """Blob store double: records calls, can fail or report not-downloaded."""

    def __init__(self, root: Path, fail_with=None, downloaded=True):
        self.root = Path(root)
        self.fail_with = fail_with
        self.downloaded = downloaded
        self.downloads = []

    def download(self, ref: ModelRef, conditions=None) -> None:
        self.downloads.append(ref)
        if self.fail_with is not None:
            raise self.fail_with
        p = self.root / ref.name / "model.onnx"
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"onnx")

    def is_downloaded(self, ref: ModelRef) -> bool:
        return self.downloaded and (self.root / ref.name / "model.onnx").exists()

    def get_local_file(self, ref: ModelRef):
        p = self.root / ref.name / "model.onnx"
        return p if p.exists() else None


class FakeRuntime:
    def __init__(self, detections=None, status="success"):
        self.detections = detections if detections is not None else []
        self.status = status
        self.loads = []
        self.buffers = []
        self.is_loaded = False

    def load_model(self, model_path, labels_path, is_local_file=True):
        self.loads.append((model_path, labels_path, is_local_file))
        if self.status == "success":
            self.is_loaded = True
        return self.status

    def detect(self, buffer, per_class_limit=1, threshold=0.0):
        if not self.is_loaded:
            raise RuntimeError("no model loaded in runtime")
        self.buffers.append(buffer)
        return list(self.detections)


class CountingResources:
    def __init__(self, data=b"cat\ndog\n"):
        self.data = data
        self.loads = 0

    def load(self, path):
        self.loads += 1
        return self.data


class ListPicker:
    def __init__(self, images):
        self.images = list(images)
        self.calls = 0

    def pick_image(self, source):
        self.calls += 1
        return self.images.pop(0) if self.images else None


@pytest.fixture
def red_png():
    img = np.zeros((120, 80, 3), dtype=np.uint8)
    img[:, :] = (0, 0, 255)
    return encode_png(img)


@pytest.fixture
def records():
    return MemoryRecordStore()
