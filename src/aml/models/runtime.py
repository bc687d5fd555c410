from __future__ import annotations
from pathlib import Path
from typing import List, Dict, Tuple, Optional
import logging

import numpy as np
import onnxruntime as ort

from aml.io.resources import ASSETS_DIR

log = logging.getLogger("aml.runtime")


class OnnxClassifierRuntime:
    """Image classifier on top of onnxruntime.

    Takes the flat RGB uint8 buffer produced by ``aml.vision.preprocess`` and
    returns per-class detections shaped like the mobile TFLite plugin output
    (``detectedClass`` / ``confidenceInClass``).
    """

    def __init__(
        self,
        providers: Tuple[str, ...] = ("CUDAExecutionProvider", "CPUExecutionProvider"),
        assets_dir: str | Path = ASSETS_DIR,
    ):
        self.providers = tuple(providers)
        self.assets_dir = Path(assets_dir)
        self.session: Optional[ort.InferenceSession] = None
        self.input_name: Optional[str] = None
        self.input_shape: List = []
        self.input_type: str = "tensor(float)"
        self.output_names: List[str] = []
        self.labels: List[str] = []
        self.model_path: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self.session is not None

    def load_model(self, model_path: str, labels_path: str, is_local_file: bool = True) -> str:
        if not is_local_file:
            model_path = str(self.assets_dir / model_path)
            labels_path = str(self.assets_dir / labels_path)

        if not Path(model_path).exists():
            raise FileNotFoundError(f"model not found: {model_path}")
        if not Path(labels_path).exists():
            raise FileNotFoundError(f"labels not found: {labels_path}")

        with open(labels_path, "r", encoding="utf-8") as f:
            labels = [ln.strip() for ln in f.readlines() if ln.strip()]
        if not labels:
            raise ValueError(f"empty labels file: {labels_path}")

        sess_opts = ort.SessionOptions()
        sess_opts.log_severity_level = 3
        try:
            session = ort.InferenceSession(model_path, sess_options=sess_opts, providers=list(self.providers))
        except Exception:
            session = ort.InferenceSession(model_path, sess_options=sess_opts, providers=["CPUExecutionProvider"])

        inp = session.get_inputs()[0]
        self.session = session
        self.input_name = inp.name
        self.input_shape = list(inp.shape)
        self.input_type = str(inp.type)
        self.output_names = [o.name for o in session.get_outputs()]
        self.labels = labels
        self.model_path = model_path
        log.info("Loaded model %s (labels=%d input=%s %s)", model_path, len(labels), self.input_shape, self.input_type)
        return "success"

    def detect(self, buffer: np.ndarray, per_class_limit: int = 1, threshold: float = 0.0) -> List[Dict]:
        if self.session is None:
            raise RuntimeError("no model loaded in runtime")

        inp = self._to_input(buffer)
        try:
            outputs = self.session.run(self.output_names, {self.input_name: inp})
        except Exception as e:
            # onnxruntime errors (InvalidArgument, Fail, ...) do not derive from RuntimeError
            raise RuntimeError(f"model run failed: {e}") from e
        scores = self._scores(outputs[0])
        return self._per_class(scores, per_class_limit, threshold)

    def _to_input(self, buffer: np.ndarray) -> np.ndarray:
        flat = np.asarray(buffer, dtype=np.uint8).reshape(-1)
        side = int(round((flat.size / 3) ** 0.5))
        if 3 * side * side != flat.size:
            raise ValueError(f"buffer of {flat.size} bytes is not a square RGB image")

        img = flat.reshape(side, side, 3)
        # channels-first models declare 3 at axis 1
        if len(self.input_shape) == 4 and self.input_shape[1] == 3:
            img = img.transpose(2, 0, 1)

        if self.input_type == "tensor(uint8)":
            return img[None, ...]
        return img.astype(np.float32)[None, ...]

    @staticmethod
    def _scores(raw: np.ndarray) -> np.ndarray:
        arr = np.asarray(raw)
        if arr.dtype == np.uint8:
            arr = arr.astype(np.float32) / 255.0
        if arr.ndim == 1:
            arr = arr[None, :]
        elif arr.ndim > 2:
            arr = arr.reshape(arr.shape[0], -1)
        return arr.astype(np.float32)

    def _per_class(self, scores: np.ndarray, per_class_limit: int, threshold: float) -> List[Dict]:
        by_cls: Dict[int, List[float]] = {}
        for row in scores:
            for i, s in enumerate(row):
                by_cls.setdefault(i, []).append(float(s))

        dets: List[Dict] = []
        limit = max(1, int(per_class_limit))
        for cls_idx, vals in by_cls.items():
            for s in sorted(vals, reverse=True)[:limit]:
                if s < float(threshold):
                    continue
                dets.append({
                    "detectedClass": self.labels[cls_idx] if cls_idx < len(self.labels) else None,
                    "confidenceInClass": s,
                    "classIndex": cls_idx,
                })
        dets.sort(key=lambda d: d["confidenceInClass"], reverse=True)
        return dets
