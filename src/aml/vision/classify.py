from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging
import math
import numbers

import numpy as np
from pydantic import BaseModel, AliasChoices, ConfigDict, Field, ValidationError, field_validator

from aml.models.types import Inference
from aml.models.runtime import OnnxClassifierRuntime

log = logging.getLogger("aml.classify")


class RawDetection(BaseModel):
    label: str = Field(..., min_length=1, validation_alias=AliasChoices("label", "detectedClass"))
    confidence: float = Field(..., validation_alias=AliasChoices("confidence", "confidenceInClass"))

    model_config = ConfigDict(extra="ignore", strict=False)

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric(cls, v: Any) -> Any:
        if isinstance(v, (bool, np.bool_)) or not isinstance(v, numbers.Real):
            raise ValueError("confidence must be a number")
        return float(v)

    @field_validator("confidence")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("confidence must be finite")
        return v


def to_inference(raw: Any) -> Optional[Inference]:
    if not isinstance(raw, dict):
        return None
    try:
        det = RawDetection.model_validate(raw)
    except ValidationError as e:
        log.debug("dropping malformed detection %r: %s", raw, e.errors())
        return None
    return Inference(label=det.label, confidence=det.confidence)


class InferenceRunner:
    def __init__(self, runtime: OnnxClassifierRuntime, per_class_limit: int = 1, threshold: float = 0.0):
        self.runtime = runtime
        self.per_class_limit = int(per_class_limit)
        self.threshold = float(threshold)

    def classify(self, buffer: np.ndarray) -> List[Inference]:
        raw: List[Dict] = self.runtime.detect(buffer, per_class_limit=self.per_class_limit, threshold=self.threshold)
        out: List[Inference] = []
        for r in raw or []:
            inf = to_inference(r)
            if inf is not None:
                out.append(inf)
        return out
