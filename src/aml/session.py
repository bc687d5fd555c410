from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Union
import logging

import numpy as np
import requests

from aml.models.loader import ModelLoader
from aml.models.types import (
    DatasetRef, DownloadFailed, Inference, LoadFailed, LoadedModelHandle, ModelRecord,
)
from aml.models.resolver import ModelResolver
from aml.vision.classify import InferenceRunner
from aml.vision.preprocess import decode_image, preprocess

log = logging.getLogger("aml.session")

MSG_FETCHING = "Fetching latest model info"
MSG_NO_MODEL = "No model available"
MSG_DOWNLOAD_ERROR = "Error downloading model"
MSG_LOAD_ERROR = "Error loading the model"
MSG_INFERENCE_ERROR = "Error running inference"

Image = Union[bytes, str, Path]


class SessionState(str, Enum):
    IDLE = "idle"
    FETCHING_MODEL_INFO = "fetching_model_info"
    CAPTURING_IMAGE = "capturing_image"
    CLASSIFYING = "classifying"
    SHOWING_RESULTS = "showing_results"


class ImagePicker(Protocol):
    def pick_image(self, source: str) -> Optional[Image]:
        ...


# returns True for "retake", False for "close"
ResultsPresenter = Callable[[bytes, List[Inference]], bool]
Notifier = Callable[[str], None]


@dataclass
class SessionContext:
    dataset: DatasetRef
    user_id: Optional[str] = None
    image_source: str = "gallery"
    state: SessionState = SessionState.IDLE
    transitions: List[SessionState] = field(default_factory=list)
    notifications: List[str] = field(default_factory=list)
    record: Optional[ModelRecord] = None
    handle: Optional[LoadedModelHandle] = None
    inferences: List[Inference] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class ClassifyFailed:
    reason: str


class SessionController:
    """Drives one pick-image-and-classify session for a dataset.

    Resolver and loader failures are turned into notifications here. A failed
    download does not stop the session, the runtime may still hold an earlier
    model. A failed load or classification ends it.
    """

    def __init__(
        self,
        resolver: ModelResolver,
        loader: ModelLoader,
        runner: InferenceRunner,
        picker: ImagePicker,
        present: ResultsPresenter,
        notify: Optional[Notifier] = None,
        side: int = 224,
        decode_side: int = 244,
    ):
        self.resolver = resolver
        self.loader = loader
        self.runner = runner
        self.picker = picker
        self.present = present
        self.notify = notify
        self.side = int(side)
        self.decode_side = int(decode_side)

    def inference_available(self, dataset: DatasetRef) -> bool:
        return self.resolver.has_model(dataset)

    def run(self, ctx: SessionContext) -> SessionContext:
        self._enter(ctx, SessionState.FETCHING_MODEL_INFO)
        self._notify(ctx, MSG_FETCHING)

        try:
            record = self.resolver.resolve_latest(ctx.dataset)
        except (requests.RequestException, ConnectionError, ValueError) as e:
            log.error("model lookup failed for %s: %s", ctx.dataset, e)
            ctx.error = str(e)
            self._notify(ctx, MSG_DOWNLOAD_ERROR)
            return self._capture_loop(ctx)

        if record is None:
            self._notify(ctx, MSG_NO_MODEL)
            return self._enter(ctx, SessionState.IDLE)
        ctx.record = record

        outcome = self.loader.ensure_loaded(record)
        if isinstance(outcome, DownloadFailed):
            log.error("download failed for %s: %s", record.name, outcome.reason)
            ctx.error = outcome.reason
            self._notify(ctx, MSG_DOWNLOAD_ERROR)
        elif isinstance(outcome, LoadFailed):
            log.error("load failed for %s: %s", record.name, outcome.reason)
            ctx.error = outcome.reason
            self._notify(ctx, MSG_LOAD_ERROR)
            return self._enter(ctx, SessionState.IDLE)
        else:
            log.info("Successfully loaded model %s", outcome.artifact_name)
            ctx.handle = outcome

        return self._capture_loop(ctx)

    def _capture_loop(self, ctx: SessionContext) -> SessionContext:
        while True:
            self._enter(ctx, SessionState.CAPTURING_IMAGE)
            picked = self.picker.pick_image(ctx.image_source)
            if picked is None:
                return self._enter(ctx, SessionState.IDLE)
            image = picked if isinstance(picked, (bytes, bytearray)) else Path(picked).read_bytes()

            self._enter(ctx, SessionState.CLASSIFYING)
            result = self._classify(image)
            if isinstance(result, ClassifyFailed):
                ctx.error = result.reason
                self._notify(ctx, MSG_INFERENCE_ERROR)
                return self._enter(ctx, SessionState.IDLE)
            ctx.inferences = result
            for inf in result:
                log.debug("[Inference results] %s", inf)

            self._enter(ctx, SessionState.SHOWING_RESULTS)
            if not self.present(bytes(image), result):
                return self._enter(ctx, SessionState.IDLE)

    def _classify(self, image: bytes) -> Union[List[Inference], ClassifyFailed]:
        try:
            img_bgr = decode_image(bytes(image))
            buffer: np.ndarray = preprocess(img_bgr, side=self.side, decode_side=self.decode_side)
            return self.runner.classify(buffer)
        except (ValueError, RuntimeError) as e:
            log.error("classification failed: %s", e)
            return ClassifyFailed(str(e))

    def _enter(self, ctx: SessionContext, state: SessionState) -> SessionContext:
        ctx.state = state
        ctx.transitions.append(state)
        return ctx

    def _notify(self, ctx: SessionContext, text: str) -> None:
        ctx.notifications.append(text)
        if self.notify is not None:
            self.notify(text)
