from __future__ import annotations
from .preprocess import decode_image, preprocess
from .classify import InferenceRunner, RawDetection, to_inference

__all__ = ["decode_image", "preprocess", "InferenceRunner", "RawDetection", "to_inference"]
