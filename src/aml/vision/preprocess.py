from __future__ import annotations
from typing import Union
import numpy as np
import cv2


def decode_image(data: bytes) -> np.ndarray:
    arr = np.frombuffer(data, dtype=np.uint8)
    img_bgr = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
    if img_bgr is None:
        raise ValueError("cv2.imdecode returned None")
    return img_bgr


def preprocess(
    image: Union[bytes, np.ndarray],
    side: int = 224,
    decode_side: int = 244,
) -> np.ndarray:
    """Turn an encoded (or already decoded BGR) image into a flat RGB buffer.

    The image is resized to ``decode_side`` squared and the top-left
    ``side`` x ``side`` window is read row-major as R, G, B bytes. Pixels
    outside the resized image are zero. Output length is ``3 * side * side``.
    """
    img_bgr = decode_image(image) if isinstance(image, (bytes, bytearray)) else image
    if img_bgr.ndim == 2:
        img_bgr = cv2.cvtColor(img_bgr, cv2.COLOR_GRAY2BGR)

    s = int(side)
    d = int(decode_side)
    resized = cv2.resize(img_bgr, (d, d), interpolation=cv2.INTER_LINEAR)
    rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

    canvas = np.zeros((s, s, 3), dtype=np.uint8)
    n = min(s, d)
    canvas[:n, :n] = rgb[:n, :n]
    return canvas.reshape(-1)
