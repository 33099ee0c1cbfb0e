"""
Image to feature vector conversion for digit glyphs.

Arbitrary rasters are padded to a centred square, resized to 28x28, blurred
and binarised with an Otsu threshold so they land on the same 0..16 scale as
the reference vectors.
"""

from __future__ import annotations

import io
import os
from typing import Any, BinaryIO, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .constants import (
    BLUR_SIGMA,
    FEATURE_MAX,
    MAX_CANVAS_PIXELS,
    OTSU_DEFAULT_THRESHOLD,
    PIXEL_MAX,
    TARGET_SIZE,
)
from .errors import ExtractionError

ImageSource = Union[str, "os.PathLike[str]", bytes, BinaryIO, Image.Image, np.ndarray]

_DECODE_ERRORS = (
    UnidentifiedImageError,
    OSError,
    EOFError,
    SyntaxError,
    ValueError,
    MemoryError,
    Image.DecompressionBombError,
)

WIDE_MAX = 0xFFFF


def to_8bit(values: np.ndarray) -> np.ndarray:
    """
    Bring integer or float samples onto 0..255.

    Data exceeding the 8-bit range is treated as 16-bit and keeps its high
    byte; anything else is clipped.
    """
    values = np.asarray(values)
    if values.size and values.max() > PIXEL_MAX:
        return (np.clip(values, 0, WIDE_MAX).astype(np.uint32) >> 8).astype(np.uint8)
    return np.clip(values, 0, PIXEL_MAX).astype(np.uint8)


def describe_source(source: Any) -> str:
    """Human readable identifier for an image source, used in warnings."""
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    if isinstance(source, np.ndarray):
        return f"<array {source.shape}>"
    if isinstance(source, Image.Image):
        return f"<image {source.size[0]}x{source.size[1]}>"
    return str(getattr(source, "name", type(source).__name__))


def otsu_threshold(samples: np.ndarray, default: int = OTSU_DEFAULT_THRESHOLD) -> int:
    """
    Otsu threshold over 8-bit samples.

    Candidates where either class is empty are skipped. The first threshold with
    the strictly largest between-class variance wins; ``default`` is returned
    when no candidate scores above zero (e.g. a single-valued histogram).
    """
    values = np.asarray(samples).ravel()
    if values.size == 0:
        return default
    if values.min() < 0 or values.max() > PIXEL_MAX:
        raise ValueError("Otsu threshold expects samples in the range 0..255")

    hist = np.bincount(values.astype(np.int64), minlength=PIXEL_MAX + 1).astype(np.float64)
    levels = np.arange(PIXEL_MAX + 1, dtype=np.float64)
    total = float(values.size)

    w_b = np.cumsum(hist)
    w_f = total - w_b
    sum_b = np.cumsum(levels * hist)
    sum_all = sum_b[-1]
    valid = (w_b > 0) & (w_f > 0)

    with np.errstate(divide="ignore", invalid="ignore"):
        m_b = sum_b / w_b
        m_f = (sum_all - sum_b) / w_f
        diff = m_b - m_f
        between = w_b * w_f * diff * diff
    between = np.where(valid, between, 0.0)

    best = int(np.argmax(between))
    if between[best] > 0:
        return best
    return default


def binarise(samples: np.ndarray, threshold: int, high: int = FEATURE_MAX) -> np.ndarray:
    """Map samples above ``threshold`` to ``high`` and everything else to 0."""
    values = np.asarray(samples)
    return np.where(values > threshold, high, 0).astype(np.uint8)


class DigitVectorizer:
    """Pipeline turning a raster image into a flat binarised feature vector."""

    def __init__(
        self,
        target_size: int = TARGET_SIZE,
        feature_max: int = FEATURE_MAX,
        blur_sigma: float = BLUR_SIGMA,
    ) -> None:
        self.target_size = int(target_size)
        self.feature_max = int(feature_max)
        self.blur_sigma = float(blur_sigma)

    @property
    def dimension(self) -> int:
        return self.target_size * self.target_size

    def load_grayscale(self, source: ImageSource) -> Image.Image:
        """Decode ``source`` and return a single-channel 8-bit image."""
        if isinstance(source, Image.Image):
            return self.to_grayscale(source)
        if isinstance(source, np.ndarray):
            return self._array_to_grayscale(source)
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        with Image.open(source) as image:
            image.load()
            return self.to_grayscale(image)

    def to_grayscale(self, image: Image.Image) -> Image.Image:
        """Drop any alpha channel and convert to ``L`` mode."""
        if image.mode == "L":
            return image.copy()
        if image.mode in ("LA", "La"):
            return image.getchannel("L")
        if image.mode.startswith("I") or image.mode == "F":
            return Image.fromarray(to_8bit(np.asarray(image)))
        if image.mode in ("P", "PA"):
            image = image.convert("RGBA")
        if image.mode in ("RGBA", "RGBa"):
            image = image.convert("RGB")
        return image.convert("L")

    def _array_to_grayscale(self, array: np.ndarray) -> Image.Image:
        # Arrays follow the OpenCV channel order (BGR / BGRA).
        gray = np.asarray(array)
        if gray.ndim < 2 or gray.size == 0:
            raise ValueError(f"Image has invalid dimensions {gray.shape}")
        if gray.ndim == 3 and gray.shape[2] == 4:
            gray = cv2.cvtColor(gray, cv2.COLOR_BGRA2GRAY)
        elif gray.ndim == 3 and gray.shape[2] == 3:
            gray = cv2.cvtColor(gray, cv2.COLOR_BGR2GRAY)
        elif gray.ndim == 3 and gray.shape[2] == 1:
            gray = gray[:, :, 0]
        if gray.ndim != 2:
            raise ValueError(f"Unsupported image array shape {array.shape}")

        if gray.dtype != np.uint8:
            if gray.dtype.kind in "fb" and gray.max() <= 1.0:
                gray = gray * 255.0
            gray = to_8bit(gray)
        return Image.fromarray(gray)

    def pad_to_square(self, image: Image.Image) -> Image.Image:
        """Centre ``image`` on a black square canvas of side max(width, height)."""
        width, height = image.size
        if width <= 0 or height <= 0:
            raise ValueError(f"Image has invalid dimensions {width}x{height}")
        side = max(width, height)
        limit = Image.MAX_IMAGE_PIXELS or MAX_CANVAS_PIXELS
        if side * side > limit:
            raise ValueError(f"Padded canvas {side}x{side} exceeds the {limit} pixel limit")
        left = (side - width) // 2
        top = (side - height) // 2
        canvas = Image.new("L", (side, side), 0)
        canvas.paste(image, (left, top))
        return canvas

    def resize(self, image: Image.Image) -> Image.Image:
        return image.resize((self.target_size, self.target_size), Image.Resampling.LANCZOS)

    def denoise(self, gray: np.ndarray) -> np.ndarray:
        if self.blur_sigma <= 0:
            return gray
        return cv2.GaussianBlur(gray, (0, 0), sigmaX=self.blur_sigma)

    def samples(self, source: ImageSource) -> np.ndarray:
        """Flat row-major 8-bit samples of the centred, resized, blurred image."""
        gray = self.load_grayscale(source)
        square = self.pad_to_square(gray)
        resized = np.asarray(self.resize(square), dtype=np.uint8)
        return self.denoise(resized).reshape(-1)

    def vectorise(self, source: ImageSource) -> np.ndarray:
        """
        Full pipeline from raw image to a feature vector of length
        ``target_size ** 2`` with values in {0, feature_max}.

        Raises ExtractionError when the image cannot be decoded or has no
        usable dimensions.
        """
        try:
            samples = self.samples(source)
        except _DECODE_ERRORS as exc:
            raise ExtractionError(describe_source(source), str(exc) or type(exc).__name__) from exc
        threshold = otsu_threshold(samples)
        return binarise(samples, threshold, high=self.feature_max)


def image_to_vector(source: ImageSource, target_size: int = TARGET_SIZE) -> np.ndarray:
    """Utility for vectorising a single image with default settings."""
    return DigitVectorizer(target_size=target_size).vectorise(source)
