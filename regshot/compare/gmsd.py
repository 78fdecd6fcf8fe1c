"""Perceptual diff engine: Gradient Magnitude Similarity Deviation (GMSD).

GMSD compares the local gradient magnitudes of two images instead of their
colors, so it tolerates small rendering noise while still reacting to
changed edges. The score is the standard deviation of the per-pixel
gradient similarity: 0 means identical gradients, larger is worse.
"""

from __future__ import annotations

import logging

import numpy as np

from regshot.compare.diff_image import (
    ImageSource,
    annotate_diff_image,
    load_png,
    save_diff_image,
)
from regshot.models.compare_result import GmsdCompareResult
from regshot.models.config import GmsdConfig
from regshot.png.image import PNGImage

logger = logging.getLogger(__name__)

ALGORITHM = "gmsd"

__all__ = [
    "compare_images_gmsd",
    "gmsd",
    "gradient_magnitude",
    "images_match_gmsd",
    "save_diff_image",
]


def _luma(pixels: np.ndarray) -> np.ndarray:
    rgb = pixels[..., :3].astype(np.float64)
    return rgb[..., 0] * 0.298936 + rgb[..., 1] * 0.587043 + rgb[..., 2] * 0.114021


def _downsample(luma: np.ndarray, factor: int) -> np.ndarray:
    """Block-average by ``factor``; trailing rows/columns that do not fill a block are dropped."""
    height, width = luma.shape
    h, w = height // factor, width // factor
    blocks = luma[: h * factor, : w * factor].reshape(h, factor, w, factor)
    return blocks.mean(axis=(1, 3))


def gradient_magnitude(luma: np.ndarray) -> np.ndarray:
    """Prewitt gradient magnitude of the interior pixels (shape shrinks by 2)."""
    # Horizontal kernel [[1, 0, -1]] * 3 rows / 3, vertical is its transpose.
    left = luma[:-2, :-2] + luma[1:-1, :-2] + luma[2:, :-2]
    right = luma[:-2, 2:] + luma[1:-1, 2:] + luma[2:, 2:]
    top = luma[:-2, :-2] + luma[:-2, 1:-1] + luma[:-2, 2:]
    bottom = luma[2:, :-2] + luma[2:, 1:-1] + luma[2:, 2:]
    gx = (left - right) / 3
    gy = (top - bottom) / 3
    return np.sqrt(gx * gx + gy * gy)


def _paint_similarity(similarity: np.ndarray, output: np.ndarray, factor: int) -> None:
    height, width = output.shape[:2]
    full = np.ones((height, width), dtype=np.float64)

    if factor > 1:
        similarity = np.repeat(np.repeat(similarity, factor, axis=0), factor, axis=1)
        offset = factor
    else:
        offset = 1

    h = min(similarity.shape[0], height - offset)
    w = min(similarity.shape[1], width - offset)
    if h > 0 and w > 0:
        full[offset : offset + h, offset : offset + w] = similarity[:h, :w]

    value = np.clip(full * 255, 0, 255).astype(np.uint8)
    output[..., 0] = value
    output[..., 1] = value
    output[..., 2] = value
    output[..., 3] = 255


def gmsd(
    img1: np.ndarray,
    img2: np.ndarray,
    output: np.ndarray | None,
    width: int,
    height: int,
    downsample: int = 0,
    c: float = 170,
) -> float:
    """GMSD score of two ``(height, width, 4)`` uint8 arrays.

    ``output``, when given, is painted with the similarity map: white where
    gradients agree, darker where they differ.
    """
    expected_shape = (height, width, 4)
    for name, arr in (("img1", img1), ("img2", img2), ("output", output)):
        if arr is not None and arr.shape != expected_shape:
            raise ValueError(f"{name} has shape {arr.shape}, expected {expected_shape}")

    luma1, luma2 = _luma(img1), _luma(img2)
    # An oversized factor collapses the image to a single block.
    factor = max(1, min(downsample, height, width))
    if factor > 1:
        luma1, luma2 = _downsample(luma1, factor), _downsample(luma2, factor)

    if luma1.shape[0] < 3 or luma1.shape[1] < 3:
        if output is not None:
            _paint_similarity(np.ones((0, 0)), output, factor)
        return 0.0

    m1 = gradient_magnitude(luma1)
    m2 = gradient_magnitude(luma2)
    similarity = (2 * m1 * m2 + c) / (m1 * m1 + m2 * m2 + c)

    if output is not None:
        _paint_similarity(similarity, output, factor)

    return float(np.std(similarity))


def compare_images_gmsd(
    image1: ImageSource | PNGImage,
    image2: ImageSource | PNGImage,
    with_diff: bool = False,
    options: GmsdConfig | dict | None = None,
    log: logging.Logger | None = None,
) -> GmsdCompareResult:
    """Compare two PNG images with GMSD.

    Never raises: decode errors, size mismatches and any other failure come
    back as ``gmsd=inf``, ``passed=False`` with ``error`` set.
    """
    log = log or logger

    try:
        options = GmsdConfig.model_validate(options or {})
        png1 = load_png(image1)
        png2 = load_png(image2)

        if png1.size != png2.size:
            raise ValueError(
                f"Images have different dimensions: {png1.width}x{png1.height} "
                f"vs {png2.width}x{png2.height}"
            )

        width, height = png1.size
        output = np.zeros((height, width, 4), dtype=np.uint8) if with_diff else None

        score = gmsd(
            png1.to_array(), png2.to_array(), output, width, height,
            downsample=options.downsample, c=options.c,
        )

        diff_buffer = None
        if output is not None:
            diff_image = annotate_diff_image(PNGImage.from_array(output), ALGORITHM, options)
            diff_buffer = diff_image.to_buffer()

        passed = score <= options.threshold
        log.debug("GMSD score %.6f (threshold %.4f), passed=%s", score, options.threshold, passed)
        return GmsdCompareResult(gmsd=score, diff_buffer=diff_buffer, passed=passed)
    except Exception as e:
        message = str(e) or "Unknown error"
        log.error("GMSD comparison failed: %s", message)
        return GmsdCompareResult(gmsd=float("inf"), passed=False, error=message)


def images_match_gmsd(
    image1: ImageSource | PNGImage,
    image2: ImageSource | PNGImage,
    options: GmsdConfig | dict | None = None,
) -> bool:
    return compare_images_gmsd(image1, image2, False, options).passed
