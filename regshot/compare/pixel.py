"""Pixel diff engine: per-pixel YIQ color distance with anti-aliasing detection.

The comparator follows the pixelmatch approach: the perceived color distance
of every pixel pair (both blended over white) is tested against a threshold,
and a differing pixel is ignored when the neighbourhood test says it only
differs because of edge smoothing in one of the two images.
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
from regshot.models.compare_result import PixelCompareResult
from regshot.models.config import DiffConfig
from regshot.png.image import PNGImage

logger = logging.getLogger(__name__)

ALGORITHM = "pixel"

# Largest possible YIQ delta between two colors.
MAX_YIQ_DELTA = 35215

__all__ = [
    "compare_images",
    "create_diff_size_png_image",
    "images_match",
    "is_passed",
    "pixelmatch",
    "save_diff_image",
]


def _rgb2y(r, g, b):
    return r * 0.29889531 + g * 0.58662247 + b * 0.11448223


def _rgb2i(r, g, b):
    return r * 0.59597799 - g * 0.27417610 - b * 0.32180189


def _rgb2q(r, g, b):
    return r * 0.21147017 - g * 0.52261711 + b * 0.31114694


def _blend_on_white(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    rgba = pixels.astype(np.float64)
    alpha = rgba[..., 3] / 255
    r = 255 + (rgba[..., 0] - 255) * alpha
    g = 255 + (rgba[..., 1] - 255) * alpha
    b = 255 + (rgba[..., 2] - 255) * alpha
    return r, g, b


def color_delta(img1: np.ndarray, img2: np.ndarray) -> np.ndarray:
    """Signed squared YIQ distance per pixel.

    Negative where ``img1`` is brighter than ``img2``; exactly 0 where the
    two RGBA values are equal.
    """
    r1, g1, b1 = _blend_on_white(img1)
    r2, g2, b2 = _blend_on_white(img2)

    y1 = _rgb2y(r1, g1, b1)
    y2 = _rgb2y(r2, g2, b2)
    y = y1 - y2
    i = _rgb2i(r1, g1, b1) - _rgb2i(r2, g2, b2)
    q = _rgb2q(r1, g1, b1) - _rgb2q(r2, g2, b2)

    delta = 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q
    return np.where(y1 > y2, -delta, delta)


# Neighbour offsets as (dx, dy), in the order the extremes are searched.
_OFFSETS = np.array([(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if dx or dy])

# Candidates are tested in chunks to bound the size of the (n, 8) work arrays.
_AA_CHUNK = 1 << 18


def _blended_luma(pixels: np.ndarray) -> np.ndarray:
    return _rgb2y(*_blend_on_white(pixels))


def _packed(pixels: np.ndarray) -> np.ndarray:
    # One integer per RGBA value so neighbour equality is a single comparison.
    return np.ascontiguousarray(pixels).view(np.uint32)[..., 0]


def _edge_mask(height: int, width: int) -> np.ndarray:
    edge = np.zeros((height, width), dtype=bool)
    edge[0, :] = edge[-1, :] = True
    edge[:, 0] = edge[:, -1] = True
    return edge


def _many_siblings(packed: np.ndarray, edge: np.ndarray, inside: np.ndarray) -> np.ndarray:
    """Per pixel: more than two neighbours share its exact color.

    Pixels on the image border count one extra sibling.
    """
    height, width = packed.shape
    padded = np.pad(packed, 1, mode="edge")
    count = edge.astype(np.int8)
    for dx, dy in _OFFSETS:
        window = np.s_[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
        count += inside[window] & (padded[window] == packed)
    return count > 2


def _antialiased_mask(
    luma: np.ndarray,
    many_self: np.ndarray,
    many_other: np.ndarray,
    edge: np.ndarray,
    inside: np.ndarray,
    ys: np.ndarray,
    xs: np.ndarray,
) -> np.ndarray:
    """Whether each (ys, xs) looks like an anti-aliased edge pixel in this image.

    The pixel must sit between a darker and a brighter neighbour, and one of
    those extremes must belong to a flat region in both images. The first
    neighbour holding the extreme value is the one checked.
    """
    height, width = luma.shape
    padded = np.pad(luma, 1, mode="edge")
    ny = ys[:, None] + 1 + _OFFSETS[:, 1]
    nx = xs[:, None] + 1 + _OFFSETS[:, 0]
    valid = inside[ny, nx]
    deltas = luma[ys, xs][:, None] - padded[ny, nx]

    zeroes = edge[ys, xs] + np.count_nonzero(valid & (deltas == 0), axis=1)
    darker = np.where(valid & (deltas < 0), deltas, np.inf)
    brighter = np.where(valid & (deltas > 0), deltas, -np.inf)
    has_min = np.isfinite(darker.min(axis=1))
    has_max = np.isfinite(brighter.max(axis=1))

    def flat(k: np.ndarray) -> np.ndarray:
        fx = np.clip(xs + _OFFSETS[k, 0], 0, width - 1)
        fy = np.clip(ys + _OFFSETS[k, 1], 0, height - 1)
        return many_self[fy, fx] & many_other[fy, fx]

    flat_min = flat(darker.argmin(axis=1))
    flat_max = flat(brighter.argmax(axis=1))
    return (zeroes <= 2) & has_min & has_max & (flat_min | flat_max)


def _antialiased_pixels(img1: np.ndarray, img2: np.ndarray, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    """Anti-aliasing verdict for every candidate pixel, in either image."""
    height, width = img1.shape[:2]
    edge = _edge_mask(height, width)
    inside = np.pad(np.ones((height, width), dtype=bool), 1, constant_values=False)
    luma1, luma2 = _blended_luma(img1), _blended_luma(img2)
    packed1, packed2 = _packed(img1), _packed(img2)
    many1 = _many_siblings(packed1, edge, inside)
    many2 = _many_siblings(packed2, edge, inside)

    result = np.zeros(len(ys), dtype=bool)
    for start in range(0, len(ys), _AA_CHUNK):
        cy, cx = ys[start:start + _AA_CHUNK], xs[start:start + _AA_CHUNK]
        result[start:start + _AA_CHUNK] = (
            _antialiased_mask(luma1, many1, many2, edge, inside, cy, cx)
            | _antialiased_mask(luma2, many2, many1, edge, inside, cy, cx)
        )
    return result


def _draw_gray(img: np.ndarray, alpha: float, output: np.ndarray, mask: np.ndarray | None = None) -> None:
    rgba = img.astype(np.float64)
    luma = _rgb2y(rgba[..., 0], rgba[..., 1], rgba[..., 2])
    value = 255 + (luma - 255) * (alpha * rgba[..., 3] / 255)
    gray = np.clip(value, 0, 255).astype(np.uint8)
    if mask is None:
        mask = np.ones(gray.shape, dtype=bool)
    output[mask, 0] = gray[mask]
    output[mask, 1] = gray[mask]
    output[mask, 2] = gray[mask]
    output[mask, 3] = 255


def pixelmatch(
    img1: np.ndarray,
    img2: np.ndarray,
    output: np.ndarray | None,
    width: int,
    height: int,
    options: DiffConfig | None = None,
) -> int:
    """Count differing pixels between two ``(height, width, 4)`` uint8 arrays.

    When ``output`` is given it is painted in place: counted pixels in
    ``diff_color`` (``diff_color_alt`` where img1 is brighter), ignored
    anti-aliased pixels in ``aa_color`` and everything else as a faded
    grayscale copy of img1 (left untouched with ``diff_mask``).
    """
    options = options or DiffConfig()
    expected_shape = (height, width, 4)
    for name, arr in (("img1", img1), ("img2", img2), ("output", output)):
        if arr is not None and arr.shape != expected_shape:
            raise ValueError(f"{name} has shape {arr.shape}, expected {expected_shape}")

    if options.fast_buffer_check and np.array_equal(img1, img2):
        if output is not None and not options.diff_mask:
            _draw_gray(img1, options.alpha, output)
        return 0

    max_delta = MAX_YIQ_DELTA * options.threshold * options.threshold
    delta = color_delta(img1, img2)
    candidates = np.abs(delta) > max_delta

    if output is not None and not options.diff_mask:
        _draw_gray(img1, options.alpha, output, ~candidates)

    ys, xs = np.nonzero(candidates)
    if len(ys) == 0:
        return 0

    if options.include_aa:
        aa = np.zeros(len(ys), dtype=bool)
    else:
        aa = _antialiased_pixels(img1, img2, ys, xs)

    if output is not None and not options.diff_mask:
        output[ys[aa], xs[aa], :3] = options.aa_color
        output[ys[aa], xs[aa], 3] = 255

    dy, dx = ys[~aa], xs[~aa]
    if output is not None and len(dy):
        colors = np.empty((len(dy), 3), dtype=np.uint8)
        colors[:] = options.diff_color
        if options.diff_color_alt is not None:
            colors[delta[dy, dx] < 0] = options.diff_color_alt
        output[dy, dx, :3] = colors
        output[dy, dx, 3] = 255

    return int(len(dy))


def is_passed(percent_difference: float, num_diff_pixels: int, options: DiffConfig) -> bool:
    """Apply the pass policy; a limit of 0 counts as not configured."""
    if options.max_diff_percentage and options.max_diff_pixels:
        return (
            percent_difference <= options.max_diff_percentage
            and num_diff_pixels <= options.max_diff_pixels
        )

    if options.max_diff_percentage:
        return percent_difference <= options.max_diff_percentage

    if options.max_diff_pixels:
        return num_diff_pixels <= options.max_diff_pixels

    return num_diff_pixels == 0


def compare_images(
    image1: ImageSource | PNGImage,
    image2: ImageSource | PNGImage,
    with_diff: bool = False,
    options: DiffConfig | dict | None = None,
    log: logging.Logger | None = None,
) -> PixelCompareResult:
    """Compare two PNG images pixel by pixel.

    Undecodable inputs raise ``PNGDecodeError``. A size mismatch is reported
    with ``different_sizes=True`` and ``passed=False``.
    """
    log = log or logger
    options = DiffConfig.model_validate(options or {})

    png1 = load_png(image1)
    png2 = load_png(image2)

    if png1.size != png2.size:
        log.debug("Images have different dimensions: %dx%d vs %dx%d",
                  png1.width, png1.height, png2.width, png2.height)
        return PixelCompareResult(passed=False, different_sizes=True)

    width, height = png1.size

    try:
        output = np.zeros((height, width, 4), dtype=np.uint8) if with_diff else None
        num_diff_pixels = pixelmatch(png1.to_array(), png2.to_array(), output, width, height, options)

        total_pixels = width * height
        percent_difference = num_diff_pixels / total_pixels * 100 if total_pixels else 0.0

        diff_buffer = None
        if output is not None:
            diff_image = annotate_diff_image(PNGImage.from_array(output), ALGORITHM, options)
            diff_buffer = diff_image.to_buffer()

        passed = is_passed(percent_difference, num_diff_pixels, options)
        log.debug("Pixel diff: %d/%d pixels (%.4f%%), passed=%s",
                  num_diff_pixels, total_pixels, percent_difference, passed)

        return PixelCompareResult(
            num_diff_pixels=num_diff_pixels,
            total_pixels=total_pixels,
            percent_difference=percent_difference,
            diff_buffer=diff_buffer,
            passed=passed,
            different_sizes=False,
        )
    except Exception as e:
        message = str(e) or "Unknown error"
        log.error("Pixel comparison failed: %s", message)
        return PixelCompareResult(passed=False, error=message)


def images_match(
    image1: ImageSource | PNGImage,
    image2: ImageSource | PNGImage,
    options: DiffConfig | dict | None = None,
) -> bool:
    """Quick pass/fail comparison without a diff image."""
    return compare_images(image1, image2, False, options).passed


def create_diff_size_png_image(width: int, height: int) -> bytes:
    """Solid red PNG used as the diff artifact of a dimension mismatch."""
    image = PNGImage.create(width, height, (255, 0, 0, 255))
    image.set_metadata("regshot.diff.algorithm", ALGORITHM)
    image.set_metadata("regshot.diff.differentSizes", "true")
    return image.to_buffer()
