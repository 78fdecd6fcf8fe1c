"""Helpers shared by the diff engines: loading inputs, provenance stamping, saving."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from regshot.png.image import PNGImage

logger = logging.getLogger(__name__)

METADATA_NAMESPACE = "regshot.diff"

ImageSource = bytes | str | Path


class _HasDiffBuffer(Protocol):
    diff_buffer: bytes | None


def load_png(source: ImageSource | PNGImage) -> PNGImage:
    if isinstance(source, PNGImage):
        return source
    return PNGImage.load(source)


def metadata_key(field: str) -> str:
    return f"{METADATA_NAMESPACE}.{field}"


def format_metadata_value(value: Any) -> str:
    """Render an option value the way it is stored in the diff image."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (tuple, list)):
        return ",".join(format_metadata_value(v) for v in value)
    return str(value)


def annotate_diff_image(image: PNGImage, algorithm: str, options: BaseModel) -> PNGImage:
    """Stamp the algorithm and every set option under the ``regshot.diff`` namespace."""
    image.set_metadata(metadata_key("algorithm"), algorithm)
    for key, value in options.model_dump(by_alias=True, exclude_none=True).items():
        image.set_metadata(metadata_key(key), format_metadata_value(value))
    return image


def read_diff_provenance(image: PNGImage) -> dict[str, str]:
    """Return the ``regshot.diff.*`` entries of an image, namespace prefix stripped.

    Unknown fields are returned as-is so newer writers stay readable.
    """
    prefix = f"{METADATA_NAMESPACE}."
    return {
        key[len(prefix):]: value
        for key, value in image.metadata.items()
        if key.startswith(prefix)
    }


def save_diff_image(result: _HasDiffBuffer, output_path: str | Path) -> Path:
    """Write the diff image of a comparison result to disk."""
    if not result.diff_buffer:
        raise ValueError("No diff buffer available in comparison result")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.diff_buffer)
    logger.debug("Saved diff image to %s", output_path)
    return output_path
