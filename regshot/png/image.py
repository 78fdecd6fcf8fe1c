"""PNG image wrapper with textual metadata support.

Pixels are decoded and encoded by Pillow; the ``tEXt`` chunks are read and
written by ``regshot.png.chunks`` so metadata never goes through Pillow.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from regshot.png.chunks import extract_text_metadata, inject_text_metadata

logger = logging.getLogger(__name__)


class PNGDecodeError(ValueError):
    """Raised when a buffer or file cannot be decoded as an image."""


class PNGImage:
    """An RGBA raster plus a key/value metadata mapping.

    Metadata operations only touch the in-memory mapping; nothing is written
    until ``to_buffer()`` or ``save()`` is called. On write, each entry
    becomes a fresh ``tEXt`` chunk right before ``IEND``. Other ancillary
    chunks of the source file are not carried over.
    """

    def __init__(
        self,
        image: Image.Image,
        source_path: Path | None = None,
        metadata: dict[str, str] | None = None,
    ):
        self._image = image if image.mode == "RGBA" else image.convert("RGBA")
        self.source_path = source_path
        self._metadata: dict[str, str] = dict(metadata or {})

    @classmethod
    def load(cls, source: bytes | str | Path) -> "PNGImage":
        """Decode an image from raw bytes or a file path."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            buffer = bytes(source)
            source_path = None
        else:
            source_path = Path(source)
            buffer = source_path.read_bytes()

        try:
            image = Image.open(io.BytesIO(buffer))
            image.load()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            where = source_path or f"<{len(buffer)} bytes>"
            raise PNGDecodeError(f"Cannot decode image {where}: {e}") from e

        return cls(image, source_path, extract_text_metadata(buffer))

    @classmethod
    def create(
        cls, width: int, height: int, color: tuple[int, int, int, int] = (0, 0, 0, 0)
    ) -> "PNGImage":
        """Create a blank image filled with ``color``."""
        return cls(Image.new("RGBA", (width, height), color))

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "PNGImage":
        """Wrap an ``(height, width, 4)`` uint8 array."""
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (height, width, 4) array, got shape {pixels.shape}")
        return cls(Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)))

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    @property
    def data(self) -> bytes:
        """Raw RGBA bytes, row-major, 4 bytes per pixel."""
        return self._image.tobytes()

    def to_array(self) -> np.ndarray:
        """Return a ``(height, width, 4)`` uint8 copy of the pixels."""
        return np.array(self._image, dtype=np.uint8)

    @property
    def metadata(self) -> dict[str, str]:
        return dict(self._metadata)

    def set_metadata(self, key: str, value: str) -> None:
        self._metadata[key] = value

    def replace_metadata(self, metadata: dict[str, str]) -> None:
        self._metadata = dict(metadata)

    def remove_metadata(self, key: str) -> None:
        self._metadata.pop(key, None)

    def clear_metadata(self) -> None:
        self._metadata = {}

    def to_buffer(self) -> bytes:
        """Encode to PNG bytes, with the current metadata as tEXt chunks."""
        out = io.BytesIO()
        self._image.save(out, format="PNG")
        encoded = out.getvalue()

        if not self._metadata:
            return encoded

        return inject_text_metadata(encoded, self._metadata)

    def save(self, filepath: str | Path | None = None) -> Path:
        """Write the encoded PNG to ``filepath`` or back to the load path."""
        target = Path(filepath) if filepath is not None else self.source_path
        if target is None:
            raise ValueError("No filepath provided for saving PNG")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.to_buffer())
        logger.debug("Saved PNG %dx%d to %s", self.width, self.height, target)
        return target

    def __repr__(self) -> str:
        return f"PNGImage({self.width}x{self.height}, metadata={len(self._metadata)} keys)"
