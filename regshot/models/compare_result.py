"""Result data structures produced by the diff engines and the capture tool."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class PixelCompareResult(BaseModel):
    num_diff_pixels: int = 0
    total_pixels: int = 0
    percent_difference: float = 0.0
    diff_buffer: Optional[bytes] = None  # PNG bytes of the diff image
    passed: bool = False
    error: Optional[str] = None
    # Dimension mismatch: the numeric fields are not meaningful when set.
    different_sizes: bool = False


class GmsdCompareResult(BaseModel):
    gmsd: float = 0.0  # 0 = identical gradients, inf on failure
    diff_buffer: Optional[bytes] = None
    passed: bool = False
    error: Optional[str] = None


class CaptureResult(BaseModel):
    name: str
    filepath: Optional[str] = None  # actual screenshot, relative to the output directory
    passed: bool = False
    skipped: bool = False
    is_new: bool = False  # no expected baseline existed
    different_sizes: bool = False
    diff_path: Optional[str] = None
    retries_used: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return not self.skipped and (self.error is not None or not self.passed)
