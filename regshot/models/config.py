"""Configuration models for regshot."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RGBColor = tuple[int, int, int]


class _CamelModel(BaseModel):
    # Accept both snake_case and the camelCase keys used in JSON config files.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiffConfig(_CamelModel):
    """Options for the pixel diff engine."""

    # Matching threshold (0-1). Lower is more sensitive.
    threshold: float = Field(default=0.1, ge=0, le=1)
    # Count anti-aliased pixels as differences.
    include_aa: bool = Field(default=False, alias="includeAA")
    # Skip the comparator when both rasters are byte-identical.
    fast_buffer_check: bool = True
    # Absolute number of differing pixels allowed (0 = not configured).
    max_diff_pixels: int = Field(default=0, ge=0)
    # Percentage of differing pixels allowed, 0-100 (0 = not configured).
    max_diff_percentage: float = Field(default=0, ge=0)

    # Diff image rendering
    alpha: float = Field(default=0.1, ge=0, le=1)
    aa_color: RGBColor = (255, 255, 0)
    diff_color: RGBColor = (255, 0, 0)
    diff_color_alt: Optional[RGBColor] = None
    diff_mask: bool = False

    @field_validator("aa_color", "diff_color", "diff_color_alt")
    @classmethod
    def check_color_channels(cls, v: Optional[RGBColor]) -> Optional[RGBColor]:
        if v is not None and any(not 0 <= channel <= 255 for channel in v):
            raise ValueError(f"Color channels must be within 0-255, got {v}")
        return v


class GmsdConfig(_CamelModel):
    """Options for the GMSD perceptual diff engine."""

    # Maximum GMSD score that still passes.
    threshold: float = Field(default=0.1, ge=0)
    # Integer block-average factor applied before the comparison (0 or 1 = none).
    downsample: int = Field(default=0, ge=0)
    # Stabilization constant of the similarity index.
    c: float = Field(default=170, gt=0)


class ViewportConfig(_CamelModel):
    width: int = 1920
    height: int = 1080
    name: str = "desktop"


class CaptureTarget(_CamelModel):
    """A page to capture. ``name`` may contain ``/`` to nest the output file."""

    name: str
    url: str
    full_page: Optional[bool] = None
    wait_for_selector: Optional[str] = None
    delay_ms: int = 0
    skip: bool = False
    omit_background: bool = False

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v:
            raise ValueError("Capture target name must not be empty")
        if ".." in Path(v).parts:
            raise ValueError(f"Capture target name must stay inside the output directory: {v}")
        return v

    @property
    def filename(self) -> str:
        return self.name if self.name.endswith(".png") else f"{self.name}.png"


class RegshotConfig(_CamelModel):
    # Directory holding actual/, expected/ and diff/
    output_dir: str = "./screenshots"

    # Comparison
    algorithm: Literal["pixel", "gmsd"] = "pixel"
    diff: DiffConfig = Field(default_factory=DiffConfig)
    gmsd: GmsdConfig = Field(default_factory=GmsdConfig)

    # Capture
    retries: int = Field(default=2, ge=0)
    concurrency: int = Field(default=1, ge=1)
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    device_scale_factor: float = 1
    full_page: bool = True
    targets: list[CaptureTarget] = Field(default_factory=list)

    def resolve_output_dir(self, base: str | Path | None = None) -> Path:
        """Output directory, relative paths resolved against ``base`` (default: cwd)."""
        path = Path(self.output_dir)
        if not path.is_absolute() and base is not None:
            path = Path(base) / path
        return path.resolve()

    @classmethod
    def load(cls, path: str | Path) -> "RegshotConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(by_alias=True), f, indent=2)
