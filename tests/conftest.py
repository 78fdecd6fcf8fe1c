"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import numpy as np
import pytest
from playwright.async_api import BrowserContext, Page

from regshot.models.config import CaptureTarget, DiffConfig, GmsdConfig, RegshotConfig
from regshot.png.image import PNGImage
from regshot.screenshots.filesystem import ScreenshotFileSystem


# ============================================================================
# Image Helpers
# ============================================================================


def solid_pixels(width: int, height: int, color=(255, 255, 255, 255)) -> np.ndarray:
    """Create an (height, width, 4) array filled with one color."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[...] = color
    return pixels


def gradient_pixels(width: int, height: int) -> np.ndarray:
    """Horizontal grayscale ramp, opaque."""
    ramp = np.linspace(0, 255, width).astype(np.uint8)
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = ramp
    pixels[..., 1] = ramp
    pixels[..., 2] = ramp
    pixels[..., 3] = 255
    return pixels


def checker_pixels(width: int, height: int, cell: int = 4) -> np.ndarray:
    """Black and white checkerboard, opaque."""
    ys, xs = np.indices((height, width))
    white = ((xs // cell + ys // cell) % 2 == 0).astype(np.uint8) * 255
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = white
    pixels[..., 1] = white
    pixels[..., 2] = white
    pixels[..., 3] = 255
    return pixels


def png_bytes(pixels: np.ndarray, metadata: dict | None = None) -> bytes:
    """Encode pixels (and optional tEXt metadata) to PNG bytes."""
    image = PNGImage.from_array(pixels)
    if metadata:
        image.replace_metadata(metadata)
    return image.to_buffer()


def solid_png(width: int, height: int, color=(255, 255, 255, 255)) -> bytes:
    return png_bytes(solid_pixels(width, height, color))


def write_png(path: Path, pixels: np.ndarray) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png_bytes(pixels))
    return path


# ============================================================================
# Image Fixtures
# ============================================================================


@pytest.fixture
def red_png() -> bytes:
    return solid_png(10, 10, (255, 0, 0, 255))


@pytest.fixture
def blue_png() -> bytes:
    return solid_png(10, 10, (0, 0, 255, 255))


@pytest.fixture
def gradient_png() -> bytes:
    return png_bytes(gradient_pixels(32, 32))


@pytest.fixture
def checker_png() -> bytes:
    return png_bytes(checker_pixels(32, 32))


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def diff_config() -> DiffConfig:
    return DiffConfig(threshold=0.1)


@pytest.fixture
def gmsd_config() -> GmsdConfig:
    return GmsdConfig(threshold=0.1)


@pytest.fixture
def regshot_config(tmp_path: Path) -> RegshotConfig:
    """Create a test configuration writing into a temporary output directory."""
    return RegshotConfig(
        output_dir=str(tmp_path / "screenshots"),
        retries=1,
        targets=[
            CaptureTarget(name="home", url="https://example.com"),
            CaptureTarget(name="Button/Primary", url="https://example.com/button"),
        ],
    )


@pytest.fixture
def temp_config_file(regshot_config: RegshotConfig, tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "regshot.json"
    regshot_config.save(config_file)
    return config_file


# ============================================================================
# Screenshot Tree Fixtures
# ============================================================================


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    output = tmp_path / "screenshots"
    output.mkdir()
    return output


@pytest.fixture
def file_system(output_dir: Path) -> ScreenshotFileSystem:
    return ScreenshotFileSystem(output_dir)


@pytest.fixture
def populated_file_system(file_system: ScreenshotFileSystem) -> ScreenshotFileSystem:
    """Output tree with one screenshot of every category.

    new: New; deleted: Gone; changed: Button/Primary; passed: Same.
    """
    white = solid_pixels(8, 8)
    black = solid_pixels(8, 8, (0, 0, 0, 255))

    write_png(file_system.get_actual_file_path("New.png"), white)

    write_png(file_system.get_expected_file_path("Gone.png"), white)

    write_png(file_system.get_actual_file_path("Button/Primary.png"), black)
    write_png(file_system.get_expected_file_path("Button/Primary.png"), white)
    write_png(file_system.get_diff_file_path("Button/Primary.png"), solid_pixels(8, 8, (255, 0, 0, 255)))

    write_png(file_system.get_actual_file_path("Same.png"), white)
    write_png(file_system.get_expected_file_path("Same.png"), white)
    return file_system


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.goto = AsyncMock()
    page.screenshot = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.close = AsyncMock()
    return page


@pytest.fixture
def mock_context(mock_page: AsyncMock) -> AsyncMock:
    """Create a mock Playwright browser context returning ``mock_page``."""
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock(return_value=mock_page)
    return context
