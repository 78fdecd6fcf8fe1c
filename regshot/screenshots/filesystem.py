"""Screenshot filesystem: the actual/, expected/ and diff/ trees under one output directory."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from regshot.models.screenshot import Screenshot
from regshot.screenshots.grouping import ACTUAL_DIR, DIFF_DIR, EXPECTED_DIR, group_screenshots

logger = logging.getLogger(__name__)

_PNG_GLOB = "**/*.png"


class ScreenshotFileSystem:
    """Reads, writes and approves screenshot files."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir).resolve()
        self.actual_dir = self.output_dir / ACTUAL_DIR
        self.expected_dir = self.output_dir / EXPECTED_DIR
        self.diff_dir = self.output_dir / DIFF_DIR

        for directory in (self.actual_dir, self.expected_dir, self.diff_dir):
            directory.mkdir(parents=True, exist_ok=True)

    # Listing

    def _list(self, directory: Path) -> list[Path]:
        if not directory.exists():
            return []
        return sorted(p for p in directory.glob(_PNG_GLOB) if p.is_file())

    def list_actual(self) -> list[Path]:
        return self._list(self.actual_dir)

    def list_expected(self) -> list[Path]:
        return self._list(self.expected_dir)

    def list_diff(self) -> list[Path]:
        return self._list(self.diff_dir)

    def group(self) -> list[Screenshot]:
        """Classify the current contents of the three directories."""
        return group_screenshots(
            self.list_actual(), self.list_expected(), self.list_diff(), self.output_dir,
        )

    # Cleanup

    def _remove_dir(self, directory: Path) -> None:
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True, exist_ok=True)

    def clear_actual(self) -> None:
        self._remove_dir(self.actual_dir)

    def clear_diff(self) -> None:
        self._remove_dir(self.diff_dir)

    def clear_actual_and_diff(self) -> None:
        self.clear_actual()
        self.clear_diff()

    # Paths

    def get_actual_file_path(self, filename: str) -> Path:
        return self.actual_dir / filename

    def get_expected_file_path(self, filename: str) -> Path:
        return self.expected_dir / filename

    def get_diff_file_path(self, filename: str) -> Path:
        return self.diff_dir / filename

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for a path relative to the output directory (as stored on records)."""
        return self.output_dir / relative_path

    # Reading / writing

    def _write(self, path: Path, data: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def write_actual_file(self, filename: str, data: bytes) -> Path:
        return self._write(self.get_actual_file_path(filename), data)

    def write_diff_file(self, filename: str, data: bytes) -> Path:
        return self._write(self.get_diff_file_path(filename), data)

    def has_expected_file(self, filename: str) -> bool:
        return self.get_expected_file_path(filename).is_file()

    def read_expected_file(self, filename: str) -> bytes:
        path = self.get_expected_file_path(filename)
        if not path.is_file():
            raise FileNotFoundError(f"Expected image not found: {path}")
        return path.read_bytes()

    def remove_diff_file(self, filename: str) -> bool:
        path = self.get_diff_file_path(filename)
        if path.exists():
            path.unlink()
            return True
        return False

    # Approval

    def approve_from_actual_path(self, actual_file_path: str | Path) -> dict[str, Path]:
        """Approve a screenshot given its path (absolute, or relative to actual/)."""
        path = Path(actual_file_path)
        absolute = (path if path.is_absolute() else self.actual_dir / path).resolve()

        try:
            relative = absolute.relative_to(self.actual_dir)
        except ValueError:
            raise ValueError(
                f"Cannot approve screenshot outside of actual directory: {actual_file_path}"
            ) from None

        return self._approve_relative(relative.as_posix())

    def approve_by_name(self, name: str) -> dict[str, Path]:
        """Approve a screenshot by name; the ``.png`` extension is optional."""
        relative = name if name.endswith(".png") else f"{name}.png"
        return self._approve_relative(relative)

    def _approve_relative(self, relative_path: str) -> dict[str, Path]:
        actual_path = self.actual_dir / relative_path
        expected_path = self.expected_dir / relative_path
        diff_path = self.diff_dir / relative_path

        if not actual_path.is_file():
            raise FileNotFoundError(f"Actual screenshot not found: {actual_path}")

        expected_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(actual_path, expected_path)

        if diff_path.exists():
            diff_path.unlink()

        logger.info("Approved %s", relative_path)
        return {
            "actual_path": actual_path,
            "expected_path": expected_path,
            "diff_path": diff_path,
        }
