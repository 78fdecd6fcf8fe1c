"""Tests for the approval workflow."""

import pytest

from conftest import solid_pixels, write_png
from regshot.models.config import RegshotConfig
from regshot.models.screenshot import Screenshot
from regshot.screenshots.approval import approve_screenshot, approve_screenshots
from regshot.screenshots.filesystem import ScreenshotFileSystem


@pytest.fixture
def config() -> RegshotConfig:
    return RegshotConfig()


class TestApproveScreenshot:
    """Tests for approving one record per category."""

    def _record(self, fs: ScreenshotFileSystem, name: str) -> Screenshot:
        return next(s for s in fs.group() if s.name == name)

    def test_new(self, populated_file_system, config):
        fs = populated_file_system
        assert approve_screenshot(fs, self._record(fs, "New"), config)
        assert fs.has_expected_file("New.png")

    def test_deleted(self, populated_file_system, config):
        """Test approving a deletion removes the baseline."""
        fs = populated_file_system
        assert approve_screenshot(fs, self._record(fs, "Gone"), config)
        assert not fs.has_expected_file("Gone.png")

    def test_changed(self, populated_file_system, config):
        fs = populated_file_system
        assert approve_screenshot(fs, self._record(fs, "Button/Primary"), config)
        assert not fs.get_diff_file_path("Button/Primary.png").exists()
        assert (fs.read_expected_file("Button/Primary.png")
                == fs.get_actual_file_path("Button/Primary.png").read_bytes())

    def test_passed_still_matching(self, populated_file_system, config):
        """Test a passed screenshot that still matches is left alone."""
        fs = populated_file_system
        before = fs.get_expected_file_path("Same.png").stat().st_mtime_ns
        assert approve_screenshot(fs, self._record(fs, "Same"), config) is False
        assert fs.get_expected_file_path("Same.png").stat().st_mtime_ns == before

    def test_passed_no_longer_matching(self, populated_file_system, config):
        """Test a passed record is re-approved when the files have since diverged."""
        fs = populated_file_system
        record = self._record(fs, "Same")
        write_png(fs.get_actual_file_path("Same.png"), solid_pixels(8, 8, (0, 0, 0, 255)))

        assert approve_screenshot(fs, record, config) is True
        assert fs.read_expected_file("Same.png") == fs.get_actual_file_path("Same.png").read_bytes()

    def test_passed_with_gmsd(self, populated_file_system):
        fs = populated_file_system
        config = RegshotConfig(algorithm="gmsd")
        assert approve_screenshot(fs, self._record(fs, "Same"), config) is False


class TestApproveScreenshots:
    """Tests for approving a whole tree."""

    def test_approve_all(self, populated_file_system, config):
        """Test approving everything leaves only passed screenshots."""
        fs = populated_file_system
        approved = approve_screenshots(fs, config)

        assert len(approved) == 4
        assert all(s.approved for s in approved)
        fs.clear_diff()
        categories = {s.name: s.category for s in fs.group()}
        assert categories == {"New": "passed", "Button/Primary": "passed", "Same": "passed"}

    def test_filtered(self, populated_file_system, config):
        fs = populated_file_system
        approved = approve_screenshots(fs, config, ["button"])

        assert [s.name for s in approved] == ["Button/Primary"]
        assert not fs.has_expected_file("New.png")
        assert fs.has_expected_file("Gone.png")

    def test_filter_without_match(self, populated_file_system, config):
        assert approve_screenshots(populated_file_system, config, ["nothing-like-this"]) == []

    def test_undecodable_record_is_skipped(self, populated_file_system, config, caplog):
        """Test a corrupt passed screenshot is logged and skipped while the rest are approved."""
        fs = populated_file_system
        fs.get_actual_file_path("Same.png").write_bytes(b"not a png at all")
        baseline = fs.read_expected_file("Same.png")

        with caplog.at_level("ERROR", logger="regshot.screenshots.approval"):
            approved = approve_screenshots(fs, config)

        assert [s.name for s in approved] == ["New", "Gone", "Button/Primary"]
        assert fs.has_expected_file("New.png")
        assert not fs.has_expected_file("Gone.png")
        assert fs.read_expected_file("Same.png") == baseline
        assert "Skipping Same" in caplog.text
