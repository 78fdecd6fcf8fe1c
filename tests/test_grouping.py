"""Tests for the screenshot classifier."""

import hashlib

from regshot.models.screenshot import Screenshot
from regshot.screenshots.grouping import (
    count_by_category,
    filter_screenshots,
    group_screenshots,
    screenshot_id,
    screenshot_name,
    sort_screenshots,
)

OUT = "/out"


def _by_name(screenshots):
    return {s.name: s for s in screenshots}


class TestGroupScreenshots:
    """Tests for group_screenshots."""

    def test_passed_and_deleted(self):
        """Test a matched pair passes and an unmatched baseline is deleted."""
        screenshots = group_screenshots(
            ["/out/actual/A.png"],
            ["/out/expected/A.png", "/out/expected/B.png"],
            [],
            OUT,
        )

        assert len(screenshots) == 2
        a, b = screenshots
        assert a.name == "A"
        assert a.category == "passed"
        assert a.actual_path == "actual/A.png"
        assert a.expected_path == "expected/A.png"
        assert a.diff_path is None

        assert b.name == "B"
        assert b.category == "deleted"
        assert b.actual_path is None
        assert b.expected_path == "expected/B.png"
        assert b.diff_path is None

    def test_new(self):
        """Test an actual screenshot alone is new, identified by its relative path."""
        screenshots = group_screenshots(["/out/actual/X.png"], [], [], OUT)

        assert len(screenshots) == 1
        assert screenshots[0].category == "new"
        assert screenshots[0].id == hashlib.sha256(b"X.png").hexdigest()
        assert screenshots[0].approved is False

    def test_changed(self):
        """Test actual, expected and diff together mean changed."""
        screenshots = group_screenshots(
            ["/out/actual/Button/Primary.png"],
            ["/out/expected/Button/Primary.png"],
            ["/out/diff/Button/Primary.png"],
            OUT,
        )

        (changed,) = screenshots
        assert changed.category == "changed"
        assert changed.name == "Button/Primary"
        assert changed.diff_path == "diff/Button/Primary.png"
        assert changed.id == screenshot_id("Button/Primary.png")

    def test_new_ignores_diff(self):
        """Test a diff without a baseline does not change the new category."""
        screenshots = group_screenshots(["/out/actual/A.png"], [], ["/out/diff/A.png"], OUT)
        assert screenshots[0].category == "new"

    def test_orphan_diff_ignored(self):
        """Test diff files with no actual screenshot produce no record."""
        screenshots = group_screenshots([], ["/out/expected/A.png"], ["/out/diff/Z.png"], OUT)
        assert [s.name for s in screenshots] == ["A"]
        assert screenshots[0].category == "deleted"

    def test_matching_is_case_sensitive(self):
        screenshots = group_screenshots(["/out/actual/a.png"], ["/out/expected/A.png"], [], OUT)
        assert [(s.name, s.category) for s in screenshots] == [("a", "new"), ("A", "deleted")]

    def test_nested_directories_do_not_collide(self):
        """Test the same file name in different folders is two screenshots."""
        screenshots = group_screenshots(
            ["/out/actual/mobile/home.png", "/out/actual/desktop/home.png"],
            ["/out/expected/desktop/home.png"],
            [],
            OUT,
        )
        categories = {s.name: s.category for s in screenshots}
        assert categories == {"mobile/home": "new", "desktop/home": "passed"}

    def test_insertion_order(self):
        """Test actual-derived records come first, then deleted ones."""
        screenshots = group_screenshots(
            ["/out/actual/C.png", "/out/actual/A.png"],
            ["/out/expected/D.png", "/out/expected/A.png", "/out/expected/B.png"],
            ["/out/diff/A.png"],
            OUT,
        )
        assert [(s.name, s.category) for s in screenshots] == [
            ("C", "new"),
            ("A", "changed"),
            ("D", "deleted"),
            ("B", "deleted"),
        ]

    def test_deterministic_ids(self):
        """Test ids depend only on the relative path."""
        first = group_screenshots(["/out/actual/A.png"], [], [], OUT)
        second = group_screenshots(["/other/actual/A.png"], [], [], "/other")
        assert first[0].id == second[0].id

    def test_empty(self):
        assert group_screenshots([], [], [], OUT) == []


class TestHelpers:
    """Tests for sorting, filtering and counting records."""

    def _mixed(self):
        return group_screenshots(
            ["/out/actual/Same.png", "/out/actual/Changed.png", "/out/actual/New.png"],
            ["/out/expected/Same.png", "/out/expected/Changed.png", "/out/expected/Gone.png"],
            ["/out/diff/Changed.png"],
            OUT,
        )

    def test_screenshot_name(self):
        assert screenshot_name("Button/Primary.png") == "Button/Primary"
        assert screenshot_name("no-extension") == "no-extension"

    def test_sort_by_category(self):
        """Test sorting groups records as new, deleted, changed, passed."""
        ordered = sort_screenshots(self._mixed())
        assert [s.category for s in ordered] == ["new", "deleted", "changed", "passed"]

    def test_sort_is_stable(self):
        screenshots = group_screenshots(["/out/actual/B.png", "/out/actual/A.png"], [], [], OUT)
        assert [s.name for s in sort_screenshots(screenshots)] == ["B", "A"]

    def test_filter(self):
        """Test filters match name or actual path, case-insensitively."""
        screenshots = self._mixed()
        assert [s.name for s in filter_screenshots(screenshots, ["same"])] == ["Same"]
        assert [s.name for s in filter_screenshots(screenshots, ["NEW", "chan"])] == ["Changed", "New"]
        assert filter_screenshots(screenshots, []) == screenshots

    def test_count_by_category(self):
        counts = count_by_category(self._mixed())
        assert counts == {"new": 1, "deleted": 1, "changed": 1, "passed": 1}
        assert count_by_category([]) == {"new": 0, "deleted": 0, "changed": 0, "passed": 0}

    def test_api_dict_omits_missing_paths(self):
        """Test the camelCase view drops absent paths."""
        deleted = Screenshot(id="x", name="Gone", category="deleted", expected_path="expected/Gone.png")
        assert deleted.to_api_dict() == {
            "id": "x",
            "name": "Gone",
            "category": "deleted",
            "expectedPath": "expected/Gone.png",
            "approved": False,
        }
