"""Screenshot classifier: turns the actual/expected/diff file trees into records.

A screenshot's identity is its path relative to its category directory, so
``<out>/actual/Button/Primary.png``, ``<out>/expected/Button/Primary.png``
and ``<out>/diff/Button/Primary.png`` all describe the screenshot
``Button/Primary``.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path, PurePath
from typing import Iterable, Sequence

from regshot.models.screenshot import CATEGORY_ORDER, Category, Screenshot

ACTUAL_DIR = "actual"
EXPECTED_DIR = "expected"
DIFF_DIR = "diff"

_EXTENSION = ".png"


def _relative(path: str | Path, root: str | Path) -> str:
    return PurePath(os.path.relpath(path, root)).as_posix()


def screenshot_id(relative_path: str) -> str:
    return hashlib.sha256(relative_path.encode("utf-8")).hexdigest()


def screenshot_name(relative_path: str) -> str:
    if relative_path.endswith(_EXTENSION):
        return relative_path[: -len(_EXTENSION)]
    return relative_path


def _index(paths: Iterable[str | Path], root: str) -> dict[str, str | Path]:
    index: dict[str, str | Path] = {}
    for path in paths:
        # First occurrence wins, like a linear search would.
        index.setdefault(_relative(path, root), path)
    return index


def _build_category(has_expected: bool, has_diff: bool) -> Category:
    if has_expected and has_diff:
        return "changed"
    if has_expected:
        return "passed"
    return "new"


def group_screenshots(
    actual_screenshots: Sequence[str | Path],
    expected_screenshots: Sequence[str | Path],
    diff_screenshots: Sequence[str | Path],
    output_dir: str | Path,
) -> list[Screenshot]:
    """Classify screenshots as new, deleted, changed or passed.

    Records derived from ``actual_screenshots`` come first, in input order,
    followed by the ``deleted`` records in the order of
    ``expected_screenshots``. Use ``sort_screenshots`` for category order.
    Diff files without an actual screenshot are ignored. ``approved`` is
    always False.
    """
    output_dir = str(output_dir)
    actual_root = os.path.join(output_dir, ACTUAL_DIR)
    expected_root = os.path.join(output_dir, EXPECTED_DIR)
    diff_root = os.path.join(output_dir, DIFF_DIR)

    expected_by_name = _index(expected_screenshots, expected_root)
    diff_by_name = _index(diff_screenshots, diff_root)

    screenshots: list[Screenshot] = []
    seen: set[str] = set()

    for actual in actual_screenshots:
        relative_path = _relative(actual, actual_root)
        seen.add(relative_path)

        expected = expected_by_name.get(relative_path)
        diff = diff_by_name.get(relative_path)

        screenshots.append(Screenshot(
            id=screenshot_id(relative_path),
            name=screenshot_name(relative_path),
            category=_build_category(expected is not None, diff is not None),
            actual_path=_relative(actual, output_dir),
            expected_path=_relative(expected, output_dir) if expected is not None else None,
            diff_path=_relative(diff, output_dir) if diff is not None else None,
            approved=False,
        ))

    for expected in expected_screenshots:
        relative_path = _relative(expected, expected_root)
        if relative_path in seen:
            continue
        seen.add(relative_path)

        screenshots.append(Screenshot(
            id=screenshot_id(relative_path),
            name=screenshot_name(relative_path),
            category="deleted",
            actual_path=None,
            expected_path=_relative(expected, output_dir),
            diff_path=None,
            approved=False,
        ))

    return screenshots


def sort_screenshots(screenshots: Iterable[Screenshot]) -> list[Screenshot]:
    """Stable sort by category: new, deleted, changed, passed."""
    rank = {category: i for i, category in enumerate(CATEGORY_ORDER)}
    return sorted(screenshots, key=lambda s: rank[s.category])


def filter_screenshots(screenshots: Iterable[Screenshot], filters: Iterable[str]) -> list[Screenshot]:
    """Keep screenshots whose name or actual path contains any filter (case-insensitive)."""
    needles = [f.lower() for f in filters if f]
    if not needles:
        return list(screenshots)

    result = []
    for screenshot in screenshots:
        haystacks = [screenshot.name.lower(), (screenshot.actual_path or "").lower()]
        if any(needle in haystack for needle in needles for haystack in haystacks):
            result.append(screenshot)
    return result


def count_by_category(screenshots: Iterable[Screenshot]) -> dict[str, int]:
    counts = {category: 0 for category in CATEGORY_ORDER}
    for screenshot in screenshots:
        counts[screenshot.category] += 1
    return counts
