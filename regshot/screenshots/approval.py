"""Approval workflow: promote actual screenshots to the expected baseline."""

from __future__ import annotations

import logging
from typing import Iterable

from regshot.compare.gmsd import images_match_gmsd
from regshot.compare.pixel import images_match
from regshot.models.config import RegshotConfig
from regshot.models.screenshot import Screenshot
from regshot.png.image import PNGDecodeError
from regshot.screenshots.filesystem import ScreenshotFileSystem
from regshot.screenshots.grouping import ACTUAL_DIR, filter_screenshots

logger = logging.getLogger(__name__)


def _relative_to_actual(actual_path: str) -> str:
    prefix = f"{ACTUAL_DIR}/"
    return actual_path[len(prefix):] if actual_path.startswith(prefix) else actual_path


def _still_matches(file_system: ScreenshotFileSystem, screenshot: Screenshot, config: RegshotConfig) -> bool:
    actual = file_system.resolve(screenshot.actual_path)
    expected = file_system.resolve(screenshot.expected_path)
    if config.algorithm == "gmsd":
        return images_match_gmsd(actual, expected, config.gmsd)
    return images_match(actual, expected, config.diff)


def approve_screenshot(
    file_system: ScreenshotFileSystem,
    screenshot: Screenshot,
    config: RegshotConfig,
) -> bool:
    """Apply approval to one record. Returns True when files were changed.

    new -> copy actual to expected; deleted -> remove expected; changed ->
    remove the diff and copy actual to expected; passed -> re-compare and
    copy only when the images no longer match.
    """
    logger.debug("Approving %s (%s)", screenshot.name, screenshot.category)

    match screenshot.category:
        case "new":
            file_system.approve_from_actual_path(_relative_to_actual(screenshot.actual_path))
            return True
        case "deleted":
            expected = file_system.resolve(screenshot.expected_path)
            if expected.exists():
                expected.unlink()
                logger.info("Removed baseline %s", screenshot.expected_path)
            return True
        case "changed":
            if screenshot.diff_path:
                diff = file_system.resolve(screenshot.diff_path)
                if diff.exists():
                    diff.unlink()
            file_system.approve_from_actual_path(_relative_to_actual(screenshot.actual_path))
            return True
        case "passed":
            if not screenshot.expected_path:
                raise ValueError("Expected path is required for passed screenshots")
            if _still_matches(file_system, screenshot, config):
                return False
            file_system.approve_from_actual_path(_relative_to_actual(screenshot.actual_path))
            return True
        case _:
            raise ValueError(f"Unknown screenshot category: {screenshot.category}")


def approve_screenshots(
    file_system: ScreenshotFileSystem,
    config: RegshotConfig,
    filters: Iterable[str] | None = None,
) -> list[Screenshot]:
    """Approve every screenshot (or those matching ``filters``) and return them marked approved."""
    screenshots = file_system.group()

    filters = [f for f in (filters or []) if f]
    if filters:
        logger.debug("Filtering screenshots by: %s", ", ".join(filters))
        screenshots = filter_screenshots(screenshots, filters)
        if not screenshots:
            logger.warning("No screenshots matched the provided filter(s)")
            return []

    approved = []
    for screenshot in screenshots:
        try:
            approve_screenshot(file_system, screenshot, config)
        except PNGDecodeError as e:
            logger.error("Skipping %s: %s", screenshot.name, e)
            continue
        approved.append(screenshot.model_copy(update={"approved": True}))

    logger.info("%d screenshot(s) approved", len(approved))
    return approved
