"""Screenshot tool: captures pages with playwright and compares them to the baseline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from regshot.compare.gmsd import compare_images_gmsd
from regshot.compare.pixel import compare_images, create_diff_size_png_image
from regshot.models.compare_result import CaptureResult
from regshot.models.config import CaptureTarget, RegshotConfig
from regshot.png.image import PNGImage
from regshot.screenshots.filesystem import ScreenshotFileSystem

logger = logging.getLogger(__name__)

SCREENSHOT_TIMEOUT_MS = 60000
SELECTOR_TIMEOUT_MS = 10000


@dataclass
class BaselineComparison:
    passed: bool
    diff_buffer: Optional[bytes] = None
    different_sizes: bool = False
    error: Optional[str] = None


class ScreenshotTool:
    """Captures configured targets into actual/ and diffs them against expected/."""

    # Seconds before the first retry; doubled on every further attempt.
    retry_delay = 0.25

    def __init__(self, config: RegshotConfig, file_system: ScreenshotFileSystem | None = None):
        self.config = config
        self.file_system = file_system or ScreenshotFileSystem(config.resolve_output_dir())
        self._playwright = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None

    async def __aenter__(self) -> "ScreenshotTool":
        await self.init()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def init(self) -> None:
        """Launch the configured browser and open a shared context."""
        self._playwright = await async_playwright().start()
        browser_type = getattr(self._playwright, self.config.browser)
        self.browser = await browser_type.launch(headless=self.config.headless)
        viewport = self.config.viewport
        self.context = await self.browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
            device_scale_factor=self.config.device_scale_factor,
            reduced_motion="reduce",
        )
        logger.info("Launched %s (%dx%d, headless=%s)", self.config.browser,
                    viewport.width, viewport.height, self.config.headless)

    async def close(self) -> None:
        if self.context:
            await self.context.close()
            self.context = None
        if self.browser:
            await self.browser.close()
            self.browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def take_screenshot(self, page: Page, target: CaptureTarget) -> bytes:
        """Navigate to the target and return the PNG bytes of the screenshot."""
        await page.goto(target.url, wait_until="domcontentloaded")

        if target.wait_for_selector:
            logger.debug("Waiting for selector %s", target.wait_for_selector)
            await page.wait_for_selector(target.wait_for_selector, timeout=SELECTOR_TIMEOUT_MS)

        if target.delay_ms > 0:
            await page.wait_for_timeout(target.delay_ms)

        full_page = target.full_page if target.full_page is not None else self.config.full_page
        return await page.screenshot(
            full_page=full_page,
            type="png",
            timeout=SCREENSHOT_TIMEOUT_MS,
            omit_background=target.omit_background,
            scale="css",
        )

    def compare(self, actual: bytes, expected: bytes) -> BaselineComparison:
        """Compare a fresh capture with its baseline using the configured algorithm."""
        actual_png = PNGImage.load(actual)
        expected_png = PNGImage.load(expected)

        if actual_png.size != expected_png.size:
            logger.debug("Size changed: %dx%d vs baseline %dx%d", actual_png.width,
                         actual_png.height, expected_png.width, expected_png.height)
            return BaselineComparison(
                passed=False,
                diff_buffer=create_diff_size_png_image(actual_png.width, actual_png.height),
                different_sizes=True,
            )

        if self.config.algorithm == "gmsd":
            result = compare_images_gmsd(actual_png, expected_png, True, self.config.gmsd, logger)
            return BaselineComparison(result.passed, result.diff_buffer, error=result.error)

        result = compare_images(actual_png, expected_png, True, self.config.diff, logger)
        return BaselineComparison(result.passed, result.diff_buffer, result.different_sizes, result.error)

    async def capture_target(self, target: CaptureTarget) -> CaptureResult:
        """Capture one target, retrying while it differs from the baseline."""
        if target.skip:
            logger.debug("Skipping %s", target.name)
            return CaptureResult(name=target.name, skipped=True, passed=True)

        if self.context is None:
            raise RuntimeError("Browser not initialized")

        filename = target.filename
        filepath = f"actual/{filename}"
        page = await self.context.new_page()
        try:
            attempt = 0
            while True:
                actual = await self.take_screenshot(page, target)
                self.file_system.write_actual_file(filename, actual)

                if not self.file_system.has_expected_file(filename):
                    logger.info("New screenshot %s", target.name)
                    return CaptureResult(name=target.name, filepath=filepath, passed=True,
                                         is_new=True, retries_used=attempt)

                expected = self.file_system.read_expected_file(filename)
                comparison = await asyncio.to_thread(self.compare, actual, expected)
                if comparison.passed:
                    self.file_system.remove_diff_file(filename)
                    return CaptureResult(name=target.name, filepath=filepath, passed=True,
                                         retries_used=attempt)

                if attempt >= self.config.retries or comparison.different_sizes or comparison.error:
                    break

                attempt += 1
                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.debug("%s differs from baseline, retry %d/%d in %.2fs",
                             target.name, attempt, self.config.retries, delay)
                await asyncio.sleep(delay)

            diff_path = None
            if comparison.diff_buffer:
                self.file_system.write_diff_file(filename, comparison.diff_buffer)
                diff_path = f"diff/{filename}"
            logger.warning("Screenshot %s differs from baseline", target.name)
            return CaptureResult(
                name=target.name,
                filepath=filepath,
                passed=False,
                different_sizes=comparison.different_sizes,
                diff_path=diff_path,
                retries_used=attempt,
                error=comparison.error,
            )
        except Exception as e:
            logger.error("Capture of %s failed: %s", target.name, e)
            return CaptureResult(name=target.name, passed=False, error=str(e) or type(e).__name__)
        finally:
            await page.close()

    async def capture_all(self, targets: list[CaptureTarget] | None = None) -> list[CaptureResult]:
        """Clear actual/ and diff/, then capture every target with bounded concurrency."""
        targets = self.config.targets if targets is None else targets
        self.file_system.clear_actual_and_diff()

        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def run(target: CaptureTarget) -> CaptureResult:
            async with semaphore:
                return await self.capture_target(target)

        results = await asyncio.gather(*(run(t) for t in targets))
        failed = sum(1 for r in results if r.failed)
        logger.info("Captured %d target(s), %d failed", len(results), failed)
        return list(results)
