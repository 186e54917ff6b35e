"""Playwright automation for the hosted Midjourney generator page.

Selectors may need updates when the site changes its UI. Discover new ones
via browser DevTools and update ``SELECTORS``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from imagine.config import Settings
from imagine.errors import ExtractionFailure, NavigationTimeout, SelectorTimeout


logger = logging.getLogger(__name__)

SELECTORS = {
    "prompt_input": 'textarea[placeholder*="prompt"], textarea[data-testid="chat-input"], .prompt-input',
    "submit_button": 'button[type="submit"], button:has(svg), [data-testid="send-message"], .send-btn',
    "result": '.generated-image, [data-testid="job-completed"], img[src*="cloudflarestorage"]',
}

# Result images are served from Cloudflare R2 storage.
IMAGE_SOURCE_MARKERS = ("cloudflarestorage.com", "r2")

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
]

VIEWPORT = {"width": 1920, "height": 1080}

_EXTRACT_IMAGES_JS = """
([markers, limit]) => Array.from(document.querySelectorAll('img'))
    .map(img => img.src)
    .filter(src => src && markers.some(marker => src.includes(marker)))
    .slice(0, limit)
"""


class ImaginePage:
    """One browser page driving a single generation attempt."""

    def __init__(self, page: Page, context: BrowserContext, settings: Settings) -> None:
        self._page = page
        self._context = context
        self._settings = settings

    async def navigate(self, url: str) -> None:
        try:
            await self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._settings.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(
                f"page {url} did not load within {self._settings.navigation_timeout_ms} ms"
            ) from exc
        except PlaywrightError as exc:
            raise NavigationTimeout(f"navigation to {url} failed: {exc.message}") from exc

    async def _wait_for(self, key: str, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_selector(SELECTORS[key], timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise SelectorTimeout(f"{key} did not appear within {timeout_ms} ms") from exc

    async def submit_prompt(self, text: str) -> None:
        """Type ``text`` into the prompt box and press the send button."""

        timeout_ms = self._settings.selector_timeout_ms
        await self._wait_for("prompt_input", timeout_ms)
        try:
            await self._page.locator(SELECTORS["prompt_input"]).first.fill(text, timeout=timeout_ms)
            await self._page.locator(SELECTORS["submit_button"]).first.click(timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise SelectorTimeout(f"could not submit prompt within {timeout_ms} ms") from exc
        logger.info("prompt submitted (length=%d)", len(text))

    async def wait_for_result(self) -> None:
        """Block until a finished image shows up, then let the grid settle."""

        logger.info("waiting for generation")
        await self._wait_for("result", self._settings.generation_timeout_ms)
        await self._page.wait_for_timeout(self._settings.settle_delay_ms)

    async def extract_image_urls(self, limit: int) -> list[str]:
        urls = await self._page.evaluate(
            _EXTRACT_IMAGES_JS, [list(IMAGE_SOURCE_MARKERS), limit]
        )
        if not urls:
            raise ExtractionFailure("no generated image found on the page")
        logger.info("extracted %d image url(s)", len(urls))
        return list(urls)

    async def cookies(self) -> list[dict[str, Any]]:
        return [dict(cookie) for cookie in await self._context.cookies()]


class BrowserSession:
    """Long-lived Chromium handle shared by every job.

    The browser is launched on first use and relaunched if it disconnects.
    Each attempt gets a fresh context so cookies and pages never leak from
    one attempt to the next.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        if self._browser and self._browser.is_connected():
            return self._browser

        async with self._lock:
            if self._browser and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._settings.headless,
                args=LAUNCH_ARGS,
            )
            logger.info("browser launched (headless=%s)", self._settings.headless)
            return self._browser

    @asynccontextmanager
    async def open_page(
        self, cookies: list[dict[str, Any]] | None = None
    ) -> AsyncIterator[ImaginePage]:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=self._settings.user_agent,
            viewport=VIEWPORT,
        )
        try:
            if cookies:
                try:
                    await context.add_cookies(cookies)
                except PlaywrightError as exc:
                    logger.warning("saved cookies rejected by browser: %s", exc.message)
            page = await context.new_page()
            yield ImaginePage(page, context, self._settings)
        finally:
            await context.close()

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("browser closed")
