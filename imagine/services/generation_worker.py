"""Prompt-to-image generation with a bounded retry loop."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Awaitable, Callable

import httpx

from imagine import logging_conf
from imagine.config import Settings
from imagine.errors import GenerationError, TransportFailure
from imagine.models.result import GenerationFailure, GenerationResult, GenerationSuccess
from imagine.services.browser import BrowserSession
from imagine.services.cookie_store import CookieStore

LOGGER = logging.getLogger(__name__)


def _sha1_prefix(text: str) -> str:
    """Return the first 12 hexadecimal characters of a SHA1 digest."""

    digest = hashlib.sha1(text.encode("utf-8"))
    return digest.hexdigest()[:12]


def build_prompt(prompt: str, suffix: str) -> str:
    """Append the generator parameter suffix (``--ar``, ``--v`` ...) to ``prompt``."""

    prompt = prompt.strip()
    suffix = (suffix or "").strip()
    return f"{prompt} {suffix}" if suffix else prompt


async def validate_links(urls: list[str], client: httpx.AsyncClient) -> list[str]:
    """Keep URLs that answer a HEAD request with a 2xx status.

    A network error keeps the URL since the page itself already loaded it.
    Raises :class:`TransportFailure` when no URL survives.
    """

    valid: list[str] = []
    for url in urls:
        try:
            response = await client.head(url, follow_redirects=True)
        except httpx.TransportError as exc:
            LOGGER.warning("link check skipped for %s: %s", url, exc.__class__.__name__)
            valid.append(url)
            continue
        if response.is_success:
            valid.append(url)
        else:
            LOGGER.warning("dropping %s (status=%d)", url, response.status_code)

    if not valid:
        raise TransportFailure(f"none of {len(urls)} image url(s) passed validation")
    return valid


class GenerationWorker:
    """Drive the browser through one prompt and collect the image URLs."""

    def __init__(
        self,
        session: BrowserSession,
        cookie_store: CookieStore,
        settings: Settings,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._cookies = cookie_store
        self._settings = settings
        self._sleep = sleep
        self._http_transport = http_transport

    async def generate(self, prompt: str, max_retries: int | None = None) -> GenerationResult:
        """Run up to ``max_retries + 1`` attempts and return the first success.

        When every attempt fails the result is a :class:`GenerationFailure`
        carrying the last attempt's error message.
        """

        if max_retries is None:
            max_retries = self._settings.max_retries
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        total = max_retries + 1
        full_prompt = build_prompt(prompt, self._settings.prompt_suffix)
        last_error: GenerationError | None = None

        try:
            for attempt in range(1, total + 1):
                logging_conf.set_attempt(attempt)
                LOGGER.info(
                    "attempt %d/%d started (prompt_sha=%s)",
                    attempt,
                    total,
                    _sha1_prefix(full_prompt),
                )
                try:
                    images = await self._attempt(full_prompt)
                except GenerationError as exc:
                    last_error = exc
                except Exception as exc:  # noqa: BLE001 - every attempt failure feeds the retry loop
                    last_error = GenerationError(f"{exc.__class__.__name__}: {exc}")
                else:
                    LOGGER.info("attempt %d/%d succeeded (images=%d)", attempt, total, len(images))
                    return GenerationSuccess(prompt=full_prompt, images=images)

                LOGGER.warning(
                    "attempt %d/%d failed [%s] %s",
                    attempt,
                    total,
                    last_error.__class__.__name__,
                    last_error,
                    extra={
                        "error": last_error.__class__.__name__,
                        "retryable": last_error.retryable,
                        "prompt_sha": _sha1_prefix(full_prompt),
                    },
                )
                if attempt < total:
                    LOGGER.info("retrying in %.1fs", self._settings.retry_backoff_seconds)
                    await self._sleep(self._settings.retry_backoff_seconds)
        finally:
            logging_conf.set_attempt(None)

        if last_error is None:
            raise RuntimeError("retry loop finished without an attempt")
        LOGGER.error("generation failed after %d attempt(s): %s", total, last_error)
        return GenerationFailure(message=str(last_error), retryable=last_error.retryable)

    async def _attempt(self, full_prompt: str) -> list[str]:
        cookies = self._cookies.load()
        async with self._session.open_page(cookies) as page:
            await page.navigate(self._settings.target_url)
            await page.submit_prompt(full_prompt)
            await page.wait_for_result()
            urls = await page.extract_image_urls(self._settings.max_images)

            async with httpx.AsyncClient(
                timeout=self._settings.link_check_timeout_seconds,
                transport=self._http_transport,
            ) as client:
                images = await validate_links(urls, client)

            try:
                self._cookies.save(await page.cookies())
            except OSError as exc:
                LOGGER.warning("could not save cookies: %s", exc)
        return images
