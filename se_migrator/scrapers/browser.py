"""Playwright I/O shell: one isolated browser per top-level call.

`open_page()` launches a fresh Chromium, yields a `PageDriver` and closes the
browser on every exit path. `PageDriver` resolves selector steps against the
live page through the cascade and performs the side effects (navigate, type,
click, screenshot). Parsing of what it finds happens in `parsers`.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Type

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from se_migrator.backends.base_backend import (
    BackendUnavailableError,
    ExtractionError,
    MigratorError,
)
from se_migrator.models.session import BrowserCookie

from .selectors import CascadeHit, Matcher, SelectorStep, cascade_async

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class BrowserConfig:
    headless: bool = True
    executable_path: Optional[str] = None
    selector_timeout_ms: int = 2000
    navigation_timeout_ms: int = 30_000
    screenshot_dir: Optional[Path] = None


class PageDriver:
    def __init__(self, page: Page, config: BrowserConfig):
        self.page = page
        self.config = config

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str) -> None:
        logger.debug(f"Navigating to {url}")
        try:
            await self.page.goto(
                url, wait_until="networkidle", timeout=self.config.navigation_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise ExtractionError(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            raise ExtractionError(f"Could not load {url}: {e.message}") from e
        logger.debug(f"Loaded {self.page.url}")
        await self.screenshot("navigate")

    async def content(self) -> str:
        return await self.page.content()

    async def _visible_matches(self, matcher: Matcher) -> List[Locator]:
        locator = self.page.locator(matcher.selector)
        await locator.first.wait_for(
            state="attached", timeout=self.config.selector_timeout_ms
        )
        visible = []
        for index in range(await locator.count()):
            candidate = locator.nth(index)
            if await candidate.is_visible():
                visible.append(candidate)
        return visible

    async def locate(
        self, step: SelectorStep, error_cls: Type[MigratorError] = ExtractionError
    ) -> Optional[CascadeHit[Locator]]:
        """Resolve `step` on the live page. Required steps raise `error_cls` when nothing matches."""
        hit = await cascade_async(step, self._visible_matches)
        if hit is None and step.required:
            await self.screenshot(f"missing-{step.name}")
            raise error_cls(f"Could not find {step.name} on the page")
        return hit

    async def fill(
        self, step: SelectorStep, value: str, error_cls: Type[MigratorError] = ExtractionError
    ) -> None:
        hit = await self.locate(step, error_cls)
        if hit is not None:
            await hit.first.fill(value)

    async def click(self, step: SelectorStep, error_cls: Type[MigratorError] = ExtractionError) -> bool:
        """Click the element `step` resolves to and wait for the page to settle.

        Returns False when an optional step found nothing to click.
        """
        hit = await self.locate(step, error_cls)
        if hit is None:
            logger.debug(f"Optional step '{step.name}' not present; continuing")
            return False
        try:
            await hit.first.scroll_into_view_if_needed(timeout=self.config.selector_timeout_ms)
            await hit.first.click(timeout=self.config.selector_timeout_ms)
            await self.page.wait_for_load_state(
                "networkidle", timeout=self.config.navigation_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            raise ExtractionError(f"Timed out after clicking {step.name}") from e
        except PlaywrightError as e:
            raise ExtractionError(f"Could not click {step.name}: {e.message}") from e
        logger.debug(f"Clicked {step.name}; now at {self.page.url}")
        await self.screenshot(step.name)
        return True

    async def cookies(self) -> List[BrowserCookie]:
        raw = await self.page.context.cookies()
        return [
            BrowserCookie(
                name=c["name"],
                value=c["value"],
                domain=c["domain"],
                path=c.get("path", "/"),
                expires=c.get("expires"),
                http_only=c.get("httpOnly", False),
                secure=c.get("secure", False),
            )
            for c in raw
        ]

    async def screenshot(self, label: str) -> None:
        if not self.config.screenshot_dir:
            return
        self.config.screenshot_dir.mkdir(parents=True, exist_ok=True)
        safe_label = "".join(ch if ch.isalnum() else "-" for ch in label)
        path = self.config.screenshot_dir / (
            f"{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}_{safe_label}.png"
        )
        try:
            await self.page.screenshot(path=str(path), full_page=True)
            logger.debug(f"Saved debug screenshot {path}")
        except PlaywrightError as e:
            logger.warning(f"Debug screenshot failed: {e.message}")


@asynccontextmanager
async def open_page(
    config: BrowserConfig, cookies: Sequence[BrowserCookie] = ()
) -> AsyncIterator[PageDriver]:
    """Fresh isolated browser for one call; always closed on exit."""
    try:
        playwright = await async_playwright().start()
    except Exception as e:
        raise BackendUnavailableError("Browser automation is unavailable") from e

    browser = None
    try:
        try:
            browser = await playwright.chromium.launch(
                headless=config.headless,
                executable_path=config.executable_path,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
        except PlaywrightError as e:
            logger.error(f"Browser launch failed: {e.message}")
            raise BackendUnavailableError("Could not launch browser") from e

        context = await browser.new_context(user_agent=USER_AGENT)
        if cookies:
            await context.add_cookies(
                [
                    {
                        "name": c.name,
                        "value": c.value,
                        "domain": c.domain,
                        "path": c.path,
                        "httpOnly": c.http_only,
                        "secure": c.secure,
                    }
                    for c in cookies
                ]
            )
        page = await context.new_page()
        page.set_default_navigation_timeout(config.navigation_timeout_ms)
        yield PageDriver(page, config)
    finally:
        if browser is not None:
            await browser.close()
        await playwright.stop()
        logger.debug("Browser closed")
