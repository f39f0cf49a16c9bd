"""Browser session owned by one flow run."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from playwright.sync_api import Error as PWError
from playwright.sync_api import sync_playwright

if TYPE_CHECKING:
    from playwright.sync_api import Browser, BrowserContext, Page, Playwright

    from ..config.settings import Settings

logger = logging.getLogger(__name__)


class Session:
    """One Playwright browser, context and page.

    Use as a context manager; ``close()`` is idempotent so the browser is torn
    down exactly once whatever path the flow exits by.
    """

    def __init__(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        viewport_width: int = 1920,
        viewport_height: int = 1080,
        ignore_https_errors: bool = True,
        timeout_ms: int = 30000,
    ) -> None:
        self.headless = headless
        self.slow_mo = slow_mo
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self.ignore_https_errors = ignore_https_errors
        self.timeout_ms = timeout_ms

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self.closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> Session:
        return cls(
            headless=settings.headless,
            slow_mo=settings.slow_mo_ms,
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            ignore_https_errors=settings.ignore_https_errors,
            timeout_ms=settings.default_timeout_ms,
        )

    def start(self) -> Session:
        logger.info("Starting browser (headless=%s, slow_mo=%sms)", self.headless, self.slow_mo)
        self._playwright = sync_playwright().start()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=self.headless, slow_mo=self.slow_mo
            )
            self._context = self._browser.new_context(
                viewport=self.viewport,  # type: ignore[arg-type]
                ignore_https_errors=self.ignore_https_errors,
            )
            self._page = self._context.new_page()
            self._page.set_default_timeout(self.timeout_ms)
        except Exception:
            self.close()
            raise
        return self

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Session not started. Call start() first.")
        return self._page

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            if self._browser:
                self._browser.close()
        except PWError as e:
            logger.warning("Error closing browser: %s", e)
        finally:
            if self._playwright:
                self._playwright.stop()
            self._browser = None
            self._context = None
            self._page = None
            self._playwright = None
        logger.info("Browser closed")

    def __enter__(self) -> Session:
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()
