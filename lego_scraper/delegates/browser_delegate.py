# lego_scraper/delegates/browser_delegate.py
import logging
from pathlib import Path
from typing import Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .. import config

logger = logging.getLogger(__name__)


class BrowserDelegate:
    """Owns the Playwright browser and hands out a fresh page per visit."""

    def __init__(
        self,
        user_agent: str = config.USER_AGENT,
        viewport: Optional[Dict] = None,
        proxy: Optional[Dict[str, str]] = None,
        har_output_path: Optional[Path] = None,
        headless: bool = True,
        launch_args: Optional[List[str]] = None,
    ):
        self.user_agent = user_agent
        self.viewport = viewport or config.VIEWPORT
        self.proxy = proxy
        self.har_output_path = har_output_path
        self.headless = headless
        self.launch_args = launch_args or config.BROWSER_ARGS
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self):
        logger.debug("Starting Playwright and launching browser...")
        self._playwright = await async_playwright().start()
        launch_options = {"headless": self.headless, "args": self.launch_args}
        if self.proxy:
            launch_options["proxy"] = self.proxy
            logger.info("Routing browser traffic through proxy: %s", self.proxy.get("server"))
        self._browser = await self._playwright.chromium.launch(**launch_options)

        context_options = {
            "user_agent": self.user_agent,
            "viewport": self.viewport,
            "extra_http_headers": config.EXTRA_HTTP_HEADERS,
        }
        if self.har_output_path:
            # Full HAR recording shows which backend responses carry product data.
            logger.debug("Enabling HAR recording to: %s", self.har_output_path)
            context_options.update(
                record_har_path=self.har_output_path,
                record_har_omit_content=False,
                record_har_mode="full",
            )
        self._context = await self._browser.new_context(**context_options)
        await self._context.add_init_script(config.HIDE_WEBDRIVER_SCRIPT)
        logger.debug("Playwright browser launched and context created.")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        logger.debug("Closing browser, context, and stopping Playwright...")
        if self._context:
            await self._context.close()  # Also finalizes the HAR file
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
        logger.debug("Playwright resources released.")

    async def new_page(self) -> Page:
        if not self._context:
            raise RuntimeError("Browser context not initialized. Use 'async with BrowserDelegate(...)'.")
        return await self._context.new_page()
