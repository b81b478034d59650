# lego_scraper/main.py
import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from . import config
from .delegates import BrowserDelegate, FileManagerDelegate
from .models import CrawlRequest, PageLabel
from .pipeline import handle_catalog, handle_default, handle_product

logger = logging.getLogger(__name__)


async def run_request(
    browser: BrowserDelegate,
    request: CrawlRequest,
    file_manager: FileManagerDelegate,
    pending: Optional[Deque[CrawlRequest]],
) -> bool:
    """Visits one request on its own page. Returns False if the visit failed with a browser error."""
    page = await browser.new_page()
    try:
        if request.label == PageLabel.CATALOG.value:
            enqueue = pending.append if pending is not None else None
            await handle_catalog(page, request, file_manager, enqueue=enqueue)
        elif request.label == PageLabel.PRODUCT.value:
            await handle_product(page, request, file_manager)
        else:
            await handle_default(page, request)
        return True
    except PlaywrightError as e:
        # One broken visit must not end the run.
        logger.error("Visit to %s failed: %s", request.url, e, exc_info=True)
        return False
    finally:
        await page.close()


async def main(
    start_url: str = config.START_URL,
    max_products: int = config.MAX_PRODUCTS,
    follow_product_pages: bool = False,
    proxy: Optional[Dict[str, str]] = None,
    har_path: Optional[Path] = None,
    headless: bool = True,
    data_path: Path = config.DATA_PATH,
) -> Dict[str, int]:
    """
    The main orchestrator. Visits the start catalog page and, in follow-up
    mode, every product page it discovered. Returns visit counts.
    """
    file_manager = FileManagerDelegate(base_path=data_path)
    logger.info("Starting LEGO scraper with URL: %s", start_url)
    logger.info("Max products: %s", max_products or "unlimited")

    pending: Deque[CrawlRequest] = deque([
        CrawlRequest(url=start_url, label=PageLabel.CATALOG.value, max_products=max_products),
    ])
    stats = {"visited": 0, "failed": 0}
    semaphore = asyncio.Semaphore(config.MAX_CONCURRENCY)

    async with BrowserDelegate(proxy=proxy, har_output_path=har_path, headless=headless) as browser:

        async def _visit(request: CrawlRequest) -> None:
            async with semaphore:
                ok = await run_request(browser, request, file_manager, pending if follow_product_pages else None)
            stats["visited"] += 1
            if not ok:
                stats["failed"] += 1

        while pending:
            batch: List[CrawlRequest] = list(pending)
            pending.clear()
            logger.info("Visiting %d %s", len(batch), "page" if len(batch) == 1 else "pages")
            await asyncio.gather(*(_visit(request) for request in batch))

    logger.info("Main pipeline process finished: %d visits, %d failed.", stats["visited"], stats["failed"])
    return stats
