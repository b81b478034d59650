# lego_scraper/pipeline/handlers.py
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .. import config
from ..delegates import FileManagerDelegate, artifact_name
from ..models import CanonicalProduct, CrawlRequest, PageLabel
from .capture_store import CaptureStore
from .dom_extractor import extract_catalog_products, extract_product_detail
from .interceptor import ResponseInterceptor
from .normalizer import (
    catalog_base_url,
    merge_products,
    normalize_api_product,
    set_number_from_url,
    with_default_availability,
)
from .pagination import ScrollController

logger = logging.getLogger(__name__)

Enqueue = Callable[[CrawlRequest], None]


async def capture_diagnostics(page: Page, file_manager: FileManagerDelegate, url: str) -> None:
    """Saves one screenshot and one HTML snapshot of the page for later inspection."""
    try:
        screenshot = await page.screenshot(full_page=False)
        file_manager.save_debug_screenshot(artifact_name("debug-screenshot", url), screenshot)
    except PlaywrightError as e:
        logger.error("Could not take debug screenshot of %s: %s", url, e)
    try:
        html_content = await page.content()
        file_manager.save_debug_html(artifact_name("debug-html", url), html_content)
    except PlaywrightError as e:
        logger.error("Could not read debug HTML of %s: %s", url, e)
    logger.warning("Debug screenshot and HTML saved for %s", url)


async def open_page(page: Page, url: str) -> bool:
    """Navigates and waits for the page to settle. Returns False when navigation timed out."""
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=config.NAVIGATION_TIMEOUT)
    except PlaywrightTimeoutError as e:
        logger.error("Timed out loading %s: %s", url, e)
        return False
    try:
        await page.wait_for_load_state("networkidle", timeout=config.NETWORK_IDLE_TIMEOUT)
    except PlaywrightTimeoutError:
        # Pages with long-polling never go idle.
        logger.debug("Network did not go idle on %s, continuing.", url)
    return True


async def capture_embedded_state(page: Page, interceptor: ResponseInterceptor) -> int:
    try:
        html_content = await page.content()
    except PlaywrightError as e:
        logger.debug("Could not read page HTML for embedded state: %s", e)
        return 0
    return interceptor.ingest_html(html_content)


def normalize_captured(store: CaptureStore, base_url: str, max_products: int, now: datetime) -> List[CanonicalProduct]:
    products = []
    for raw in store.values():
        product = normalize_api_product(raw, base_url, now)
        if product:
            products.append(product)
        if max_products > 0 and len(products) >= max_products:
            break
    return products


async def handle_catalog(
    page: Page,
    request: CrawlRequest,
    file_manager: FileManagerDelegate,
    enqueue: Optional[Enqueue] = None,
) -> List[CanonicalProduct]:
    """
    Loads a catalog page to the end and extracts its products.

    Without enqueue the records are saved directly. With enqueue each
    product page is queued for a detailed visit instead.
    """
    max_products = request.max_products
    logger.info("Processing catalog page: %s", request.url)

    store = CaptureStore()
    interceptor = ResponseInterceptor(store)
    # Listening starts before navigation so the first API calls are seen.
    interceptor.attach(page)
    try:
        if not await open_page(page, request.url):
            await capture_diagnostics(page, file_manager, request.url)
            return []
        await page.wait_for_timeout(config.POST_LOAD_SETTLE)

        logger.info("Scrolling to load all products...")
        await ScrollController(page, store, max_items=max_products).run()
        await capture_embedded_state(page, interceptor)
    finally:
        interceptor.detach()

    now = datetime.now(timezone.utc)
    products: List[CanonicalProduct] = []
    if len(store):
        logger.info("Processing %d products captured from API", len(store))
        products = normalize_captured(store, catalog_base_url(request.url), max_products, now)

    if not products:
        logger.info("No API data captured, falling back to DOM extraction")
        products = await extract_catalog_products(page, max_products, now)

    logger.info("Successfully extracted %d products", len(products))
    if not products:
        logger.warning("No products found on %s", request.url)
        await capture_diagnostics(page, file_manager, request.url)
        return []

    if enqueue is None:
        file_manager.push_data(products)
        return products

    queued = set()
    for product in products:
        if product.product_url in queued:
            continue
        queued.add(product.product_url)
        enqueue(CrawlRequest(
            url=product.product_url,
            label=PageLabel.PRODUCT.value,
            user_data={"setNumber": product.set_number},
        ))
    logger.info("Enqueued %d product pages for detailed extraction", len(queued))
    return products


async def handle_product(
    page: Page,
    request: CrawlRequest,
    file_manager: FileManagerDelegate,
) -> Optional[CanonicalProduct]:
    """Extracts one detailed record from a product page and saves it."""
    logger.info("Processing product page: %s", request.url)

    store = CaptureStore()
    interceptor = ResponseInterceptor(store)
    interceptor.attach(page)
    try:
        if not await open_page(page, request.url):
            await capture_diagnostics(page, file_manager, request.url)
            return None
        try:
            await page.wait_for_selector(config.PRODUCT_SELECTORS["ready"], timeout=config.PAGE_READY_TIMEOUT)
        except PlaywrightTimeoutError:
            logger.error("Product page never rendered its title: %s", request.url)
            await capture_diagnostics(page, file_manager, request.url)
            return None
        await capture_embedded_state(page, interceptor)
    finally:
        interceptor.detach()

    now = datetime.now(timezone.utc)
    product = await extract_product_detail(page, request.url, now)

    # Product pages also load recommendations; only the entry for this set is relevant.
    set_number = (
        (product.set_number if product else None)
        or set_number_from_url(request.url)
        or request.user_data.get("setNumber")
    )
    captured = store.get(set_number) if set_number else None
    if captured:
        api_product = normalize_api_product(captured, catalog_base_url(request.url), now)
        if api_product:
            product = merge_products(product, api_product) if product else api_product

    if product is None:
        await capture_diagnostics(page, file_manager, request.url)
        return None
    product = with_default_availability(product)

    file_manager.push_data(product)
    logger.info("SUCCESS: Extracted [bold green]%s[/bold green] (%s)", product.set_number, product.name)
    return product


async def handle_default(page: Page, request: CrawlRequest) -> None:
    logger.info("Handling default route for: %s", request.url)
