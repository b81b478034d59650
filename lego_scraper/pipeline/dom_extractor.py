# lego_scraper/pipeline/dom_extractor.py
"""
Reads products straight from rendered markup.

Used when nothing was captured from the site's own data. Every field read
stands alone: a selector that finds nothing resolves to None and the other
fields are still read.
"""
import json
import logging
import re
from datetime import datetime
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .. import config
from ..models import CanonicalProduct
from ..utils import clean_text, dig
from .normalizer import (
    absolute_url,
    availability_from_schema,
    availability_from_text,
    build_dom_product,
    find_prices,
    set_number_from_url,
)

logger = logging.getLogger(__name__)

# Promotional and category tiles share the card markup but do not link to /product/<slug>.
PRODUCT_PATH_PATTERN = re.compile(r"/product/[^/?#]+")
PRODUCT_CODE_PATTERN = re.compile(r"\b(\d{4,7})\b")


# --- Fault-tolerant reads ---

async def read_text(locator: Locator, timeout: int = config.FIELD_TIMEOUT) -> Optional[str]:
    try:
        return clean_text(await locator.text_content(timeout=timeout))
    except PlaywrightError:
        return None


async def read_attribute(locator: Locator, name: str, timeout: int = config.FIELD_TIMEOUT) -> Optional[str]:
    try:
        return clean_text(await locator.get_attribute(name, timeout=timeout))
    except PlaywrightError:
        return None


async def read_all_texts(root, selector: str) -> List[str]:
    try:
        texts = await root.locator(selector).all_text_contents()
    except PlaywrightError:
        return []
    return [text for text in (clean_text(t) for t in texts) if text]


async def first_text(root, selectors: List[str]) -> Optional[str]:
    """Text of the first selector that yields any."""
    for selector in selectors:
        text = await read_text(root.locator(selector).first)
        if text:
            return text
    return None


async def first_attribute(root, selectors: List[str], name: str) -> Optional[str]:
    for selector in selectors:
        value = await read_attribute(root.locator(selector).first, name)
        if value:
            return value
    return None


# --- Catalog pages ---

async def find_product_cards(page: Page) -> Optional[Locator]:
    for selector in config.PRODUCT_CARD_SELECTORS:
        cards = page.locator(selector)
        try:
            count = await cards.count()
        except PlaywrightError:
            continue
        if count > 0:
            logger.info("Found %d products using selector: %s", count, selector)
            return cards
    logger.warning("Could not find product elements in DOM")
    return None


async def extract_card(card: Locator, now: Optional[datetime] = None) -> Optional[CanonicalProduct]:
    link = await read_attribute(card.locator("a").first, "href")
    if not link or not PRODUCT_PATH_PATTERN.search(link):
        return None

    set_number = set_number_from_url(link)
    name = await read_text(card.locator(config.CARD_TITLE_SELECTOR).first)
    if not (name or set_number):
        return None

    image = card.locator("img").first
    image_url = await read_attribute(image, "src") or await read_attribute(image, "data-src")
    price_text = await read_text(card.locator(config.CARD_PRICE_SELECTOR).first)
    pieces_text = await read_text(card.locator(config.CARD_PIECES_SELECTOR).first)

    return build_dom_product(
        absolute_url(link),
        set_number=set_number,
        name=name,
        pieces_text=pieces_text,
        price_texts=find_prices(price_text),
        image_url=image_url,
        now=now,
    )


async def extract_catalog_products(
    page: Page,
    max_products: int = 0,
    now: Optional[datetime] = None,
) -> List[CanonicalProduct]:
    cards = await find_product_cards(page)
    if cards is None:
        return []
    try:
        count = await cards.count()
    except PlaywrightError as e:
        logger.warning("Product cards disappeared before extraction: %s", e)
        return []

    limit = min(max_products, count) if max_products > 0 else count
    products = []
    for index in range(limit):
        product = await extract_card(cards.nth(index), now=now)
        if product is None:
            logger.debug("Skipping card %d: not a product link.", index)
            continue
        products.append(product)
    logger.info("Extracted %d products from %d cards.", len(products), limit)
    return products


# --- Product pages ---

def json_ld_availability(text: str) -> Optional[str]:
    """offers.availability of a JSON-LD block, mapped to our availability values."""
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if isinstance(data, list):
        items = data
    elif isinstance(dig(data, "@graph"), list):
        items = data["@graph"]
    else:
        items = [data]
    for item in items:
        offers = dig(item, "offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        availability = availability_from_schema(dig(offers, "availability"))
        if availability:
            return availability
    return None


async def add_to_bag_enabled(page: Page) -> bool:
    button = page.locator(config.PRODUCT_SELECTORS["add_to_bag"]).first
    try:
        if not await button.is_visible():
            return False
        return await button.is_enabled(timeout=config.FIELD_TIMEOUT)
    except PlaywrightError:
        return False


async def resolve_dom_availability(page: Page) -> Optional[str]:
    """
    Availability of a product page. Later signals override earlier ones:
    JSON-LD offers, then a page text scan (only when the add-to-bag button
    is missing or disabled), then the availability label.
    """
    selectors = config.PRODUCT_SELECTORS
    availability = None
    for block in await read_all_texts(page, selectors["json_ld"]):
        availability = json_ld_availability(block)
        if availability:
            break

    if not await add_to_bag_enabled(page):
        scanned = availability_from_text(await read_text(page.locator("body")))
        if scanned:
            availability = scanned

    labelled = availability_from_text(await first_text(page, selectors["availability_label"]))
    if labelled:
        availability = labelled
    return availability


async def extract_product_detail(
    page: Page,
    product_url: str,
    now: Optional[datetime] = None,
) -> Optional[CanonicalProduct]:
    """
    Record for a single product page, or None when neither a name nor a set
    number is found. Availability stays None when the page shows no signal.
    """
    selectors = config.PRODUCT_SELECTORS

    name = await first_text(page, selectors["name"])
    breadcrumbs = await read_all_texts(page, selectors["breadcrumbs"])
    # The last crumb is the product itself.
    theme = breadcrumbs[-2] if len(breadcrumbs) >= 2 else None

    code_match = PRODUCT_CODE_PATTERN.search(await first_text(page, selectors["set_number"]) or "")
    set_number = code_match.group(1) if code_match else set_number_from_url(product_url)
    if not (name or set_number):
        logger.warning("No product name or set number found on %s", product_url)
        return None

    regular_prices = find_prices(await first_text(page, selectors["price"]))
    sale_prices = find_prices(await first_text(page, selectors["sale_price"]))
    if regular_prices and sale_prices:
        price_texts = [regular_prices[0], sale_prices[0]]
    else:
        price_texts = regular_prices or sale_prices

    rating_text = await first_text(page, selectors["rating"]) or await first_attribute(page, selectors["rating"], "aria-label")
    image_url = (
        await first_attribute(page, selectors["image"], "src")
        or await read_attribute(page.locator(selectors["og_image"]).first, "content")
    )

    return build_dom_product(
        product_url,
        set_number=set_number,
        name=name,
        theme=theme,
        pieces_text=await first_text(page, selectors["pieces"]),
        minifigures_text=await first_text(page, selectors["minifigures"]),
        age_range=await first_text(page, selectors["age_range"]),
        rating_text=rating_text,
        review_count_text=await first_text(page, selectors["review_count"]),
        price_texts=price_texts,
        discount_text=await first_text(page, selectors["discount"]),
        availability=await resolve_dom_availability(page),
        default_availability=None,
        badge_texts=await read_all_texts(page, selectors["badges"]),
        image_url=image_url,
        now=now,
    )
