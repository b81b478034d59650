# lego_scraper/pipeline/normalizer.py
"""
Turns raw product data into CanonicalProduct records.

Two inputs are handled: dicts captured from the site's backend responses
(untyped, shapes vary per endpoint) and field texts read from rendered
markup. Both end in the same record shape with the same price, discount,
availability and tag rules.
"""
import logging
import math
import re
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from decimal import InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from price_parser import Price

from .. import config
from ..models import Availability, CanonicalProduct
from ..utils import clean_text, dig, first_of, is_present

logger = logging.getLogger(__name__)

# Symbol before the amount ($329.99, €249.99) or after it (329,99 €, 1.299,99 €).
PRICE_PATTERN = re.compile(r"(?:CA\$|A\$|[$£€])\s?\d(?:[\d.,]*\d)?|\d(?:[\d.,]*\d)?\s?[€£]")
LEADING_SYMBOL_PATTERN = re.compile(r"^(CA\$|A\$|[$£€])\s+")
BARE_AMOUNT_PATTERN = re.compile(r"\d[\d.,]*")
NUMBER_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")
DISCOUNT_PATTERN = re.compile(r"(\d{1,3})\s?%")
LEADING_INT_PATTERN = re.compile(r"\d[\d,]*")
# Set numbers sit at the end of the slug (/product/vintage-car-10300) or form their own path segment.
SLUG_SET_NUMBER_PATTERN = re.compile(r"-(\d{4,6})(?:[?#]|$)")
PATH_SET_NUMBER_PATTERN = re.compile(r"/(\d{5,6})(?:[?#/]|$)")
LOCALE_SEGMENT_PATTERN = re.compile(r"^[a-z]{2}-[a-z]{2}$", re.IGNORECASE)

# Checked in order; "temporarily out of stock" has to win over "out of stock".
AVAILABILITY_PHRASES = [
    ("temporarily out of stock", Availability.TEMPORARILY_OUT_OF_STOCK),
    ("out of stock", Availability.OUT_OF_STOCK),
    ("sold out", Availability.OUT_OF_STOCK),
    ("coming soon", Availability.COMING_SOON),
    ("backorder", Availability.BACKORDER),
    ("available now", Availability.AVAILABLE),
]

SCHEMA_AVAILABILITY = {
    "instock": Availability.AVAILABLE,
    "limitedavailability": Availability.AVAILABLE,
    "onlineonly": Availability.AVAILABLE,
    "outofstock": Availability.OUT_OF_STOCK,
    "soldout": Availability.OUT_OF_STOCK,
    "discontinued": Availability.OUT_OF_STOCK,
    "preorder": Availability.COMING_SOON,
    "presale": Availability.COMING_SOON,
    "backorder": Availability.BACKORDER,
}


@dataclass(frozen=True)
class SaleState:
    retail_price: Optional[str]
    sale_price: Optional[str]
    is_on_sale: bool
    discount_percentage: Optional[int]


# --- Scalars ---

def _is_number(value: Any) -> bool:
    """Finite int or float. Bools are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def as_count(value: Any) -> Optional[int]:
    """Non-negative whole number, or None for anything else (bools, negatives, junk strings)."""
    if _is_number(value):
        if value < 0 or value != int(value):
            return None
        return int(value)
    if isinstance(value, str):
        return parse_count(value)
    return None


def as_rating(value: Any) -> Optional[float]:
    if isinstance(value, str):
        return parse_rating(value)
    if not _is_number(value) or not 0 <= value <= 5:
        return None
    return float(value)


def parse_count(text: Optional[str]) -> Optional[int]:
    """Leading whole number in a text like '1,458 pieces'."""
    if not text:
        return None
    match = LEADING_INT_PATTERN.search(text)
    if not match:
        return None
    return int(match.group(0).replace(",", ""))


def parse_rating(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    match = NUMBER_PATTERN.search(text)
    if not match:
        return None
    rating = float(match.group(0).replace(",", ""))
    return rating if 0 <= rating <= 5 else None


def parse_discount(text: Optional[str]) -> Optional[int]:
    """Percentage from a marker like '-20%' or 'Save 20 %'. 0 and 100+ are not discounts."""
    if not text:
        return None
    match = DISCOUNT_PATTERN.search(text)
    if not match:
        return None
    percentage = int(match.group(1))
    return percentage if 0 < percentage < 100 else None


def find_prices(text: Optional[str]) -> List[str]:
    if not text:
        return []
    prices = []
    for price in PRICE_PATTERN.findall(text):
        # Non-breaking spaces become plain ones; a leading symbol sits flush with the amount.
        prices.append(LEADING_SYMBOL_PATTERN.sub(r"\1", re.sub(r"\s+", " ", price)))
    return prices


# --- Prices ---

def currency_symbol(currency_code: Any) -> str:
    if isinstance(currency_code, str):
        return config.CURRENCY_SYMBOLS.get(currency_code.upper(), config.DEFAULT_CURRENCY_SYMBOL)
    return config.DEFAULT_CURRENCY_SYMBOL


def format_amount(amount: float, currency_code: Any = None) -> str:
    return f"{currency_symbol(currency_code)}{amount:.2f}"


def format_cents(cents: Any, currency_code: Any = None) -> Optional[str]:
    # A zero amount means the endpoint has no price for this product.
    if not _is_number(cents) or cents <= 0 or cents != int(cents):
        return None
    return format_amount(int(cents) / 100, currency_code)


def _formatted_value(price_data: Dict[str, Any]) -> Optional[str]:
    value = price_data.get("formattedValue")
    if _is_number(value) and value >= 0:
        return format_amount(value, price_data.get("currencyCode"))
    text = clean_text(value)
    if text and BARE_AMOUNT_PATTERN.fullmatch(text):
        amount = price_to_number(text)
        if amount is not None:
            return format_amount(amount, price_data.get("currencyCode"))
    return text


def resolve_price(price_data: Any) -> Optional[str]:
    """
    Display price from a price object: formattedAmount, then formattedValue,
    then centAmount / 100.
    """
    if isinstance(price_data, str):
        return clean_text(price_data)
    if not isinstance(price_data, dict):
        return None
    return first_of(
        lambda: clean_text(price_data.get("formattedAmount")),
        lambda: _formatted_value(price_data),
        lambda: format_cents(price_data.get("centAmount"), price_data.get("currencyCode")),
    )


def price_to_number(price: Optional[str]) -> Optional[float]:
    """Amount of a display price, in either 1,299.99 or 1.299,99 notation."""
    if not price:
        return None
    try:
        return Price.fromstring(price).amount_float
    except (ValueError, InvalidOperation):
        return None


def discount_between(original: float, current: float) -> Optional[int]:
    if original <= 0 or current >= original:
        return None
    # Half rounds up, matching how the site rounds its own markers.
    return int(math.floor(100 * (original - current) / original + 0.5))


def resolve_sale_state(
    original_price: Optional[str],
    current_price: Optional[str],
    discount_marker: Optional[int] = None,
) -> SaleState:
    """
    Decides the price fields of a record.

    Priority when signals disagree: two explicit prices, then a discount
    marker, then a single price.
    """
    original_value = price_to_number(original_price)
    current_value = price_to_number(current_price)

    if original_value is not None and current_value is not None:
        if current_value < original_value:
            return SaleState(
                retail_price=original_price,
                sale_price=current_price,
                is_on_sale=True,
                discount_percentage=discount_between(original_value, current_value),
            )
        return SaleState(current_price, None, False, None)

    if discount_marker:
        return SaleState(original_price, current_price, True, discount_marker)

    return SaleState(current_price or original_price, None, False, None)


# --- Availability ---

def _is_upcoming(launch_date: Any, now: datetime) -> bool:
    if not is_present(launch_date):
        return False
    if not isinstance(launch_date, str):
        return True
    try:
        launch = datetime.fromisoformat(launch_date.strip().replace("Z", "+00:00"))
    except ValueError:
        # Unparseable dates are still a launch announcement.
        return True
    if launch.tzinfo is None:
        launch = launch.replace(tzinfo=timezone.utc)
    return launch > now


def resolve_availability(raw: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """
    Availability of a captured product. The 'availability' object is used
    when present, otherwise the variant attributes. A coming-soon signal
    overrides a disabled add-to-bag flag, since unreleased sets cannot be
    added to the bag either.
    """
    now = now or datetime.now(timezone.utc)
    source = raw.get("availability")
    if not isinstance(source, dict):
        source = dig(raw, "variant", "attributes")
    if not isinstance(source, dict):
        return Availability.AVAILABLE.value

    availability = Availability.AVAILABLE
    if source.get("canAddToBag") is False:
        availability = Availability.OUT_OF_STOCK
    if source.get("deliveryChannel") == "coming_soon" or _is_upcoming(source.get("launchDate"), now):
        availability = Availability.COMING_SOON
    return availability.value


def availability_from_text(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    for phrase, availability in AVAILABILITY_PHRASES:
        if phrase in lowered:
            return availability.value
    return None


def availability_from_schema(value: Any) -> Optional[str]:
    """Maps schema.org values such as 'https://schema.org/OutOfStock'."""
    if not isinstance(value, str) or not value.strip():
        return None
    key = value.rstrip("/").rsplit("/", 1)[-1].lower()
    availability = SCHEMA_AVAILABILITY.get(key)
    return availability.value if availability else None


# --- Tags ---

def dedupe_tags(tags: Iterable[str], is_on_sale: bool) -> tuple:
    unique: List[str] = []
    for tag in tags:
        if tag not in unique:
            unique.append(tag)
    if is_on_sale and config.SALE_TAG not in unique:
        unique.append(config.SALE_TAG)
    return tuple(unique)


def filter_promotional_tags(texts: Iterable[Optional[str]]) -> List[str]:
    """Keeps badge texts that mention a known promotion; drops other marketing copy."""
    kept = []
    for text in texts:
        cleaned = clean_text(text)
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if any(phrase in lowered for phrase in config.PROMOTIONAL_TAG_PHRASES):
            kept.append(cleaned)
    return kept


def collect_api_tags(raw: Dict[str, Any], attrs: Dict[str, Any]) -> List[str]:
    tags = []
    featured = attrs.get("featuredFlags")
    if isinstance(featured, list):
        tags.extend(clean_text(flag) for flag in featured)
    for key in ("badges", "flags"):
        entries = raw.get(key)
        if isinstance(entries, list):
            tags.extend(clean_text(dig(entry, "text")) for entry in entries)
    return [tag for tag in tags if tag]


# --- Identifiers, URLs, images ---

def set_number_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = SLUG_SET_NUMBER_PATTERN.search(url) or PATH_SET_NUMBER_PATTERN.search(url)
    return match.group(1) if match else None


def product_key(raw: Dict[str, Any]) -> Optional[str]:
    """Stable identifier of a captured product: productCode, then id."""
    for key in ("productCode", "id"):
        value = raw.get(key)
        if _is_number(value):
            return str(value)
        text = clean_text(value)
        if text:
            return text
    return None


def catalog_base_url(page_url: str) -> str:
    """Origin plus locale segment, e.g. https://www.lego.com/en-us."""
    parsed = urlparse(page_url)
    if not parsed.scheme or not parsed.netloc:
        return config.SITE_ORIGIN
    origin = f"{parsed.scheme}://{parsed.netloc}"
    segments = [segment for segment in parsed.path.split("/") if segment]
    if segments and LOCALE_SEGMENT_PATTERN.match(segments[0]):
        return f"{origin}/{segments[0].lower()}"
    return origin


def absolute_url(url: Optional[str], base: str = config.SITE_ORIGIN) -> Optional[str]:
    if not url:
        return None
    if url.startswith("//"):
        return f"https:{url}"
    if url.startswith("http"):
        return url
    return urljoin(base, url)


def build_product_url(raw: Dict[str, Any], set_number: str, base_url: str) -> str:
    slug = clean_text(raw.get("slug")) or clean_text(raw.get("overrideUrl")) or set_number
    if slug.startswith("http"):
        return slug
    if slug.startswith("/"):
        return urljoin(base_url, slug)
    return f"{base_url.rstrip('/')}/product/{slug}"


def resolve_image(raw: Dict[str, Any]) -> Optional[str]:
    image = first_of(
        lambda: raw.get("primaryImage") if isinstance(raw.get("primaryImage"), str) else None,
        lambda: dig(raw, "primaryImage", "url"),
        lambda: raw.get("baseImgUrl"),
        lambda: dig(raw, "image", "url"),
    )
    return absolute_url(image) if isinstance(image, str) else None


# --- Records ---

def _timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_api_product(
    raw: Dict[str, Any],
    base_url: str,
    now: Optional[datetime] = None,
) -> Optional[CanonicalProduct]:
    """Builds a record from a captured dict. Returns None when it has no identifier."""
    set_number = product_key(raw)
    if not set_number:
        logger.debug("Captured product has no identifier, skipping: %s", str(raw)[:200])
        return None
    now = now or datetime.now(timezone.utc)

    # Attributes live on the variant for some endpoints and on the product for others.
    attrs = dig(raw, "variant", "attributes")
    if not isinstance(attrs, dict):
        attrs = raw.get("attributes") if isinstance(raw.get("attributes"), dict) else {}

    sale = resolve_sale_state(
        original_price=resolve_price(raw.get("listPrice")),
        current_price=resolve_price(raw.get("price")),
    )

    return CanonicalProduct(
        set_number=set_number,
        name=clean_text(raw.get("name")) or "",
        theme=clean_text(dig(raw, "themes", 0, "name")) or "",
        pieces=as_count(attrs.get("pieceCount")),
        minifigures=as_count(attrs.get("minifigureCount")),
        rating=as_rating(dig(attrs, "rating", "averageRating")),
        review_count=as_count(dig(attrs, "rating", "totalReviewCount")),
        retail_price=sale.retail_price,
        sale_price=sale.sale_price,
        is_on_sale=sale.is_on_sale,
        discount_percentage=sale.discount_percentage,
        availability=resolve_availability(raw, now),
        tags=dedupe_tags(collect_api_tags(raw, attrs), sale.is_on_sale),
        image_url=resolve_image(raw),
        product_url=build_product_url(raw, set_number, base_url),
        scraped_at=_timestamp(now),
    )


def build_dom_product(
    product_url: str,
    *,
    set_number: Optional[str] = None,
    name: Optional[str] = None,
    theme: Optional[str] = None,
    pieces_text: Optional[str] = None,
    minifigures_text: Optional[str] = None,
    age_range: Optional[str] = None,
    rating_text: Optional[str] = None,
    review_count_text: Optional[str] = None,
    price_texts: Optional[List[str]] = None,
    discount_text: Optional[str] = None,
    availability: Optional[str] = None,
    default_availability: Optional[str] = Availability.AVAILABLE.value,
    badge_texts: Optional[List[str]] = None,
    image_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CanonicalProduct:
    """
    Builds a record from texts read off rendered markup.

    price_texts holds every currency amount found next to the product, in
    page order. Two amounts are read as original then current price.
    Without an availability signal the record gets default_availability,
    which product pages pass as None so a captured entry can fill it.
    """
    now = now or datetime.now(timezone.utc)
    prices = [price for price in (price_texts or []) if price]
    if len(prices) >= 2:
        original, current = prices[0], prices[1]
        # Some layouts print the current price first.
        original_value, current_value = price_to_number(original), price_to_number(current)
        if original_value is not None and current_value is not None and current_value > original_value:
            original, current = current, original
    else:
        original, current = None, prices[0] if prices else None

    sale = resolve_sale_state(original, current, parse_discount(discount_text))

    return CanonicalProduct(
        set_number=set_number or set_number_from_url(product_url) or "",
        name=clean_text(name) or "",
        theme=clean_text(theme) or "",
        pieces=parse_count(pieces_text),
        minifigures=parse_count(minifigures_text),
        rating=parse_rating(rating_text),
        review_count=parse_count(review_count_text),
        retail_price=sale.retail_price,
        sale_price=sale.sale_price,
        is_on_sale=sale.is_on_sale,
        discount_percentage=sale.discount_percentage,
        availability=availability or default_availability,
        tags=dedupe_tags(filter_promotional_tags(badge_texts or []), sale.is_on_sale),
        image_url=absolute_url(image_url),
        product_url=absolute_url(product_url) or product_url,
        scraped_at=_timestamp(now),
        age_range=clean_text(age_range),
    )


PRICE_FIELDS = ("retail_price", "sale_price", "is_on_sale", "discount_percentage")


def merge_products(primary: CanonicalProduct, fallback: CanonicalProduct) -> CanonicalProduct:
    """
    Fills fields the primary record left empty from the fallback record.
    Price fields move as one group so sale state stays consistent.
    """
    updates = {}
    for item in fields(CanonicalProduct):
        if item.name in PRICE_FIELDS or item.name == "tags":
            continue
        value = getattr(primary, item.name)
        if (value is None or value == "") and is_present(getattr(fallback, item.name)):
            updates[item.name] = getattr(fallback, item.name)
    if primary.retail_price is None and primary.sale_price is None:
        updates.update({name: getattr(fallback, name) for name in PRICE_FIELDS})
    is_on_sale = updates.get("is_on_sale", primary.is_on_sale)
    updates["tags"] = dedupe_tags(primary.tags or fallback.tags, is_on_sale)
    return replace(primary, **updates)


def with_default_availability(product: CanonicalProduct) -> CanonicalProduct:
    if product.availability:
        return product
    return replace(product, availability=Availability.AVAILABLE.value)
