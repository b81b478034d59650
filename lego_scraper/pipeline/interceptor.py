# lego_scraper/pipeline/interceptor.py
"""
Captures product data the site's front end loads for itself.

Two sources feed the CaptureStore: JSON responses observed on the page's
network traffic, and hydration state embedded in the rendered HTML
(__NEXT_DATA__ / __APOLLO_STATE__), which covers the first batch of
products rendered on the server. Both are best effort: anything that does
not parse is skipped.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

import json5
from lxml import etree
from lxml import html as lxml_html
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

from .. import config
from ..utils import is_present
from .capture_store import CaptureStore
from .normalizer import product_key

logger = logging.getLogger(__name__)

APOLLO_STATE_MARKER = re.compile(r"window\.__APOLLO_STATE__\s*=\s*")
NEXT_DATA_ID = "__NEXT_DATA__"


def looks_like_product(record: Dict[str, Any]) -> bool:
    """A product code, or an id and a name together with a price or an image."""
    if is_present(record.get("productCode")):
        return True
    if not (is_present(record.get("id")) and is_present(record.get("name"))):
        return False
    return is_present(record.get("price")) or is_present(record.get("primaryImage"))


def find_products(data: Any, max_depth: int = config.MAX_SEARCH_DEPTH) -> List[Dict[str, Any]]:
    """
    Walks parsed JSON and returns every dict that looks like a product.
    Matched dicts are not searched further, so a product's nested variants
    are not captured a second time.
    """
    products: List[Dict[str, Any]] = []

    def _walk(value: Any, depth: int) -> None:
        if depth > max_depth or not value:
            return
        if isinstance(value, list):
            for item in value:
                _walk(item, depth + 1)
        elif isinstance(value, dict):
            if looks_like_product(value):
                products.append(value)
            else:
                for nested in value.values():
                    _walk(nested, depth + 1)

    _walk(data, 0)
    return products


def resolve_apollo_refs(state: Dict[str, Any], max_depth: int = config.MAX_SEARCH_DEPTH) -> Dict[str, Any]:
    """
    Inlines {"__ref": "Key:1"} pointers of a normalized Apollo cache so
    products carry their variant, price and image objects. References are
    followed at most max_depth levels deep.
    """
    def _inline(value: Any, depth: int, trail: frozenset) -> Any:
        if depth > max_depth:
            return value
        if isinstance(value, list):
            return [_inline(item, depth + 1, trail) for item in value]
        if isinstance(value, dict):
            ref = value.get("__ref")
            if isinstance(ref, str) and len(value) == 1:
                # Cycles stay as pointers.
                if ref in trail or not isinstance(state.get(ref), dict):
                    return value
                return _inline(state[ref], depth + 1, trail | {ref})
            return {key: _inline(nested, depth + 1, trail) for key, nested in value.items()}
        return value

    return {key: _inline(entry, 0, frozenset([key])) for key, entry in state.items()}


def _balanced_object(text: str, start: int) -> Optional[str]:
    """Returns the {...} literal beginning at or after start, honouring strings."""
    begin = text.find("{", start)
    if begin == -1:
        return None
    depth = 0
    quote = None
    escaped = False
    for index in range(begin, len(text)):
        char = text[index]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[begin:index + 1]
    return None


def _parse_lenient(text: Optional[str]) -> Any:
    """Strict JSON first, json5 for JavaScript object literals."""
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        return json5.loads(text)
    except ValueError as e:
        logger.debug("Embedded state is neither JSON nor JSON5: %s", e)
        return None


def extract_embedded_state(html_content: str) -> List[Any]:
    """Parses hydration blobs out of a rendered page."""
    try:
        tree = lxml_html.fromstring(html_content)
    except (etree.ParserError, ValueError) as e:
        logger.debug("Could not parse page HTML for embedded state: %s", e)
        return []

    blobs = []
    for script in tree.iter("script"):
        text = script.text or ""
        if script.get("id") == NEXT_DATA_ID:
            blob = _parse_lenient(text)
        else:
            match = APOLLO_STATE_MARKER.search(text)
            if not match:
                continue
            blob = _parse_lenient(_balanced_object(text, match.end()))
            if isinstance(blob, dict):
                blob = resolve_apollo_refs(blob)
        if blob is not None:
            blobs.append(blob)
    logger.debug("Found %d embedded state blobs in page HTML.", len(blobs))
    return blobs


class ResponseInterceptor:
    """Feeds product-shaped data from page traffic into a CaptureStore."""

    def __init__(
        self,
        store: CaptureStore,
        url_hints: Optional[List[str]] = None,
        max_depth: int = config.MAX_SEARCH_DEPTH,
    ):
        self.store = store
        self.url_hints = url_hints or config.API_URL_HINTS
        self.max_depth = max_depth
        self._page: Optional[Page] = None
        # Same bound method object for on() and remove_listener().
        self._listener = self.handle_response

    def attach(self, page: Page) -> None:
        page.on("response", self._listener)
        self._page = page
        logger.debug("Response interception enabled.")

    def detach(self) -> None:
        if self._page is not None:
            self._page.remove_listener("response", self._listener)
            self._page = None
            logger.debug("Response interception disabled.")

    def is_candidate(self, url: str, content_type: str) -> bool:
        if config.JSON_CONTENT_TYPE not in content_type.lower():
            return False
        return any(hint in url for hint in self.url_hints)

    async def handle_response(self, response: Response) -> int:
        """Response callback. Returns the number of newly stored products."""
        url = response.url
        content_type = response.headers.get("content-type", "")
        if not self.is_candidate(url, content_type):
            return 0
        try:
            body = await response.text()
            data = json.loads(body)
        except (PlaywrightError, ValueError) as e:
            logger.debug("Ignoring unreadable response from %s: %s", url, e)
            return 0
        return self.ingest(data, source=url)

    def ingest(self, data: Any, source: str) -> int:
        products = find_products(data, self.max_depth)
        added = sum(1 for product in products if self.store.add(product_key(product), product))
        if products:
            logger.info("Captured %d products from %s (%d new)", len(products), source, added)
        return added

    def ingest_html(self, html_content: str) -> int:
        added = 0
        for blob in extract_embedded_state(html_content):
            added += self.ingest(blob, source="embedded page state")
        return added
