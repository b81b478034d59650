"""
Pytest fixtures and a small in-memory stand-in for a Playwright page.

FakeElement holds text, attributes and child elements keyed by the exact
selector strings the code queries (comma-separated selectors are looked up
part by part). FakeLocator mirrors the Locator calls the pipeline makes.
"""

import json
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from lego_scraper.delegates import FileManagerDelegate


class FakeElement:
    def __init__(
        self,
        text: Optional[str] = None,
        attrs: Optional[Dict[str, str]] = None,
        children: Optional[Dict[str, List["FakeElement"]]] = None,
        visible: bool = True,
        enabled: bool = True,
    ):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.visible = visible
        self.enabled = enabled
        self.clicks = 0

    def find(self, selector: str) -> List["FakeElement"]:
        found = []
        for part in selector.split(","):
            found.extend(self.children.get(part.strip(), []))
        return found


class FakeLocator:
    def __init__(self, elements: List[FakeElement]):
        self._elements = elements

    def _require(self) -> FakeElement:
        if not self._elements:
            raise PlaywrightTimeoutError("Timeout 1000ms exceeded waiting for locator")
        return self._elements[0]

    async def count(self) -> int:
        return len(self._elements)

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self._elements[index:index + 1])

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._elements[:1])

    def locator(self, selector: str) -> "FakeLocator":
        found = []
        for element in self._elements:
            found.extend(element.find(selector))
        return FakeLocator(found)

    async def text_content(self, timeout=None):
        return self._require().text

    async def get_attribute(self, name, timeout=None):
        return self._require().attrs.get(name)

    async def all_text_contents(self):
        return [element.text or "" for element in self._elements]

    async def is_visible(self):
        return bool(self._elements) and self._elements[0].visible

    async def is_enabled(self, timeout=None):
        return self._require().enabled

    async def click(self, timeout=None):
        self._require().clicks += 1


class FakePage:
    def __init__(self, root: Optional[FakeElement] = None, html: str = "<html><body></body></html>"):
        self.root = root or FakeElement()
        self.html = html
        self.listeners: Dict[str, list] = {}
        self.goto = AsyncMock()
        self.wait_for_load_state = AsyncMock()
        self.wait_for_selector = AsyncMock()
        self.wait_for_timeout = AsyncMock()
        self.evaluate = AsyncMock()
        self.screenshot = AsyncMock(return_value=b"\x89PNG fake")
        self.close = AsyncMock()

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator([self.root]).locator(selector)

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners[event].remove(handler)

    async def content(self):
        return self.html

    async def emit_response(self, response):
        for handler in list(self.listeners.get("response", [])):
            await handler(response)


def fake_response(url: str, body, content_type: str = "application/json; charset=utf-8"):
    """A Playwright-like Response whose text() returns body (dicts are JSON-encoded)."""
    response = MagicMock()
    response.url = url
    response.headers = {"content-type": content_type}
    response.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    return response


@pytest.fixture
def api_product():
    """A captured product as the catalog search endpoint returns it."""
    return {
        "id": "abc-123",
        "productCode": "10300",
        "name": "Back to the Future Time Machine",
        "slug": "back-to-the-future-time-machine-10300",
        "primaryImage": {"url": "https://www.lego.com/cdn/10300.png"},
        "price": {"centAmount": 24999, "currencyCode": "USD"},
        "listPrice": {"formattedAmount": "$329.99"},
        "variant": {
            "attributes": {
                "pieceCount": 1872,
                "minifigureCount": 2,
                "rating": {"averageRating": 4.8, "totalReviewCount": 312},
                "featuredFlags": ["Exclusive", "Exclusive"],
            }
        },
        "themes": [{"name": "Icons"}],
        "badges": [{"text": "Hard to find"}],
        "flags": [{"text": "Exclusive"}],
    }


@pytest.fixture
def file_manager(tmp_path):
    return FileManagerDelegate(base_path=tmp_path)
