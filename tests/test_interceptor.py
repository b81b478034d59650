"""
Unit tests for response interception and the product-shape search.
"""

import json
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import FakePage, fake_response
from lego_scraper.pipeline.capture_store import CaptureStore
from lego_scraper.pipeline.interceptor import (
    ResponseInterceptor,
    extract_embedded_state,
    find_products,
    looks_like_product,
    resolve_apollo_refs,
)

SEARCH_URL = "https://www.lego.com/api/graphql/ContentPageQuery"


class TestProductShape:

    @pytest.mark.parametrize("record, expected", [
        ({"productCode": "10300"}, True),
        ({"id": "1", "name": "Car", "price": {"centAmount": 100}}, True),
        ({"id": "1", "name": "Car", "primaryImage": "https://img"}, True),
        ({"id": "1", "name": "Car"}, False),
        ({"id": "1", "price": {"centAmount": 100}}, False),
        ({"productCode": ""}, False),
        ({}, False),
    ])
    def test_looks_like_product(self, record, expected):
        assert looks_like_product(record) is expected

    def test_finds_products_at_any_nesting(self):
        data = {
            "data": {
                "search": {
                    "results": [
                        {"productCode": "1", "name": "A"},
                        {"node": {"productCode": "2", "name": "B"}},
                    ],
                    "facets": [{"id": "theme", "name": "Theme"}],
                }
            }
        }
        products = find_products(data)
        assert [p["productCode"] for p in products] == ["1", "2"]

    def test_matched_products_are_not_searched_again(self):
        data = {"productCode": "1", "variants": [{"productCode": "1-a"}, {"productCode": "1-b"}]}
        products = find_products(data)
        assert len(products) == 1
        assert products[0]["productCode"] == "1"

    def test_depth_is_bounded(self):
        data = {"productCode": "deep"}
        for _ in range(20):
            data = {"level": data}
        assert find_products(data, max_depth=10) == []
        assert len(find_products(data, max_depth=25)) == 1

    def test_scalars_and_empty_values(self):
        assert find_products(None) == []
        assert find_products("productCode") == []
        assert find_products([1, 2, {}]) == []


class TestResponseInterceptor:

    @pytest.mark.asyncio
    async def test_json_product_response_is_captured(self):
        store = CaptureStore()
        interceptor = ResponseInterceptor(store)
        body = {"data": {"products": [{"productCode": "10300"}, {"productCode": "10497"}]}}

        added = await interceptor.handle_response(fake_response(SEARCH_URL, body))

        assert added == 2
        assert store.keys() == ["10300", "10497"]

    @pytest.mark.asyncio
    async def test_duplicates_keep_the_first_capture(self):
        store = CaptureStore()
        interceptor = ResponseInterceptor(store)
        await interceptor.handle_response(fake_response(SEARCH_URL, [{"productCode": "1", "name": "first"}]))
        added = await interceptor.handle_response(fake_response(SEARCH_URL, [{"productCode": "1", "name": "second"}]))

        assert added == 0
        assert store.get("1")["name"] == "first"

    @pytest.mark.asyncio
    async def test_non_json_content_type_is_not_read(self):
        store = CaptureStore()
        response = fake_response(SEARCH_URL, "<html></html>", content_type="text/html")

        assert await ResponseInterceptor(store).handle_response(response) == 0
        response.text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unrelated_urls_are_not_read(self):
        store = CaptureStore()
        response = fake_response("https://www.lego.com/static/fonts.json", {"productCode": "1"})

        assert await ResponseInterceptor(store).handle_response(response) == 0
        response.text.assert_not_awaited()
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_malformed_json_is_ignored(self):
        store = CaptureStore()
        response = fake_response(SEARCH_URL, '{"productCode": "1",')

        assert await ResponseInterceptor(store).handle_response(response) == 0
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unreadable_body_is_ignored(self):
        store = CaptureStore()
        response = fake_response(SEARCH_URL, {})
        response.text = AsyncMock(side_effect=PlaywrightError("Response body is unavailable for redirect responses"))

        assert await ResponseInterceptor(store).handle_response(response) == 0

    @pytest.mark.asyncio
    async def test_attach_and_detach(self):
        store = CaptureStore()
        interceptor = ResponseInterceptor(store)
        page = FakePage()

        interceptor.attach(page)
        await page.emit_response(fake_response(SEARCH_URL, {"productCode": "1"}))
        interceptor.detach()
        await page.emit_response(fake_response(SEARCH_URL, {"productCode": "2"}))

        assert store.keys() == ["1"]
        assert page.listeners["response"] == []


class TestEmbeddedState:

    def test_next_data_script(self):
        state = {"props": {"pageProps": {"products": [{"productCode": "42100", "name": "Liebherr"}]}}}
        html = f'<html><head><script id="__NEXT_DATA__" type="application/json">{json.dumps(state)}</script></head></html>'

        blobs = extract_embedded_state(html)

        assert blobs == [state]

    def test_apollo_state_with_references(self):
        script = (
            "window.__APOLLO_STATE__ = {"
            "'Product:10300': {productCode: '10300', name: 'Time Machine', price: {__ref: 'Price:1'},},"
            "'Price:1': {centAmount: 24999, note: 'a } in a string'},"
            "}; window.other = 1;"
        )
        html = f"<html><body><script>{script}</script></body></html>"

        blobs = extract_embedded_state(html)

        assert len(blobs) == 1
        product = blobs[0]["Product:10300"]
        assert product["price"]["centAmount"] == 24999

    def test_cyclic_references_stay_pointers(self):
        state = {
            "Product:1": {"productCode": "1", "related": {"__ref": "Product:2"}},
            "Product:2": {"productCode": "2", "related": {"__ref": "Product:1"}},
        }
        resolved = resolve_apollo_refs(state)
        assert resolved["Product:1"]["related"]["related"] == {"__ref": "Product:1"}

    def test_ingest_html_feeds_the_store(self):
        store = CaptureStore()
        state = {"props": {"items": [{"productCode": "75313"}]}}
        html = f'<script id="__NEXT_DATA__">{json.dumps(state)}</script>'

        assert ResponseInterceptor(store).ingest_html(html) == 1
        assert "75313" in store

    @pytest.mark.parametrize("html", ["", "<html></html>", "<script>window.__APOLLO_STATE__ = {broken</script>"])
    def test_pages_without_usable_state(self, html):
        assert extract_embedded_state(html) == []
