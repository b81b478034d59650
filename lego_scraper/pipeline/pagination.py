# lego_scraper/pipeline/pagination.py
"""
Drives an infinite-scroll catalog page until its product count stops growing.

Stopping is a convergence heuristic: the loop ends when a target count is
reached, when the count has not grown for a number of consecutive
iterations, or at a hard iteration ceiling. A stalled page yields whatever
was loaded so far.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .. import config
from .capture_store import CaptureStore

logger = logging.getLogger(__name__)

SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"


class ExitReason(str, Enum):
    TARGET_REACHED = "target-reached"
    STALLED = "stalled"
    CEILING_HIT = "ceiling-hit"


@dataclass
class PaginationState:
    previous_count: int = 0
    unchanged_iterations: int = 0
    attempts: int = 0


@dataclass(frozen=True)
class PaginationResult:
    exit_reason: ExitReason
    final_count: int
    iterations: int


class ScrollController:
    """Scrolls and clicks "load more" controls on one page visit."""

    def __init__(
        self,
        page: Page,
        store: Optional[CaptureStore] = None,
        max_items: int = 0,
        stall_threshold: int = config.STALL_THRESHOLD,
        max_iterations: int = config.MAX_SCROLL_ITERATIONS,
        scroll_settle: int = config.SCROLL_SETTLE,
        load_more_settle: int = config.LOAD_MORE_SETTLE,
        count_selector: str = config.PRODUCT_COUNT_SELECTOR,
        load_more_selectors: Optional[List[str]] = None,
    ):
        self.page = page
        self.store = store
        self.max_items = max_items
        self.stall_threshold = stall_threshold
        self.max_iterations = max_iterations
        self.scroll_settle = scroll_settle
        self.load_more_settle = load_more_settle
        self.count_selector = count_selector
        self.load_more_selectors = load_more_selectors or config.LOAD_MORE_SELECTORS

    async def observed_count(self) -> int:
        """Larger of the visible card count and the number of captured products."""
        try:
            dom_count = await self.page.locator(self.count_selector).count()
        except PlaywrightError as e:
            logger.debug("Could not count product cards: %s", e)
            dom_count = 0
        if self.store is None:
            return dom_count
        captured = len(self.store)
        logger.info("Products loaded: %d (DOM: %d, API: %d)", max(dom_count, captured), dom_count, captured)
        return max(dom_count, captured)

    async def scroll_to_bottom(self) -> None:
        try:
            await self.page.evaluate(SCROLL_TO_BOTTOM_JS)
        except PlaywrightError as e:
            logger.debug("Scroll failed: %s", e)
        await self.page.wait_for_timeout(self.scroll_settle)

    async def click_load_more(self) -> bool:
        """Clicks the first visible load-more control. Returns True if a click went through."""
        for selector in self.load_more_selectors:
            button = self.page.locator(selector).first
            try:
                if not await button.is_visible():
                    continue
                await button.click()
            except PlaywrightError as e:
                logger.debug("Load-more control %s could not be used: %s", selector, e)
                continue
            logger.debug("Clicked load-more control: %s", selector)
            await self.page.wait_for_timeout(self.load_more_settle)
            return True
        return False

    def _finish(self, reason: ExitReason, count: int, state: PaginationState) -> PaginationResult:
        logger.info("Stopped scrolling (%s) with %d products after %d iterations.", reason.value, count, state.attempts)
        return PaginationResult(exit_reason=reason, final_count=count, iterations=state.attempts)

    async def run(self) -> PaginationResult:
        state = PaginationState()
        count = 0
        while state.attempts < self.max_iterations:
            state.attempts += 1
            count = await self.observed_count()

            if self.max_items > 0 and count >= self.max_items:
                logger.info("Reached max products limit: %d", self.max_items)
                return self._finish(ExitReason.TARGET_REACHED, count, state)

            await self.scroll_to_bottom()
            activated = await self.click_load_more()

            # A click counts as progress even before new cards render.
            if count > state.previous_count or activated:
                state.unchanged_iterations = 0
            else:
                state.unchanged_iterations += 1
            state.previous_count = count

            if state.unchanged_iterations >= self.stall_threshold:
                return self._finish(ExitReason.STALLED, count, state)

        return self._finish(ExitReason.CEILING_HIT, count, state)
