"""
Browser scraping provider.

Drives headless Chromium (Playwright) to the reviews view of a Google Maps
place, scrolls and expands until the review list stops growing, then
extracts review nodes with configurable selector lists.

Best effort and slow; a run that finds nothing raises NoReviewsFoundError.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

import config.settings as settings
from src.errors import NoReviewsFoundError, ResolutionError, UpstreamError
from src.models.review import RawReview, ReviewSource
from src.providers.base import ReviewProvider, today

logger = logging.getLogger(__name__)

_STAR_LABEL = re.compile(r"(\d+)\s*star", re.IGNORECASE)

# First container selector with any match wins
COUNT_SCRIPT = """
(selectors) => {
    for (const selector of selectors) {
        const found = document.querySelectorAll(selector);
        if (found.length > 0) return found.length;
    }
    return 0;
}
"""

SCROLL_SCRIPT = """
(containers) => {
    window.scrollBy(0, 1000);
    document.querySelectorAll('div[style*="overflow"], div[style*="scroll"]').forEach(el => {
        if (el.scrollHeight > el.clientHeight) el.scrollBy(0, 500);
    });
    for (const selector of containers) {
        document.querySelectorAll(selector).forEach(el => el.scrollBy(0, 500));
    }
}
"""

EXPAND_SCRIPT = """
(words) => {
    let clicked = 0;
    document.querySelectorAll('button, [role="button"]').forEach(button => {
        const text = (button.textContent || '').toLowerCase();
        if (words.some(word => text.includes(word))) {
            try { button.click(); clicked++; } catch (e) {}
        }
    });
    return clicked;
}
"""

EXTRACT_SCRIPT = """
(sel) => {
    let nodes = [];
    for (const selector of sel.container) {
        const found = document.querySelectorAll(selector);
        if (found.length > 0) { nodes = Array.from(found); break; }
    }
    return nodes.map(node => {
        let text = '';
        for (const selector of sel.text) {
            const el = node.querySelector(selector);
            if (el && el.textContent) {
                const candidate = el.textContent.trim();
                if (candidate.length > text.length) text = candidate;
            }
        }
        let ratingLabel = '';
        for (const selector of sel.rating) {
            const el = node.querySelector(selector);
            const label = el ? (el.getAttribute('aria-label') || '') : '';
            if (/\\d+\\s*star/i.test(label)) { ratingLabel = label; break; }
        }
        let author = '';
        for (const selector of sel.author) {
            const el = node.querySelector(selector);
            if (el && el.textContent && el.textContent.trim()) { author = el.textContent.trim(); break; }
        }
        return { text, ratingLabel, author };
    });
}
"""


@dataclass
class SelectorConfig:
    """Prioritized selector lists; order matters."""
    container: Sequence[str] = field(default_factory=lambda: settings.BROWSER_CONTAINER_SELECTORS)
    text: Sequence[str] = field(default_factory=lambda: settings.BROWSER_TEXT_SELECTORS)
    rating: Sequence[str] = field(default_factory=lambda: settings.BROWSER_RATING_SELECTORS)
    author: Sequence[str] = field(default_factory=lambda: settings.BROWSER_AUTHOR_SELECTORS)
    scroll_containers: Sequence[str] = field(default_factory=lambda: settings.BROWSER_SCROLL_CONTAINER_SELECTORS)
    expand_words: Sequence[str] = field(default_factory=lambda: settings.BROWSER_EXPAND_BUTTON_WORDS)

    def to_js(self) -> dict:
        return {
            "container": list(self.container),
            "text": list(self.text),
            "rating": list(self.rating),
            "author": list(self.author),
        }


def reviews_url(url: str) -> str:
    """Point a Maps place URL at its reviews view."""
    if "/reviews" in url:
        return url
    return url.replace("/@", "/reviews/@", 1)


def parse_rating(label: str, default: int = 3) -> int:
    match = _STAR_LABEL.search(label or "")
    if match and 1 <= int(match.group(1)) <= 5:
        return int(match.group(1))
    return default


class BrowserScrapeProvider(ReviewProvider):
    """
    Browser-automation provider (lowest trust).

    Stops scrolling after no_growth_limit consecutive rounds without new
    review nodes, once the cap is visible, or after max_scrolls rounds.
    """

    name = "browser_scrape"
    source = ReviewSource.BROWSER_SCRAPE

    def __init__(
        self,
        headless: bool = settings.BROWSER_HEADLESS,
        max_reviews: int = settings.BROWSER_MAX_REVIEWS,
        max_scrolls: int = settings.BROWSER_MAX_SCROLLS,
        no_growth_limit: int = settings.BROWSER_NO_GROWTH_LIMIT,
        scroll_pause: float = settings.BROWSER_SCROLL_PAUSE_SECONDS,
        settle_seconds: float = settings.BROWSER_SETTLE_SECONDS,
        navigation_timeout_ms: int = settings.BROWSER_NAVIGATION_TIMEOUT_MS,
        selectors: Optional[SelectorConfig] = None
    ):
        """
        Initialize browser provider.

        Args:
            headless: Run Chromium headless
            max_reviews: Hard cap on review nodes to load
            max_scrolls: Hard cap on scroll rounds
            no_growth_limit: Consecutive no-growth rounds before stopping
            scroll_pause: Wait after each scroll round, seconds
            settle_seconds: Wait after navigation, seconds
            navigation_timeout_ms: page.goto timeout
            selectors: Selector lists (defaults from settings)
        """
        super().__init__()
        self.headless = headless
        self.max_reviews = max_reviews
        self.max_scrolls = max_scrolls
        self.no_growth_limit = no_growth_limit
        self.scroll_pause = scroll_pause
        self.settle_seconds = settle_seconds
        self.navigation_timeout_ms = navigation_timeout_ms
        self.selectors = selectors or SelectorConfig()

    async def _fetch(self, location_ref: str, limit: int) -> Tuple[List[RawReview], Optional[int]]:
        if "://" not in location_ref:
            raise ResolutionError(self.name, "Browser scraping needs a Google Maps URL")

        cap = min(limit, self.max_reviews)
        target = reviews_url(location_ref)

        try:
            async with async_playwright() as playwright:
                browser = await playwright.chromium.launch(
                    headless=self.headless,
                    args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
                )
                try:
                    page = await browser.new_page(
                        viewport={"width": 1366, "height": 768},
                        user_agent=settings.BROWSER_USER_AGENT,
                    )
                    logger.info(f"{self.name}: navigating to {target}")
                    await page.goto(target, wait_until="networkidle", timeout=self.navigation_timeout_ms)
                    await asyncio.sleep(self.settle_seconds)

                    loaded = await self.scroll_until_stable(page, cap)
                    logger.info(f"{self.name}: {loaded} review nodes loaded")

                    nodes = await page.evaluate(EXTRACT_SCRIPT, self.selectors.to_js())
                finally:
                    await browser.close()
        except PlaywrightError as e:
            raise UpstreamError(self.name, f"Browser scraping failed: {e}") from e

        reviews = self.parse_nodes(nodes or [])
        if not reviews:
            raise NoReviewsFoundError(self.name, "No review elements found with any selector")

        return reviews, None

    async def count_reviews(self, page) -> int:
        return int(await page.evaluate(COUNT_SCRIPT, list(self.selectors.container)) or 0)

    async def scroll_until_stable(self, page, cap: int) -> int:
        """
        Scroll and expand until the list stops growing or the cap is reached.

        Returns:
            Number of review nodes visible at the end
        """
        count = await self.count_reviews(page)
        no_growth = 0

        for round_number in range(1, self.max_scrolls + 1):
            if count >= cap:
                logger.debug(f"{self.name}: cap of {cap} reached after {round_number - 1} rounds")
                break

            await page.evaluate(SCROLL_SCRIPT, list(self.selectors.scroll_containers))
            await page.evaluate(EXPAND_SCRIPT, list(self.selectors.expand_words))
            await asyncio.sleep(self.scroll_pause)

            current = await self.count_reviews(page)
            if current <= count:
                no_growth += 1
                if no_growth >= self.no_growth_limit:
                    logger.debug(f"{self.name}: no growth for {no_growth} rounds, stopping at {count}")
                    break
            else:
                no_growth = 0
                count = current

        return count

    def parse_nodes(self, nodes: List[dict]) -> List[RawReview]:
        """Extracted DOM nodes -> RawReview, defaulting rating to 3 and author to Anonymous."""
        reviews = []
        occurred_on = today()
        for node in nodes:
            text = (node.get("text") or "").strip()
            if not text:
                continue
            reviews.append(RawReview(
                text=text,
                rating=parse_rating(node.get("ratingLabel", "")),
                author=(node.get("author") or "").strip() or "Anonymous",
                occurred_on=occurred_on,
                source=self.source,
            ))
        return reviews
