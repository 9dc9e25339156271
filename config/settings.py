"""
Configuration settings for ReviewLens.

Centralized configuration for providers, the analysis engine and the pipeline.
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_ROOT = PROJECT_ROOT / "data"
OUTPUT_ROOT = PROJECT_ROOT / "output"

# API Configuration
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY", "")
OUTSCRAPER_API_KEY = os.getenv("OUTSCRAPER_API_KEY", "")

# LLM Models
ANALYSIS_MODEL = "gemini-1.5-flash"
LLM_TIMEOUT_SECONDS = 30
LLM_MAX_RETRIES = 2

# Analysis operating points
# standard: verbose prompt, larger token budget, moderate concurrency
STANDARD_TEMPERATURE = 0.1
STANDARD_MAX_TOKENS = 500
STANDARD_CONCURRENCY = 10
STANDARD_WINDOW_DELAY_SECONDS = 0.5

# fast: terse prompt, small token budget, high concurrency
FAST_TEMPERATURE = 0.0
FAST_MAX_TOKENS = 200
FAST_CONCURRENCY = 15
FAST_WINDOW_DELAY_SECONDS = 0.2

# Analysis field limits
MAX_LIST_ITEMS = 5
MAX_SUMMARY_CHARS = 200

# Ingestion filter
FILTER_MIN_TEXT_LENGTH = 10
FILTER_MIN_ALPHA_CHARS = 5
FILTER_STOPLIST = (
    "good", "bad", "ok", "nice", "great", "terrible", "awful",
    "thumbs up", "👍", "👎", "like", "dislike",
)

# Deduplication
DEDUP_WORD_OVERLAP_RATIO = 0.7

# Ingestion
DEFAULT_MAX_REVIEWS = 1000
INGESTION_STRATEGY = "merge"  # "merge" or "fallback"
PROVIDER_PRIORITY = ("structured_api", "paid_scrape", "browser_scrape")
HTTP_TIMEOUT_SECONDS = 60

# Google Places provider
PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
PLACES_FIND_URL = "https://maps.googleapis.com/maps/api/place/findplacefromtext/json"

# Outscraper provider
OUTSCRAPER_REVIEWS_URL = "https://api.app.outscraper.com/maps/reviews-v3"
OUTSCRAPER_MAX_LIMIT = 1500
OUTSCRAPER_LANGUAGE = "en"
OUTSCRAPER_REGION = "AU"
OUTSCRAPER_POLL_MAX_ATTEMPTS = 12
OUTSCRAPER_POLL_BASE_SECONDS = 5.0
OUTSCRAPER_POLL_MAX_WAIT_SECONDS = 30.0
OUTSCRAPER_POLL_TIMEOUT_SECONDS = 10

# Browser provider
BROWSER_HEADLESS = True
BROWSER_NAVIGATION_TIMEOUT_MS = 60000
BROWSER_SETTLE_SECONDS = 5.0
BROWSER_SCROLL_PAUSE_SECONDS = 1.0
BROWSER_MAX_SCROLLS = 100
BROWSER_NO_GROWTH_LIMIT = 3
BROWSER_MAX_REVIEWS = 500
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_CONTAINER_SELECTORS = (
    ".jftiEf",
    ".MyEned",
    ".ODSEW-ShBeI",
    "[data-review-id]",
    "div[data-reviewid]",
    ".WNxzHc",
    ".gws-localreviews__google-review",
)
BROWSER_TEXT_SELECTORS = (
    ".wiI7pd",
    ".MyEned",
    "[data-expandable-section]",
    ".rsqaWe",
    "span[jsaction]",
    ".review-text",
    ".expanded-review",
)
BROWSER_RATING_SELECTORS = (
    '[role="img"][aria-label*="star"]',
    '[aria-label*="star"]',
    ".kvMYJc",
    "[data-value]",
)
BROWSER_AUTHOR_SELECTORS = (
    ".d4r55",
    ".TSUbDb",
    ".YOGjf",
    '[data-value="Name"]',
    ".review-author",
)
BROWSER_SCROLL_CONTAINER_SELECTORS = (".m6QErb", ".section-scrollbox", ".siAUzd-neVct")
BROWSER_EXPAND_BUTTON_WORDS = ("more", "show", "load")

# Progress tracking
PROGRESS_FLUSH_EVERY = 10

# Analytics
TOP_THEMES_LIMIT = 10
RECENT_ANALYSES_LIMIT = 10

# Logging
LOG_LEVEL = "INFO"  # DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "reviewlens.log"
