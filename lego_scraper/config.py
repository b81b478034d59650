# lego_scraper/config.py

# Import the 'Path' object for handling file paths in a way that works on any OS (Windows, macOS, Linux)
from pathlib import Path

# --- Core Settings ---
# The catalog page the run starts from when no other URL is given.
START_URL = "https://www.lego.com/en-us/categories/all-sets?filters.i0.key=categories.id&filters.i0.values.i0=12ba8640-7fb5-4281-991d-ac55c65d8001"
# Maximum number of products to extract per catalog page. 0 means no limit.
MAX_PRODUCTS = 0
# Used to absolutize relative links found in the markup.
SITE_ORIGIN = "https://www.lego.com"

# --- File Path Settings ---
SRC_PATH = Path(__file__).parent
# All output is saved under 'data', one level above the package.
DATA_PATH = SRC_PATH.parent / "data"
DATASET_FILENAME = "products.jsonl"
# Full DEBUG log of every run, next to the data directory.
LOG_PATH = SRC_PATH.parent / "pipeline.log"

# --- Browser/Network Settings ---
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
VIEWPORT = {"width": 1920, "height": 1080}
EXTRA_HTTP_HEADERS = {"Accept-Language": "en-US,en;q=0.9"}
# Chromium flags that remove the most obvious automation fingerprints.
BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
]
HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"

# --- Timeouts (milliseconds) ---
NAVIGATION_TIMEOUT = 60000
NETWORK_IDLE_TIMEOUT = 30000
# How long a product page may take to show its title before the visit is abandoned.
PAGE_READY_TIMEOUT = 30000
# Per-field reads on already rendered markup. Kept short so a missing element costs little.
FIELD_TIMEOUT = 1000

# --- Settle intervals (milliseconds) ---
POST_LOAD_SETTLE = 5000
SCROLL_SETTLE = 2000
LOAD_MORE_SETTLE = 3000

# --- Pagination ---
# Consecutive iterations without new products before scrolling stops.
STALL_THRESHOLD = 5
# Hard upper bound on scroll iterations, whatever the page does.
MAX_SCROLL_ITERATIONS = 100

PRODUCT_CARD_SELECTORS = [
    '[data-test="product-item"]',
    '[data-test="product-leaf"]',
    'article[data-test*="product"]',
    'li[data-test*="product"]',
    '[class*="ProductLeaf"]',
    '[class*="product-card"]',
]
# The first four are the ones counted while scrolling.
PRODUCT_COUNT_SELECTOR = ", ".join(PRODUCT_CARD_SELECTORS[:4])

# Tried in this order, first visible one is clicked.
LOAD_MORE_SELECTORS = [
    'button[data-test="load-more"]',
    'button:has-text("Load more")',
    'button:has-text("Show more")',
    '[data-test="pagination-next"]',
    'button:has-text("Next")',
]

# --- Response interception ---
API_URL_HINTS = ["/api/", "/graphql", "product", "catalog", "search"]
JSON_CONTENT_TYPE = "application/json"
MAX_SEARCH_DEPTH = 10

# --- Catalog card selectors ---
CARD_TITLE_SELECTOR = 'h2, h3, [data-test*="title"], [class*="title"]'
CARD_PRICE_SELECTOR = '[data-test*="price"], [class*="price"]'
CARD_PIECES_SELECTOR = '[data-test*="piece"], [class*="piece"]'

# --- Product page selectors ---
# Each list is tried in order, first non-empty read wins.
PRODUCT_SELECTORS = {
    "ready": "h1",
    "name": ['[data-test="product-overview-name"]', "h1"],
    "breadcrumbs": '[data-test="breadcrumb-link"], nav[aria-label*="readcrumb"] a',
    "set_number": ['[data-test="product-details-product-code"]'],
    "price": ['[data-test="product-price"]', '[data-test="product-overview-price"]'],
    "sale_price": ['[data-test="product-price-sale"]'],
    "discount": ['[data-test="product-discount"]', '[data-test*="sale-percentage"]'],
    "pieces": ['[data-test="pieces-value"]', '[data-test="product-details-pieces"]'],
    "minifigures": ['[data-test="minifigures-value"]', '[data-test="product-details-minifigures"]'],
    "age_range": ['[data-test="ages-value"]', '[data-test="product-details-ages"]'],
    "rating": ['[data-test="product-rating"]', '[data-test="rating-average"]'],
    "review_count": ['[data-test="product-review-count"]', '[data-test="reviews-count"]'],
    "image": ['[data-test="product-image"] img', "main img"],
    "og_image": 'meta[property="og:image"]',
    "add_to_bag": '[data-test="add-to-bag"]',
    "availability_label": ['[data-test="product-overview-availability"]', '[data-test="availability-status"]'],
    "badges": '[data-test*="badge"], [data-test*="flag"], [class*="Badge"]',
    "json_ld": 'script[type="application/ld+json"]',
}

# --- Normalization ---
# Badge and flag text read from markup is kept only if it contains one of these (case-insensitive).
PROMOTIONAL_TAG_PHRASES = [
    "retiring soon",
    "exclusive",
    "hard to find",
    "sale",
    "limited edition",
    "insider",
    "vip",
    "coming soon",
    "back in stock",
    "bestseller",
    "new",
]
SALE_TAG = "Sale"
CURRENCY_SYMBOLS = {"USD": "$", "GBP": "£", "EUR": "€", "CAD": "CA$", "AUD": "A$"}
DEFAULT_CURRENCY_SYMBOL = "$"

# --- Orchestration ---
# Product pages visited at the same time when follow-up visits are enabled.
MAX_CONCURRENCY = 3
