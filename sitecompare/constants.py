"""Default values shared across sitecompare modules."""

# Browser
DEFAULT_DRIVER_SERVER = "127.0.0.1"
DEFAULT_DRIVER_URL_BASE = "/wd/hub"
DEFAULT_VIEWPORT_WIDTH = 1366
DEFAULT_VIEWPORT_HEIGHT = 768
DEFAULT_GATE_TIMEOUT_S = 5.0
DEFAULT_REQUEST_TIMEOUT_S = 60.0
TRANSPORT_RETRIES = 3
TRANSPORT_RETRY_DELAY_MS = 1000
PERF_LOG_RING_SIZE = 5000

# Page-ready gates
POLL_INTERVAL_S = 0.1
NETWORK_QUIET_MS = 600
DOM_QUIET_MS = 500

# Discovery
ACTION_ID_ATTRIBUTE = "data-sc-id"
ACTION_TEXT_MAX_LEN = 160
EQUIVALENCE_PREFIX_LEN = 40
SIGNATURE_TEXT_SIMILARITY = 0.9
FUZZY_TEXT_SIMILARITY = 0.8

# Crawl
DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_PAGES = 10
DEFAULT_MAX_SUCCESSIVE_ERRORS = 10
INTERMEDIATE_SUMMARY_EVERY = 100
DEFAULT_CLICK_FINDERS = [
    "a[href]",
    '[role="link"]',
    "[data-link]",
    "[data-router-link]",
    "button",
    "[onclick]",
]
DEFAULT_CLICK_HREF_DENY_PATTERNS = [r"^#|^callto:|^mailto:|^tel:"]
DEFAULT_DANGEROUS_WORD_PATTERNS = [
    r"\bexit\b",
    r"\blogout\b",
    r"\bdelete\b",
    r"\bsignin\b",
    r"\bsignout\b",
]
DEFAULT_LINK_HREF_DENY_PATTERNS = [r"^#|^javascript:|^callto:|^mailto:|^tel:"]

# Markup
DEFAULT_IGNORE_SELECTORS = ["script", "style"]
DEFAULT_IGNORE_ATTRIBUTES = ["^aria-"]
TEXT_PLACEHOLDER = "__VAR__"
TIMESTAMP_PLACEHOLDER = "<TS>"

# Login
DEFAULT_EXCLUDED_COOKIES = ["AspNetCore.Antiforgery"]

# Visual
DEFAULT_RMSE_THRESHOLD = 0.01
DEFAULT_FUZZ = 0.05
STITCH_OVERLAP_PX = 80
STITCH_SETTLE_MS = 150
STITCH_MAX_SEGMENTS = 200
PAD_FILL = (255, 255, 255)
