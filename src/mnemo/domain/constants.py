"""Centralized constants for mnemo.

Scheduler tunables and file-format defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Scheduler ----------
DEFAULT_BASE_EASE = 250
DEFAULT_EASY_BONUS = 1.3
DEFAULT_HARD_INTERVAL_FACTOR = 0.5
DEFAULT_MIN_EASE = 130
DEFAULT_EASE_STEP = 20
DEFAULT_MAX_LINK_FACTOR = 1.0
LINK_CONTRIBUTION_SATURATION = 64  # outgoing links at which the graph term is fully weighted

# ---------- Load Balancing ----------
BALANCE_WINDOW_FRACTION = 0.25
MIN_BALANCE_WINDOW = 1  # days

# ---------- PageRank ----------
PAGERANK_DAMPING = 0.85
PAGERANK_EPSILON = 1e-6
PAGERANK_MAX_ITERATIONS = 100

# ---------- Identity ----------
ITEM_ID_PREFIX = "sr_"

# ---------- Review History ----------
HISTORY_FORMAT_VERSION = "1.0"
DEFAULT_HISTORY_FILE = ".mnemo/review-history.json"

# ---------- Annotation Format ----------
CARD_MARKER_PREFIX = "<!--SR:"
CARD_MARKER_SUFFIX = "-->"
NOTE_DUE_KEY = "sr-due"
NOTE_INTERVAL_KEY = "sr-interval"
NOTE_EASE_KEY = "sr-ease"
NOTE_ID_KEY = "sr-id"
