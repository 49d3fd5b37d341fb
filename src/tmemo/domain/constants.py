"""Centralized constants for tmemo.

Scheduling parameters and file-format defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Deck file ----------
DECK_FILENAME = "tmemodeck.json"
DECK_FORMAT_VERSION = 1

# ---------- Markdown ----------
BLOCK_DELIMITER = ":::"
INLINE_DELIMITER = "::"
FENCE_MARKERS = ("```", "~~~")
FRONTMATTER_OPT_OUT_KEY = "tmemo"
CLOZE_PLACEHOLDER = "{...}"

# ---------- Identity ----------
CARD_ID_PREFIX = "c_"
CARD_ID_HEX_LEN = 16
IDENTITY_SEPARATOR = "\x1f"

# ---------- FSRS v4 ----------
FSRS_DECAY = -0.5
FSRS_FACTOR = 19.0 / 81.0  # chosen so that R(S, S) == 0.9
FSRS_DEFAULT_WEIGHTS = (
    0.5701,
    1.4436,
    4.1386,
    10.9355,
    5.1443,
    1.2006,
    0.8627,
    0.0362,
    1.629,
    0.1342,
    1.0166,
    2.1174,
    0.0839,
    0.3204,
    1.4676,
    0.219,
    2.8237,
)
FSRS_WEIGHT_COUNT = 17
DEFAULT_TARGET_RETENTION = 0.9
DIFFICULTY_MIN = 1.0
DIFFICULTY_MAX = 10.0
STABILITY_MIN = 0.01
LAPSE_STABILITY_CAP = 0.9  # post-lapse stability never exceeds this share of S
SMOOTHING_MIN_STABILITY = 2.0
MAXIMUM_INTERVAL_DAYS = 36500

SECONDS_PER_DAY = 86400.0
