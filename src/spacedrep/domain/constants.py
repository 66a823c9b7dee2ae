"""Centralized constants for spacedrep.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Time ----------
DAY_MS = 24 * 60 * 60 * 1000
HOUR_MS = 60 * 60 * 1000
DEFAULT_TIME_ZONE = "UTC"

# ---------- Retention model ----------
STABILITY_MIN_DAYS = 0.25
STABILITY_MAX_DAYS = 3650.0
DEFAULT_STABILITY_DAYS = 1.0
DEFAULT_RETRIEVABILITY_TARGET = 0.7
TARGET_CLAMP_MIN = 0.01
TARGET_CLAMP_MAX = 0.99
MIN_INTERVAL_DAYS = STABILITY_MIN_DAYS / 24
DEFAULT_RETENTION_FLOOR = 0.0
DEFAULT_STABILITY_ALPHA = 1.0  # quality 1 -> x1.5, quality 0 -> x0.5
DEFAULT_REVIEW_QUALITY = 1.0  # unrated reviews count as recalled

# ---------- Adaptive scheduler ----------
REVIEW_TRIGGER_MIN = 0.5
REVIEW_TRIGGER_MAX = 0.95
DEFAULT_GROWTH_ALPHA = 0.25
DEFAULT_LAPSE_BETA = 0.15
MAX_PROJECTED_REVIEWS = 48

# ---------- Fixed interval ladder ----------
DEFAULT_INTERVALS = (1, 4, 14, 30, 60)
DEFAULT_SKIP_DEFER_DAYS = 1

# ---------- Risk scoring (tunable, kept for behavioral parity) ----------
RISK_WEIGHT_FORGETTING = 0.55
RISK_WEIGHT_OVERDUE = 0.25
RISK_WEIGHT_EXAM = 0.15
RISK_WEIGHT_DIFFICULTY = 0.05
OVERDUE_SATURATION_DAYS = 3.0
LOW_QUALITY_THRESHOLD = 0.75
LOW_QUALITY_BUMP = 0.15
SPARSE_REVIEW_COUNT = 3
SPARSE_HISTORY_BUMP = 0.05

# ---------- Curves ----------
DEFAULT_SAMPLE_POINTS = 160
SAMPLE_POINTS_MIN = 16
SAMPLE_POINTS_MAX = 320
SEGMENT_MIN_SPAN_MS = 60_000
CONNECTOR_SPAN_MS = HOUR_MS
CONNECTOR_POINTS = 8

# ---------- Calendar ----------
MAX_VISIBLE_SUBJECTS = 5
NO_SUBJECT_ID = "__none__"
GENERAL_SUBJECT_ID = "subject-general"
FALLBACK_SUBJECT_NAME = "General"
FALLBACK_SUBJECT_COLOR = "#38bdf8"

# ---------- Messages ----------
REVISE_LOCKED_MESSAGE = (
    "You've already revised this today. Available again after midnight."
)
