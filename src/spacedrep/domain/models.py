"""
Domain models for topics, subjects and their review history.

These are pure data structures with no I/O or external dependencies.
Everything here is frozen: schedule changes produce new objects through the
transition functions in ``spacedrep.application.review_log``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

from .constants import (
    DEFAULT_GROWTH_ALPHA,
    DEFAULT_INTERVALS,
    DEFAULT_LAPSE_BETA,
    DEFAULT_RETRIEVABILITY_TARGET,
    DEFAULT_SKIP_DEFER_DAYS,
    DEFAULT_STABILITY_ALPHA,
    DEFAULT_STABILITY_DAYS,
)

REVIEW_QUALITIES = (0.0, 0.5, 1.0)  # forgot, hard, easy


class AutoAdjustPreference(str, Enum):
    """Whether an early review shifts the rest of the schedule."""

    ALWAYS = "always"
    NEVER = "never"
    ASK = "ask"


class ScheduleMode(str, Enum):
    ADAPTIVE = "adaptive"
    FIXED = "fixed"


class ReviewSource(str, Enum):
    SCHEDULED = "scheduled"
    QUICK = "quick"  # "revise now", limited to one per local day


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    DUPLICATE_ACTION = "duplicate_action"


# ---------- Events ----------


@dataclass(frozen=True)
class StartedEvent:
    """Synthesized once when a topic is created."""

    id: str
    at: datetime
    type: Literal["started"] = "started"


@dataclass(frozen=True)
class ReviewedEvent:
    """
    A logged review.

    Attributes:
        quality: 0 (forgot), 0.5 (hard), 1 (easy), or None when not rated.
        interval_days: Interval used to compute ``next_review_at``.
        resulting_stability: Stability after this review (days).
        target_retrievability: Trigger retention used to size the interval.
        next_review_at: Checkpoint this review scheduled.
        retrievability_at_review: Modeled retention just before the review.
        adjusted: False when an early review left the schedule untouched.
        source: Scheduled review or a quick revision.
    """

    id: str
    at: datetime
    quality: float | None
    interval_days: float
    resulting_stability: float
    target_retrievability: float
    next_review_at: datetime
    retrievability_at_review: float | None = None
    adjusted: bool = True
    source: ReviewSource = ReviewSource.SCHEDULED
    type: Literal["reviewed"] = "reviewed"


@dataclass(frozen=True)
class SkippedEvent:
    id: str
    at: datetime
    next_review_at: datetime
    type: Literal["skipped"] = "skipped"


TopicEvent = StartedEvent | ReviewedEvent | SkippedEvent


# ---------- Topics & subjects ----------


@dataclass(frozen=True)
class Subject:
    """
    Groups topics.

    Attributes:
        exam_date: Hard upper bound for scheduling, if any.
        difficulty_modifier: Multiplies effective stability (< 1 for harder subjects).
    """

    id: str
    name: str
    color: str | None = None
    exam_date: datetime | None = None
    difficulty_modifier: float | None = None


@dataclass(frozen=True)
class Topic:
    """A single memorization subject under review."""

    id: str
    title: str
    next_review_date: datetime
    created_at: datetime
    notes: str = ""
    subject_id: str | None = None
    subject_label: str | None = None

    # Fixed ladder
    intervals: tuple[int, ...] = DEFAULT_INTERVALS
    interval_index: int = 0

    # Retention model
    last_reviewed_at: datetime | None = None
    stability: float = DEFAULT_STABILITY_DAYS
    retrievability_target: float = DEFAULT_RETRIEVABILITY_TARGET
    reviews_count: int = 0

    # History
    events: tuple[TopicEvent, ...] = ()
    started_at: datetime | None = None
    quick_revision_last_used_at: datetime | None = None

    auto_adjust_preference: AutoAdjustPreference = AutoAdjustPreference.ASK

    @property
    def ordered_events(self) -> list[TopicEvent]:
        """Events in chronological order (ties broken by id)."""
        return sorted(self.events, key=lambda e: (e.at, e.id))

    @property
    def reviews(self) -> list[ReviewedEvent]:
        return [e for e in self.ordered_events if isinstance(e, ReviewedEvent)]

    @property
    def anchor(self) -> datetime:
        """Decay anchor used when a topic has never been reviewed."""
        return self.last_reviewed_at or self.started_at or self.created_at


@dataclass(frozen=True)
class Snapshot:
    """What the storage collaborator hands to the engine."""

    topics: tuple[Topic, ...] = ()
    subjects: tuple[Subject, ...] = ()

    def subject_for(self, topic: Topic) -> Subject | None:
        if topic.subject_id is None:
            return None
        return next((s for s in self.subjects if s.id == topic.subject_id), None)


# ---------- Policy & results ----------


@dataclass(frozen=True)
class SchedulingPolicy:
    """
    Engine-side scheduling knobs, resolved from configuration by the host.

    Attributes:
        mode: Adaptive stability model or the fixed interval ladder.
        review_trigger: Default retention threshold for adaptive intervals.
        growth_alpha: Stability growth per projected review.
        lapse_beta: Stability penalty per modeled lapse.
        stability_alpha: Sensitivity of ``update_stability`` to review quality.
        ask_fallback: How an early review resolves when the topic says "ask".
        skip_defer_days: How far a skip pushes the pending checkpoint.
    """

    mode: ScheduleMode = ScheduleMode.ADAPTIVE
    review_trigger: float = DEFAULT_RETRIEVABILITY_TARGET
    growth_alpha: float = DEFAULT_GROWTH_ALPHA
    lapse_beta: float = DEFAULT_LAPSE_BETA
    stability_alpha: float = DEFAULT_STABILITY_ALPHA
    initial_stability: float = DEFAULT_STABILITY_DAYS
    ask_fallback: AutoAdjustPreference = AutoAdjustPreference.NEVER
    skip_defer_days: float = DEFAULT_SKIP_DEFER_DAYS


@dataclass(frozen=True)
class TransitionError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class HistoryEdit:
    """A user-supplied backfilled review."""

    at: datetime
    quality: float | None = None
    id: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a schedule transition.

    On failure ``topic`` is the unchanged input topic.
    """

    ok: bool
    topic: Topic
    error: TransitionError | None = None
    adjusted: bool | None = None
    merged_days: list[str] = field(default_factory=list)
