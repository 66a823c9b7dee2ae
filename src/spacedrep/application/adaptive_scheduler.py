"""
Adaptive scheduler: projects future review checkpoints.

Each projected review grows stability by ``alpha``; modeled lapses shrink it
by ``beta``. A subject exam date is a hard ceiling; nothing is projected past
it. Pure and re-entrant.
"""

import math
from dataclasses import dataclass
from datetime import datetime

from spacedrep.application.retention import clamp, interval_days, retrievability
from spacedrep.application.utils.dates import add_days, parse_instant
from spacedrep.domain.constants import (
    DAY_MS,
    DEFAULT_GROWTH_ALPHA,
    DEFAULT_LAPSE_BETA,
    DEFAULT_RETENTION_FLOOR,
    MAX_PROJECTED_REVIEWS,
    REVIEW_TRIGGER_MAX,
    REVIEW_TRIGGER_MIN,
    STABILITY_MAX_DAYS,
    STABILITY_MIN_DAYS,
)
from spacedrep.domain.models import SchedulingPolicy, Subject, Topic


@dataclass(frozen=True)
class Checkpoint:
    """
    A projected future review.

    Attributes:
        index: 1-based review number, counting reviews already logged.
        date: Scheduled review instant.
        interval_days: Interval leading up to this review.
        stability_days: Stability the interval was sized with.
        retention: Predicted retention right before the review.
    """

    index: int
    date: datetime
    interval_days: float
    stability_days: float
    retention: float


def project_schedule(
    anchor_date: datetime,
    stability_days: float,
    reviews_count: int,
    review_trigger: float,
    exam_date: datetime | None = None,
    max_reviews: int = MAX_PROJECTED_REVIEWS,
    alpha: float = DEFAULT_GROWTH_ALPHA,
    beta: float = DEFAULT_LAPSE_BETA,
    lapses: int = 0,
    floor: float = DEFAULT_RETENTION_FLOOR,
) -> list[Checkpoint]:
    """
    Project up to ``max_reviews`` checkpoints starting at ``anchor_date``.

    The first lapse (if any) penalizes the stability after the first projected
    review, the second after the second one, and so on.
    """
    trigger = clamp(review_trigger, REVIEW_TRIGGER_MIN, REVIEW_TRIGGER_MAX)
    growth = max(0.0, alpha)
    penalty = clamp(beta, 0.0, 1.0)
    exam = parse_instant(exam_date) if exam_date else None

    stability = clamp(stability_days, STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)
    count = max(0, reviews_count)
    cursor = parse_instant(anchor_date)
    remaining_lapses = max(0, math.floor(lapses))

    checkpoints: list[Checkpoint] = []
    for _ in range(max(0, max_reviews)):
        days = interval_days(stability, trigger)
        scheduled = add_days(cursor, days)
        if exam is not None and scheduled > exam:
            break

        checkpoints.append(
            Checkpoint(
                index=count + 1,
                date=scheduled,
                interval_days=days,
                stability_days=stability,
                retention=retrievability(stability, days * DAY_MS, floor),
            )
        )

        cursor = scheduled
        count += 1
        stability = clamp(stability * (1 + growth), STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)
        if remaining_lapses > 0:
            stability = clamp(stability * (1 - penalty), STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)
            remaining_lapses -= 1

    return checkpoints


def next_adaptive_review(
    anchor_date: datetime,
    stability_days: float,
    reviews_count: int,
    review_trigger: float,
    exam_date: datetime | None = None,
    **kwargs,
) -> Checkpoint | None:
    """Only the next checkpoint, or None when the exam comes first."""
    kwargs["max_reviews"] = 1
    schedule = project_schedule(
        anchor_date, stability_days, reviews_count, review_trigger, exam_date, **kwargs
    )
    return schedule[0] if schedule else None


def project_topic_schedule(
    topic: Topic,
    subject: Subject | None,
    policy: SchedulingPolicy,
    max_reviews: int = MAX_PROJECTED_REVIEWS,
    lapses: int = 0,
) -> list[Checkpoint]:
    """Checkpoints for a topic from its latest review onward."""
    return project_schedule(
        anchor_date=topic.anchor,
        stability_days=topic.stability,
        reviews_count=topic.reviews_count,
        review_trigger=topic.retrievability_target,
        exam_date=subject.exam_date if subject else None,
        max_reviews=max_reviews,
        alpha=policy.growth_alpha,
        beta=policy.lapse_beta,
        lapses=lapses,
    )
