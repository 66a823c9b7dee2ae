"""
Risk scorer for ranking topics by review urgency.

This is a pure computation module with no I/O.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from spacedrep.application.retention import (
    average_quality,
    interval_days,
    retrievability,
    safe_stability,
)
from spacedrep.application.utils.dates import elapsed_ms, parse_instant
from spacedrep.domain.constants import (
    DAY_MS,
    LOW_QUALITY_BUMP,
    LOW_QUALITY_THRESHOLD,
    OVERDUE_SATURATION_DAYS,
    RISK_WEIGHT_DIFFICULTY,
    RISK_WEIGHT_EXAM,
    RISK_WEIGHT_FORGETTING,
    RISK_WEIGHT_OVERDUE,
    SPARSE_HISTORY_BUMP,
    SPARSE_REVIEW_COUNT,
)
from spacedrep.domain.models import Subject, Topic


@dataclass(frozen=True)
class RiskScore:
    """
    Urgency of a topic at a given instant. Higher score means review sooner.
    """

    score: float
    forgetting_risk: float
    overdue_penalty: float
    exam_urgency: float
    difficulty_bump: float
    retrievability_now: float
    interval_days: float  # Interval at the current effective stability


@dataclass(frozen=True)
class RankedTopic:
    topic: Topic
    risk: RiskScore


def overdue_penalty(overdue_days: float) -> float:
    if overdue_days <= 0:
        return 0.0
    return min(1.0, overdue_days / OVERDUE_SATURATION_DAYS)


def exam_urgency(days_to_exam: int | None) -> float:
    """0 without an exam, 1 once it has passed, rising as it nears."""
    if days_to_exam is None:
        return 0.0
    if days_to_exam < 0:
        return 1.0
    return min(1.0, 1 / max(1, days_to_exam))


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``target``, rounded half up."""
    return math.floor(elapsed_ms(now, target) / DAY_MS + 0.5)


def difficulty_bump(topic: Topic) -> float:
    bump = 0.0
    qualities = [r.quality for r in topic.reviews if r.quality is not None]
    avg = average_quality(qualities)
    if avg is not None and avg < LOW_QUALITY_THRESHOLD:
        bump += LOW_QUALITY_BUMP
    if topic.reviews_count < SPARSE_REVIEW_COUNT:
        bump += SPARSE_HISTORY_BUMP
    return bump


def risk_score(topic: Topic, subject: Subject | None, now: datetime) -> RiskScore:
    """
    Score a topic's urgency.

    score = 0.55 * forgetting + 0.25 * overdue + 0.15 * exam + 0.05 * difficulty

    The weights and bump thresholds are tunables in ``domain.constants``.
    """
    now = parse_instant(now)
    modifier = 1.0
    if subject is not None and subject.difficulty_modifier is not None:
        modifier = subject.difficulty_modifier
    effective_stability = safe_stability(topic.stability * modifier)

    # Never-reviewed topics have not started decaying.
    elapsed = elapsed_ms(topic.last_reviewed_at, now) if topic.last_reviewed_at else 0.0
    retrievability_now = retrievability(effective_stability, elapsed)
    forgetting = 1 - retrievability_now

    overdue = overdue_penalty(elapsed_ms(topic.next_review_date, now) / DAY_MS)

    days_to_exam = None
    if subject is not None and subject.exam_date is not None:
        days_to_exam = days_until(subject.exam_date, now)
    urgency = exam_urgency(days_to_exam)

    bump = difficulty_bump(topic)

    score = (
        RISK_WEIGHT_FORGETTING * forgetting
        + RISK_WEIGHT_OVERDUE * overdue
        + RISK_WEIGHT_EXAM * urgency
        + RISK_WEIGHT_DIFFICULTY * bump
    )
    return RiskScore(
        score=score,
        forgetting_risk=forgetting,
        overdue_penalty=overdue,
        exam_urgency=urgency,
        difficulty_bump=bump,
        retrievability_now=retrievability_now,
        interval_days=interval_days(effective_stability, topic.retrievability_target),
    )


def rank_topics(
    topics: Iterable[Topic],
    subjects: Iterable[Subject],
    now: datetime,
) -> list[RankedTopic]:
    """Topics sorted by descending risk score, ties broken by title."""
    subjects_by_id = {s.id: s for s in subjects}
    ranked = [
        RankedTopic(topic, risk_score(topic, subjects_by_id.get(topic.subject_id or ""), now))
        for topic in topics
    ]
    ranked.sort(key=lambda item: (-item.risk.score, item.topic.title.lower(), item.topic.id))
    return ranked
