"""
Topic event log and schedule transitions.

The event log is the only writable state of a topic. Every derived schedule
field (next review date, ladder index, stability, review count) is changed
exclusively by the transitions in this module:

1. ``record_review``  appends a ``reviewed`` event
2. ``record_skip``    appends a ``skipped`` event
3. ``merge_history_edits`` rewrites the reviewed events and replays the log

Transitions are all-or-nothing: they return a TransitionResult holding either
a new Topic or a structured error alongside the untouched input topic.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from spacedrep.application.id_service import generate_event_id, generate_topic_id
from spacedrep.application.retention import (
    clamp,
    interval_days,
    retrievability,
    update_stability,
)
from spacedrep.application.utils.dates import (
    add_days,
    day_key,
    elapsed_ms,
    get_zone,
    next_start_of_day,
    parse_instant,
)
from spacedrep.domain.constants import (
    DAY_MS,
    DEFAULT_INTERVALS,
    DEFAULT_REVIEW_QUALITY,
    DEFAULT_TIME_ZONE,
    REVISE_LOCKED_MESSAGE,
    STABILITY_MAX_DAYS,
    STABILITY_MIN_DAYS,
)
from spacedrep.domain.models import (
    REVIEW_QUALITIES,
    AutoAdjustPreference,
    ErrorKind,
    HistoryEdit,
    ReviewedEvent,
    ReviewSource,
    ScheduleMode,
    SchedulingPolicy,
    SkippedEvent,
    StartedEvent,
    Subject,
    Topic,
    TransitionError,
    TransitionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_POLICY = SchedulingPolicy()


# ---------- Helpers ----------


def _fail(topic: Topic, kind: ErrorKind, message: str) -> TransitionResult:
    logger.info(f"Rejected transition for {topic.id}: {message}")
    return TransitionResult(ok=False, topic=topic, error=TransitionError(kind, message))


def _ladder_index(intervals: tuple[int, ...], index: int) -> int:
    return max(0, min(index, max(len(intervals), 1) - 1))


def _ladder_days(intervals: tuple[int, ...], index: int) -> float:
    ladder = intervals or (1,)
    return float(ladder[_ladder_index(ladder, index)])


def _exam_ceiling(candidate: datetime, subject: Subject | None, after: datetime) -> datetime:
    """Cap ``candidate`` at the exam date while the exam is still ahead."""
    if subject is None or subject.exam_date is None:
        return candidate
    if subject.exam_date >= after and candidate > subject.exam_date:
        return subject.exam_date
    return candidate


def _latest_event_at(topic: Topic) -> datetime | None:
    if not topic.events:
        return None
    return max(event.at for event in topic.events)


def _initial_next_review(
    anchor: datetime,
    stability: float,
    target: float,
    intervals: tuple[int, ...],
    policy: SchedulingPolicy,
) -> datetime:
    if policy.mode == ScheduleMode.ADAPTIVE:
        return add_days(anchor, interval_days(stability, target))
    return add_days(anchor, _ladder_days(intervals, 0))


def _validate_zone(time_zone: str) -> str | None:
    try:
        get_zone(time_zone)
    except ValueError as e:
        return str(e)
    return None


def _validate_quality(quality: float | None) -> str | None:
    if quality is None or quality in REVIEW_QUALITIES:
        return None
    return f"Review quality must be one of {REVIEW_QUALITIES}, got {quality!r}."


def is_early(topic: Topic, at: datetime) -> bool:
    return at < topic.next_review_date


def quick_revision_available(topic: Topic, now: datetime, time_zone: str) -> bool:
    last = topic.quick_revision_last_used_at
    return last is None or day_key(last, time_zone) != day_key(now, time_zone)


def quick_revision_unlocks_at(topic: Topic, now: datetime, time_zone: str) -> datetime | None:
    """Local midnight after which the next quick revision is accepted."""
    if quick_revision_available(topic, now, time_zone):
        return None
    return next_start_of_day(now, time_zone)


def resolve_adjust_future(
    topic: Topic,
    at: datetime,
    adjust_future: bool | None,
    policy: SchedulingPolicy = DEFAULT_POLICY,
) -> bool:
    """
    Decide whether a review shifts the schedule.

    Only early reviews are ambiguous. Without an explicit choice the topic's
    preference decides; "ask" cannot prompt from here, so it falls back to
    ``policy.ask_fallback``.
    """
    if not is_early(topic, at):
        return True
    if adjust_future is not None:
        return adjust_future

    preference = topic.auto_adjust_preference
    if preference == AutoAdjustPreference.ASK:
        preference = policy.ask_fallback
    return preference == AutoAdjustPreference.ALWAYS


# ---------- Core state changes (shared by live transitions and replay) ----------


def _apply_review(
    topic: Topic,
    *,
    event_id: str,
    at: datetime,
    quality: float | None,
    adjust: bool,
    source: ReviewSource,
    subject: Subject | None,
    policy: SchedulingPolicy,
) -> Topic:
    # A non-adjusting review can only keep a checkpoint that is still ahead.
    if not adjust and at >= topic.next_review_date:
        adjust = True

    r_at_review = retrievability(topic.stability, elapsed_ms(topic.anchor, at))
    target = topic.retrievability_target

    if adjust:
        effective_quality = DEFAULT_REVIEW_QUALITY if quality is None else quality
        stability = update_stability(topic.stability, effective_quality, policy.stability_alpha)
        if policy.mode == ScheduleMode.ADAPTIVE:
            index = topic.interval_index
            days = interval_days(stability, target)
        else:
            index = _ladder_index(topic.intervals, topic.interval_index + 1)
            days = _ladder_days(topic.intervals, index)
        next_review_at = _exam_ceiling(add_days(at, days), subject, at)
    else:
        stability = topic.stability
        index = topic.interval_index
        next_review_at = topic.next_review_date
        days = elapsed_ms(at, next_review_at) / DAY_MS

    event = ReviewedEvent(
        id=event_id,
        at=at,
        quality=quality,
        interval_days=days,
        resulting_stability=stability,
        target_retrievability=target,
        next_review_at=next_review_at,
        retrievability_at_review=r_at_review,
        adjusted=adjust,
        source=source,
    )
    return replace(
        topic,
        events=topic.events + (event,),
        stability=stability,
        interval_index=index,
        next_review_date=next_review_at,
        last_reviewed_at=at,
        reviews_count=topic.reviews_count + 1,
        quick_revision_last_used_at=(
            at if source == ReviewSource.QUICK else topic.quick_revision_last_used_at
        ),
    )


def _apply_skip(
    topic: Topic,
    *,
    event_id: str,
    at: datetime,
    subject: Subject | None,
    policy: SchedulingPolicy,
) -> Topic:
    pending = max(topic.next_review_date, at)
    next_review_at = _exam_ceiling(add_days(pending, policy.skip_defer_days), subject, at)
    event = SkippedEvent(id=event_id, at=at, next_review_at=next_review_at)
    return replace(topic, events=topic.events + (event,), next_review_date=next_review_at)


# ---------- Public transitions ----------


def create_topic(
    title: str,
    *,
    now: datetime,
    policy: SchedulingPolicy = DEFAULT_POLICY,
    topic_id: str | None = None,
    notes: str = "",
    subject_id: str | None = None,
    intervals: tuple[int, ...] = DEFAULT_INTERVALS,
    retrievability_target: float | None = None,
    auto_adjust_preference: AutoAdjustPreference = AutoAdjustPreference.ASK,
    started_at: datetime | None = None,
) -> Topic:
    """Build a new topic with its synthesized ``started`` event."""
    now = parse_instant(now)
    started = parse_instant(started_at) if started_at else now
    stability = clamp(policy.initial_stability, STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)
    target = policy.review_trigger if retrievability_target is None else retrievability_target
    ladder = tuple(intervals) or DEFAULT_INTERVALS

    return Topic(
        id=topic_id or generate_topic_id(),
        title=title,
        notes=notes,
        subject_id=subject_id,
        intervals=ladder,
        interval_index=0,
        next_review_date=_initial_next_review(started, stability, target, ladder, policy),
        created_at=now,
        started_at=started,
        stability=stability,
        retrievability_target=target,
        events=(StartedEvent(id=generate_event_id("started"), at=started),),
        auto_adjust_preference=auto_adjust_preference,
    )


def record_review(
    topic: Topic,
    *,
    at: datetime | str,
    quality: float | None = None,
    adjust_future: bool | None = None,
    source: ReviewSource = ReviewSource.SCHEDULED,
    subject: Subject | None = None,
    policy: SchedulingPolicy = DEFAULT_POLICY,
    time_zone: str = DEFAULT_TIME_ZONE,
) -> TransitionResult:
    """
    Log a review and advance the schedule.

    Args:
        topic: Current topic snapshot.
        at: Review instant.
        quality: 0, 0.5 or 1; None for an unrated review.
        adjust_future: Explicit answer for early reviews; None defers to the
            topic's auto-adjust preference.
        source: Quick revisions are limited to one per local day.
        subject: The topic's subject, for the exam ceiling.
        policy: Scheduling knobs (adaptive vs. fixed ladder, alphas).
        time_zone: Zone used for the quick revision day key.

    Returns:
        TransitionResult; on failure the topic is returned unchanged.
    """
    zone_error = _validate_zone(time_zone)
    if zone_error:
        return _fail(topic, ErrorKind.VALIDATION, zone_error)
    try:
        at = parse_instant(at)
    except ValueError as e:
        return _fail(topic, ErrorKind.VALIDATION, f"Invalid review time: {e}")

    quality_error = _validate_quality(quality)
    if quality_error:
        return _fail(topic, ErrorKind.VALIDATION, quality_error)

    if source == ReviewSource.QUICK and not quick_revision_available(topic, at, time_zone):
        return _fail(topic, ErrorKind.DUPLICATE_ACTION, REVISE_LOCKED_MESSAGE)

    latest = _latest_event_at(topic)
    if latest is not None and at < latest:
        return _fail(
            topic,
            ErrorKind.VALIDATION,
            "Review precedes the latest logged event; edit the history instead.",
        )

    if source == ReviewSource.QUICK and adjust_future is None:
        adjust_future = False
    adjust = resolve_adjust_future(topic, at, adjust_future, policy)

    updated = _apply_review(
        topic,
        event_id=generate_event_id("reviewed"),
        at=at,
        quality=quality,
        adjust=adjust,
        source=source,
        subject=subject,
        policy=policy,
    )
    logger.debug(
        f"Reviewed {topic.id} at {at.isoformat()} (adjust={adjust}); "
        f"next review {updated.next_review_date.isoformat()}"
    )
    return TransitionResult(ok=True, topic=updated, adjusted=adjust)


def record_skip(
    topic: Topic,
    *,
    at: datetime | str,
    subject: Subject | None = None,
    policy: SchedulingPolicy = DEFAULT_POLICY,
) -> TransitionResult:
    """
    Log a skip and push the pending checkpoint out.

    The review count is untouched and an upcoming exam date is never passed.
    """
    try:
        at = parse_instant(at)
    except ValueError as e:
        return _fail(topic, ErrorKind.VALIDATION, f"Invalid skip time: {e}")

    latest = _latest_event_at(topic)
    if latest is not None and at < latest:
        return _fail(topic, ErrorKind.VALIDATION, "Skip precedes the latest logged event.")

    updated = _apply_skip(
        topic, event_id=generate_event_id("skipped"), at=at, subject=subject, policy=policy
    )
    return TransitionResult(ok=True, topic=updated)


def replay_topic(
    topic: Topic,
    subject: Subject | None = None,
    policy: SchedulingPolicy = DEFAULT_POLICY,
) -> Topic:
    """
    Rebuild every derived schedule field by replaying the event log.

    Event ids, instants, qualities and sources are kept; everything computed
    from them is regenerated.
    """
    started_events = [e for e in topic.events if isinstance(e, StartedEvent)]
    anchor = topic.started_at or (
        min(e.at for e in started_events) if started_events else topic.created_at
    )
    stability = clamp(policy.initial_stability, STABILITY_MIN_DAYS, STABILITY_MAX_DAYS)

    state = replace(
        topic,
        events=(),
        stability=stability,
        interval_index=0,
        last_reviewed_at=None,
        reviews_count=0,
        next_review_date=_initial_next_review(
            anchor, stability, topic.retrievability_target, topic.intervals, policy
        ),
    )

    for event in topic.ordered_events:
        if isinstance(event, ReviewedEvent):
            state = _apply_review(
                state,
                event_id=event.id,
                at=event.at,
                quality=event.quality,
                adjust=event.adjusted,
                source=event.source,
                subject=subject,
                policy=policy,
            )
        elif isinstance(event, SkippedEvent):
            state = _apply_skip(
                state, event_id=event.id, at=event.at, subject=subject, policy=policy
            )
        else:
            state = replace(state, events=state.events + (event,))

    logger.debug(f"Replayed {len(topic.events)} events for {topic.id}")
    return replace(state, quick_revision_last_used_at=topic.quick_revision_last_used_at)


def _quality_rank(edit: HistoryEdit) -> float:
    return -1.0 if edit.quality is None else edit.quality


def merge_history_edits(
    topic: Topic,
    edits: Iterable[HistoryEdit],
    *,
    subject: Subject | None = None,
    policy: SchedulingPolicy = DEFAULT_POLICY,
    time_zone: str = DEFAULT_TIME_ZONE,
) -> TransitionResult:
    """
    Replace a topic's review history with user-edited entries.

    Entries on the same local day collapse into one, keeping the highest
    quality. The full schedule is then replayed from the merged log.
    """
    zone_error = _validate_zone(time_zone)
    if zone_error:
        return _fail(topic, ErrorKind.VALIDATION, zone_error)

    parsed: list[HistoryEdit] = []
    for edit in edits:
        try:
            at = parse_instant(edit.at)
        except ValueError as e:
            return _fail(topic, ErrorKind.VALIDATION, f"Invalid history date: {e}")
        quality_error = _validate_quality(edit.quality)
        if quality_error:
            return _fail(topic, ErrorKind.VALIDATION, quality_error)
        parsed.append(replace(edit, at=at))

    if subject is not None and subject.exam_date is not None:
        exam_key = day_key(subject.exam_date, time_zone)
        for edit in parsed:
            if day_key(edit.at, time_zone) > exam_key:
                return _fail(
                    topic,
                    ErrorKind.VALIDATION,
                    f"History entry on {day_key(edit.at, time_zone)} is after the "
                    f"exam date ({exam_key}).",
                )

    by_day: dict[str, HistoryEdit] = {}
    merged_days: set[str] = set()
    for edit in sorted(parsed, key=lambda e: e.at):
        key = day_key(edit.at, time_zone)
        existing = by_day.get(key)
        if existing is None:
            by_day[key] = edit
            continue
        merged_days.add(key)
        if _quality_rank(edit) > _quality_rank(existing):
            by_day[key] = edit

    sources = {e.id: e.source for e in topic.events if isinstance(e, ReviewedEvent)}
    reviews = [
        ReviewedEvent(
            id=edit.id or generate_event_id("reviewed"),
            at=edit.at,
            quality=edit.quality,
            interval_days=0.0,
            resulting_stability=topic.stability,
            target_retrievability=topic.retrievability_target,
            next_review_at=edit.at,
            source=sources.get(edit.id, ReviewSource.SCHEDULED),
        )
        for edit in by_day.values()
    ]
    others = [e for e in topic.events if not isinstance(e, ReviewedEvent)]

    replayed = replay_topic(replace(topic, events=tuple(others + reviews)), subject, policy)
    if merged_days:
        logger.info(f"Merged duplicate history entries for {topic.id}: {sorted(merged_days)}")
    return TransitionResult(ok=True, topic=replayed, merged_days=sorted(merged_days))


def auto_skip_overdue(
    topics: Iterable[Topic],
    subjects: Iterable[Subject],
    *,
    now: datetime,
    time_zone: str = DEFAULT_TIME_ZONE,
    policy: SchedulingPolicy = DEFAULT_POLICY,
) -> list[TransitionResult]:
    """
    Daily roll-over: skip every topic whose review day is before today.

    Returns one result per skipped topic.
    """
    now = parse_instant(now)
    today = day_key(now, time_zone)
    subjects_by_id = {s.id: s for s in subjects}

    results = []
    for topic in topics:
        if day_key(topic.next_review_date, time_zone) >= today:
            continue
        subject = subjects_by_id.get(topic.subject_id) if topic.subject_id else None
        results.append(record_skip(topic, at=now, subject=subject, policy=policy))
    return results
