"""
Retention curve segments for charting.

Each review is an independent decay anchor: the curve is split into one
segment per ``reviewed`` event, each decaying with the stability that review
produced. Between consecutive segments a stitch marks the jump back to full
retention and a connector carries the tail of the previous segment into it.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from spacedrep.application.retention import clamp, retrievability, safe_stability
from spacedrep.application.utils.dates import add_days, elapsed_ms, parse_instant
from spacedrep.domain.constants import (
    CONNECTOR_POINTS,
    CONNECTOR_SPAN_MS,
    DEFAULT_SAMPLE_POINTS,
    SAMPLE_POINTS_MAX,
    SAMPLE_POINTS_MIN,
    SEGMENT_MIN_SPAN_MS,
)
from spacedrep.domain.models import StartedEvent, Topic


@dataclass(frozen=True)
class CurveSegment:
    """
    A continuous decay span.

    Attributes:
        start_event_id: Review (or start) event anchoring the decay.
        start: Decay anchor instant.
        end_at: Sampling end; the next review, or max(now, checkpoint).
        display_end_at: Where a renderer should stop drawing.
        checkpoint_at: Review checkpoint scheduled from this anchor.
        stability_days: Stability governing this span.
        target: Trigger retention used for the checkpoint.
        is_historical: True once a later review closed the segment.
    """

    topic_id: str
    start_event_id: str
    start: datetime
    end_at: datetime
    display_end_at: datetime
    checkpoint_at: datetime
    stability_days: float
    target: float
    is_historical: bool
    quality: float | None = None


@dataclass(frozen=True)
class CurvePoint:
    t: datetime
    r: float


class SegmentSamples:
    """
    Lazy, restartable samples of a segment.

    Points are evenly spaced over the span (floored to one minute) and the
    last point always lands on ``end_at``.
    """

    def __init__(self, segment: CurveSegment, point_count: int = DEFAULT_SAMPLE_POINTS):
        self.segment = segment
        self.point_count = int(clamp(point_count, SAMPLE_POINTS_MIN, SAMPLE_POINTS_MAX))

    def __iter__(self) -> Iterator[CurvePoint]:
        start = self.segment.start
        end = max(self.segment.end_at, start)
        stability = self.segment.stability_days
        end_offset = elapsed_ms(start, end)
        step = max(SEGMENT_MIN_SPAN_MS, end_offset) / self.point_count

        k = 0
        while k < self.point_count and k * step < end_offset:
            offset = k * step
            yield CurvePoint(
                t=start + timedelta(milliseconds=offset),
                r=retrievability(stability, offset),
            )
            k += 1
        yield CurvePoint(t=end, r=retrievability(stability, end_offset))

    def __len__(self) -> int:
        return sum(1 for _ in self)


@dataclass(frozen=True)
class SampledSegment:
    segment: CurveSegment
    points: list[CurvePoint]


@dataclass(frozen=True)
class Stitch:
    """Instant jump from the prior retention back to 1.0 at a review."""

    event_id: str
    t: datetime
    from_r: float
    to_r: float = 1.0


@dataclass(frozen=True)
class Connector:
    """Tail of the previous segment leading into a review."""

    event_id: str
    points: list[CurvePoint]


@dataclass(frozen=True)
class NowPoint:
    t: datetime
    r: float
    zero_horizon: datetime  # when retention drops to 1%


@dataclass(frozen=True)
class TopicCurve:
    topic_id: str
    segments: list[SampledSegment] = field(default_factory=list)
    stitches: list[Stitch] = field(default_factory=list)
    connectors: list[Connector] = field(default_factory=list)
    now_point: NowPoint | None = None


def _synthetic_segment(topic: Topic, now: datetime) -> CurveSegment:
    anchor = topic.anchor
    started = next((e for e in topic.ordered_events if isinstance(e, StartedEvent)), None)
    end = max(topic.next_review_date, anchor)
    return CurveSegment(
        topic_id=topic.id,
        start_event_id=started.id if started else f"{topic.id}-anchor",
        start=anchor,
        end_at=end,
        display_end_at=max(now, anchor),
        checkpoint_at=topic.next_review_date,
        stability_days=safe_stability(topic.stability),
        target=topic.retrievability_target,
        is_historical=False,
    )


def build_segments(topic: Topic, now: datetime) -> list[CurveSegment]:
    """
    Chronological decay segments for a topic.

    Depends only on the event log, the topic's schedule fields and ``now``.
    """
    now = parse_instant(now)
    reviews = topic.reviews
    if not reviews:
        return [_synthetic_segment(topic, now)]

    segments = []
    for index, review in enumerate(reviews):
        following = reviews[index + 1] if index + 1 < len(reviews) else None
        if following is not None:
            end_at = display_end_at = following.at
        else:
            end_at = max(now, review.next_review_at)
            display_end_at = max(now, review.at)
        segments.append(
            CurveSegment(
                topic_id=topic.id,
                start_event_id=review.id,
                start=review.at,
                end_at=end_at,
                display_end_at=display_end_at,
                checkpoint_at=review.next_review_at,
                stability_days=safe_stability(review.resulting_stability),
                target=review.target_retrievability,
                is_historical=following is not None,
                quality=review.quality,
            )
        )
    return segments


def sample_segment(segment: CurveSegment, point_count: int = DEFAULT_SAMPLE_POINTS) -> SegmentSamples:
    return SegmentSamples(segment, point_count)


def _connector(previous: CurveSegment, review: CurveSegment) -> Connector:
    span = min(CONNECTOR_SPAN_MS, max(0.0, elapsed_ms(previous.start, review.start)))
    tail_start = review.start - timedelta(milliseconds=span)
    points = []
    for k in range(CONNECTOR_POINTS + 1):
        t = tail_start + timedelta(milliseconds=span * k / CONNECTOR_POINTS)
        points.append(
            CurvePoint(t=t, r=retrievability(previous.stability_days, elapsed_ms(previous.start, t)))
        )
    return Connector(event_id=review.start_event_id, points=points)


def build_curve(
    topic: Topic,
    now: datetime,
    point_count: int = DEFAULT_SAMPLE_POINTS,
) -> TopicCurve:
    """Sampled segments, stitches, connectors and the current-retention marker."""
    now = parse_instant(now)
    segments = build_segments(topic, now)

    sampled: list[SampledSegment] = []
    stitches: list[Stitch] = []
    connectors: list[Connector] = []
    previous = None
    for segment in segments:
        sampled.append(SampledSegment(segment, list(sample_segment(segment, point_count))))
        if previous is not None:
            prior = retrievability(previous.stability_days, elapsed_ms(previous.start, segment.start))
            stitches.append(Stitch(event_id=segment.start_event_id, t=segment.start, from_r=prior))
            connectors.append(_connector(previous, segment))
        previous = segment

    active = segments[-1]
    stability = safe_stability(active.stability_days)
    return TopicCurve(
        topic_id=topic.id,
        segments=sampled,
        stitches=stitches,
        connectors=connectors,
        now_point=NowPoint(
            t=now,
            r=retrievability(stability, elapsed_ms(active.start, now)),
            zero_horizon=add_days(active.start, stability * math.log(100)),
        ),
    )
