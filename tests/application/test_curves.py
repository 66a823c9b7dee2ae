from datetime import timedelta

import pytest

from spacedrep.application.curves import build_curve, build_segments, sample_segment
from spacedrep.application.retention import retrievability
from spacedrep.application.review_log import record_review
from spacedrep.domain.constants import CONNECTOR_POINTS


@pytest.fixture
def reviewed_topic(make_topic, t0):
    topic = make_topic()
    topic = record_review(topic, at=t0 + timedelta(days=1), quality=1.0).topic
    return record_review(topic, at=t0 + timedelta(days=3), quality=0.5).topic


def test_unreviewed_topic_gets_one_synthetic_segment(make_topic, t0):
    topic = make_topic()
    now = t0 + timedelta(hours=3)

    segments = build_segments(topic, now)

    assert len(segments) == 1
    seg = segments[0]
    assert seg.start == t0
    assert seg.end_at == topic.next_review_date
    assert seg.checkpoint_at == topic.next_review_date
    assert seg.start_event_id == topic.events[0].id
    assert not seg.is_historical


def test_one_segment_per_review(reviewed_topic, t0):
    now = t0 + timedelta(days=3, hours=1)
    first, last = build_segments(reviewed_topic, now)
    reviews = reviewed_topic.reviews

    assert first.start == reviews[0].at
    assert first.end_at == reviews[1].at
    assert first.display_end_at == reviews[1].at
    assert first.is_historical
    assert first.stability_days == pytest.approx(1.5)

    assert last.start == reviews[1].at
    assert not last.is_historical
    assert last.checkpoint_at == reviewed_topic.next_review_date
    assert last.end_at == max(now, last.checkpoint_at)
    assert last.display_end_at == now


def test_segments_are_idempotent(reviewed_topic, t0):
    now = t0 + timedelta(days=4)
    assert build_segments(reviewed_topic, now) == build_segments(reviewed_topic, now)


class TestSampleSegment:
    def test_samples_span_segment_and_end_exactly(self, reviewed_topic, t0):
        seg = build_segments(reviewed_topic, t0 + timedelta(days=4))[0]

        points = list(sample_segment(seg, 32))

        assert points[0].t == seg.start
        assert points[0].r == 1.0
        assert points[-1].t == seg.end_at
        assert all(a.t < b.t for a, b in zip(points, points[1:]))
        assert all(a.r >= b.r for a, b in zip(points, points[1:]))
        assert len(points) in (32, 33)

    def test_samples_are_restartable(self, reviewed_topic, t0):
        samples = sample_segment(build_segments(reviewed_topic, t0)[0])
        assert list(samples) == list(samples)
        assert len(samples) == len(list(samples))

    def test_point_count_is_clamped(self, reviewed_topic, t0):
        seg = build_segments(reviewed_topic, t0)[0]
        assert sample_segment(seg, 5).point_count == 16
        assert sample_segment(seg, 10_000).point_count == 320

    def test_short_segment_still_ends_on_end_instant(self, make_topic, t0):
        topic = record_review(make_topic(), at=t0 + timedelta(days=1)).topic
        topic = record_review(topic, at=t0 + timedelta(days=1, seconds=10)).topic
        seg = build_segments(topic, t0 + timedelta(days=2))[0]

        points = list(sample_segment(seg))

        assert points[-1].t == seg.end_at
        assert all(p.t <= seg.end_at for p in points)


def test_build_curve_stitches_and_connectors(reviewed_topic, t0):
    now = t0 + timedelta(days=3, hours=6)

    curve = build_curve(reviewed_topic, now, point_count=16)

    assert len(curve.segments) == 2
    assert len(curve.stitches) == 1
    stitch = curve.stitches[0]
    first_review, second_review = reviewed_topic.reviews
    assert stitch.t == second_review.at
    assert stitch.to_r == 1.0
    assert stitch.from_r == pytest.approx(
        retrievability(1.5, (second_review.at - first_review.at).total_seconds() * 1000)
    )

    connector = curve.connectors[0]
    assert len(connector.points) == CONNECTOR_POINTS + 1
    assert connector.points[-1].t == second_review.at
    assert connector.points[-1].r == pytest.approx(stitch.from_r)
    assert connector.points[0].t == second_review.at - timedelta(hours=1)

    assert curve.now_point.t == now
    assert curve.now_point.r == pytest.approx(
        retrievability(curve.segments[-1].segment.stability_days, 6 * 3_600_000)
    )


def test_build_curve_is_repeatable(reviewed_topic, t0):
    now = t0 + timedelta(days=4)

    first = build_curve(reviewed_topic, now, point_count=16)
    second = build_curve(reviewed_topic, now, point_count=16)

    assert first == second
    assert first.segments is not second.segments
    assert [s.segment.start_event_id for s in first.segments] == [
        r.id for r in reviewed_topic.reviews
    ]
