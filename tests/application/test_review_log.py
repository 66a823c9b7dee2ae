from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from spacedrep.application.retention import interval_days
from spacedrep.application.review_log import (
    auto_skip_overdue,
    merge_history_edits,
    quick_revision_unlocks_at,
    record_review,
    record_skip,
    replay_topic,
)
from spacedrep.application.utils.dates import add_days, utc
from spacedrep.domain.constants import REVISE_LOCKED_MESSAGE
from spacedrep.domain.models import (
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
)

FIXED = SchedulingPolicy(mode=ScheduleMode.FIXED)


class TestCreateTopic:
    def test_adaptive_initial_checkpoint(self, make_topic, t0):
        topic = make_topic()
        assert topic.id.startswith("topic_")
        assert topic.reviews_count == 0
        assert topic.last_reviewed_at is None
        assert [type(e) for e in topic.events] == [StartedEvent]
        assert topic.next_review_date == add_days(t0, interval_days(1.0, 0.7))

    def test_fixed_initial_checkpoint(self, make_topic, t0):
        topic = make_topic(policy=FIXED)
        assert topic.next_review_date == t0 + timedelta(days=1)


class TestRecordReview:
    def test_due_review_advances_adaptive_schedule(self, make_topic, t0):
        topic = make_topic()
        at = t0 + timedelta(days=1)

        result = record_review(topic, at=at, quality=1.0)

        assert result.ok
        assert result.adjusted is True
        updated = result.topic
        assert updated.stability == pytest.approx(1.5)
        assert updated.reviews_count == 1
        assert updated.last_reviewed_at == at
        assert updated.next_review_date == add_days(at, interval_days(1.5, 0.7))
        assert updated.interval_index == 0

        event = updated.events[-1]
        assert isinstance(event, ReviewedEvent)
        assert event.quality == 1.0
        assert event.resulting_stability == pytest.approx(1.5)
        assert event.next_review_at == updated.next_review_date
        # Retention just before the review, one day after start with S=1
        assert event.retrievability_at_review == pytest.approx(0.3679, abs=1e-4)

    def test_fixed_mode_walks_the_ladder(self, make_topic, t0):
        topic = make_topic(policy=FIXED)
        at = t0 + timedelta(days=1)

        updated = record_review(topic, at=at, policy=FIXED).topic

        assert updated.interval_index == 1
        assert updated.next_review_date == at + timedelta(days=4)

    def test_fixed_ladder_index_is_clamped(self, make_topic, t0):
        topic = replace(make_topic(policy=FIXED), interval_index=4)
        at = t0 + timedelta(days=2)

        updated = record_review(topic, at=at, policy=FIXED).topic

        assert updated.interval_index == 4
        assert updated.next_review_date == at + timedelta(days=60)

    def test_invalid_quality_is_rejected_without_changes(self, make_topic, t0):
        topic = make_topic()
        result = record_review(topic, at=t0 + timedelta(days=1), quality=0.3)

        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.topic is topic

    def test_malformed_time_is_rejected(self, make_topic):
        topic = make_topic()
        result = record_review(topic, at="not-a-date")

        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.topic is topic

    def test_unknown_time_zone_is_rejected(self, make_topic, t0):
        result = record_review(make_topic(), at=t0, time_zone="Mars/Olympus")
        assert result.error.kind == ErrorKind.VALIDATION

    def test_review_older_than_latest_event_is_rejected(self, make_topic, t0):
        topic = record_review(make_topic(), at=t0 + timedelta(days=2)).topic
        result = record_review(topic, at=t0 + timedelta(days=1))

        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.topic is topic

    def test_exam_date_caps_next_review(self, make_topic, t0):
        topic = make_topic(policy=SchedulingPolicy(initial_stability=10.0))
        at = topic.next_review_date
        exam = at + timedelta(days=3)
        subject = Subject(id="bio", name="Biology", exam_date=exam)

        updated = record_review(topic, at=at, quality=1.0, subject=subject).topic

        assert updated.next_review_date == exam


class TestEarlyReviews:
    def early(self, topic):
        return topic.next_review_date - timedelta(hours=2)

    def test_never_preference_keeps_schedule(self, make_topic):
        topic = make_topic(auto_adjust_preference=AutoAdjustPreference.NEVER)
        at = self.early(topic)

        result = record_review(topic, at=at, quality=1.0)

        assert result.ok
        assert result.adjusted is False
        updated = result.topic
        assert updated.next_review_date == topic.next_review_date
        assert updated.stability == topic.stability
        assert updated.reviews_count == 1
        assert updated.last_reviewed_at == at
        assert updated.events[-1].adjusted is False

    def test_always_preference_adjusts(self, make_topic):
        topic = make_topic(auto_adjust_preference=AutoAdjustPreference.ALWAYS)
        at = self.early(topic)

        result = record_review(topic, at=at, quality=1.0)

        assert result.adjusted is True
        assert result.topic.next_review_date == add_days(at, interval_days(1.5, 0.7))

    def test_ask_uses_policy_fallback(self, make_topic):
        topic = make_topic(auto_adjust_preference=AutoAdjustPreference.ASK)
        at = self.early(topic)

        assert record_review(topic, at=at).adjusted is False
        eager = SchedulingPolicy(ask_fallback=AutoAdjustPreference.ALWAYS)
        assert record_review(topic, at=at, policy=eager).adjusted is True

    def test_explicit_choice_wins(self, make_topic):
        topic = make_topic(auto_adjust_preference=AutoAdjustPreference.NEVER)
        result = record_review(topic, at=self.early(topic), adjust_future=True)
        assert result.adjusted is True


class TestQuickRevision:
    TZ = "America/New_York"

    def test_second_quick_revision_same_local_day_is_locked(self, make_topic):
        topic = make_topic()
        morning = datetime(2024, 5, 10, 14, 0, tzinfo=utc)  # 10:00 local
        late = datetime(2024, 5, 11, 2, 0, tzinfo=utc)  # 22:00 local, same day

        first = record_review(topic, at=morning, source=ReviewSource.QUICK, time_zone=self.TZ)
        assert first.ok
        assert first.topic.quick_revision_last_used_at == morning

        second = record_review(first.topic, at=late, source=ReviewSource.QUICK, time_zone=self.TZ)
        assert not second.ok
        assert second.error.kind == ErrorKind.DUPLICATE_ACTION
        assert second.error.message == REVISE_LOCKED_MESSAGE
        assert second.topic is first.topic

    def test_lock_lifts_after_local_midnight(self, make_topic):
        topic = make_topic()
        morning = datetime(2024, 5, 10, 14, 0, tzinfo=utc)
        topic = record_review(topic, at=morning, source=ReviewSource.QUICK, time_zone=self.TZ).topic

        unlock = quick_revision_unlocks_at(topic, morning, self.TZ)
        assert unlock == datetime(2024, 5, 11, 4, 0, tzinfo=utc)  # midnight EDT

        result = record_review(topic, at=unlock, source=ReviewSource.QUICK, time_zone=self.TZ)
        assert result.ok

    def test_quick_revision_does_not_shift_schedule_when_early(self, make_topic, t0):
        topic = make_topic(
            policy=SchedulingPolicy(initial_stability=10.0),
            auto_adjust_preference=AutoAdjustPreference.ALWAYS,
        )
        at = t0 + timedelta(hours=1)

        result = record_review(topic, at=at, source=ReviewSource.QUICK)

        assert result.adjusted is False
        assert result.topic.next_review_date == topic.next_review_date
        assert result.topic.events[-1].source == ReviewSource.QUICK


class TestRecordSkip:
    def test_skip_defers_pending_checkpoint(self, make_topic, t0):
        topic = make_topic()
        result = record_skip(topic, at=t0 + timedelta(hours=1))

        assert result.ok
        assert result.topic.next_review_date == topic.next_review_date + timedelta(days=1)
        assert result.topic.reviews_count == 0
        assert isinstance(result.topic.events[-1], SkippedEvent)

    def test_overdue_skip_counts_from_now(self, make_topic, t0):
        topic = make_topic()
        at = t0 + timedelta(days=3)

        result = record_skip(topic, at=at)

        assert result.topic.next_review_date == at + timedelta(days=1)

    def test_skip_never_passes_exam(self, make_topic, t0):
        topic = make_topic()
        exam = topic.next_review_date + timedelta(hours=6)
        subject = Subject(id="bio", name="Biology", exam_date=exam)

        result = record_skip(topic, at=t0 + timedelta(hours=1), subject=subject)

        assert result.topic.next_review_date == exam

    def test_skip_before_latest_event_is_rejected(self, make_topic, t0):
        topic = record_review(make_topic(), at=t0 + timedelta(days=2)).topic
        result = record_skip(topic, at=t0 + timedelta(days=1))
        assert result.error.kind == ErrorKind.VALIDATION


class TestMergeHistoryEdits:
    def test_same_day_edits_keep_highest_quality(self, make_topic):
        topic = make_topic()
        morning = datetime(2024, 5, 11, 8, 0, tzinfo=utc)
        evening = datetime(2024, 5, 11, 18, 0, tzinfo=utc)

        result = merge_history_edits(
            topic,
            [HistoryEdit(at=morning, quality=0.5), HistoryEdit(at=evening, quality=1.0)],
        )

        assert result.ok
        assert result.merged_days == ["2024-05-11"]
        reviews = result.topic.reviews
        assert len(reviews) == 1
        assert reviews[0].quality == 1.0
        assert result.topic.reviews_count == 1
        assert result.topic.last_reviewed_at == evening
        assert result.topic.stability == pytest.approx(1.5)
        assert result.topic.next_review_date == add_days(evening, interval_days(1.5, 0.7))

    def test_replaces_existing_reviews(self, make_topic, t0):
        topic = record_review(make_topic(), at=t0 + timedelta(days=1), quality=0.0).topic
        edit_at = t0 + timedelta(days=2)

        result = merge_history_edits(topic, [HistoryEdit(at=edit_at, quality=1.0)])

        assert [r.at for r in result.topic.reviews] == [edit_at]
        assert result.merged_days == []

    def test_edit_after_exam_is_rejected(self, make_topic, t0):
        topic = make_topic()
        subject = Subject(id="bio", name="Biology", exam_date=t0 + timedelta(days=3))

        result = merge_history_edits(
            topic, [HistoryEdit(at=t0 + timedelta(days=4), quality=1.0)], subject=subject
        )

        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert "exam" in result.error.message
        assert result.topic is topic

    def test_edit_later_on_exam_day_is_accepted(self, make_topic):
        topic = make_topic()
        subject = Subject(id="bio", name="Biology", exam_date=datetime(2024, 5, 20, tzinfo=utc))
        edit_at = datetime(2024, 5, 20, 15, 0, tzinfo=utc)

        result = merge_history_edits(
            topic, [HistoryEdit(at=edit_at, quality=1.0)], subject=subject, time_zone="UTC"
        )

        assert result.ok
        assert [r.at for r in result.topic.reviews] == [edit_at]

    def test_kept_quick_revision_keeps_its_source(self, make_topic, t0):
        quick_at = t0 + timedelta(hours=1)
        topic = record_review(make_topic(), at=quick_at, source=ReviewSource.QUICK).topic
        quick_id = topic.reviews[0].id

        result = merge_history_edits(
            topic,
            [
                HistoryEdit(at=quick_at, quality=1.0, id=quick_id),
                HistoryEdit(at=t0 + timedelta(days=3), quality=0.5),
            ],
        )

        assert result.ok
        assert [r.source for r in result.topic.reviews] == [
            ReviewSource.QUICK,
            ReviewSource.SCHEDULED,
        ]

    def test_invalid_quality_is_rejected(self, make_topic, t0):
        result = merge_history_edits(make_topic(), [HistoryEdit(at=t0, quality=2.0)])
        assert result.error.kind == ErrorKind.VALIDATION

    def test_day_keys_follow_time_zone(self, make_topic):
        topic = make_topic()
        # 23:30 and 00:30 UTC are the same evening in New York
        edits = [
            HistoryEdit(at=datetime(2024, 5, 11, 23, 30, tzinfo=utc), quality=0.5),
            HistoryEdit(at=datetime(2024, 5, 12, 0, 30, tzinfo=utc), quality=0.0),
        ]

        in_utc = merge_history_edits(topic, edits, time_zone="UTC")
        in_ny = merge_history_edits(topic, edits, time_zone="America/New_York")

        assert len(in_utc.topic.reviews) == 2
        assert len(in_ny.topic.reviews) == 1
        assert in_ny.topic.reviews[0].quality == 0.5


class TestReplay:
    def test_replay_reproduces_live_transitions(self, make_topic, t0):
        topic = make_topic(auto_adjust_preference=AutoAdjustPreference.NEVER)
        topic = record_review(topic, at=t0 + timedelta(days=1), quality=1.0).topic
        topic = record_skip(topic, at=t0 + timedelta(days=1, hours=1)).topic
        topic = record_review(topic, at=t0 + timedelta(days=1, hours=2), quality=0.5).topic
        topic = record_review(topic, at=t0 + timedelta(days=5), quality=0.0).topic

        replayed = replay_topic(topic)

        assert replayed.next_review_date == topic.next_review_date
        assert replayed.stability == pytest.approx(topic.stability)
        assert replayed.reviews_count == topic.reviews_count == 3
        assert replayed.last_reviewed_at == topic.last_reviewed_at
        assert [e.id for e in replayed.events] == [e.id for e in topic.ordered_events]

    def test_replay_after_policy_change(self, make_topic, t0):
        topic = record_review(make_topic(), at=t0 + timedelta(days=1), quality=1.0).topic
        replayed = replay_topic(topic, policy=FIXED)

        assert replayed.interval_index == 1
        assert replayed.next_review_date == t0 + timedelta(days=1 + 4)


def test_auto_skip_overdue_only_touches_previous_days(make_topic, t0):
    overdue = make_topic("Overdue", topic_id="a")
    due_today = replace(make_topic("Today", topic_id="b"), next_review_date=t0 + timedelta(days=2))
    now = t0 + timedelta(days=2, hours=3)

    results = auto_skip_overdue([overdue, due_today], [], now=now)

    assert [r.topic.id for r in results] == ["a"]
    assert results[0].ok
    assert results[0].topic.next_review_date == now + timedelta(days=1)
