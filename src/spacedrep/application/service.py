"""
Review Service: Application layer orchestrator.

Loads a snapshot from the repository, runs the pure scheduling engine on it
and persists successful transitions.
"""

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import date, datetime

from spacedrep.application import review_log
from spacedrep.application.adaptive_scheduler import Checkpoint, project_topic_schedule
from spacedrep.application.calendar import CalendarMonth, build_month
from spacedrep.application.curves import TopicCurve, build_curve
from spacedrep.application.risk import RankedTopic, rank_topics
from spacedrep.application.utils.dates import day_key, parse_instant
from spacedrep.domain.constants import (
    DEFAULT_SAMPLE_POINTS,
    DEFAULT_TIME_ZONE,
    MAX_PROJECTED_REVIEWS,
)
from spacedrep.domain.models import (
    HistoryEdit,
    ReviewSource,
    SchedulingPolicy,
    Snapshot,
    Topic,
    TransitionResult,
)
from spacedrep.domain.ports import TopicRepository

logger = logging.getLogger(__name__)


class TopicNotFoundError(KeyError):
    """Raised when a topic id is not in the snapshot."""

    def __init__(self, topic_id: str):
        super().__init__(topic_id)
        self.topic_id = topic_id

    def __str__(self) -> str:
        return f"Topic not found: {self.topic_id}"


class ReviewService:
    """
    Application service for reviewing topics and reading derived views.

    Depends on the TopicRepository abstraction, not a concrete adapter.
    """

    def __init__(
        self,
        repository: TopicRepository,
        policy: SchedulingPolicy | None = None,
        time_zone: str = DEFAULT_TIME_ZONE,
        max_projected_reviews: int = MAX_PROJECTED_REVIEWS,
    ):
        """
        Args:
            repository: The repository (port) holding topics and subjects.
            policy: Scheduling knobs; engine defaults if not provided.
            time_zone: IANA zone for every local-day decision.
            max_projected_reviews: Cap for schedule previews.
        """
        self._repo = repository
        self._policy = policy or SchedulingPolicy()
        self._tz = time_zone
        self._max_reviews = max_projected_reviews

    # ---------- helpers ----------

    def _find(self, snapshot: Snapshot, topic_id: str) -> Topic:
        for topic in snapshot.topics:
            if topic.id == topic_id:
                return topic
        raise TopicNotFoundError(topic_id)

    def _commit(self, snapshot: Snapshot, updated: Iterable[Topic]) -> Snapshot:
        by_id = {t.id: t for t in updated}
        topics = tuple(by_id.get(t.id, t) for t in snapshot.topics)
        new_snapshot = replace(snapshot, topics=topics)
        self._repo.save(new_snapshot)
        return new_snapshot

    def _transition(self, topic_id: str, apply) -> TransitionResult:
        snapshot = self._repo.load()
        topic = self._find(snapshot, topic_id)
        result = apply(topic, snapshot.subject_for(topic))
        if result.ok:
            self._commit(snapshot, [result.topic])
        return result

    # ---------- queries ----------

    def topics(self) -> list[Topic]:
        return list(self._repo.load().topics)

    def rank(self, now: datetime) -> list[RankedTopic]:
        snapshot = self._repo.load()
        return rank_topics(snapshot.topics, snapshot.subjects, now)

    def preview_schedule(self, topic_id: str, lapses: int = 0) -> list[Checkpoint]:
        snapshot = self._repo.load()
        topic = self._find(snapshot, topic_id)
        return project_topic_schedule(
            topic,
            snapshot.subject_for(topic),
            self._policy,
            max_reviews=self._max_reviews,
            lapses=lapses,
        )

    def curve(
        self, topic_id: str, now: datetime, point_count: int = DEFAULT_SAMPLE_POINTS
    ) -> TopicCurve:
        topic = self._find(self._repo.load(), topic_id)
        return build_curve(topic, now, point_count)

    def calendar(
        self,
        now: datetime,
        month: datetime | date | None = None,
        subject_ids: set[str] | None = None,
        week_starts_on: int = 0,
    ) -> CalendarMonth:
        snapshot = self._repo.load()
        now = parse_instant(now)
        return build_month(
            topics=snapshot.topics,
            subjects=snapshot.subjects,
            time_zone=self._tz,
            month_date=month or now,
            selected_subject_ids=subject_ids,
            today_key=day_key(now, self._tz),
            week_starts_on=week_starts_on,
        )

    # ---------- commands ----------

    def add_topic(self, title: str, now: datetime, **kwargs) -> Topic:
        snapshot = self._repo.load()
        topic = review_log.create_topic(title, now=now, policy=self._policy, **kwargs)
        self._repo.save(replace(snapshot, topics=snapshot.topics + (topic,)))
        logger.info(f"Added topic {topic.id} ({title})")
        return topic

    def review(
        self,
        topic_id: str,
        at: datetime,
        quality: float | None = None,
        adjust_future: bool | None = None,
        quick: bool = False,
    ) -> TransitionResult:
        source = ReviewSource.QUICK if quick else ReviewSource.SCHEDULED
        return self._transition(
            topic_id,
            lambda topic, subject: review_log.record_review(
                topic,
                at=at,
                quality=quality,
                adjust_future=adjust_future,
                source=source,
                subject=subject,
                policy=self._policy,
                time_zone=self._tz,
            ),
        )

    def skip(self, topic_id: str, at: datetime) -> TransitionResult:
        return self._transition(
            topic_id,
            lambda topic, subject: review_log.record_skip(
                topic, at=at, subject=subject, policy=self._policy
            ),
        )

    def edit_history(self, topic_id: str, edits: list[HistoryEdit]) -> TransitionResult:
        return self._transition(
            topic_id,
            lambda topic, subject: review_log.merge_history_edits(
                topic, edits, subject=subject, policy=self._policy, time_zone=self._tz
            ),
        )

    def roll_over(self, now: datetime) -> list[TransitionResult]:
        """Skip every topic left overdue from a previous day."""
        snapshot = self._repo.load()
        results = review_log.auto_skip_overdue(
            snapshot.topics,
            snapshot.subjects,
            now=now,
            time_zone=self._tz,
            policy=self._policy,
        )
        skipped = [r.topic for r in results if r.ok]
        if skipped:
            self._commit(snapshot, skipped)
            logger.info(f"Rolled over {len(skipped)} overdue topic(s)")
        return results
