"""
Calendar aggregator: buckets topics into a zone-local month grid.

Topics land on the local day of their next review date. The grid always
consists of complete weeks padded with days of the adjacent months.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from spacedrep.application.utils.dates import add_months, day_key, month_start
from spacedrep.domain.constants import (
    FALLBACK_SUBJECT_COLOR,
    FALLBACK_SUBJECT_NAME,
    GENERAL_SUBJECT_ID,
    MAX_VISIBLE_SUBJECTS,
    NO_SUBJECT_ID,
)
from spacedrep.domain.models import Subject, Topic


@dataclass(frozen=True)
class SubjectInfo:
    id: str
    name: str
    color: str
    exam_date: datetime | None = None


@dataclass
class CalendarSubjectEntry:
    subject: SubjectInfo
    topics: list[Topic] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.topics)


@dataclass(frozen=True)
class SubjectOption:
    """A subject present in the rendered grid, with its topic count."""

    subject: SubjectInfo
    count: int


@dataclass(frozen=True)
class CalendarDay:
    date: date
    day_key: str
    is_current_month: bool
    is_today: bool
    is_past: bool
    subjects: list[CalendarSubjectEntry]
    overflow_subjects: list[CalendarSubjectEntry]
    exam_subjects: list[SubjectInfo]
    has_exam: bool
    has_overdue_backlog: bool
    total_topics: int


@dataclass(frozen=True)
class CalendarMonth:
    weeks: list[list[CalendarDay]]
    days: list[CalendarDay]
    subject_options: list[SubjectOption]
    has_visible_content: bool
    total_visible_topics: int
    grid_start: date
    grid_end: date
    overdue_count: int


def _info(subject: Subject, fallback_color: str = FALLBACK_SUBJECT_COLOR) -> SubjectInfo:
    return SubjectInfo(
        id=subject.id,
        name=subject.name,
        color=subject.color or fallback_color,
        exam_date=subject.exam_date,
    )


def _fallback_subject(subjects: list[Subject]) -> SubjectInfo:
    """The bucket for topics without a subject."""
    if not subjects:
        return SubjectInfo(id=NO_SUBJECT_ID, name=FALLBACK_SUBJECT_NAME, color=FALLBACK_SUBJECT_COLOR)
    default = next((s for s in subjects if s.id == GENERAL_SUBJECT_ID), subjects[0])
    return _info(default)


def _by_name(name: str) -> str:
    return name.casefold()


def _week_index(day: date) -> int:
    """Weekday with Sunday as 0."""
    return (day.weekday() + 1) % 7


def build_month(
    topics: Iterable[Topic],
    subjects: Iterable[Subject],
    time_zone: str,
    month_date: datetime | date,
    selected_subject_ids: set[str] | None,
    today_key: str,
    week_starts_on: int = 0,
) -> CalendarMonth:
    """
    Build the month grid containing ``month_date``.

    Args:
        topics: Topics to bucket by the local day of their next review.
        subjects: Known subjects; exam dates are flagged on their local day.
        time_zone: IANA zone for every day key.
        month_date: Any instant (or local date) in the month to render.
        selected_subject_ids: None shows every subject; an empty set shows none.
        today_key: Local ``YYYY-MM-DD`` of today.
        week_starts_on: 0 for Sunday, 1 for Monday.
    """
    subjects = list(subjects)
    infos: dict[str, SubjectInfo] = {s.id: _info(s) for s in subjects}
    fallback = _fallback_subject(subjects)
    infos.setdefault(fallback.id, fallback)

    def resolve(topic: Topic) -> SubjectInfo:
        if topic.subject_id and topic.subject_id in infos:
            return infos[topic.subject_id]
        if topic.subject_id:
            # Dangling reference: keep it as its own bucket.
            info = SubjectInfo(
                id=topic.subject_id,
                name=topic.subject_label or fallback.name,
                color=fallback.color,
            )
            infos[info.id] = info
            return info
        return infos[fallback.id]

    def is_selected(subject_id: str) -> bool:
        return selected_subject_ids is None or subject_id in selected_subject_ids

    by_day: dict[str, dict[str, CalendarSubjectEntry]] = {}
    overdue_count = 0
    for topic in topics:
        info = resolve(topic)
        key = day_key(topic.next_review_date, time_zone)
        if key < today_key and is_selected(info.id):
            overdue_count += 1
        entries = by_day.setdefault(key, {})
        entries.setdefault(info.id, CalendarSubjectEntry(subject=info)).topics.append(topic)

    exams: dict[str, list[SubjectInfo]] = {}
    for subject in subjects:
        if subject.exam_date is None:
            continue
        exams.setdefault(day_key(subject.exam_date, time_zone), []).append(infos[subject.id])

    if isinstance(month_date, datetime):
        first = month_start(month_date, time_zone)
    else:
        first = month_date.replace(day=1)
    month_end = add_months(first, 1)
    grid_start = first - timedelta(days=(_week_index(first) - week_starts_on + 7) % 7)

    days: list[CalendarDay] = []
    in_period: set[str] = set()
    total_visible = 0
    cursor = grid_start
    while cursor < month_end or len(days) % 7 != 0:
        key = cursor.isoformat()
        entries = list(by_day.get(key, {}).values())
        exam_entries = exams.get(key, [])
        in_period.update(e.subject.id for e in entries)
        in_period.update(info.id for info in exam_entries)

        visible = sorted(
            (e for e in entries if is_selected(e.subject.id)),
            key=lambda e: _by_name(e.subject.name),
        )
        exam_subjects = sorted(
            (info for info in exam_entries if is_selected(info.id)),
            key=lambda info: _by_name(info.name),
        )
        day_total = sum(e.count for e in visible)
        total_visible += day_total
        is_today = key == today_key

        days.append(
            CalendarDay(
                date=cursor,
                day_key=key,
                is_current_month=(cursor.year, cursor.month) == (first.year, first.month),
                is_today=is_today,
                is_past=key < today_key,
                subjects=visible[:MAX_VISIBLE_SUBJECTS],
                overflow_subjects=visible[MAX_VISIBLE_SUBJECTS:],
                exam_subjects=exam_subjects,
                has_exam=bool(exam_subjects),
                has_overdue_backlog=is_today and overdue_count > 0,
                total_topics=day_total,
            )
        )
        cursor += timedelta(days=1)

    counts: dict[str, int] = {}
    for day in days:
        for entry in by_day.get(day.day_key, {}).values():
            counts[entry.subject.id] = counts.get(entry.subject.id, 0) + entry.count

    options = sorted(
        (SubjectOption(subject=infos[sid], count=counts.get(sid, 0)) for sid in in_period),
        key=lambda option: _by_name(option.subject.name),
    )

    return CalendarMonth(
        weeks=[days[i : i + 7] for i in range(0, len(days), 7)],
        days=days,
        subject_options=options,
        has_visible_content=any(
            d.subjects or d.overflow_subjects or d.exam_subjects for d in days
        ),
        total_visible_topics=total_visible,
        grid_start=grid_start,
        grid_end=days[-1].date if days else first,
        overdue_count=overdue_count,
    )
