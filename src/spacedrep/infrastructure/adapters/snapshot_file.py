"""
File Snapshot Repository: Infrastructure adapter for on-disk snapshots.

Implements TopicRepository on top of a single JSON or YAML file using the
camelCase layout of the desktop app's state export.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from spacedrep.application.utils.dates import format_instant, parse_instant
from spacedrep.domain.constants import DEFAULT_INTERVALS
from spacedrep.domain.models import (
    AutoAdjustPreference,
    ReviewedEvent,
    ReviewSource,
    SkippedEvent,
    Snapshot,
    StartedEvent,
    Subject,
    Topic,
    TopicEvent,
)
from spacedrep.domain.ports import TopicRepository

logger = logging.getLogger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


class SnapshotFormatError(ValueError):
    """Raised when a snapshot file cannot be decoded."""


# ---------- Decoding ----------


def _instant(value: Any):
    return None if value is None else parse_instant(value)


def decode_event(raw: dict[str, Any]) -> TopicEvent:
    kind = raw["type"]
    at = parse_instant(raw["at"])
    if kind == "started":
        return StartedEvent(id=raw["id"], at=at)
    if kind == "skipped":
        return SkippedEvent(id=raw["id"], at=at, next_review_at=parse_instant(raw["nextReviewAt"]))
    if kind == "reviewed":
        return ReviewedEvent(
            id=raw["id"],
            at=at,
            quality=raw.get("reviewQuality"),
            interval_days=float(raw.get("intervalDays", 0.0)),
            resulting_stability=float(raw.get("resultingStability", 0.0)),
            target_retrievability=float(raw.get("targetRetrievability", 0.0)),
            next_review_at=parse_instant(raw.get("nextReviewAt", raw["at"])),
            retrievability_at_review=raw.get("retrievabilityAtReview"),
            adjusted=bool(raw.get("adjusted", True)),
            source=ReviewSource(raw.get("source", ReviewSource.SCHEDULED.value)),
        )
    raise ValueError(f"Unknown event type: {kind!r}")


def decode_subject(raw: dict[str, Any]) -> Subject:
    return Subject(
        id=raw["id"],
        name=raw["name"],
        color=raw.get("color"),
        exam_date=_instant(raw.get("examDate")),
        difficulty_modifier=raw.get("difficultyModifier"),
    )


def decode_topic(raw: dict[str, Any]) -> Topic:
    defaults = Topic.__dataclass_fields__
    return Topic(
        id=raw["id"],
        title=raw["title"],
        notes=raw.get("notes") or "",
        subject_id=raw.get("subjectId"),
        subject_label=raw.get("subjectLabel"),
        intervals=tuple(raw.get("intervals") or DEFAULT_INTERVALS),
        interval_index=int(raw.get("intervalIndex", 0)),
        next_review_date=parse_instant(raw["nextReviewDate"]),
        last_reviewed_at=_instant(raw.get("lastReviewedAt")),
        stability=float(raw.get("stability", defaults["stability"].default)),
        retrievability_target=float(
            raw.get("retrievabilityTarget", defaults["retrievability_target"].default)
        ),
        reviews_count=int(raw.get("reviewsCount", 0)),
        events=tuple(decode_event(e) for e in raw.get("events") or []),
        created_at=parse_instant(raw["createdAt"]),
        started_at=_instant(raw.get("startedAt")),
        quick_revision_last_used_at=_instant(raw.get("reviseNowLastUsedAt")),
        auto_adjust_preference=AutoAdjustPreference(raw.get("autoAdjustPreference", "ask")),
    )


def decode_snapshot(data: Any) -> Snapshot:
    if data is None:
        return Snapshot()
    if not isinstance(data, dict):
        raise ValueError("Snapshot root must be a mapping")
    return Snapshot(
        topics=tuple(decode_topic(t) for t in data.get("topics") or []),
        subjects=tuple(decode_subject(s) for s in data.get("subjects") or []),
    )


# ---------- Encoding ----------


def _format(value) -> str | None:
    return None if value is None else format_instant(value)


def encode_event(event: TopicEvent) -> dict[str, Any]:
    data: dict[str, Any] = {"id": event.id, "type": event.type, "at": format_instant(event.at)}
    if isinstance(event, SkippedEvent):
        data["nextReviewAt"] = format_instant(event.next_review_at)
    elif isinstance(event, ReviewedEvent):
        data.update(
            {
                "reviewQuality": event.quality,
                "intervalDays": event.interval_days,
                "resultingStability": event.resulting_stability,
                "targetRetrievability": event.target_retrievability,
                "nextReviewAt": format_instant(event.next_review_at),
                "retrievabilityAtReview": event.retrievability_at_review,
                "adjusted": event.adjusted,
                "source": event.source.value,
            }
        )
    return data


def encode_subject(subject: Subject) -> dict[str, Any]:
    return {
        "id": subject.id,
        "name": subject.name,
        "color": subject.color,
        "examDate": _format(subject.exam_date),
        "difficultyModifier": subject.difficulty_modifier,
    }


def encode_topic(topic: Topic) -> dict[str, Any]:
    return {
        "id": topic.id,
        "title": topic.title,
        "notes": topic.notes,
        "subjectId": topic.subject_id,
        "subjectLabel": topic.subject_label,
        "intervals": list(topic.intervals),
        "intervalIndex": topic.interval_index,
        "nextReviewDate": format_instant(topic.next_review_date),
        "lastReviewedAt": _format(topic.last_reviewed_at),
        "stability": topic.stability,
        "retrievabilityTarget": topic.retrievability_target,
        "reviewsCount": topic.reviews_count,
        "events": [encode_event(e) for e in topic.ordered_events],
        "createdAt": format_instant(topic.created_at),
        "startedAt": _format(topic.started_at),
        "reviseNowLastUsedAt": _format(topic.quick_revision_last_used_at),
        "autoAdjustPreference": topic.auto_adjust_preference.value,
    }


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "topics": [encode_topic(t) for t in snapshot.topics],
        "subjects": [encode_subject(s) for s in snapshot.subjects],
    }


# ---------- Repository ----------


class FileSnapshotRepository(TopicRepository):
    """
    Reads and writes the whole snapshot as one file.

    The format follows the suffix: ``.yaml``/``.yml`` for YAML, JSON otherwise.
    A missing file is an empty snapshot.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def is_yaml(self) -> bool:
        return self.path.suffix.lower() in YAML_SUFFIXES

    def load(self) -> Snapshot:
        if not self.path.exists():
            logger.debug(f"No snapshot at {self.path}; starting empty")
            return Snapshot()

        text = self.path.read_text(encoding="utf-8")
        try:
            data = yaml.safe_load(text) if self.is_yaml else json.loads(text or "null")
            return decode_snapshot(data)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise SnapshotFormatError(f"Could not parse {self.path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotFormatError(f"Invalid snapshot in {self.path}: {e}") from e

    def save(self, snapshot: Snapshot) -> None:
        data = encode_snapshot(snapshot)
        if self.is_yaml:
            text = yaml.dump(
                data,
                sort_keys=False,
                allow_unicode=True,
                default_flow_style=False,
                width=10**9,
            )
        else:
            text = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so a crash never leaves a half-written snapshot.
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved {len(snapshot.topics)} topic(s) to {self.path}")
