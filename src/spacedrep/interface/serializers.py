"""JSON-ready views of engine results, shared by the CLI and the HTTP server."""

import dataclasses
from datetime import date, datetime
from enum import Enum
from typing import Any

from spacedrep.application.curves import SegmentSamples
from spacedrep.application.utils.dates import format_instant
from spacedrep.domain.models import Topic


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, instants and enums into plain JSON types."""
    if isinstance(value, Topic):
        return topic_summary(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, datetime):
        return format_instant(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, SegmentSamples)):
        return [to_jsonable(v) for v in value]
    return value


def topic_summary(topic: Topic) -> dict[str, Any]:
    return {
        "id": topic.id,
        "title": topic.title,
        "subject_id": topic.subject_id,
        "next_review_date": format_instant(topic.next_review_date),
        "last_reviewed_at": (
            format_instant(topic.last_reviewed_at) if topic.last_reviewed_at else None
        ),
        "interval_index": topic.interval_index,
        "stability": topic.stability,
        "retrievability_target": topic.retrievability_target,
        "reviews_count": topic.reviews_count,
    }
