# Application Package
from .retention import interval_days, retrievability, update_stability
from .review_log import (
    auto_skip_overdue,
    create_topic,
    merge_history_edits,
    record_review,
    record_skip,
    replay_topic,
)
from .service import ReviewService, TopicNotFoundError

__all__ = [
    "retrievability",
    "interval_days",
    "update_stability",
    "create_topic",
    "record_review",
    "record_skip",
    "merge_history_edits",
    "replay_topic",
    "auto_skip_overdue",
    "ReviewService",
    "TopicNotFoundError",
]
