# Domain Package
from .models import (
    AutoAdjustPreference,
    ErrorKind,
    HistoryEdit,
    ReviewedEvent,
    ReviewSource,
    ScheduleMode,
    SchedulingPolicy,
    SkippedEvent,
    Snapshot,
    StartedEvent,
    Subject,
    Topic,
    TopicEvent,
    TransitionError,
    TransitionResult,
)
from .ports import TopicRepository

__all__ = [
    "AutoAdjustPreference",
    "ErrorKind",
    "HistoryEdit",
    "ReviewedEvent",
    "ReviewSource",
    "ScheduleMode",
    "SchedulingPolicy",
    "SkippedEvent",
    "Snapshot",
    "StartedEvent",
    "Subject",
    "Topic",
    "TopicEvent",
    "TopicRepository",
    "TransitionError",
    "TransitionResult",
]
