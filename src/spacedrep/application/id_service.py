"""Service for generating stable ids for topics and their events."""

from ulid import ULID


def generate_topic_id() -> str:
    """Generate a stable topic ID using ULID."""
    return f"topic_{ULID()}"


def generate_event_id(kind: str) -> str:
    """
    Generate an event ID using ULID.

    ULIDs sort by creation time, which keeps ids stable tie-breakers when two
    events share the same instant.
    """
    return f"{kind}_{ULID()}"
