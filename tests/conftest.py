from datetime import datetime, timedelta

import pytest

from spacedrep.application.review_log import create_topic
from spacedrep.application.utils.dates import utc
from spacedrep.domain.models import SchedulingPolicy, Snapshot, Subject
from spacedrep.domain.ports import TopicRepository

T0 = datetime(2024, 5, 10, 12, 0, tzinfo=utc)


class InMemoryRepository(TopicRepository):
    """Keeps the snapshot in memory and counts saves."""

    def __init__(self, snapshot: Snapshot | None = None):
        self.snapshot = snapshot or Snapshot()
        self.saves = 0

    def load(self) -> Snapshot:
        return self.snapshot

    def save(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.saves += 1


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp location and clear SPACEDREP_* env vars."""
    import os

    config_file = tmp_path / "config" / "config.toml"
    monkeypatch.setattr("spacedrep.application.config.CONFIG_FILE", config_file)
    for key in list(os.environ):
        if key.startswith("SPACEDREP_"):
            monkeypatch.delenv(key)
    return config_file


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def policy():
    return SchedulingPolicy()


@pytest.fixture
def make_topic():
    """Factory for freshly created topics anchored at T0."""

    def _make(title="Krebs cycle", now=T0, policy=None, **kwargs):
        return create_topic(title, now=now, policy=policy or SchedulingPolicy(), **kwargs)

    return _make


@pytest.fixture
def biology():
    return Subject(
        id="bio",
        name="Biology",
        color="#22c55e",
        exam_date=T0 + timedelta(days=30),
    )


@pytest.fixture
def snapshot(make_topic, biology):
    return Snapshot(
        topics=(
            make_topic("Krebs cycle", topic_id="t-krebs", subject_id="bio"),
            make_topic("Glycolysis", topic_id="t-glyco", subject_id="bio"),
            make_topic("Ohm's law", topic_id="t-ohm"),
        ),
        subjects=(biology,),
    )


@pytest.fixture
def memory_repo(snapshot):
    return InMemoryRepository(snapshot)
