"""
Repository Factory
Centralizes the logic for selecting the snapshot storage adapter.
"""

from spacedrep.application.config import AppConfig
from spacedrep.application.service import ReviewService
from spacedrep.domain.ports import TopicRepository
from spacedrep.infrastructure.adapters.snapshot_file import FileSnapshotRepository


def get_topic_repository(config: AppConfig) -> TopicRepository:
    """
    Returns the TopicRepository for the configured snapshot path.
    """
    return FileSnapshotRepository(config.snapshot_path)


def get_review_service(config: AppConfig) -> ReviewService:
    return ReviewService(
        get_topic_repository(config),
        policy=config.to_policy(),
        time_zone=config.time_zone,
        max_projected_reviews=config.max_projected_reviews,
    )
