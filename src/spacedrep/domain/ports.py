"""
Ports (interfaces) for topic storage.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import Snapshot


class TopicRepository(ABC):
    """
    Port for loading and persisting topic/subject snapshots.

    Implementations:
        - FileSnapshotRepository: JSON or YAML snapshot file on disk.
    """

    @abstractmethod
    def load(self) -> Snapshot:
        """
        Load the current snapshot.

        Returns:
            Snapshot with every topic (including its events) and subject.
        """
        pass

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """
        Persist a full snapshot, replacing the previous one.

        Args:
            snapshot: The snapshot to write.
        """
        pass
