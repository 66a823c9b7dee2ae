# Infrastructure Adapters Package
from .snapshot_file import FileSnapshotRepository, SnapshotFormatError

__all__ = ["FileSnapshotRepository", "SnapshotFormatError"]
