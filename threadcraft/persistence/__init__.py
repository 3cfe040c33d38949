# Snapshot sources
from .snapshots import (
    SnapshotRepository,
    InMemorySnapshotRepository,
    EngineSnapshotRepository,
)

__all__ = [
    "SnapshotRepository",
    "InMemorySnapshotRepository",
    "EngineSnapshotRepository",
]
