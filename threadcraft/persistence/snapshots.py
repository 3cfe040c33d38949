"""
Snapshot sources for workflow analytics.

Analytics only needs a read-only feed of workflow snapshots. These
repositories provide a clean interface between analytics and wherever the
snapshots come from, so analytics can run against the live engine, a
durable store owned by the application, or a fake in tests.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from threadcraft.domain import WorkflowState

logger = logging.getLogger(__name__)


def _in_range(state: WorkflowState, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and state.created_at < start:
        return False
    if end is not None and state.created_at >= end:
        return False
    return True


class SnapshotRepository(ABC):
    """Read-only source of workflow snapshots."""

    @abstractmethod
    def list_snapshots(
        self,
        workflow_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkflowState]:
        """
        Return snapshots of one workflow type.

        `start` (inclusive) and `end` (exclusive) filter on created_at.
        Returned states must be copies the caller may keep.
        """
        pass


class InMemorySnapshotRepository(SnapshotRepository):
    """Store snapshots in local memory.

    Useful for tests or for analysing snapshots exported from another
    system. Data is not persisted across process restarts.
    """

    def __init__(self, snapshots: Optional[Iterable[WorkflowState]] = None):
        self._snapshots: Dict[str, WorkflowState] = {}
        if snapshots:
            self.extend(snapshots)

    def add(self, state: WorkflowState) -> None:
        """Add or replace the snapshot of one workflow."""
        self._snapshots[state.workflow_id] = state.snapshot()

    def extend(self, states: Iterable[WorkflowState]) -> None:
        for state in states:
            self.add(state)

    def list_snapshots(
        self,
        workflow_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkflowState]:
        return [
            state.snapshot()
            for state in self._snapshots.values()
            if state.workflow_type == workflow_type and _in_range(state, start, end)
        ]


class EngineSnapshotRepository(SnapshotRepository):
    """Snapshots of the instances held by a live WorkflowEngine."""

    def __init__(self, engine):
        self.engine = engine

    def list_snapshots(
        self,
        workflow_type: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkflowState]:
        snapshots = [
            state for state in self.engine.list_workflows(workflow_type)
            if _in_range(state, start, end)
        ]
        logger.debug(f"Loaded {len(snapshots)} {workflow_type} snapshots from engine")
        return snapshots
