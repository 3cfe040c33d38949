"""
Domain entities for workflow tracking.

A WorkflowState is one running occurrence of a WorkflowDefinition. It is
owned by the WorkflowEngine; everything outside the engine works on
snapshots (deep copies). The entities are independent of any persistence
mechanism.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .enums import HistoryAction


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class WorkflowHistoryEntry:
    """
    One transition record: the step entered and when.

    Entries are immutable once appended to a workflow's history.
    """
    step_id: str
    timestamp: datetime
    actor: str = "system"
    action: HistoryAction = HistoryAction.STEP_TRANSITION
    notes: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "action": HistoryAction(self.action).value,
            "notes": self.notes,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowHistoryEntry":
        return cls(
            step_id=data["step_id"],
            timestamp=parse_timestamp(data["timestamp"]),
            actor=data.get("actor") or "system",
            action=HistoryAction(data.get("action", HistoryAction.STEP_TRANSITION.value)),
            notes=data.get("notes"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class WorkflowState:
    """
    Represents one workflow instance.

    Invariants maintained by the engine:
    - history is never empty; the first entry records the starting step
    - current_step equals the step_id of the most recent history entry
    - updated_at advances on every accepted transition
    """
    workflow_id: str
    workflow_type: str
    current_step: str
    history: List[WorkflowHistoryEntry] = field(default_factory=list)
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        workflow_id: str,
        workflow_type: str,
        initial_step: str,
        entity_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor: str = "system",
        now: Optional[datetime] = None,
    ) -> "WorkflowState":
        """Factory method to create a new instance sitting in its initial step."""
        now = now or utcnow()
        return cls(
            workflow_id=workflow_id,
            workflow_type=workflow_type,
            current_step=initial_step,
            history=[
                WorkflowHistoryEntry(
                    step_id=initial_step,
                    timestamp=now,
                    actor=actor,
                    action=HistoryAction.WORKFLOW_INITIALIZED,
                )
            ],
            entity_id=entity_id,
            entity_type=entity_type,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    def record(self, entry: WorkflowHistoryEntry) -> None:
        """Append a history entry and move the instance to its step."""
        self.history.append(entry)
        self.current_step = entry.step_id
        self.updated_at = entry.timestamp

    def snapshot(self) -> "WorkflowState":
        """Deep copy safe to hand to callers outside the engine."""
        return copy.deepcopy(self)

    @property
    def entered_current_step_at(self) -> datetime:
        """When the instance entered its current step."""
        if self.history:
            return self.history[-1].timestamp
        return self.updated_at

    def elapsed(self, now: Optional[datetime] = None) -> timedelta:
        """Time since the instance was created."""
        return (now or utcnow()) - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type,
            "current_step": self.current_step,
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "metadata": self.metadata,
            "history": [entry.to_dict() for entry in self.history],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        """Rebuild a snapshot from its dict form (e.g. rows from an external store)."""
        history = [WorkflowHistoryEntry.from_dict(e) for e in data.get("history") or []]
        created_at = parse_timestamp(data["created_at"]) if data.get("created_at") else (
            history[0].timestamp if history else utcnow()
        )
        updated_at = parse_timestamp(data["updated_at"]) if data.get("updated_at") else (
            history[-1].timestamp if history else created_at
        )
        current_step = data.get("current_step") or (history[-1].step_id if history else None)
        if current_step is None:
            raise ValueError("Workflow snapshot needs a current_step or a history")

        return cls(
            workflow_id=data["workflow_id"],
            workflow_type=data["workflow_type"],
            current_step=current_step,
            history=history,
            entity_id=data.get("entity_id"),
            entity_type=data.get("entity_type"),
            metadata=dict(data.get("metadata") or {}),
            created_at=created_at,
            updated_at=updated_at,
        )
