"""
Domain enums for workflow tracking and analytics.

These enums define the fixed vocabularies used by history entries,
step actors and the analytics value objects.
"""

from enum import Enum


class HistoryAction(str, Enum):
    """
    Kind of event recorded in a workflow history entry.

    - WORKFLOW_INITIALIZED: Initial entry written when an instance is created
    - STEP_TRANSITION: Entry written for every accepted transition
    - STEP_TIMEOUT: Entry written when a timeout policy moved the instance
    """
    WORKFLOW_INITIALIZED = "workflow_initialized"
    STEP_TRANSITION = "step_transition"
    STEP_TIMEOUT = "step_timeout"


class StepActor(str, Enum):
    """Party expected to act on a workflow step."""
    CUSTOMER = "customer"
    INTERNAL_STAFF = "internal_staff"
    SYSTEM = "system"


class ImpactLevel(str, Enum):
    """
    Severity of a bottleneck or business insight.

    Levels are ordered: LOW < MEDIUM < HIGH.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _IMPACT_RANK[self]


_IMPACT_RANK = {
    ImpactLevel.LOW: 0,
    ImpactLevel.MEDIUM: 1,
    ImpactLevel.HIGH: 2,
}


class RiskLevel(str, Enum):
    """Risk of an active workflow missing its expected completion time."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Trend(str, Enum):
    """Direction of workflow creation volume between two 30-day windows."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class InsightType(str, Enum):
    """Category of a business insight."""
    EFFICIENCY = "efficiency"
    BOTTLENECK = "bottleneck"
    TREND = "trend"
    RECOMMENDATION = "recommendation"
