"""
Value objects produced by workflow analytics.

They are derived from a batch of workflow snapshots and are never stored
back into the engine. All durations are in seconds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from .enums import ImpactLevel, InsightType, RiskLevel, Trend


@dataclass
class BottleneckAnalysis:
    """Dwell-time and stuck-instance summary for one step."""
    step_id: str
    step_name: str
    average_time_spent: float
    workflows_stuck: int
    impact: ImpactLevel
    recommendations: List[str] = field(default_factory=list)
    longest_current_stay: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "average_time_spent": self.average_time_spent,
            "workflows_stuck": self.workflows_stuck,
            "impact": self.impact.value,
            "recommendations": list(self.recommendations),
            "longest_current_stay": self.longest_current_stay,
        }


@dataclass
class StepPerformance:
    """Visit statistics for one step."""
    step_id: str
    step_name: str
    total_transitions: int
    average_time_in_step: float
    success_rate: float
    common_exit_points: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "total_transitions": self.total_transitions,
            "average_time_in_step": self.average_time_in_step,
            "success_rate": self.success_rate,
            "common_exit_points": list(self.common_exit_points),
        }


@dataclass
class WorkflowMetrics:
    """Aggregate performance of a batch of workflows of one type."""
    total_workflows: int = 0
    completed_workflows: int = 0
    average_completion_time: float = 0.0
    success_rate: float = 0.0
    bottlenecks: List[BottleneckAnalysis] = field(default_factory=list)
    step_performance: List[StepPerformance] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_workflows": self.total_workflows,
            "completed_workflows": self.completed_workflows,
            "average_completion_time": self.average_completion_time,
            "success_rate": self.success_rate,
            "bottlenecks": [b.to_dict() for b in self.bottlenecks],
            "step_performance": [s.to_dict() for s in self.step_performance],
        }


@dataclass
class TransitionPatterns:
    """From/to transition counts mined from workflow histories."""
    transition_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    loop_detection: Dict[str, int] = field(default_factory=dict)
    most_common_paths: List[Dict[str, Any]] = field(default_factory=list)
    unusual_patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transition_counts": {k: dict(v) for k, v in self.transition_counts.items()},
            "loop_detection": dict(self.loop_detection),
            "most_common_paths": [dict(p) for p in self.most_common_paths],
            "unusual_patterns": list(self.unusual_patterns),
        }


@dataclass
class WorkflowPrediction:
    """Completion estimate for one active workflow."""
    workflow_id: str
    current_step: str
    time_spent_so_far: float
    estimated_remaining_time: float
    estimated_completion_time: datetime
    average_time_in_current_step: float
    risk_level: RiskLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "current_step": self.current_step,
            "time_spent_so_far": self.time_spent_so_far,
            "estimated_remaining_time": self.estimated_remaining_time,
            "estimated_completion_time": self.estimated_completion_time.isoformat(),
            "average_time_in_current_step": self.average_time_in_current_step,
            "risk_level": self.risk_level.value,
        }


@dataclass
class DemandForecast:
    """Creation-rate forecast from the trailing 30 days."""
    daily_average: float = 0.0
    projected_weekly: float = 0.0
    projected_monthly: float = 0.0
    trend: Trend = Trend.STABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_average": self.daily_average,
            "projected_weekly": self.projected_weekly,
            "projected_monthly": self.projected_monthly,
            "trend": self.trend.value,
        }


@dataclass
class PredictiveAnalytics:
    active_predictions: List[WorkflowPrediction] = field(default_factory=list)
    demand_forecast: DemandForecast = field(default_factory=DemandForecast)
    resource_recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_predictions": [p.to_dict() for p in self.active_predictions],
            "demand_forecast": self.demand_forecast.to_dict(),
            "resource_recommendations": list(self.resource_recommendations),
        }


@dataclass
class BusinessInsight:
    """A ranked, human-readable finding with the numbers that justify it."""
    type: InsightType
    title: str
    description: str
    impact: ImpactLevel
    action_items: List[str] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "impact": self.impact.value,
            "action_items": list(self.action_items),
            "metrics": dict(self.metrics),
        }
