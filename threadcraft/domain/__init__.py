# Domain models
from .enums import HistoryAction, StepActor, ImpactLevel, RiskLevel, Trend, InsightType
from .errors import (
    WorkflowError,
    InvalidDefinitionError,
    DuplicateDefinitionError,
    UnknownWorkflowTypeError,
    InvalidStepError,
    UnknownWorkflowError,
    InvalidTransitionError,
    TerminalStateError,
    UnknownExpectedDurationError,
    DuplicateWorkflowError,
)
from .entities import WorkflowState, WorkflowHistoryEntry, utcnow
from .state_machine import StepDefinition, WorkflowDefinition
from .insights import (
    BottleneckAnalysis,
    StepPerformance,
    WorkflowMetrics,
    TransitionPatterns,
    WorkflowPrediction,
    DemandForecast,
    PredictiveAnalytics,
    BusinessInsight,
)

__all__ = [
    "HistoryAction",
    "StepActor",
    "ImpactLevel",
    "RiskLevel",
    "Trend",
    "InsightType",
    "WorkflowError",
    "InvalidDefinitionError",
    "DuplicateDefinitionError",
    "UnknownWorkflowTypeError",
    "InvalidStepError",
    "UnknownWorkflowError",
    "InvalidTransitionError",
    "TerminalStateError",
    "UnknownExpectedDurationError",
    "DuplicateWorkflowError",
    "WorkflowState",
    "WorkflowHistoryEntry",
    "utcnow",
    "StepDefinition",
    "WorkflowDefinition",
    "BottleneckAnalysis",
    "StepPerformance",
    "WorkflowMetrics",
    "TransitionPatterns",
    "WorkflowPrediction",
    "DemandForecast",
    "PredictiveAnalytics",
    "BusinessInsight",
]
