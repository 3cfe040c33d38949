# Service layer
from .workflow_engine import WorkflowEngine
from .analytics import WorkflowAnalytics
from .actions import ActionHandler, ActionRegistry, create_default_registry
from .requirements import RequirementCheck

__all__ = [
    "WorkflowEngine",
    "WorkflowAnalytics",
    "ActionHandler",
    "ActionRegistry",
    "create_default_registry",
    "RequirementCheck",
]
