"""
Workflow error taxonomy.

Every error the engine raises has its own class so callers (typically the
HTTP layer) can tell "not found" apart from "invalid transition" apart from
"duplicate registration".
"""


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""
    pass


class InvalidDefinitionError(WorkflowError, ValueError):
    """Raised when a workflow definition is internally inconsistent."""
    pass


class DuplicateDefinitionError(WorkflowError):
    """Raised when a workflow type name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Workflow definition '{name}' is already registered")


class UnknownWorkflowTypeError(WorkflowError):
    """Raised when a workflow type has no registered definition."""

    def __init__(self, workflow_type: str):
        self.workflow_type = workflow_type
        super().__init__(f"Workflow type '{workflow_type}' not found")


class InvalidStepError(WorkflowError):
    """Raised when a step is not a member of a workflow definition."""

    def __init__(self, workflow_type: str, step: str):
        self.workflow_type = workflow_type
        self.step = step
        super().__init__(f"Step '{step}' is not defined in workflow '{workflow_type}'")


class UnknownWorkflowError(WorkflowError):
    """Raised when no workflow instance exists for an id."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class InvalidTransitionError(WorkflowError):
    """Raised when an invalid step transition is attempted."""

    def __init__(self, from_step: str, to_step: str, message: str = None):
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(message or f"Invalid transition from {from_step} to {to_step}")


class TerminalStateError(InvalidTransitionError):
    """Raised when a transition is attempted out of a terminal step."""

    def __init__(self, from_step: str, to_step: str):
        super().__init__(
            from_step,
            to_step,
            f"Step {from_step} is terminal; cannot transition to {to_step}",
        )


class UnknownExpectedDurationError(WorkflowError):
    """Raised in strict analytics mode when a type has no expected duration."""

    def __init__(self, workflow_type: str):
        self.workflow_type = workflow_type
        super().__init__(f"No expected completion time configured for '{workflow_type}'")


class DuplicateWorkflowError(WorkflowError):
    """Raised when a caller-supplied workflow id is already in use."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} already exists")
