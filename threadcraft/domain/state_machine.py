"""
Workflow definitions as finite state machines.

A WorkflowDefinition is an immutable template: its steps are the states and
each step's allowed next steps are the transitions. The engine validates every
instance transition against the definition it was created from. This is a
critical component for ensuring workflow integrity.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Union

from .enums import StepActor
from .errors import (
    InvalidDefinitionError,
    InvalidStepError,
    InvalidTransitionError,
    TerminalStateError,
)

# Terminal steps with these ids count as failures unless declared otherwise
DEFAULT_FAILURE_STEPS = frozenset({"cancelled"})


@dataclass(frozen=True)
class StepDefinition:
    """
    A single step of a workflow definition.

    A step lists the step ids it may move to next. A step may only move to
    itself (a revision loop) when it lists its own id explicitly. Terminal
    steps accept no outgoing transitions at all.
    """
    id: str
    name: str = ""
    transitions: FrozenSet[str] = frozenset()
    terminal: bool = False
    failure: bool = False  # Terminal-failure step such as "cancelled"
    actor: StepActor = StepActor.INTERNAL_STAFF
    on_enter: Tuple[str, ...] = ()
    requirements: Tuple[str, ...] = ()
    timeout_hours: Optional[float] = None
    timeout_action: Optional[str] = None
    timeout_transition: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "transitions", frozenset(self.transitions))
        object.__setattr__(self, "on_enter", tuple(self.on_enter))
        object.__setattr__(self, "requirements", tuple(self.requirements))
        object.__setattr__(self, "actor", StepActor(self.actor))
        if not self.name:
            object.__setattr__(self, "name", self.id.replace("_", " ").title())

    @classmethod
    def from_value(cls, step_id: str, value: Union["StepDefinition", Mapping[str, Any], Iterable[str]]) -> "StepDefinition":
        """
        Build a step from one of the accepted shorthand forms.

        - a StepDefinition (returned as is, ids must match)
        - a mapping of StepDefinition field names (without "id")
        - an iterable of allowed next-step ids
        """
        if isinstance(value, StepDefinition):
            if value.id != step_id:
                raise InvalidDefinitionError(
                    f"Step registered as '{step_id}' declares id '{value.id}'"
                )
            return value

        if isinstance(value, Mapping):
            options = dict(value)
            transitions = frozenset(options.pop("transitions", ()))
            terminal = options.pop("terminal", not transitions)
            failure = options.pop("failure", terminal and step_id in DEFAULT_FAILURE_STEPS)
            try:
                return cls(
                    id=step_id,
                    transitions=transitions,
                    terminal=terminal,
                    failure=failure,
                    **options,
                )
            except TypeError as e:
                raise InvalidDefinitionError(f"Invalid descriptor for step '{step_id}': {e}") from e

        if isinstance(value, str):
            raise InvalidDefinitionError(
                f"Transitions for step '{step_id}' must be a collection, not a string"
            )

        transitions = frozenset(value or ())
        terminal = not transitions
        return cls(
            id=step_id,
            transitions=transitions,
            terminal=terminal,
            failure=terminal and step_id in DEFAULT_FAILURE_STEPS,
        )


StepsInput = Mapping[str, Union[StepDefinition, Mapping[str, Any], Iterable[str]]]


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Named, immutable workflow template.

    `canonical_order` is the nominal forward order of the steps; analytics uses
    it to decide whether a transition moves backwards. Types without a
    canonical order do not support reversal detection.
    """
    name: str
    steps: Mapping[str, StepDefinition]
    start_step: str
    canonical_order: Tuple[str, ...] = ()
    expected_completion_time: Optional[timedelta] = None
    _order_index: Mapping[str, int] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "steps", MappingProxyType(dict(self.steps)))
        object.__setattr__(self, "canonical_order", tuple(self.canonical_order))
        object.__setattr__(
            self,
            "_order_index",
            MappingProxyType({step: i for i, step in enumerate(self.canonical_order)}),
        )
        self._validate()

    @classmethod
    def create(
        cls,
        name: str,
        steps: StepsInput,
        start_step: Optional[str] = None,
        canonical_order: Iterable[str] = (),
        expected_completion_time: Optional[timedelta] = None,
    ) -> "WorkflowDefinition":
        """Factory method accepting StepDefinitions or shorthand step maps."""
        if not name or not str(name).strip():
            raise InvalidDefinitionError("Workflow definition name is required")
        if not steps:
            raise InvalidDefinitionError(f"Workflow '{name}' must define at least one step")

        built = {step_id: StepDefinition.from_value(step_id, value) for step_id, value in steps.items()}
        return cls(
            name=name.strip(),
            steps=built,
            start_step=start_step or next(iter(built)),
            canonical_order=tuple(canonical_order),
            expected_completion_time=expected_completion_time,
        )

    def _validate(self) -> None:
        if not self.steps:
            raise InvalidDefinitionError(f"Workflow '{self.name}' must define at least one step")

        if self.start_step not in self.steps:
            raise InvalidDefinitionError(
                f"Start step '{self.start_step}' is not defined in workflow '{self.name}'"
            )

        for step in self.steps.values():
            unknown = step.transitions - set(self.steps)
            if unknown:
                raise InvalidDefinitionError(
                    f"Step '{step.id}' in workflow '{self.name}' transitions to "
                    f"undefined steps: {', '.join(sorted(unknown))}"
                )
            if step.terminal and step.transitions:
                raise InvalidDefinitionError(
                    f"Terminal step '{step.id}' in workflow '{self.name}' cannot declare transitions"
                )
            if step.timeout_transition and step.timeout_transition not in step.transitions:
                raise InvalidDefinitionError(
                    f"Timeout transition '{step.timeout_transition}' of step '{step.id}' "
                    f"is not an allowed transition"
                )

        unknown_order = [s for s in self.canonical_order if s not in self.steps]
        if unknown_order:
            raise InvalidDefinitionError(
                f"Canonical order of workflow '{self.name}' names undefined steps: "
                f"{', '.join(unknown_order)}"
            )
        if len(set(self.canonical_order)) != len(self.canonical_order):
            raise InvalidDefinitionError(
                f"Canonical order of workflow '{self.name}' repeats steps"
            )

    # ------------------------------------------------------------------
    # Step lookups
    # ------------------------------------------------------------------

    def has_step(self, step_id: str) -> bool:
        return step_id in self.steps

    def require_step(self, step_id: str) -> StepDefinition:
        """Return the step or raise InvalidStepError."""
        try:
            return self.steps[step_id]
        except (KeyError, TypeError):
            raise InvalidStepError(self.name, step_id) from None

    def display_name(self, step_id: str) -> str:
        step = self.steps.get(step_id)
        return step.name if step else step_id

    @property
    def terminal_steps(self) -> FrozenSet[str]:
        return frozenset(s.id for s in self.steps.values() if s.terminal)

    @property
    def failure_steps(self) -> FrozenSet[str]:
        return frozenset(s.id for s in self.steps.values() if s.failure)

    def is_terminal(self, step_id: str) -> bool:
        step = self.steps.get(step_id)
        return bool(step and step.terminal)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def can_transition(self, from_step: str, to_step: str) -> bool:
        """Check if a transition is valid."""
        step = self.steps.get(from_step)
        if step is None or step.terminal:
            return False
        return to_step in step.transitions

    def validate_transition(self, from_step: str, to_step: str) -> None:
        """Validate a transition, raising an error if invalid."""
        step = self.require_step(from_step)
        if step.terminal:
            raise TerminalStateError(from_step, to_step)
        if to_step not in step.transitions:
            raise InvalidTransitionError(from_step, to_step)

    def get_valid_transitions(self, step_id: str) -> Set[str]:
        """Get all valid transitions from a given step."""
        step = self.steps.get(step_id)
        return set(step.transitions) if step else set()

    def get_transition_path(self, from_step: str, to_step: str) -> Optional[List[str]]:
        """
        Find the shortest valid path between two steps using BFS.

        Returns the path as a list of step ids, or None if no path exists.
        """
        if from_step not in self.steps or to_step not in self.steps:
            return None
        if from_step == to_step:
            return [from_step]

        queue = deque([(from_step, [from_step])])
        visited = {from_step}

        while queue:
            current, path = queue.popleft()

            # Sorted for deterministic paths between equally short routes
            for next_step in sorted(self.steps[current].transitions):
                if next_step == to_step:
                    return path + [next_step]

                if next_step not in visited:
                    visited.add(next_step)
                    queue.append((next_step, path + [next_step]))

        return None

    def is_backward(self, from_step: str, to_step: str) -> bool:
        """True when `to_step` comes before `from_step` in the canonical order."""
        from_index = self._order_index.get(from_step)
        to_index = self._order_index.get(to_step)
        if from_index is None or to_index is None:
            return False
        return from_index > to_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "start_step": self.start_step,
            "canonical_order": list(self.canonical_order),
            "expected_completion_time": (
                self.expected_completion_time.total_seconds()
                if self.expected_completion_time is not None else None
            ),
            "steps": [
                {
                    "id": step.id,
                    "name": step.name,
                    "transitions": sorted(step.transitions),
                    "terminal": step.terminal,
                    "failure": step.failure,
                    "actor": step.actor.value,
                    "on_enter": list(step.on_enter),
                    "requirements": list(step.requirements),
                    "timeout_hours": step.timeout_hours,
                    "timeout_transition": step.timeout_transition,
                }
                for step in self.steps.values()
            ],
        }
