"""
Workflow engine - owns workflow definitions and instance state.

Creates instances of registered workflow types, validates and applies step
transitions, and hands out snapshots of state and history. All state lives in
memory; durable storage belongs to the surrounding application.
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from threadcraft.domain import (
    DuplicateDefinitionError,
    DuplicateWorkflowError,
    HistoryAction,
    UnknownWorkflowError,
    UnknownWorkflowTypeError,
    WorkflowDefinition,
    WorkflowHistoryEntry,
    WorkflowError,
    WorkflowState,
    utcnow,
)
from threadcraft.domain.state_machine import StepsInput
from .actions import ActionRegistry, create_default_registry
from .requirements import RequirementCheck, validate_requirements

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    In-memory workflow engine.

    Construct one per application (the composition root owns it) and pass it
    to whatever needs it; separate engines share nothing, which keeps tests
    isolated.

    Concurrency: the registry lock guards the definition and instance maps.
    Every instance has its own lock, so creation and transitions of the same
    workflow_id are serialized and history appends are atomic. Callers only
    ever receive deep copies of instance state.
    """

    def __init__(
        self,
        action_registry: Optional[ActionRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.action_registry = action_registry or create_default_registry()
        self._clock = clock or utcnow
        self._lock = threading.RLock()
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._states: Dict[str, WorkflowState] = {}
        self._instance_locks: Dict[str, threading.RLock] = {}
        # workflow_id -> history length of the step visit whose timeout last fired
        self._timeouts_fired: Dict[str, int] = {}

    # ============================================
    # DEFINITIONS
    # ============================================

    def register_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Register a workflow definition under its name."""
        with self._lock:
            if definition.name in self._definitions:
                raise DuplicateDefinitionError(definition.name)
            self._definitions[definition.name] = definition

        logger.info(
            f"Registered workflow definition '{definition.name}' "
            f"with {len(definition.steps)} steps"
        )
        return definition

    def register_workflow_definition(
        self,
        name: str,
        steps: StepsInput,
        start_step: Optional[str] = None,
        canonical_order: Iterable[str] = (),
        expected_completion_time: Optional[timedelta] = None,
    ) -> WorkflowDefinition:
        """
        Build and register a workflow definition.

        `steps` maps each step id to its allowed next steps (or to a
        StepDefinition / step descriptor dict). The start step defaults to
        the first step.
        """
        with self._lock:
            if name in self._definitions:
                raise DuplicateDefinitionError(name)
            definition = WorkflowDefinition.create(
                name=name,
                steps=steps,
                start_step=start_step,
                canonical_order=canonical_order,
                expected_completion_time=expected_completion_time,
            )
            return self.register_definition(definition)

    def register_default_definitions(self) -> List[WorkflowDefinition]:
        """Register the built-in ThreadCraft workflows."""
        from threadcraft.domain.definitions import default_definitions

        return [self.register_definition(d) for d in default_definitions()]

    def get_definition(self, workflow_type: str) -> WorkflowDefinition:
        """Get a registered definition by workflow type."""
        with self._lock:
            definition = self._definitions.get(workflow_type)
        if definition is None:
            raise UnknownWorkflowTypeError(workflow_type)
        return definition

    def list_definitions(self) -> List[WorkflowDefinition]:
        with self._lock:
            return list(self._definitions.values())

    # ============================================
    # INSTANCES
    # ============================================

    def create_workflow(
        self,
        workflow_type: str,
        initial_step: Optional[str] = None,
        workflow_id: Optional[str] = None,
        entity_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor: str = "system",
    ) -> WorkflowState:
        """
        Create a new workflow instance.

        The instance starts in `initial_step` (the definition's start step by
        default) with exactly one history entry, and the step's on-enter
        actions run.
        """
        definition = self.get_definition(workflow_type)
        step_id = initial_step if initial_step is not None else definition.start_step
        step = definition.require_step(step_id)

        instance_lock = threading.RLock()
        with self._lock:
            if workflow_id is None:
                workflow_id = self._generate_workflow_id(workflow_type, entity_id)
            elif workflow_id in self._states:
                raise DuplicateWorkflowError(workflow_id)

            state = WorkflowState.create(
                workflow_id=workflow_id,
                workflow_type=workflow_type,
                initial_step=step_id,
                entity_id=entity_id,
                entity_type=entity_type,
                metadata=metadata,
                actor=actor,
                now=self._clock(),
            )
            self._states[workflow_id] = state
            self._instance_locks[workflow_id] = instance_lock
            # Hold the instance lock before releasing the registry lock so no
            # transition can run ahead of the on-enter actions
            instance_lock.acquire()

        try:
            logger.info(f"Created workflow {workflow_id} ({workflow_type}) at step {step_id}")
            self.action_registry.run(step.on_enter, state)
            return state.snapshot()
        finally:
            instance_lock.release()

    def transition(
        self,
        workflow_id: str,
        target_step: str,
        actor: str = "system",
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WorkflowState:
        """
        Move a workflow to `target_step`.

        Raises UnknownWorkflowError, TerminalStateError or
        InvalidTransitionError; a refused transition leaves the instance
        untouched.
        """
        state, instance_lock = self._get_live(workflow_id)
        with instance_lock:
            return self._apply_transition(
                state,
                target_step,
                actor=actor,
                notes=notes,
                metadata=metadata,
                action=HistoryAction.STEP_TRANSITION,
            )

    def get_state(self, workflow_id: str) -> WorkflowState:
        """Get a snapshot of a workflow instance."""
        state, instance_lock = self._get_live(workflow_id)
        with instance_lock:
            return state.snapshot()

    def get_history(self, workflow_id: str) -> List[WorkflowHistoryEntry]:
        """Get a copy of a workflow's history, oldest first."""
        return self.get_state(workflow_id).history

    def list_workflows(self, workflow_type: Optional[str] = None) -> List[WorkflowState]:
        """Snapshots of all instances, optionally of one type."""
        with self._lock:
            entries = [
                (state, self._instance_locks[workflow_id])
                for workflow_id, state in self._states.items()
                if workflow_type is None or state.workflow_type == workflow_type
            ]

        snapshots = []
        for state, instance_lock in entries:
            with instance_lock:
                snapshots.append(state.snapshot())
        return snapshots

    def list_active_workflows(self, workflow_type: Optional[str] = None) -> List[WorkflowState]:
        """Snapshots of all instances not sitting in a terminal step."""
        return [
            state for state in self.list_workflows(workflow_type)
            if not self.get_definition(state.workflow_type).is_terminal(state.current_step)
        ]

    # ============================================
    # REQUIREMENTS
    # ============================================

    def get_step_requirements(self, workflow_id: str, step_id: Optional[str] = None) -> List[str]:
        """Requirements of a step (the current step by default) of a workflow's type."""
        state = self.get_state(workflow_id)
        definition = self.get_definition(state.workflow_type)
        step = definition.require_step(step_id or state.current_step)
        return list(step.requirements)

    def check_step_requirements(
        self,
        workflow_id: str,
        step_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> RequirementCheck:
        """
        Check a step's requirements against a context.

        The context defaults to the workflow's own metadata.
        """
        state = self.get_state(workflow_id)
        requirements = self.get_step_requirements(workflow_id, step_id)
        return validate_requirements(requirements, context if context is not None else state.metadata)

    # ============================================
    # TIMEOUTS
    # ============================================

    def handle_step_timeout(
        self,
        workflow_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[WorkflowState]:
        """
        Apply the current step's timeout policy if it has expired.

        Runs the step's timeout action once per step visit and, when the
        step declares a timeout transition, moves the workflow there.
        Returns a snapshot when anything happened, otherwise None.
        """
        state, instance_lock = self._get_live(workflow_id)
        with instance_lock:
            definition = self.get_definition(state.workflow_type)
            step = definition.require_step(state.current_step)
            if step.terminal or step.timeout_hours is None:
                return None

            now = now or self._clock()
            if now - state.entered_current_step_at <= timedelta(hours=step.timeout_hours):
                return None

            visit = len(state.history)
            if self._timeouts_fired.get(workflow_id) == visit:
                return None
            self._timeouts_fired[workflow_id] = visit

            logger.warning(f"Step timeout reached for workflow {workflow_id}, step {step.id}")
            if step.timeout_action:
                self.action_registry.run([step.timeout_action], state)

            if step.timeout_transition:
                return self._apply_transition(
                    state,
                    step.timeout_transition,
                    actor="system",
                    notes=f"Timed out after {step.timeout_hours:g}h in {step.id}",
                    action=HistoryAction.STEP_TIMEOUT,
                )
            return state.snapshot()

    def process_timeouts(self, now: Optional[datetime] = None) -> List[str]:
        """Apply timeout policies to every active workflow; returns ids that were affected."""
        affected = []
        for state in self.list_active_workflows():
            if self.handle_step_timeout(state.workflow_id, now=now) is not None:
                affected.append(state.workflow_id)
        return affected

    # ============================================
    # INTERNALS
    # ============================================

    def _get_live(self, workflow_id: str):
        with self._lock:
            state = self._states.get(workflow_id)
            if state is None:
                raise UnknownWorkflowError(workflow_id)
            return state, self._instance_locks[workflow_id]

    def _apply_transition(
        self,
        state: WorkflowState,
        target_step: str,
        actor: str,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        action: HistoryAction = HistoryAction.STEP_TRANSITION,
    ) -> WorkflowState:
        """Validate and apply a transition; caller holds the instance lock."""
        definition = self.get_definition(state.workflow_type)
        from_step = state.current_step
        try:
            definition.validate_transition(from_step, target_step)
        except WorkflowError as e:
            logger.warning(f"Refused transition for workflow {state.workflow_id}: {e}")
            raise

        metadata = dict(metadata or {})
        state.record(
            WorkflowHistoryEntry(
                step_id=target_step,
                timestamp=self._clock(),
                actor=actor,
                action=action,
                notes=notes,
                metadata=metadata,
            )
        )
        state.metadata.update(metadata)

        logger.info(
            f"Workflow {state.workflow_id} moved {from_step} -> {target_step} by {actor}"
        )
        self.action_registry.run(definition.steps[target_step].on_enter, state)
        return state.snapshot()

    def _generate_workflow_id(self, workflow_type: str, entity_id: Optional[str]) -> str:
        """Build a readable unique id; caller holds the registry lock."""
        suffix = entity_id or uuid4().hex[:12]
        workflow_id = f"{workflow_type}_{suffix}_{int(time.time() * 1000)}"
        if workflow_id in self._states:
            workflow_id = f"{workflow_id}_{uuid4().hex[:8]}"
        return workflow_id
