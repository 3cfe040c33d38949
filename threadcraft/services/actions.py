"""
On-enter action handlers for workflow steps.

Steps name the actions to run when an instance enters them. Each action
name maps to a handler; the registry allows for dynamic handler
registration. Delivery of emails and notifications is owned by the
surrounding application, so the built-in handlers record what they would
send in the log.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from threadcraft.domain import WorkflowState

logger = logging.getLogger(__name__)


class ActionHandler(ABC):
    """
    Base class for on-enter action handlers.

    Handlers receive the live workflow state while the engine holds its
    lock; they may update `state.metadata` but must not touch the history.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the action name this handler implements."""
        pass

    @abstractmethod
    def execute(self, state: WorkflowState) -> None:
        """
        Execute the action for a workflow instance.

        Raises:
            Exception: On any failure
        """
        pass


class ActionRegistry:
    """
    Registry for action handlers.

    Allows dynamic registration and lookup of handlers by action name.
    """

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """Register an action handler."""
        self._handlers[handler.name] = handler
        logger.debug(f"Registered handler for action: {handler.name}")

    def get_handler(self, name: str) -> Optional[ActionHandler]:
        """Get a handler for an action name."""
        return self._handlers.get(name)

    def list_actions(self) -> list:
        """List all registered action names."""
        return list(self._handlers.keys())

    def run(self, names: Iterable[str], state: WorkflowState) -> List[str]:
        """
        Run actions in order, returning the names that failed.

        A failing action is logged and the remaining actions still run; the
        transition that triggered them has already been accepted.
        """
        failed = []
        for name in names:
            handler = self.get_handler(name)
            if handler is None:
                logger.info(f"Action {name} not implemented, skipping")
                continue
            try:
                handler.execute(state)
            except Exception:
                logger.exception(
                    f"Failed to execute action {name} for workflow {state.workflow_id}"
                )
                failed.append(name)
        return failed


# ============================================
# BUILT-IN ACTION HANDLERS
# ============================================

def _subject(state: WorkflowState) -> str:
    if state.entity_id:
        return f"{state.entity_type or 'entity'} {state.entity_id}"
    return f"workflow {state.workflow_id}"


class NotificationHandler(ActionHandler):
    """
    Handler that announces a workflow event.

    Used for all actions whose effect is a message to a person or team.
    """

    def __init__(self, name: str, message: str, level: str = "info"):
        self._name = name
        self.message = message
        self.level = level

    @property
    def name(self) -> str:
        return self._name

    def execute(self, state: WorkflowState) -> None:
        log_func = getattr(logger, self.level, logger.info)
        log_func(f"[WorkflowAction] {self.message} for {_subject(state)}")


class AssignOrderIdHandler(ActionHandler):
    """Assigns an order number to the instance metadata once."""

    @property
    def name(self) -> str:
        return "assign_order_id"

    def execute(self, state: WorkflowState) -> None:
        if state.metadata.get("order_id"):
            return
        order_id = f"ORD-{int(time.time() * 1000)}"
        state.metadata["order_id"] = order_id
        logger.info(f"Assigned order ID {order_id} to {_subject(state)}")


class UpdateStatusHandler(ActionHandler):
    """Mirrors the current step into the instance metadata as its status."""

    @property
    def name(self) -> str:
        return "update_status"

    def execute(self, state: WorkflowState) -> None:
        state.metadata["status"] = state.current_step
        logger.info(f"Updated status of {_subject(state)} to {state.current_step}")


def create_default_registry() -> ActionRegistry:
    """Create a registry with all built-in handlers."""
    registry = ActionRegistry()

    registry.register(AssignOrderIdHandler())
    registry.register(UpdateStatusHandler())
    registry.register(NotificationHandler("send_confirmation_email", "Sending confirmation email"))
    registry.register(NotificationHandler("notify_design_team", "Notifying design team"))
    registry.register(NotificationHandler("schedule_production", "Scheduling production"))
    registry.register(NotificationHandler("send_payment_reminder", "Sending payment reminder"))
    registry.register(NotificationHandler(
        "escalate_to_design_manager", "Escalating to design manager", level="warning",
    ))
    registry.register(NotificationHandler(
        "close_for_no_response", "Closing for lack of customer response",
    ))
    registry.register(NotificationHandler("auto_close_satisfied", "Auto-closing as satisfied"))
    registry.register(NotificationHandler("notify_delay", "Notifying customer of delay", level="warning"))

    return registry
