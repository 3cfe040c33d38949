"""
Built-in ThreadCraft workflow definitions.

- orderFulfillment: standard catalog order from draft to delivery
- supportTicket: customer support conversation
- customClothingProduction: bespoke garment from inquiry to delivery
"""

from datetime import timedelta
from typing import List

from .enums import StepActor
from .state_machine import StepDefinition, WorkflowDefinition

ORDER_FULFILLMENT = "orderFulfillment"
SUPPORT_TICKET = "supportTicket"
CUSTOM_CLOTHING_PRODUCTION = "customClothingProduction"


def order_fulfillment_definition() -> WorkflowDefinition:
    steps = [
        StepDefinition(
            id="draft",
            name="Draft Order",
            actor=StepActor.CUSTOMER,
            transitions={"payment_pending", "cancelled"},
            requirements=("customer_contact_info", "basic_design_specs"),
        ),
        StepDefinition(
            id="payment_pending",
            name="Payment Pending",
            actor=StepActor.CUSTOMER,
            transitions={"design", "cancelled"},
            on_enter=("send_confirmation_email", "assign_order_id"),
            requirements=("payment_confirmation",),
            timeout_hours=7 * 24,
            timeout_action="send_payment_reminder",
            timeout_transition="cancelled",
        ),
        StepDefinition(
            id="design",
            name="Design Phase",
            # Revision cycles loop back into design
            transitions={"design", "production", "cancelled"},
            on_enter=("notify_design_team",),
            requirements=("designer_assigned", "customer_approval"),
            timeout_hours=72,
            timeout_action="escalate_to_design_manager",
        ),
        StepDefinition(
            id="production",
            name="Production",
            transitions={"quality_check", "cancelled"},
            on_enter=("schedule_production",),
            requirements=("final_payment", "manufacturer_assigned"),
        ),
        StepDefinition(
            id="quality_check",
            name="Quality Check",
            transitions={"shipping", "production", "cancelled"},
            requirements=("inspection_complete",),
        ),
        StepDefinition(
            id="shipping",
            name="Shipping",
            transitions={"completed"},
            on_enter=("update_status",),
            requirements=("packaging_complete", "tracking_number"),
        ),
        StepDefinition(
            id="completed",
            name="Completed",
            actor=StepActor.SYSTEM,
            terminal=True,
            on_enter=("update_status",),
            requirements=("delivery_confirmation",),
        ),
        StepDefinition(
            id="cancelled",
            name="Cancelled",
            actor=StepActor.SYSTEM,
            terminal=True,
            failure=True,
            on_enter=("update_status",),
        ),
    ]
    return WorkflowDefinition(
        name=ORDER_FULFILLMENT,
        steps={s.id: s for s in steps},
        start_step="draft",
        canonical_order=(
            "draft", "payment_pending", "design", "production",
            "quality_check", "shipping", "completed",
        ),
        expected_completion_time=timedelta(days=7),
    )


def support_ticket_definition() -> WorkflowDefinition:
    steps = [
        StepDefinition(
            id="open",
            name="Open",
            actor=StepActor.CUSTOMER,
            transitions={"in_progress"},
            requirements=("customer_contact_info",),
        ),
        StepDefinition(
            id="in_progress",
            name="In Progress",
            transitions={"needs_info", "resolved"},
            on_enter=("update_status",),
        ),
        StepDefinition(
            id="needs_info",
            name="Needs Information",
            actor=StepActor.CUSTOMER,
            transitions={"in_progress", "closed_no_response"},
            timeout_hours=72,
            timeout_action="close_for_no_response",
            timeout_transition="closed_no_response",
        ),
        StepDefinition(
            id="resolved",
            name="Resolved",
            transitions={"feedback_pending", "in_progress"},
        ),
        StepDefinition(
            id="feedback_pending",
            name="Feedback Pending",
            actor=StepActor.CUSTOMER,
            transitions={"closed_satisfied", "in_progress"},
            timeout_hours=7 * 24,
            timeout_action="auto_close_satisfied",
            timeout_transition="closed_satisfied",
        ),
        StepDefinition(
            id="closed_satisfied",
            name="Closed (Satisfied)",
            actor=StepActor.SYSTEM,
            terminal=True,
            on_enter=("update_status",),
        ),
        StepDefinition(
            id="closed_no_response",
            name="Closed (No Response)",
            actor=StepActor.SYSTEM,
            terminal=True,
            failure=True,
            on_enter=("update_status",),
        ),
    ]
    return WorkflowDefinition(
        name=SUPPORT_TICKET,
        steps={s.id: s for s in steps},
        start_step="open",
        canonical_order=(
            "open", "in_progress", "needs_info", "resolved",
            "feedback_pending", "closed_satisfied",
        ),
        expected_completion_time=timedelta(days=3),
    )


def custom_clothing_production_definition() -> WorkflowDefinition:
    steps = [
        StepDefinition(
            id="inquiry",
            name="Inquiry",
            actor=StepActor.CUSTOMER,
            transitions={"design", "cancelled"},
            on_enter=("send_confirmation_email",),
            requirements=("customer_contact_info", "basic_design_specs"),
        ),
        StepDefinition(
            id="design",
            name="Design Phase",
            transitions={"design_review", "cancelled"},
            on_enter=("notify_design_team",),
            requirements=("designer_assigned",),
            timeout_hours=72,
            timeout_action="escalate_to_design_manager",
        ),
        StepDefinition(
            id="design_review",
            name="Design Review",
            actor=StepActor.CUSTOMER,
            transitions={"design", "payment_pending", "cancelled"},
            requirements=("customer_approval",),
        ),
        StepDefinition(
            id="payment_pending",
            name="Payment Pending",
            actor=StepActor.CUSTOMER,
            transitions={"materials_sourcing", "cancelled"},
            on_enter=("assign_order_id",),
            requirements=("payment_confirmation",),
            timeout_hours=7 * 24,
            timeout_action="send_payment_reminder",
            timeout_transition="cancelled",
        ),
        StepDefinition(
            id="materials_sourcing",
            name="Materials Sourcing",
            transitions={"production", "cancelled"},
            requirements=("manufacturer_assigned",),
            timeout_hours=5 * 24,
            timeout_action="notify_delay",
        ),
        StepDefinition(
            id="production",
            name="Production",
            transitions={"quality_check"},
            on_enter=("schedule_production",),
            requirements=("final_payment",),
        ),
        StepDefinition(
            id="quality_check",
            name="Quality Check",
            transitions={"shipping", "production"},
            requirements=("inspection_complete",),
        ),
        StepDefinition(
            id="shipping",
            name="Shipping",
            transitions={"delivered"},
            on_enter=("update_status",),
            requirements=("packaging_complete", "tracking_number"),
        ),
        StepDefinition(
            id="delivered",
            name="Delivered",
            actor=StepActor.SYSTEM,
            terminal=True,
            on_enter=("update_status",),
            requirements=("delivery_confirmation",),
        ),
        StepDefinition(
            id="cancelled",
            name="Cancelled",
            actor=StepActor.SYSTEM,
            terminal=True,
            failure=True,
            on_enter=("update_status",),
        ),
    ]
    return WorkflowDefinition(
        name=CUSTOM_CLOTHING_PRODUCTION,
        steps={s.id: s for s in steps},
        start_step="inquiry",
        canonical_order=(
            "inquiry", "design", "design_review", "payment_pending",
            "materials_sourcing", "production", "quality_check",
            "shipping", "delivered",
        ),
        expected_completion_time=timedelta(days=14),
    )


def default_definitions() -> List[WorkflowDefinition]:
    """All built-in ThreadCraft workflow definitions."""
    return [
        order_fulfillment_definition(),
        support_ticket_definition(),
        custom_clothing_production_definition(),
    ]
