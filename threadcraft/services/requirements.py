"""
Step requirement checks.

A step may list named requirements that must hold in the business context
before a workflow should enter it (payment confirmed, designer assigned...).
The engine reports missing requirements; it does not block transitions on
them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping


@dataclass
class RequirementCheck:
    """Result of checking a set of requirements."""
    valid: bool
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "missing": list(self.missing)}


def _has_id(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value.get("id"))


RULES: Dict[str, Callable[[Mapping[str, Any]], bool]] = {
    "customer_contact_info": lambda c: bool(c.get("customer_email") and c.get("customer_phone")),
    "basic_design_specs": lambda c: isinstance(c.get("design_specs"), Mapping) and len(c["design_specs"]) > 0,
    "payment_confirmation": lambda c: c.get("payment_status") == "confirmed",
    "designer_assigned": lambda c: _has_id(c.get("assigned_designer")),
    "customer_approval": lambda c: c.get("customer_approval_status") == "approved",
    "final_payment": lambda c: c.get("final_payment_status") == "completed",
    "manufacturer_assigned": lambda c: _has_id(c.get("assigned_manufacturer")),
    "inspection_complete": lambda c: (
        isinstance(c.get("quality_inspection"), Mapping)
        and c["quality_inspection"].get("status") == "complete"
    ),
    "packaging_complete": lambda c: c.get("packaging_status") == "complete",
    "tracking_number": lambda c: bool(c.get("tracking_number")),
    "delivery_confirmation": lambda c: c.get("delivery_status") == "confirmed",
}


def check_requirement(requirement: str, context: Mapping[str, Any]) -> bool:
    """
    Check one requirement against a context.

    Custom requirement names pass when the context holds a non-None value
    under that key.
    """
    rule = RULES.get(requirement)
    if rule is None:
        return context.get(requirement) is not None
    return rule(context)


def validate_requirements(requirements: Iterable[str], context: Mapping[str, Any]) -> RequirementCheck:
    missing = [r for r in requirements if not check_requirement(r, context)]
    return RequirementCheck(valid=not missing, missing=missing)
