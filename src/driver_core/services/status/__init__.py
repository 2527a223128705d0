"""Delivery status services."""

from .normalizer import (
    Diagnostic,
    DiagnosticKind,
    action_label,
    allowed_next_states,
    normalize,
    to_wire_value,
    validate_transition,
)
from .transitions import TransitionCoordinator

__all__ = [
    "Diagnostic",
    "DiagnosticKind",
    "normalize",
    "to_wire_value",
    "allowed_next_states",
    "validate_transition",
    "action_label",
    "TransitionCoordinator",
]
