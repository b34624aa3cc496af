"""Lifecycle Engine: role-gated document status transitions and visibility."""

from app.engines.lifecycle.status_machine import (
    TRANSITION_RULES,
    available_transitions,
    can_transition,
    can_view,
    parse_status,
    visible_statuses,
)

__all__ = [
    "TRANSITION_RULES",
    "available_transitions",
    "can_transition",
    "can_view",
    "parse_status",
    "visible_statuses",
]
