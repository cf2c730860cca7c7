from __future__ import annotations
"""Finite state machine utility for the complaint status lifecycle.

Usage:
    from complaint_desk.utils.fsm import TransitionValidator
    fsm = TransitionValidator(STATUS_TRANSITIONS)
    fsm.assert_can_transition(current_status, target_status)

In strict mode a target outside the graph raises ValidationError. Permissive mode
only checks that the target is a known state, which mirrors deployments that
allowed arbitrary status writes.
"""
from typing import Dict, Set

from complaint_desk.errors import ValidationError


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status', strict: bool = True):
        self.graph = graph
        self.field_name = field_name
        self.strict = strict

    def allowed_from(self, current: str) -> Set[str]:
        if not self.strict:
            return {s for s in self.graph if s != current}
        return set(self.graph.get(current, set()))

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def assert_can_transition(self, current: str, target: str):
        if target not in self.graph:
            raise ValidationError.single(self.field_name, f"Unknown {self.field_name} '{target}'")
        if target not in self.allowed_from(current):
            raise ValidationError.single(self.field_name, f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
