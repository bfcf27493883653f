"""
Canonical workflow types (``winroom_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines.  The installment plan and payment
lifecycles are declared with these so the allowed transitions live in one
table instead of being scattered through service code.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: validated at construction, so a malformed table fails at
    import time rather than at the first transition.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t} uses an unknown state")
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has exits")

    def find_transition(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)
