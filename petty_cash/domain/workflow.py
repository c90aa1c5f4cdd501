"""
Canonical workflow types (``petty_cash.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  Expense claims,
reimbursements and top-ups each declare one ``Workflow``; the
``WorkflowExecutor`` resolves actions against these declarations so the
allowed transitions live in one place instead of in ad-hoc status checks.

Architecture position
---------------------
**Domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* A state may have at most one transition per action.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the workflow executor does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``deletes_record=True`` marks a transition whose effect is removal of the
    record rather than a status change (``to_state`` is then a pseudo-state
    that is never persisted).
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    deletes_record: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` are states with no outgoing transitions.
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
                f"Workflow {self.name}: initial state '{self.initial_state}' "
                f"not in states {self.states}"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} references unknown state"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate action '{t.action}' "
                    f"from state '{t.from_state}'"
                )
            seen.add(key)

    def find_transition(self, current_state: str, action: str) -> Transition | None:
        """Return the transition for ``action`` from ``current_state``, if any."""
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        return None

    def allowed_actions(self, current_state: str) -> tuple[str, ...]:
        """Actions that have a transition out of ``current_state``."""
        return tuple(
            t.action for t in self.transitions if t.from_state == current_state
        )


@dataclass(frozen=True)
class TransitionResult:
    """Result of resolving a workflow transition."""

    success: bool
    transition: Transition | None = None
    new_state: str | None = None
    guard_failed: bool = False
    reason: str = ""
