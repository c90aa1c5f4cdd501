"""
petty_cash.services.workflow_executor -- Workflow transition resolution.

Responsibility:
    Resolves an action against a declared ``Workflow`` and evaluates the
    transition's guard.  Every resolution (allowed or not) emits a
    structured ``workflow_transition`` trace record.  The workflow services
    call ``require_transition`` inside their units of work; a refusal raises
    and rolls the unit back.

Architecture position:
    Services layer.  Imports domain workflow types and exceptions only.
"""

from __future__ import annotations

import time
from typing import Any, Callable
from uuid import UUID

from petty_cash.domain.clock import Clock, SystemClock
from petty_cash.domain.workflow import Guard, Transition, TransitionResult, Workflow
from petty_cash.exceptions import InvalidStateTransitionError, ValidationError
from petty_cash.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"


def _get_attr(ctx: Any, key: str, default: Any = None) -> Any:
    if isinstance(ctx, dict):
        return ctx.get(key, default)
    return getattr(ctx, key, default)


class GuardExecutor:
    """Evaluates workflow guards against context.

    Guards are declared on transitions (name + description).  This executor
    holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Returns True if guard passes."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning(
                "guard_no_evaluator",
                extra={"guard_name": guard.name},
            )
            return False
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


def default_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the petty-cash evaluators registered."""
    ex = GuardExecutor()
    ex.register(
        "attachments_present",
        lambda ctx: int(_get_attr(ctx, "attachment_count", 0) or 0) > 0,
    )
    return ex


class WorkflowExecutor:
    """Resolves workflow transitions with guard evaluation."""

    def __init__(
        self,
        clock: Clock | None = None,
        guard_executor: GuardExecutor | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._guard_executor = guard_executor or default_guard_executor()

    def execute_transition(
        self,
        workflow: Workflow,
        entity_type: str,
        entity_id: UUID,
        current_state: str,
        action: str,
        context: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Resolve ``action`` from ``current_state``.

        Returns a ``TransitionResult``; never raises for a refused action.
        """
        t0 = time.monotonic()

        transition = workflow.find_transition(current_state, action)
        if transition is None:
            reason = (
                f"No transition from '{current_state}' via action '{action}' "
                f"in workflow '{workflow.name}'"
            )
            self._emit_trace(
                workflow, action, entity_type, entity_id, current_state,
                OUTCOME_NO_TRANSITION, reason, t0,
            )
            return TransitionResult(success=False, reason=reason)

        if transition.guard is not None:
            if not self._guard_executor.evaluate(transition.guard, context or {}):
                reason = f"Guard not satisfied: {transition.guard.name}"
                self._emit_trace(
                    workflow, action, entity_type, entity_id, current_state,
                    OUTCOME_GUARD_FAILED, reason, t0,
                )
                return TransitionResult(
                    success=False,
                    transition=transition,
                    guard_failed=True,
                    reason=reason,
                )

        self._emit_trace(
            workflow, action, entity_type, entity_id, current_state,
            OUTCOME_SUCCESS, "Transition allowed", t0,
            to_state=transition.to_state,
        )
        return TransitionResult(
            success=True,
            transition=transition,
            new_state=transition.to_state,
            reason="Transition allowed",
        )

    def require_transition(
        self,
        workflow: Workflow,
        entity_type: str,
        entity_id: UUID,
        current_state: str,
        action: str,
        context: dict[str, Any] | None = None,
    ) -> Transition:
        """Resolve ``action`` or raise.

        Raises:
            InvalidStateTransitionError: no transition for ``action``.
            ValidationError: the transition's guard is not satisfied.
        """
        result = self.execute_transition(
            workflow, entity_type, entity_id, current_state, action, context,
        )
        if result.success:
            return result.transition
        if result.guard_failed:
            raise ValidationError(
                f"Cannot {action} {entity_type} {entity_id}: "
                f"{result.transition.guard.description}",
                field=result.transition.guard.name,
            )
        raise InvalidStateTransitionError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            current_state=current_state,
            action=action,
        )

    def _emit_trace(
        self,
        workflow: Workflow,
        action: str,
        entity_type: str,
        entity_id: UUID,
        from_state: str,
        outcome: str,
        reason: str,
        t0: float,
        to_state: str | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
            "ts": self._clock.now().isoformat(),
            "workflow": workflow.name,
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "from_state": from_state,
            "outcome": outcome,
            "reason": reason,
            "duration_ms": round((time.monotonic() - t0) * 1000, 3),
        }
        if to_state is not None:
            record["to_state"] = to_state
        record.update(LogContext.get_all())
        logger.info("workflow_transition", extra=record)
