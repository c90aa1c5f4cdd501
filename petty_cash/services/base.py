"""
BaseService -- common constructor and result boundary for petty-cash services.

Responsibility:
    Every workflow service receives the store, configuration, clock and
    workflow executor through this constructor, and runs each public
    operation through ``_run``: typed ``PettyCashError``s raised inside a
    unit of work roll it back and come out as a failed ``OperationResult``.
    Anything else is a defect and propagates.

Architecture position:
    Services layer.  Concrete services live beside this module.
"""

from __future__ import annotations

from abc import ABC
from typing import Callable, TypeVar
from uuid import UUID

from petty_cash.config import PettyCashConfig
from petty_cash.domain.clock import Clock, SystemClock
from petty_cash.domain.results import OperationResult
from petty_cash.exceptions import NotFoundError, PettyCashError
from petty_cash.logging_config import CONTEXT_FIELDS, LogContext, get_logger
from petty_cash.persistence.port import Collection, PettyCashStore, StoreTransaction
from petty_cash.services.workflow_executor import WorkflowExecutor

logger = get_logger("services")

T = TypeVar("T")


class BaseService(ABC):
    """
    Abstract base for the petty-cash services.

    Contract:
        Subclasses open units of work on ``self._store`` and raise typed
        errors inside them; public methods wrap their body in ``_run``.

    Non-goals:
        - Does NOT catch non-``PettyCashError`` exceptions.
    """

    def __init__(
        self,
        store: PettyCashStore,
        config: PettyCashConfig | None = None,
        clock: Clock | None = None,
        workflow_executor: WorkflowExecutor | None = None,
    ):
        self._store = store
        self._config = config or PettyCashConfig()
        self._clock = clock or SystemClock()
        self._workflows = workflow_executor or WorkflowExecutor(clock=self._clock)

    def _run(
        self,
        operation: str,
        fn: Callable[[], T],
        **log_fields,
    ) -> OperationResult[T]:
        """Execute ``fn`` and convert a typed failure into a result."""
        bound = {k: log_fields[k] for k in CONTEXT_FIELDS if log_fields.get(k) is not None}
        with LogContext.bind(**bound):
            try:
                value = fn()
            except PettyCashError as exc:
                logger.warning(
                    "operation_rejected",
                    extra={
                        "operation": operation,
                        "error_code": exc.code,
                        "reason": str(exc),
                    },
                )
                return OperationResult.failure(exc)
        return OperationResult.success(value)

    def _locate_wallet_id(
        self,
        collection: Collection,
        record_id: UUID,
        entity_type: str,
    ) -> UUID:
        """Find the wallet a record belongs to, before taking its lock."""
        with self._store.snapshot() as view:
            record = view.get(collection, record_id)
        if record is None:
            raise NotFoundError(entity_type, str(record_id))
        return record.wallet_id

    @staticmethod
    def _require(
        tx: StoreTransaction,
        collection: Collection,
        record_id: UUID,
        entity_type: str,
    ):
        record = tx.get(collection, record_id)
        if record is None:
            raise NotFoundError(entity_type, str(record_id))
        return record
