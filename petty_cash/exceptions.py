"""
Typed Exception Hierarchy for the Petty-Cash Ledger.

Every business-rule violation has its own exception class with a static,
machine-readable ``code`` and the structured data needed to act on it.
Callers of the public services never see these raised: the service
boundary converts them into an ``OperationResult`` (see
``petty_cash.domain.results``).  Inside a unit of work they are raised
so that the transaction rolls back.

    PettyCashError (base)
    |
    +-- ValidationError
    +-- InsufficientFundsError
    +-- LimitExceededError
    +-- InvalidStateTransitionError
    +-- NotFoundError
    +-- IntegrityViolationError

Category          | Code                      | When Raised
------------------|---------------------------|------------------------------------
Validation        | VALIDATION_ERROR          | Bad input, submit without attachment
Funds             | INSUFFICIENT_FUNDS        | Deduction would make balance negative
Funds             | LIMIT_EXCEEDED            | Credit would exceed balance limit
Workflow          | INVALID_STATE_TRANSITION  | Action not allowed from current status
Lookup            | NOT_FOUND                 | Unknown id
Integrity         | INTEGRITY_VIOLATION       | Delete non-zero wallet / non-draft claim
"""

from decimal import Decimal


class PettyCashError(Exception):
    """
    Base exception for all petty-cash errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "PETTY_CASH_ERROR"


class ValidationError(PettyCashError):
    """Input or precondition is invalid."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InsufficientFundsError(PettyCashError):
    """Deduction would leave the wallet with a negative balance."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, wallet_id: str, balance: Decimal, requested: Decimal):
        self.wallet_id = wallet_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient funds in wallet {wallet_id}: "
            f"balance={balance}, requested={requested}"
        )


class LimitExceededError(PettyCashError):
    """Credit would push the wallet balance above its limit."""

    code: str = "LIMIT_EXCEEDED"

    def __init__(
        self,
        wallet_id: str,
        balance: Decimal,
        amount: Decimal,
        balance_limit: Decimal,
    ):
        self.wallet_id = wallet_id
        self.balance = balance
        self.amount = amount
        self.balance_limit = balance_limit
        super().__init__(
            f"Credit of {amount} to wallet {wallet_id} exceeds limit "
            f"{balance_limit} (balance={balance})"
        )


class InvalidStateTransitionError(PettyCashError):
    """Operation attempted from a state that does not allow it."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        self.reason = reason
        message = (
            f"Cannot {action} {entity_type} {entity_id} "
            f"in state '{current_state}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NotFoundError(PettyCashError):
    """Entity with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class IntegrityViolationError(PettyCashError):
    """Operation would break a structural invariant."""

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Integrity violation on {entity_type} {entity_id}: {reason}")
