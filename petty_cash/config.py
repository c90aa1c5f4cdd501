"""
Petty-Cash Configuration Schema.

Defines the structure and defaults for ledger settings.  Actual values are
loaded from a YAML file (``load_config``) or a mapping at startup and passed
to ``PettyCashOrchestrator``.

The three ``*_wallet_*`` switches control whether workflow transitions move
wallet balances.  They are off by default: completing a top-up, submitting a
claim and paying a reimbursement change only the workflow records unless the
deployment opts in.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

import yaml

from petty_cash.logging_config import get_logger

logger = get_logger("config")

VALID_COUNTER_RESETS = {"never", "monthly"}


@dataclass(frozen=True)
class PettyCashConfig:
    """
    Configuration schema for the petty-cash ledger.

        config = PettyCashConfig(
            counter_reset="monthly",
            credit_wallet_on_top_up_completion=True,
        )
    """

    # Document numbering: {PREFIX}-{YY}{MM}-{NNNN}
    expense_claim_prefix: str = "PC-EXP"
    reimbursement_prefix: str = "PC-RMB"
    top_up_prefix: str = "PC-TOP"
    sequence_width: int = 4
    counter_reset: str = "never"  # "never" or "monthly"

    # Balance effects of workflow transitions
    credit_wallet_on_top_up_completion: bool = False
    deduct_wallet_on_claim_submission: bool = False
    credit_wallet_on_reimbursement_payment: bool = False

    # Quantum for derived claim totals
    amount_precision: Decimal = Decimal("0.01")

    def __post_init__(self):
        for name in ("expense_claim_prefix", "reimbursement_prefix", "top_up_prefix"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"{name} cannot be empty")

        prefixes = {self.expense_claim_prefix, self.reimbursement_prefix, self.top_up_prefix}
        if len(prefixes) != 3:
            raise ValueError("document prefixes must be distinct")

        if self.sequence_width < 1:
            raise ValueError("sequence_width must be at least 1")

        if self.counter_reset not in VALID_COUNTER_RESETS:
            raise ValueError(
                f"Invalid counter_reset: {self.counter_reset}. "
                f"Must be one of {sorted(VALID_COUNTER_RESETS)}"
            )

        if not isinstance(self.amount_precision, Decimal):
            object.__setattr__(self, "amount_precision", Decimal(str(self.amount_precision)))
        if self.amount_precision <= 0:
            raise ValueError("amount_precision must be positive")

        logger.debug(
            "petty_cash_config_initialized",
            extra={
                "counter_reset": self.counter_reset,
                "credit_wallet_on_top_up_completion": self.credit_wallet_on_top_up_completion,
                "deduct_wallet_on_claim_submission": self.deduct_wallet_on_claim_submission,
                "credit_wallet_on_reimbursement_payment": self.credit_wallet_on_reimbursement_payment,
            },
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PettyCashConfig:
        """
        Build a config from a mapping, rejecting unknown keys.

        Raises:
            ValueError: on unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown petty cash config keys: {sorted(unknown)}")
        return cls(**dict(data))


def load_config(path: Path | str) -> PettyCashConfig:
    """
    Load a ``PettyCashConfig`` from a YAML file.

    The file may hold the settings at top level or under a ``petty_cash`` key.
    An empty file yields the defaults.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: on unknown keys or invalid values.
    """
    path = Path(path)
    with path.open() as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    if "petty_cash" in data:
        data = data["petty_cash"] or {}
    config = PettyCashConfig.from_dict(data)
    logger.info("petty_cash_config_loaded", extra={"path": str(path)})
    return config
