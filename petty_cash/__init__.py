"""
Petty-Cash Ledger

A custodial-cash accounting core with:
- Per-holder wallets with non-negative, optionally capped balances
- Expense claims whose submission atomically creates one reimbursement
- Reimbursement and top-up approval workflows
- A derived, read-only ledger projection
"""

__version__ = "0.1.0"
