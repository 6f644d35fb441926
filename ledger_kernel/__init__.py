"""
Ledger Kernel

Bookkeeping engine for the newsroom admin portal:
- Orders, client payments and employee payouts kept mutually consistent
- Automatic reversal transactions on invoice toggles and deletions
- Bulk payout of ad-notification send history
- One unit of work per logical operation
"""

__version__ = "0.1.0"
