"""
Banking Core

Account mutation core for a small banking system: deposits, withdrawals and
atomic transfers over whole-unit balances, with per-account serialization and
an immutable transaction record for every successful mutation.
"""

__version__ = "1.0.0"
