"""Persistence layer.

Provides the SQLite database manager and the typed LedgerStore through
which pricing, claims and referrals read and write state.
"""

from zirox.storage.database import ZiroxDatabase
from zirox.storage.store import UNITS_PER_TOKEN, LedgerStore, from_units, to_units

__all__ = [
    "LedgerStore",
    "UNITS_PER_TOKEN",
    "ZiroxDatabase",
    "from_units",
    "to_units",
]
