"""
In-process cache of computed account balances.

Balances are always derivable from the entries, so the cache is
only an optimization. The posting service invalidates every key
whose as-of date is on or after a new entry's date, which is
exactly the set of balances the new entry can change. Chart edits
move whole subtrees in and out of rollups and clear everything.

Both happen twice: once when the change is flushed, and again when
the writing session commits. A report run in another session in
between still sees the old rows and may cache an old figure.
"""

import logging
import threading
from datetime import date
from typing import NamedTuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.models.enums import Basis

logger = logging.getLogger(__name__)


class BalanceKey(NamedTuple):
    account_code: str
    as_of: date
    basis: Basis
    residence_id: str | None
    include_children: bool


class BalanceCache:

    def __init__(self):
        self._values: dict[BalanceKey, object] = {}
        self._lock = threading.Lock()

    def get(self, key: BalanceKey):
        with self._lock:
            return self._values.get(key)

    def set(self, key: BalanceKey, value) -> None:
        with self._lock:
            self._values[key] = value

    def invalidate(self, from_date: date) -> int:
        """Drop every balance as of from_date or later. Returns the count."""
        with self._lock:
            stale = [key for key in self._values if key.as_of >= from_date]
            for key in stale:
                del self._values[key]
        if stale:
            logger.debug("Invalidated %d cached balances from %s", len(stale), from_date)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def invalidate_on_commit(self, session: Session, from_date: date | None = None) -> None:
        """
        Drop stale balances now and again once the session commits.

        With no from_date the whole cache goes.
        """
        def drop(_session=None):
            if from_date is None:
                self.clear()
            else:
                self.invalidate(from_date)

        drop()
        event.listen(session, "after_commit", drop, once=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


_shared_cache = BalanceCache()


def get_balance_cache() -> BalanceCache | None:
    """The process-wide cache, or None when caching is disabled."""
    if not get_settings().BALANCE_CACHE_ENABLED:
        return None
    return _shared_cache
