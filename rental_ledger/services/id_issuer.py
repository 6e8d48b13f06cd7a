"""
Transaction id issuers.

The posting service asks an issuer for every new transaction id
instead of building one from the clock, so ids stay unique under
concurrent posting and tests can use predictable values.
"""

import itertools
import threading
import uuid
from typing import Protocol


class IdIssuer(Protocol):
    def next_id(self) -> str:
        ...


class UuidIssuer:
    """Random ids, safe across processes. The default."""

    def __init__(self, prefix: str = "TXN-"):
        self.prefix = prefix

    def next_id(self) -> str:
        return f"{self.prefix}{uuid.uuid4().hex.upper()}"


class SequenceIssuer:
    """
    Monotonic ids from an in-process counter.

    Only unique within one process; use it for tests and
    single-worker deployments.
    """

    def __init__(self, prefix: str = "TXN", start: int = 1, width: int = 8):
        self.prefix = prefix
        self.width = width
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{self.prefix}{value:0{self.width}d}"
