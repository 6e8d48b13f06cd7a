"""
Read-only lookups into the records the ledger points at.

Payments, expenses, debtors, vendors and residences are owned by
other services. The drill-down only needs a display name and an
owning residence for each, so it talks to them through the small
Directory protocol below.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from rental_ledger.config import get_settings
from rental_ledger.models.enums import SourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryRecord:
    label: str
    # Person or company behind the record, e.g. the student who
    # made a payment. Falls back to label when absent.
    party: str | None = None
    residence_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.party or self.label


class Directory(Protocol):
    def lookup(self, kind: SourceKind, record_id: str) -> DirectoryRecord | None:
        ...

    def residence_name(self, residence_id: str) -> str | None:
        ...


class InMemoryDirectory:
    """
    Directory backed by dictionaries.

    Good enough for tests and for deployments that export a
    nightly snapshot of names to a JSON file:

        {
          "residences": {"res-1": "St Kilda"},
          "debtor": {"deb-1": {"label": "Debtor 001", "party": "Jane Doe"}},
          "payment": {"pay-9": {"label": "PAY-9", "party": "Jane Doe",
                                "residence_id": "res-1"}}
        }
    """

    def __init__(self):
        self._records: dict[SourceKind, dict[str, DirectoryRecord]] = {
            kind: {} for kind in SourceKind
        }
        self._residences: dict[str, str] = {}

    def register(
        self,
        kind: SourceKind,
        record_id: str,
        label: str,
        party: str | None = None,
        residence_id: str | None = None,
    ) -> None:
        self._records[kind][record_id] = DirectoryRecord(label, party, residence_id)

    def register_residence(self, residence_id: str, name: str) -> None:
        self._residences[residence_id] = name

    def lookup(self, kind: SourceKind, record_id: str) -> DirectoryRecord | None:
        return self._records[kind].get(record_id)

    def residence_name(self, residence_id: str) -> str | None:
        return self._residences.get(residence_id)

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryDirectory":
        directory = cls()
        data = json.loads(Path(path).read_text(encoding="utf-8"))

        for residence_id, name in data.get("residences", {}).items():
            directory.register_residence(residence_id, name)

        for kind in SourceKind:
            for record_id, record in data.get(kind.value, {}).items():
                if isinstance(record, str):
                    directory.register(kind, record_id, record)
                else:
                    directory.register(
                        kind,
                        record_id,
                        record["label"],
                        record.get("party"),
                        record.get("residence_id"),
                    )
        return directory


_file_directory: InMemoryDirectory | None = None


def get_directory() -> Directory:
    """
    FastAPI dependency for the configured directory.

    Reads DIRECTORY_FILE once. Without one, every lookup misses and
    drill-down falls back to metadata and descriptions.
    """
    global _file_directory
    if _file_directory is None:
        settings = get_settings()
        if settings.DIRECTORY_FILE:
            _file_directory = InMemoryDirectory.from_file(settings.DIRECTORY_FILE)
            logger.info("Loaded directory from %s", settings.DIRECTORY_FILE)
        else:
            _file_directory = InMemoryDirectory()
    return _file_directory
