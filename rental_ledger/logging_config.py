"""
Logging setup.

Every module logs through logging.getLogger(__name__). This module
only decides where those records go and how they look. Records are
rendered as a single key=value line so they stay grep-able in the
container logs.
"""

import logging
import sys

_HANDLER_NAME = "rental_ledger"

# Attributes present on every LogRecord. Anything else was passed
# through `extra=` and gets appended to the line.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Formats a record as `time level logger message key=value ...`."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if not extras:
            return base
        fields = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{base} {fields}"


def configure_logging(level: str = "INFO") -> None:
    """
    Install the application handler on the root logger.

    Safe to call more than once: the handler is replaced, not
    duplicated, so reloading the app under uvicorn does not
    double every line.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(KeyValueFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s"
    ))
    root.addHandler(handler)
    root.setLevel(level)
