"""
Logging setup.

Configures the ``vems`` logger hierarchy once at application start. Request
records from the observability middleware carry their fields through
``extra=``; the formatter appends them as ``key=value`` pairs.
"""

import logging
from vems.app.core.config import settings

# Attributes every LogRecord has; anything else came in through ``extra=``
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Formatter that renders ``extra`` fields after the message."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        pairs = " ".join(f"{key}={value}" for key, value in sorted(extras.items()))
        return f"{base} | {pairs}"


def configure_logging(level: str = None) -> None:
    root = logging.getLogger("vems")
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())
    root.propagate = False
