"""Log formatters for the sidecar.

``TextFormatter`` writes klog-style lines, matching the other CSI sidecars
running in the same pod. ``StructuredFormatter`` writes one JSON object per
line for log collectors.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came from ``extra=``
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_SEVERITY_LETTERS = {
    logging.DEBUG: "D",
    logging.INFO: "I",
    logging.WARNING: "W",
    logging.ERROR: "E",
    logging.CRITICAL: "F",
}


def _caller(record: logging.LogRecord) -> str:
    return f"{record.filename}:{record.lineno}"


class StructuredFormatter(logging.Formatter):
    """JSON log formatter.

    Example output::

        {"timestamp": "2024-01-15T10:30:45.123456+00:00", "level": "ERROR",
         "logger": "csiliveness.probe.prober",
         "message": "Health check failed: DEADLINE_EXCEEDED: Deadline Exceeded",
         "component": "csi-liveness"}
    """

    def __init__(
        self,
        include_source_location: bool = False,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize the formatter.

        Args:
            include_source_location: Add a ``caller`` field (``file:line``).
            extra_fields: Static fields added to every entry.
        """
        super().__init__()
        self.include_source_location = include_source_location
        self.extra_fields = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_source_location:
            entry["caller"] = _caller(record)

        if record.exc_info and record.exc_info[0] is not None:
            entry["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }

        entry.update(self.extra_fields)
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(entry, default=repr)


class TextFormatter(logging.Formatter):
    """klog-style text formatter.

    Produces lines like::

        I0115 10:30:45.123456   12345 prober.py:61] Health check succeeded
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        severity = _SEVERITY_LETTERS.get(record.levelno, "I")
        line = (
            f"{severity}{created:%m%d %H:%M:%S.%f} {(record.thread or 0) % 10**7:7d} "
            f"{_caller(record)}] {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
