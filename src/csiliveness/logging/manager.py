"""Logger manager for the sidecar's diagnostic output.

All modules log through children of the ``csiliveness`` logger. The manager
owns the one handler attached there and detaches it again on shutdown, so
embedding applications and tests get their logging back untouched.
"""

import logging
import sys
from typing import Optional

from csiliveness.config import LoggingConfig
from csiliveness.logging.structured import StructuredFormatter, TextFormatter

ROOT_LOGGER_NAME = "csiliveness"


class LoggerManager:
    """Configures logging for all ``csiliveness`` modules.

    Example:
        >>> manager = LoggerManager(LoggingConfig(level="DEBUG", format="json"))
        >>> manager.configure()
        >>> logging.getLogger("csiliveness.probe").info("Probing")
        >>> manager.shutdown()
    """

    def __init__(self, config: LoggingConfig) -> None:
        self.config = config
        self._handler: Optional[logging.Handler] = None

    def configure(self) -> None:
        """Attach the handler and set the level. Repeated calls are no-ops."""
        if self._handler is not None:
            return

        self._handler = self._build_handler()
        sidecar_logger = logging.getLogger(ROOT_LOGGER_NAME)
        sidecar_logger.addHandler(self._handler)
        sidecar_logger.setLevel(self._parse_level(self.config.level))
        sidecar_logger.propagate = False

    def shutdown(self) -> None:
        """Detach and close the handler, restoring default propagation."""
        if self._handler is None:
            return

        sidecar_logger = logging.getLogger(ROOT_LOGGER_NAME)
        sidecar_logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None

        sidecar_logger.setLevel(logging.NOTSET)
        sidecar_logger.propagate = True

    def set_level(self, level: str) -> None:
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(self._parse_level(level))

    def add_extra_field(self, key: str, value: str) -> None:
        """Add a static field to every JSON entry. Ignored for text output."""
        if self._handler is not None and isinstance(self._handler.formatter, StructuredFormatter):
            self._handler.formatter.extra_fields[key] = value

    @property
    def is_configured(self) -> bool:
        return self._handler is not None

    def _build_handler(self) -> logging.Handler:
        if self.config.output_file:
            handler: logging.Handler = logging.FileHandler(self.config.output_file, encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stderr)

        if self.config.format == "json":
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(TextFormatter())
        return handler

    @staticmethod
    def _parse_level(level: str) -> int:
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
