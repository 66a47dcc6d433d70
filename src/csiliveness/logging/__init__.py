"""Diagnostic logging setup."""

from csiliveness.logging.manager import LoggerManager
from csiliveness.logging.structured import StructuredFormatter, TextFormatter

__all__ = ["LoggerManager", "StructuredFormatter", "TextFormatter"]
