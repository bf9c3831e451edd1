"""Terminal presentation helpers."""

from .console import ConsoleReporter
from .messages import MESSAGES, get_message, resolve_locale

__all__ = ["ConsoleReporter", "MESSAGES", "get_message", "resolve_locale"]
