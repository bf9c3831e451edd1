"""Shared constants for the ucode runner."""

from __future__ import annotations

APP_NAME = "ucode"

DEFAULT_MAX_CACHE_AGE_S = 7 * 24 * 60 * 60
CACHE_KEY_HEX_CHARS = 32
ARCHIVE_SUFFIX = ".zip"
TEMP_PREFIX = ".tmp-"

KILL_GRACE_S = 2.0

TIMEOUT_RANGE_S = (0, 3600)
MEMORY_RANGE_MB = (50, 4096)
DEFAULT_SANDBOX_MEMORY_MB = 500

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TIMEOUT = 124
EXIT_SIGNAL_BASE = 128

SHELL_METACHARACTERS = frozenset(";&|<>$()\\`")
