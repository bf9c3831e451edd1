"""Custom exceptions for the ucode runner."""

from __future__ import annotations

from typing import Iterable, Optional

from ucode.types import Notice


class UcodeError(RuntimeError):
    """Base exception for runner failures."""

    notice: Optional[Notice] = None


class ConfigError(UcodeError):
    """Raised for invalid configuration, arguments or language tables."""


class UnsupportedLanguageError(ConfigError):
    """Raised when no language is registered for an extension."""

    def __init__(self, extension: str, supported: Iterable[str]) -> None:
        self.extension = extension
        self.supported = sorted(supported)
        self.notice = Notice("unsupported_file_type", (f".{extension}",))
        listing = " ".join(f".{ext}" for ext in self.supported)
        super().__init__(
            f"unsupported file type '.{extension}' (supported: {listing})"
        )


class MissingToolchainError(ConfigError):
    """Raised when a compiler or runner is not on PATH."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        self.notice = Notice("required_command_not_found", (tool,))
        super().__init__(f"required command not found: {tool}")


class SourceNotFoundError(ConfigError):
    """Raised when no source file can be resolved."""


class CompileError(UcodeError):
    """Raised when the compiler fails or produces no artifacts."""

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        returncode: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.output = output
        self.returncode = returncode


class CacheError(UcodeError):
    """Raised for I/O failures inside the compilation cache."""


__all__ = [
    "UcodeError",
    "ConfigError",
    "UnsupportedLanguageError",
    "MissingToolchainError",
    "SourceNotFoundError",
    "CompileError",
    "CacheError",
]
