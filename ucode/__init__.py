"""Zero-configuration runner: detect, build (cached) and run source files."""

__version__ = "0.1.0"

from .exceptions import (  # noqa: E402
    CacheError,
    CompileError,
    ConfigError,
    UcodeError,
    UnsupportedLanguageError,
)
from .orchestrator import Orchestrator  # noqa: E402
from .types import ExecutionResult, Outcome, RunReport, RunStatus  # noqa: E402

__all__ = [
    "CacheError",
    "CompileError",
    "ConfigError",
    "ExecutionResult",
    "Orchestrator",
    "Outcome",
    "RunReport",
    "RunStatus",
    "UcodeError",
    "UnsupportedLanguageError",
    "__version__",
]
