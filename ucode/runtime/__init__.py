"""Program execution and sandbox wrapping."""

from .executor import Executor
from .sandbox import (
    SANDBOX_ADAPTERS,
    DetectedSandbox,
    SandboxAdapter,
    detect_available_sandbox,
    register_sandbox,
    unregister_sandbox,
    wrap_command,
)

__all__ = [
    "DetectedSandbox",
    "Executor",
    "SANDBOX_ADAPTERS",
    "SandboxAdapter",
    "detect_available_sandbox",
    "register_sandbox",
    "unregister_sandbox",
    "wrap_command",
]
