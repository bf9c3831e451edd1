"""Compiler invocation."""

from .builder import Builder, launch_command, resolve_flags, resolve_tool

__all__ = ["Builder", "launch_command", "resolve_flags", "resolve_tool"]
