"""
Error classes for the hive engine.

Only the compiler and the stores raise. Everything that runs a bot, a tool,
a plan, or a scheduled wake contains its failures and reports them as values
(ExecutionResult, ToolResult, fallback SubTasks) so that one bad call never
takes down a whole run.
"""
from __future__ import annotations


class BothiveError(Exception):
    """Base exception for the hive engine."""


class HiveSyntaxError(BothiveError):
    """Raised by the compiler for a malformed HiveLang construct."""

    def __init__(self, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line


class ToolNotFoundError(BothiveError, KeyError):
    """No tool registered under the requested name or capability."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "Tool not found"


class SubTaskStateError(BothiveError):
    """Illegal transition on a SubTask (e.g. reassigning a worker)."""


class JobNotFoundError(BothiveError, KeyError):
    """Unknown pulse or workforce job id."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "Job not found"
