"""Project-specific exception types."""

from __future__ import annotations

from typing import Sequence


class LumePackError(RuntimeError):
    """Base error for domain-level lumepack failures."""


class ConfigError(LumePackError):
    """Raised when build or export configuration is missing or malformed."""


class LumeCommandError(LumePackError):
    """Raised when the lume CLI exits non-zero.

    The message is exactly the trimmed combined output of the command so the
    tool's own diagnostic reaches the user unchanged.
    """

    def __init__(self, cmd: Sequence[str], output: str, code: int):
        self.cmd = list(cmd)
        self.output = output
        self.code = code
        super().__init__(output)


class CommandCancelledError(LumePackError):
    """Raised when a running lume command is terminated by cancellation."""


class StepError(LumePackError):
    """Raised (and recorded on the build state) when a build step fails."""


class BuildError(LumePackError):
    """Raised when the build step sequence halts on an error."""


class BuildCancelledError(LumePackError):
    """Raised when the build is cancelled between steps."""


class ExportError(LumePackError):
    """Raised on filesystem or split failures during export."""
