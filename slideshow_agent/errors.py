from __future__ import annotations

from typing import Optional, Sequence


class AssemblyError(Exception):
    """Base error for the slideshow assembly pipelines."""


class ConfigurationError(AssemblyError):
    """Raised when a required external tool is missing or the configuration is unusable."""


class InputValidationError(AssemblyError, ValueError):
    """Raised for caller input that can never be assembled (no images, no audio, ...)."""


class StageExecutionError(AssemblyError):
    """Raised when an external tool call exits with a non-zero status."""

    def __init__(
        self,
        message: str,
        stage: str,
        returncode: Optional[int] = None,
        command: Optional[Sequence[str]] = None,
        diagnostic: str = "",
    ):
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode
        self.command = list(command or [])
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        base = super().__str__()
        if self.diagnostic:
            return f"{base}\n{self.diagnostic}"
        return base


class StageTimeoutError(StageExecutionError):
    """Raised when an external tool call exceeded its timeout and was killed."""


class ResourceCreationError(AssemblyError):
    """Raised when a stage reports success but its output file is missing."""

    def __init__(self, message: str, stage: str, path=None):
        super().__init__(message)
        self.stage = stage
        self.path = path
