"""Error taxonomy with error codes and recovery hints.

Error Code Convention:
    CH4xx - Temporal (git history) errors
    CH9xx - Persistence errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Structured error codes for logging and debugging."""

    # Temporal errors (CH4xx)
    CH400 = "CH400"  # Git not found
    CH401 = "CH401"  # Git log failed
    CH402 = "CH402"  # Git subprocess timeout
    CH403 = "CH403"  # No default branch

    # Persistence errors (CH9xx)
    CH900 = "CH900"  # SQLite write failed
    CH901 = "CH901"  # Upsert conflict retries exhausted


@dataclass
class CochangeError(Exception):
    """Base exception with structured context.

    Attributes:
        message: Human-readable error description
        code: Structured error code for categorization
        context: Additional context (repo path, group key, etc.)
        recoverable: Whether the engine can continue past the error
        recovery_hint: Suggested fix for the user
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: str | None = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }


class TemporalError(CochangeError):
    """Errors while reading git history (CH4xx)."""

    pass


class PersistenceError(CochangeError):
    """Errors while writing to the analytics store (CH9xx)."""

    pass
