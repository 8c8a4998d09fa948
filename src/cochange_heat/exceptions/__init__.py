"""Exception hierarchy for cochange-heat."""

from .base import CochangeHeatError
from .config import ConfigurationError, InvalidConfigError
from .taxonomy import CochangeError, ErrorCode, PersistenceError, TemporalError

__all__ = [
    "CochangeHeatError",
    "ConfigurationError",
    "InvalidConfigError",
    "CochangeError",
    "ErrorCode",
    "TemporalError",
    "PersistenceError",
]
