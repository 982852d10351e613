"""
Core Module - shared errors and decay math.

Repository interfaces live in teachback.core.repository and are imported
from there directly.
"""

from teachback.core.decay import days_since, effective_mastery, forgetting_factor
from teachback.core.errors import (
    ConcurrentUpdateError,
    GraphIntegrityError,
    IllegalTransitionError,
    InputValidationError,
    TeachbackError,
    parse_input,
)

__all__ = [
    "days_since",
    "effective_mastery",
    "forgetting_factor",
    "ConcurrentUpdateError",
    "GraphIntegrityError",
    "IllegalTransitionError",
    "InputValidationError",
    "TeachbackError",
    "parse_input",
]
