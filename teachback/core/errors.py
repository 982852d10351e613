"""
Error types for the mastery and assessment engine.

Validation failures name the offending field so callers can surface them
without parsing messages. Values that are bounded by construction (mastery,
confidence, ease factor) are clamped instead and never reach this module.
"""

from __future__ import annotations

from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, BeforeValidator
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class TeachbackError(Exception):
    """Base class for all engine errors."""


class InputValidationError(TeachbackError, ValueError):
    """Raised when an input is malformed, missing, or out of range."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, Any]:
        """Structured form for API layers."""
        return {"field": self.field, "message": self.message, "value": self.value}


class GraphIntegrityError(InputValidationError):
    """Raised when an edge would reference a node that is not in the graph."""


class IllegalTransitionError(TeachbackError):
    """Raised when a state machine is asked for a transition it does not allow."""

    def __init__(self, machine: str, current: str, requested: str):
        self.machine = machine
        self.current = current
        self.requested = requested
        super().__init__(f"{machine}: cannot go from {current} to {requested}")


class ConcurrentUpdateError(TeachbackError):
    """Raised by a repository when a keyed upsert loses a race."""


def parse_input(model: type[ModelT], data: Any) -> ModelT:
    """
    Validate ``data`` against a pydantic model.

    Instances of ``model`` pass through untouched. Pydantic errors are
    re-raised as InputValidationError pointing at the first bad field.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or model.__name__
        raise InputValidationError(field, first.get("msg", "invalid value"), first.get("input")) from e


def require_number(value: Any) -> Any:
    """Pydantic ``before`` check: accept int or float, never bool, str or None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"must be a number, not {type(value).__name__}")
    return value


# Float field that refuses lax coercion from strings and booleans
StrictNumber = Annotated[float, BeforeValidator(require_number)]
