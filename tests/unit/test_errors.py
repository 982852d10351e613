"""
Unit tests for the error types and input parsing.
"""

import pytest
from pydantic import BaseModel, Field

from teachback.core.errors import (
    GraphIntegrityError,
    IllegalTransitionError,
    InputValidationError,
    TeachbackError,
    parse_input,
)


class _Payload(BaseModel):
    concept: str
    quality: int = Field(ge=0, le=5)


class TestParseInput:
    def test_model_instance_passes_through(self):
        payload = _Payload(concept="heaps", quality=3)
        assert parse_input(_Payload, payload) is payload

    def test_dict_is_validated(self):
        payload = parse_input(_Payload, {"concept": "heaps", "quality": 4})
        assert payload.quality == 4

    def test_names_first_bad_field(self):
        with pytest.raises(InputValidationError) as exc_info:
            parse_input(_Payload, {"concept": "heaps", "quality": 9})
        assert exc_info.value.field == "quality"
        assert exc_info.value.value == 9

    def test_missing_field(self):
        with pytest.raises(InputValidationError) as exc_info:
            parse_input(_Payload, {"quality": 1})
        assert exc_info.value.field == "concept"


class TestErrorTypes:
    def test_validation_error_is_value_error(self):
        error = InputValidationError("score", "must be <= 100", 150)
        assert isinstance(error, ValueError)
        assert isinstance(error, TeachbackError)
        assert str(error) == "score: must be <= 100"

    def test_to_dict(self):
        error = InputValidationError("score", "must be <= 100", 150)
        assert error.to_dict() == {"field": "score", "message": "must be <= 100", "value": 150}

    def test_graph_integrity_is_validation_error(self):
        assert issubclass(GraphIntegrityError, InputValidationError)

    def test_illegal_transition_message(self):
        error = IllegalTransitionError("session", "idle", "active")
        assert error.machine == "session"
        assert "idle" in str(error) and "active" in str(error)
