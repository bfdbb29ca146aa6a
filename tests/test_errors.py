from datetime import datetime

from sheet_service.errors import ConflictError, ErrorContext, InternalError, NotFoundError, ValidationError


def test_error_context_defaults():
    first = ErrorContext(character_id="c-1", field="courage")
    second = ErrorContext()

    assert isinstance(first.timestamp, datetime)
    assert first.timestamp.tzinfo is not None
    assert first.metadata == {}
    first.metadata["attempt"] = 1
    assert second.metadata == {}

    data = first.to_dict()
    assert data["character_id"] == "c-1"
    assert data["field"] == "courage"
    assert data["timestamp"] == first.timestamp.isoformat()


def test_error_status_codes():
    assert ValidationError("bad").status_code == 400
    assert NotFoundError("missing").status_code == 404
    assert ConflictError("stale").status_code == 409
    assert InternalError("boom").status_code == 500


def test_internal_error_hides_message():
    error = InternalError("disk on fire", ErrorContext(operation="history_append"))
    assert error.user_friendly == "An internal error occurred!"
    data = error.to_dict()
    assert data["error_type"] == "InternalError"
    assert data["message"] == "disk on fire"
    assert data["context"]["operation"] == "history_append"
