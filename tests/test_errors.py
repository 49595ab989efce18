"""
Tests for the error hierarchy.
"""

from dynatrace_sli.core.errors import (
    BackendAPIError,
    BackendError,
    DynatraceSLIError,
    NoDataError,
    RowDecodeError,
    format_error_message,
)


class TestErrorHierarchy:
    """Tests for exception attributes and inheritance."""

    def test_backend_api_error_fields(self):
        error = BackendAPIError("Token is missing", status_code=401, code=401)

        assert isinstance(error, BackendError)
        assert isinstance(error, DynatraceSLIError)
        assert error.status_code == 401
        assert error.details == {}

    def test_row_decode_error_is_tile_local(self):
        assert issubclass(RowDecodeError, DynatraceSLIError)


class TestFormatErrorMessage:
    """Tests for format_error_message."""

    def test_message_only(self):
        assert format_error_message(NoDataError("Metrics query returned no data")) == "Metrics query returned no data"

    def test_with_details(self):
        error = NoDataError("No data", details={"metric_id": "builtin:host.cpu.usage", "series": 0})

        assert format_error_message(error) == "No data (metric_id=builtin:host.cpu.usage, series=0)"
