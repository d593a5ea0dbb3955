"""Error Hierarchy — codes, categories, and the REST envelope."""

from tokensync.core.errors import (
    ErrorCategory, ErrorContext, ErrorSeverity, InvalidInputError,
    RecordDecodeError, RemoteRejectedError, StorageError, TokenSyncError,
    TransportError,
)


def test_all_errors_share_base():
    for error in (
        InvalidInputError("bad", "token"),
        TransportError("down", 500),
        RemoteRejectedError(),
        RecordDecodeError("x"),
        StorageError("x", "commit"),
    ):
        assert isinstance(error, TokenSyncError)


def test_invalid_input_is_client_error():
    error = InvalidInputError("bad", "token")
    assert error.http_status == 400
    assert error.category == ErrorCategory.VALIDATION


def test_remote_rejected_is_low_severity_with_fixed_code():
    error = RemoteRejectedError()
    assert error.error_code == 5
    assert error.severity == ErrorSeverity.WARNING
    assert error.message == "Got false as result of server request"


def test_transport_error_keeps_remote_code():
    error = TransportError("FLOOD_WAIT", 420, retryable=True)
    assert error.error_code == 420
    assert error.retryable
    assert "420" in error.message


def test_to_response_envelope():
    error = InvalidInputError(
        "Too many other account ids", "other_account_ids",
        context=ErrorContext(platform_kind=2),
    )
    body = error.to_response()["error"]
    assert body["code"] == "VALIDATION_ERROR"
    assert body["category"] == "validation"
    assert body["severity"] == "error"
    assert body["context"]["platform_kind"] == 2
