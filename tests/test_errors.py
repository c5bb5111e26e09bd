from __future__ import annotations

from google.auth.exceptions import RefreshError, TransportError

from conftest import make_http_error
from playpublisher.errors import (
    UNAUTHORIZED_MESSAGE,
    CredentialsError,
    EditCancelledError,
    ErrorCategory,
    PublisherApiError,
    UploadError,
    classify,
    describe,
    get_publisher_error_message,
    wrap_auth_error,
)


def test_credentials_error_passes_through() -> None:
    err = CredentialsError("This is the auth error")

    assert get_publisher_error_message(err) == "This is the auth error"
    assert classify(err)[0] is ErrorCategory.CREDENTIALS


def test_credentials_error_with_cause_is_not_expanded() -> None:
    err = CredentialsError("Bad key file", ValueError("no private_key"))

    assert get_publisher_error_message(err) == "Bad key file"


def test_plain_io_error_is_unknown() -> None:
    err = PublisherApiError(OSError("root cause"))

    assert get_publisher_error_message(err) == "Unknown error: OSError: root cause"
    assert classify(err)[0] is ErrorCategory.UNKNOWN


def test_unknown_error_uses_qualified_type_name() -> None:
    err = wrap_auth_error(TransportError("connection refused"))

    assert isinstance(err, PublisherApiError)
    assert get_publisher_error_message(err) == "Unknown error: google.auth.exceptions.TransportError: connection refused"


def test_refused_refresh_keeps_only_its_message() -> None:
    refused = RefreshError("invalid_grant: Invalid JWT Signature.", {"error": "invalid_grant"})
    err = wrap_auth_error(refused)

    assert isinstance(err, CredentialsError)
    assert err.cause is refused
    assert classify(err) == (ErrorCategory.CREDENTIALS, "invalid_grant: Invalid JWT Signature.")


def test_unauthorized_error_code_is_api_credentials_error() -> None:
    err = PublisherApiError(make_http_error(401))

    assert get_publisher_error_message(err) == UNAUTHORIZED_MESSAGE
    assert UNAUTHORIZED_MESSAGE == "\n- The API credentials provided do not have permission to apply these changes\n"
    assert classify(err)[0] is ErrorCategory.UNAUTHORIZED


def test_unauthorized_ignores_body() -> None:
    body = {"error": {"code": 401, "message": "Request had invalid authentication credentials."}}
    err = PublisherApiError(make_http_error(401, body))

    assert get_publisher_error_message(err) == UNAUTHORIZED_MESSAGE


def test_permission_denied_is_unauthorized() -> None:
    body = {"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "The caller does not have permission"}}
    err = PublisherApiError(make_http_error(403, body))

    assert classify(err) == (ErrorCategory.UNAUTHORIZED, UNAUTHORIZED_MESSAGE)


def test_structured_api_error_lists_messages() -> None:
    body = {
        "error": {
            "code": 403,
            "message": "first",
            "errors": [
                {"message": "APK specifies a version code that has already been used."},
                {"message": "Another problem."},
            ],
        }
    }
    err = PublisherApiError(make_http_error(403, body))

    category, message = classify(err)
    assert category is ErrorCategory.API
    assert message == "\n- APK specifies a version code that has already been used.\n- Another problem.\n"


def test_structured_api_error_falls_back_to_top_level_message() -> None:
    body = {"error": {"code": 400, "message": "Track not found"}}

    assert classify(PublisherApiError(make_http_error(400, body))) == (ErrorCategory.API, "\n- Track not found\n")


def test_http_error_without_structured_body_is_unknown() -> None:
    cause = make_http_error(502)
    category, message = classify(PublisherApiError(cause))

    assert category is ErrorCategory.UNKNOWN
    assert message == f"Unknown error: {describe(cause)}"
    assert message.startswith("Unknown error: googleapiclient.errors.HttpError")


def test_other_error_has_full_cause_chain() -> None:
    err = UploadError(cause=RefreshError("General error"))

    result = get_publisher_error_message(err)

    assert result.startswith(describe(err))
    assert "Caused by: google.auth.exceptions.RefreshError: General error" in result.splitlines()
    assert classify(err)[0] is ErrorCategory.GENERIC


def test_other_error_renders_nested_causes_and_frames() -> None:
    def load():
        try:
            raise KeyError("client_email")
        except KeyError as e:
            raise ValueError("bad key file") from e

    try:
        try:
            load()
        except ValueError as e:
            raise UploadError("Publishing failed", e)
    except UploadError as e:
        err = e

    lines = get_publisher_error_message(err).splitlines()

    assert lines[0] == "playpublisher.errors.UploadError: Publishing failed"
    causes = [line for line in lines if line.startswith("Caused by: ")]
    assert causes == ["Caused by: ValueError: bad key file", "Caused by: KeyError: 'client_email'"]
    assert any("in load" in line for line in lines)


def test_programming_error_is_generic() -> None:
    category, message = classify(TypeError("unsupported operand"))

    assert category is ErrorCategory.GENERIC
    assert message == "TypeError: unsupported operand"


def test_cancelled_is_reported_in_one_line() -> None:
    try:
        raise EditCancelledError("Publishing was cancelled")
    except EditCancelledError as e:
        err = e

    assert classify(err) == (ErrorCategory.CANCELLED, "Publishing was cancelled")
    assert ErrorCategory.CANCELLED.exit_code == 130


def test_upload_error_message_defaults_to_cause() -> None:
    err = UploadError(cause=OSError("disk"))

    assert str(err) == "OSError: disk"
    assert err.__cause__ is err.cause


def test_exit_codes_are_distinct() -> None:
    codes = [category.exit_code for category in ErrorCategory]

    assert len(set(codes)) == len(codes)
    assert 0 not in codes


def test_api_error_status() -> None:
    assert PublisherApiError(make_http_error(404)).status == 404
    assert PublisherApiError(OSError("x")).status is None
