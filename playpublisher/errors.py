"""Failure types raised while publishing, and the reporter that renders them.

Every failure surfaced by an edit transaction is an ``UploadError`` or one of
its subclasses.  ``classify`` decides which single message the operator sees.
"""
from __future__ import annotations

import enum
import json
import traceback
from typing import Optional

from google.auth.exceptions import GoogleAuthError, RefreshError
from googleapiclient.errors import HttpError

UNAUTHORIZED_MESSAGE = "\n- The API credentials provided do not have permission to apply these changes\n"


class UploadError(Exception):
    """Generic publishing failure, optionally wrapping a lower-level cause."""

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        if message is None:
            message = describe(cause) if cause is not None else ""
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class CredentialsError(UploadError):
    """Credentials could not be loaded or were rejected locally."""


class PublisherApiError(UploadError):
    """A call to the publishing API failed.

    The cause is either an ``HttpError`` carrying the server response or the
    transport exception that prevented one.
    """

    def __init__(self, cause: BaseException, message: Optional[str] = None):
        super().__init__(message, cause)

    @property
    def status(self) -> Optional[int]:
        if isinstance(self.cause, HttpError):
            return self.cause.resp.status
        return None


class EditCancelledError(UploadError):
    pass


def wrap_auth_error(exc: GoogleAuthError) -> UploadError:
    """Turn an error raised by ``AuthorizedHttp`` into a publishing failure.

    A refused token refresh means the key itself was rejected, so only its
    message (the first argument, without the raw token response) is kept.
    """
    if isinstance(exc, RefreshError):
        message = str(exc.args[0]) if exc.args else str(exc)
        return CredentialsError(message, exc)
    return PublisherApiError(exc)


class ErrorCategory(enum.Enum):
    CREDENTIALS = "credentials"
    UNAUTHORIZED = "unauthorized"
    API = "api"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"
    GENERIC = "generic"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    ErrorCategory.CANCELLED: 130,
    ErrorCategory.GENERIC: 1,
    ErrorCategory.CREDENTIALS: 3,
    ErrorCategory.UNAUTHORIZED: 4,
    ErrorCategory.API: 5,
    ErrorCategory.UNKNOWN: 6,
}


def describe(exc: BaseException) -> str:
    """Type-qualified one-line description, e.g. ``ssl.SSLError: bad record``."""
    cls = type(exc)
    name = cls.__qualname__
    if cls.__module__ != "builtins":
        name = f"{cls.__module__}.{name}"
    text = str(exc)
    return f"{name}: {text}" if text else name


def _error_body(err: HttpError) -> Optional[dict]:
    content = err.content
    if not content:
        return None
    try:
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        data = json.loads(content)
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"]
    return None


def _is_unauthorized(err: HttpError) -> bool:
    status = err.resp.status
    if status == 401:
        return True
    if status == 403:
        body = _error_body(err)
        return body is not None and body.get("status") == "PERMISSION_DENIED"
    return False


def _api_error_messages(body: dict) -> list[str]:
    messages = []
    for item in body.get("errors") or []:
        if isinstance(item, dict) and item.get("message"):
            messages.append(str(item["message"]))
    if not messages and body.get("message"):
        messages.append(str(body["message"]))
    return messages


def _cause_chain(exc: BaseException) -> list[BaseException]:
    chain = []
    seen = {id(exc)}
    current = exc
    while True:
        nxt = current.__cause__
        if nxt is None and not current.__suppress_context__:
            nxt = current.__context__
        if nxt is None or id(nxt) in seen:
            return chain
        seen.add(id(nxt))
        chain.append(nxt)
        current = nxt


def _render_with_causes(exc: BaseException) -> str:
    lines = [describe(exc)]
    lines.extend(_frames(exc))
    for cause in _cause_chain(exc):
        lines.append(f"Caused by: {describe(cause)}")
        lines.extend(_frames(cause))
    return "\n".join(lines)


def _frames(exc: BaseException) -> list[str]:
    if exc.__traceback__ is None:
        return []
    return [line.rstrip("\n") for line in traceback.format_tb(exc.__traceback__)]


def classify(error: BaseException) -> tuple[ErrorCategory, str]:
    """Map a failure to its category and the message shown to the operator.

    Categories are checked in a fixed order and the first match wins:

    * credentials errors pass their own text through unchanged
    * an API 401 (or a 403 permission denial) gets a fixed explanation
    * other structured API errors list the server's messages
    * API failures without a structured body are reported as unknown
    * a cancellation is reported by its own message
    * anything else is rendered with its whole chain of causes
    """
    if isinstance(error, CredentialsError):
        return ErrorCategory.CREDENTIALS, str(error)

    if isinstance(error, PublisherApiError):
        cause = error.cause
        if isinstance(cause, HttpError):
            if _is_unauthorized(cause):
                return ErrorCategory.UNAUTHORIZED, UNAUTHORIZED_MESSAGE
            body = _error_body(cause)
            messages = _api_error_messages(body) if body is not None else []
            if messages:
                return ErrorCategory.API, "".join(f"\n- {m}" for m in messages) + "\n"
        return ErrorCategory.UNKNOWN, f"Unknown error: {describe(cause)}"

    if isinstance(error, EditCancelledError):
        return ErrorCategory.CANCELLED, str(error)

    return ErrorCategory.GENERIC, _render_with_causes(error)


def get_publisher_error_message(error: BaseException) -> str:
    return classify(error)[1]
