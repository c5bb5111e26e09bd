"""Resumable media upload against the publishing API.

The session is opened with a POST; the server answers with a ``Location``
header naming the continuation URL and the media is then PUT there chunk by
chunk.  The redirect is modelled explicitly so it can be exercised with a
mocked ``httplib2.Http``.
"""
from __future__ import annotations

import enum
import json
import logging
import random
import socket
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaUpload

from playpublisher.errors import PublisherApiError, UploadError, wrap_auth_error

log = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
CHUNK_SIZE = 10 * 1024 * 1024
RESUME_INCOMPLETE = 308
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
TRANSIENT_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    socket.timeout,
    httplib2.ServerNotFoundError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with jitter for transient failures."""

    max_retries: int = 8
    max_backoff: float = 60.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def delay(self, attempt: int) -> float:
        return min(self.max_backoff, 2 ** attempt) + random.random()


class UploadState(enum.Enum):
    INITIATED = "initiated"
    REDIRECTED = "redirected"
    TRANSFERRED = "transferred"


def resumable_url(url: str) -> str:
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query["uploadType"] = "resumable"
    return urlunparse(parts._replace(query=urlencode(query)))


def _is_success(resp: httplib2.Response) -> bool:
    return 200 <= resp.status < 300


def _saved_offset(resp: httplib2.Response) -> int:
    # Range: bytes=0-N names the last byte the session kept
    value = resp.get("range")
    if not value:
        return 0
    return int(value.rsplit("-", 1)[1]) + 1


class ResumableUpload:
    """One upload of ``media`` to ``url``.

    ``initiate`` moves INITIATED -> REDIRECTED, ``transfer`` moves
    REDIRECTED -> TRANSFERRED.  ``run`` performs both with retries.  After a
    transient failure during the transfer the session is asked how much it
    kept and the upload continues from there.
    """

    def __init__(self, http: Any, url: str, media: MediaUpload, retry: Optional[RetryPolicy] = None):
        self.http = http
        self.url = resumable_url(url)
        self.media = media
        self.retry = retry or RetryPolicy()
        self.state = UploadState.INITIATED
        self.location: Optional[str] = None
        self.offset = 0
        self.result: Optional[dict] = None

    def initiate(self) -> str:
        if self.state is not UploadState.INITIATED:
            raise UploadError(f"Cannot initiate upload in state {self.state.value}")
        headers = {
            "X-Upload-Content-Type": self.media.mimetype(),
            "X-Upload-Content-Length": str(self.media.size()),
            "Content-Length": "0",
        }
        resp, content = self._request(self.url, "POST", b"", headers)
        location = resp.get("location")
        if not (_is_success(resp) or 300 <= resp.status < 400):
            raise PublisherApiError(HttpError(resp, content, uri=self.url))
        if not location:
            raise UploadError(f"Upload session for {self.url} returned no continuation location")
        log.debug("Upload session continues at %s", location)
        self.location = location
        self.state = UploadState.REDIRECTED
        return location

    def transfer(self) -> dict:
        if self.state is not UploadState.REDIRECTED:
            raise UploadError(f"Cannot transfer upload in state {self.state.value}")
        size = self.media.size()
        attempt = 0
        resync = False
        while self.state is UploadState.REDIRECTED:
            try:
                if resync:
                    resp, content = self._query_offset(size)
                else:
                    resp, content = self._send_chunk(size)
            except TRANSIENT_EXCEPTIONS as e:
                if attempt >= self.retry.max_retries:
                    raise PublisherApiError(e) from e
                self._backoff(attempt, f"{type(e).__name__} during PUT")
                attempt += 1
                resync = True
                continue

            if resp.status in TRANSIENT_STATUSES:
                if attempt >= self.retry.max_retries:
                    raise PublisherApiError(HttpError(resp, content, uri=self.location))
                self._backoff(attempt, f"HTTP {resp.status} during PUT")
                attempt += 1
                resync = True
                continue

            if resp.status == RESUME_INCOMPLETE:
                offset = _saved_offset(resp)
                if offset > self.offset:
                    attempt = 0
                elif not resync:
                    if attempt >= self.retry.max_retries:
                        raise UploadError(f"Upload to {self.location} stalled at byte {offset} of {size}")
                    self._backoff(attempt, f"no progress past byte {offset}")
                    attempt += 1
                if resync:
                    log.info("Resuming upload at byte %d of %d", offset, size)
                self.offset = offset
                resync = False
                continue

            if not _is_success(resp):
                raise PublisherApiError(HttpError(resp, content, uri=self.location))
            self.result = _parse_json(content)
            self.offset = size
            self.state = UploadState.TRANSFERRED
        return self.result

    def run(self) -> dict:
        self.initiate()
        return self.transfer()

    def _send_chunk(self, size: int):
        chunksize = self.media.chunksize()
        if chunksize == -1:
            chunksize = size
        data = self.media.getbytes(self.offset, chunksize)
        if not data:
            return self._query_offset(size)
        end = self.offset + len(data) - 1
        headers = {
            "Content-Type": self.media.mimetype(),
            "Content-Length": str(len(data)),
            "Content-Range": f"bytes {self.offset}-{end}/{size}",
        }
        log.debug("Sending bytes %d-%d of %d", self.offset, end, size)
        return self._send(self.location, "PUT", data, headers)

    def _query_offset(self, size: int):
        headers = {"Content-Length": "0", "Content-Range": f"bytes */{size}"}
        return self._send(self.location, "PUT", b"", headers)

    def _send(self, uri: str, method: str, body: bytes, headers: dict[str, str]):
        """Issue one request; transient transport errors are left to the caller."""
        try:
            return self.http.request(uri, method=method, body=body, headers=headers)
        except TRANSIENT_EXCEPTIONS:
            raise
        except GoogleAuthError as e:
            raise wrap_auth_error(e) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise PublisherApiError(e) from e

    def _request(self, uri: str, method: str, body: bytes, headers: dict[str, str]):
        attempt = 0
        while True:
            try:
                resp, content = self._send(uri, method, body, headers)
            except TRANSIENT_EXCEPTIONS as e:
                if attempt >= self.retry.max_retries:
                    raise PublisherApiError(e) from e
                self._backoff(attempt, f"{type(e).__name__} during {method}")
                attempt += 1
                continue
            if resp.status in TRANSIENT_STATUSES and attempt < self.retry.max_retries:
                self._backoff(attempt, f"HTTP {resp.status} during {method}")
                attempt += 1
                continue
            return resp, content

    def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.retry.delay(attempt)
        log.warning("Transient %s; retrying in %.1fs...", reason, delay)
        self.retry.sleep(delay)


def _parse_json(content: Any) -> dict:
    if not content:
        return {}
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    try:
        data = json.loads(content)
    except ValueError as e:
        raise UploadError("Upload response was not valid JSON", e)
    return data if isinstance(data, dict) else {}


def upload_resumable(http: Any, url: str, media: MediaUpload, retry: Optional[RetryPolicy] = None) -> dict:
    """Upload ``media`` and return the decoded response resource."""
    return ResumableUpload(http, url, media, retry).run()
