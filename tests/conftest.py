from __future__ import annotations

import json

import httplib2
import pytest
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpMockSequence

from playpublisher.upload import RetryPolicy


class RecordingHttp(HttpMockSequence):
    """HttpMockSequence that remembers every request it answered."""

    def __init__(self, iterable):
        super().__init__(iterable)
        self.calls = []

    def request(self, uri, method="GET", body=None, headers=None, redirections=1, connection_type=None):
        self.calls.append((uri, method, body, headers))
        return super().request(uri, method, body, headers, redirections, connection_type)


class FlakyHttp(RecordingHttp):
    """Raises the queued exceptions on the given call numbers (0-based)."""

    def __init__(self, iterable, failures):
        super().__init__(iterable)
        self.failures = dict(failures)
        self.attempts = 0

    def request(self, uri, method="GET", body=None, headers=None, redirections=1, connection_type=None):
        attempt = self.attempts
        self.attempts += 1
        if attempt in self.failures:
            raise self.failures[attempt]
        return super().request(uri, method, body, headers, redirections, connection_type)


def make_http_error(status: int, body=None) -> HttpError:
    content = json.dumps(body).encode("utf-8") if body is not None else b""
    return HttpError(httplib2.Response({"status": status}), content)


def continue_response(location="https://google.local/uploading/foo"):
    return ({"status": "200", "location": location}, b"")


def json_response(data, status="200"):
    return ({"status": status}, json.dumps(data).encode("utf-8"))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry(sleeps):
    return RetryPolicy(max_retries=3, sleep=sleeps.append)
