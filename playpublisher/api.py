"""Thin wrapper over the ``androidpublisher`` v3 discovery client."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaUpload, build_http

from playpublisher.artifacts import Artifact
from playpublisher.errors import PublisherApiError, UploadError, wrap_auth_error
from playpublisher.release import TrackRelease
from playpublisher.upload import CHUNK_SIZE, OCTET_STREAM, RetryPolicy, upload_resumable

log = logging.getLogger(__name__)

UPLOAD_BASE = "https://androidpublisher.googleapis.com/upload/androidpublisher/v3"
DEFAULT_TIMEOUT = 30 * 60


def build_authorized_http(credentials, timeout: float = DEFAULT_TIMEOUT) -> AuthorizedHttp:
    http = build_http()
    http.timeout = timeout
    # continuation locations are followed by ResumableUpload itself
    http.follow_redirects = False
    return AuthorizedHttp(credentials, http=http)


def build_service(http: Any):
    return build("androidpublisher", "v3", http=http, cache_discovery=False)


class PublisherClient:
    def __init__(self, service: Any, http: Any, package_name: str, retry: Optional[RetryPolicy] = None):
        self.service = service
        self.http = http
        self.package_name = package_name
        self.retry = retry or RetryPolicy()

    @classmethod
    def from_credentials(
        cls,
        credentials,
        package_name: str,
        retry: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "PublisherClient":
        log.info("Building service")
        http = build_authorized_http(credentials, timeout)
        return cls(build_service(http), http, package_name, retry)

    def _execute(self, request) -> dict:
        try:
            return request.execute(num_retries=self.retry.max_retries)
        except HttpError as e:
            raise PublisherApiError(e) from e
        except GoogleAuthError as e:
            raise wrap_auth_error(e) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise PublisherApiError(e) from e

    def _edit_url(self, edit_id: str) -> str:
        return f"{UPLOAD_BASE}/applications/{self.package_name}/edits/{edit_id}"

    def _upload(self, url: str, media: MediaUpload) -> dict:
        try:
            return upload_resumable(self.http, url, media, self.retry)
        finally:
            media.stream().close()

    def insert_edit(self) -> str:
        edit = self._execute(self.service.edits().insert(body={}, packageName=self.package_name))
        return edit["id"]

    def upload_artifact(self, edit_id: str, artifact: Artifact) -> int:
        """Upload an APK or bundle into the edit and return its version code."""
        url = f"{self._edit_url(edit_id)}/{artifact.kind.value}"
        resource = self._upload(url, artifact.media())
        try:
            return int(resource["versionCode"])
        except (KeyError, TypeError, ValueError) as e:
            raise UploadError(f"Upload of {artifact.path} returned no version code", e)

    def upload_deobfuscation_file(self, edit_id: str, version_code: int, path: str) -> dict:
        url = f"{self._edit_url(edit_id)}/apks/{version_code}/deobfuscationFiles/proguard"
        media = MediaFileUpload(path, mimetype=OCTET_STREAM, chunksize=CHUNK_SIZE, resumable=True)
        return self._upload(url, media)

    def update_track(self, edit_id: str, track: str, releases: Sequence[TrackRelease]) -> dict:
        body = {"track": track, "releases": [release.to_body() for release in releases]}
        return self._execute(
            self.service.edits().tracks().update(
                packageName=self.package_name,
                editId=edit_id,
                track=track,
                body=body,
            )
        )

    def commit_edit(self, edit_id: str, changes_not_sent_for_review: bool = False) -> dict:
        kwargs = {}
        if changes_not_sent_for_review:
            kwargs["changesNotSentForReview"] = True
        return self._execute(
            self.service.edits().commit(packageName=self.package_name, editId=edit_id, **kwargs)
        )
