"""Edit transaction: open, stage artifacts, update tracks, commit.

An edit collects changes server-side; nothing becomes visible until the
commit succeeds.  A failed transaction is abandoned rather than rolled back,
the remote service expires edits that are never committed.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from playpublisher.api import PublisherClient
from playpublisher.artifacts import ArtifactSource
from playpublisher.credentials import CredentialProvider
from playpublisher.errors import EditCancelledError, ErrorCategory, UploadError, classify
from playpublisher.release import (
    RecentChanges,
    ReleaseStatus,
    TrackRelease,
    build_release,
    transform_release_notes,
)
from playpublisher.upload import RetryPolicy

log = logging.getLogger(__name__)


class EditState(enum.Enum):
    OPENED = "opened"
    STAGING = "staging"
    TRACK_UPDATED = "trackUpdated"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class TrackAssignment:
    """Where the uploaded builds go and how far they roll out."""

    track: str
    rollout_fraction: Optional[float] = None
    update_priority: Optional[int] = None
    release_notes: Optional[Sequence[Optional[RecentChanges]]] = None
    release_name: Optional[str] = None
    # builds already known to the console, assigned without uploading
    extra_version_codes: tuple[int, ...] = ()


@dataclass(frozen=True)
class PublishOutcome:
    state: EditState
    edit_id: Optional[str] = None
    version_codes: tuple[int, ...] = ()
    category: Optional[ErrorCategory] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state is EditState.COMMITTED

    @property
    def exit_code(self) -> int:
        return 0 if self.category is None else self.category.exit_code


ClientFactory = Callable[..., PublisherClient]


class EditTransaction:
    """Publishes one batch of artifacts to one application.

    An instance owns its edit for its whole lifetime and can only be used
    once.
    """

    def __init__(
        self,
        package_name: str,
        credentials: CredentialProvider,
        artifacts: ArtifactSource,
        *,
        client_factory: ClientFactory = PublisherClient.from_credentials,
        retry: Optional[RetryPolicy] = None,
        complete_on_full_rollout: bool = False,
        changes_not_sent_for_review: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.package_name = package_name
        self.credentials = credentials
        self.artifacts = artifacts
        self.client_factory = client_factory
        self.retry = retry or RetryPolicy()
        self.complete_on_full_rollout = complete_on_full_rollout
        self.changes_not_sent_for_review = changes_not_sent_for_review
        self.cancel_event = cancel_event or threading.Event()
        self.state: Optional[EditState] = None
        self.edit_id: Optional[str] = None
        self.version_codes: list[int] = []

    def publish(self, assignments: Sequence[TrackAssignment]) -> PublishOutcome:
        if self.state is not None:
            raise UploadError(f"Edit transaction already {self.state.value}")
        try:
            self._run(assignments)
        except Exception as e:
            self.state = EditState.ABANDONED
            category, message = classify(e)
            log.debug("Edit %s abandoned", self.edit_id, exc_info=True)
            return PublishOutcome(
                state=self.state,
                edit_id=self.edit_id,
                version_codes=tuple(self.version_codes),
                category=category,
                message=message,
            )
        return PublishOutcome(
            state=self.state,
            edit_id=self.edit_id,
            version_codes=tuple(self.version_codes),
        )

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise EditCancelledError("Publishing was cancelled")

    def _run(self, assignments: Sequence[TrackAssignment]) -> None:
        credentials = self.credentials.get_credentials()
        client = self.client_factory(credentials, self.package_name, retry=self.retry)

        self._check_cancelled()
        log.info("Creating edit")
        self.edit_id = client.insert_edit()
        self.state = EditState.OPENED

        artifacts = self.artifacts.list_artifacts()
        self.state = EditState.STAGING
        for artifact in artifacts:
            self._check_cancelled()
            log.info("Uploading %s", artifact.path)
            version_code = client.upload_artifact(self.edit_id, artifact)
            log.info("Uploaded %s as version code %d", artifact.path, version_code)
            self.version_codes.append(version_code)
            if artifact.mapping_file:
                self._check_cancelled()
                log.info("Uploading mapping file %s", artifact.mapping_file)
                client.upload_deobfuscation_file(self.edit_id, version_code, artifact.mapping_file)

        for assignment in assignments:
            release = self._release_for(assignment)
            self._check_cancelled()
            log.info("Updating track %s: %s", assignment.track, release.status.value)
            client.update_track(self.edit_id, assignment.track, [release])
        self.state = EditState.TRACK_UPDATED

        self._check_cancelled()
        log.info("Committing")
        client.commit_edit(self.edit_id, self.changes_not_sent_for_review)
        self.state = EditState.COMMITTED
        log.info("Committed edit %s", self.edit_id)

    def _release_for(self, assignment: TrackAssignment) -> TrackRelease:
        version_codes = self.version_codes + list(assignment.extra_version_codes)
        if not version_codes:
            raise UploadError(f"No version codes to assign to track {assignment.track}")
        release = build_release(
            version_codes,
            assignment.rollout_fraction,
            assignment.update_priority,
            transform_release_notes(assignment.release_notes),
            assignment.release_name,
        )
        if self.complete_on_full_rollout and assignment.rollout_fraction == 1.0:
            release = replace(release, status=ReleaseStatus.COMPLETED, user_fraction=None)
        return release
