"""Track release descriptors sent with ``edits.tracks.update``."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Sequence


class ReleaseStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    HALTED = "halted"


@dataclass(frozen=True)
class RecentChanges:
    """Release notes for one language, as entered by the operator."""

    language: str
    text: str


@dataclass(frozen=True)
class LocalizedText:
    language: str
    text: str

    def to_body(self) -> dict[str, str]:
        return {"language": self.language, "text": self.text}


@dataclass(frozen=True)
class TrackRelease:
    version_codes: tuple[int, ...]
    status: ReleaseStatus
    user_fraction: Optional[float] = None
    in_app_update_priority: Optional[int] = None
    release_notes: Optional[tuple[Optional[LocalizedText], ...]] = None
    name: Optional[str] = None

    def to_body(self) -> dict[str, Any]:
        """Render the release as the JSON body of a ``TrackRelease``.

        Version codes are int64 values and travel as strings; unset fields
        are omitted rather than sent as null.
        """
        body: dict[str, Any] = {
            "status": self.status.value,
            "versionCodes": [str(code) for code in self.version_codes],
        }
        if self.name is not None:
            body["name"] = self.name
        if self.user_fraction is not None:
            body["userFraction"] = self.user_fraction
        if self.in_app_update_priority is not None:
            body["inAppUpdatePriority"] = self.in_app_update_priority
        if self.release_notes is not None:
            body["releaseNotes"] = [
                note.to_body() if note is not None else None for note in self.release_notes
            ]
        return body


def build_release(
    version_codes: Sequence[int],
    rollout_fraction: Optional[float],
    update_priority: Optional[int] = None,
    release_notes: Optional[Sequence[Optional[LocalizedText]]] = None,
    name: Optional[str] = None,
) -> TrackRelease:
    """Build the release for one track.

    A missing or zero rollout fraction gives a draft with no user fraction at
    all; any other value gives an in-progress release carrying the fraction
    exactly as supplied.  Whether a full rollout should be marked completed is
    up to the caller.
    """
    if not rollout_fraction:
        status = ReleaseStatus.DRAFT
        user_fraction = None
    else:
        status = ReleaseStatus.IN_PROGRESS
        user_fraction = rollout_fraction

    return TrackRelease(
        version_codes=tuple(version_codes),
        status=status,
        user_fraction=user_fraction,
        in_app_update_priority=update_priority,
        release_notes=tuple(release_notes) if release_notes is not None else None,
        name=name,
    )


def transform_release_notes(
    notes: Optional[Sequence[Optional[RecentChanges]]],
) -> Optional[list[Optional[LocalizedText]]]:
    # positions are preserved, missing entries stay missing
    if notes is None:
        return None
    return [
        LocalizedText(language=note.language, text=note.text) if note is not None else None
        for note in notes
    ]
