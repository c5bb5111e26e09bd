from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from playpublisher.edit import TrackAssignment
from playpublisher.release import RecentChanges

DEFAULT_TRACK = "internal"
DEFAULT_RETRIES = 8
DEFAULT_TIMEOUT = 30 * 60


def parse_rollout_percentage(value: Optional[str]) -> Optional[float]:
    """Turn operator input such as ``"10%"`` or ``"2.5"`` into a user fraction.

    Empty input means no rollout was requested.
    """
    if value is None:
        return None
    text = value.strip()
    if text.endswith("%"):
        text = text[:-1].strip()
    if not text:
        return None
    try:
        percentage = float(text)
    except ValueError:
        raise ValueError(f"Rollout percentage '{value}' is not a number")
    if not 0.0 <= percentage <= 100.0:
        raise ValueError(f"Rollout percentage '{value}' must be between 0 and 100")
    return percentage / 100.0


def parse_release_note(value: str) -> RecentChanges:
    """Parse ``LANG=FILE`` into release notes read from FILE."""
    language, sep, path = value.partition("=")
    if not sep or not language.strip() or not path:
        raise ValueError(f"Release notes must be given as LANG=FILE, got '{value}'")
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read().strip()
    except OSError as e:
        raise ValueError(f"Cannot read release notes {path}: {e}")
    return RecentChanges(language=language.strip(), text=text)


@dataclass(frozen=True)
class PublishConfig:
    service_account: str
    package_name: str
    artifacts: tuple[str, ...]
    tracks: tuple[str, ...] = (DEFAULT_TRACK,)
    mapping_files: dict[str, str] = field(default_factory=dict)
    rollout_fraction: Optional[float] = None
    update_priority: Optional[int] = None
    release_name: Optional[str] = None
    release_notes: Optional[tuple[RecentChanges, ...]] = None
    extra_version_codes: tuple[int, ...] = ()
    complete_on_full_rollout: bool = False
    changes_not_sent_for_review: bool = False
    retries: int = DEFAULT_RETRIES
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_args(cls, args: argparse.Namespace, environ: Mapping[str, str] = os.environ) -> "PublishConfig":
        """Validate parsed arguments; raises ``ValueError`` with a usage message."""
        service_account = args.sa or environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        if not service_account:
            raise ValueError("Missing service account: pass --sa or set GOOGLE_APPLICATION_CREDENTIALS")

        artifacts = tuple((args.aab or []) + (args.apk or []))
        extra_codes = tuple(args.version_code or [])
        if not artifacts and not extra_codes:
            raise ValueError("Nothing to publish: pass --aab, --apk or --version-code")

        mappings = args.mapping or []
        if len(mappings) > len(artifacts):
            raise ValueError("More --mapping files than artifacts")

        if args.priority is not None and not 0 <= args.priority <= 5:
            raise ValueError("--priority must be between 0 and 5")

        notes = None
        if args.release_notes:
            notes = tuple(parse_release_note(value) for value in args.release_notes)

        return cls(
            service_account=service_account,
            package_name=args.package,
            artifacts=artifacts,
            tracks=tuple(args.track or [DEFAULT_TRACK]),
            mapping_files=dict(zip(artifacts, mappings)),
            rollout_fraction=parse_rollout_percentage(args.rollout),
            update_priority=args.priority,
            release_name=args.name or environ.get("CI_COMMIT_TAG") or None,
            release_notes=notes,
            extra_version_codes=extra_codes,
            complete_on_full_rollout=args.complete_full_rollout,
            changes_not_sent_for_review=args.changes_not_sent_for_review,
            retries=args.retries,
            timeout=args.timeout,
        )

    def assignments(self) -> list[TrackAssignment]:
        return [
            TrackAssignment(
                track=track,
                rollout_fraction=self.rollout_fraction,
                update_priority=self.update_priority,
                release_notes=self.release_notes,
                release_name=self.release_name,
                extra_version_codes=self.extra_version_codes,
            )
            for track in self.tracks
        ]
