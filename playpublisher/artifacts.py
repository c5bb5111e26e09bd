from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from googleapiclient.http import MediaFileUpload

from playpublisher.errors import UploadError
from playpublisher.upload import CHUNK_SIZE, OCTET_STREAM

APK_MIMETYPE = "application/vnd.android.package-archive"


class ArtifactKind(enum.Enum):
    APK = "apks"
    BUNDLE = "bundles"


@dataclass(frozen=True)
class Artifact:
    path: str
    kind: ArtifactKind
    mapping_file: Optional[str] = None

    @property
    def mimetype(self) -> str:
        return APK_MIMETYPE if self.kind is ArtifactKind.APK else OCTET_STREAM

    def media(self, chunksize: int = CHUNK_SIZE) -> MediaFileUpload:
        return MediaFileUpload(self.path, mimetype=self.mimetype, chunksize=chunksize, resumable=True)


class ArtifactSource(Protocol):
    def list_artifacts(self) -> list[Artifact]:
        ...


def kind_for_path(path: str) -> ArtifactKind:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".apk":
        return ArtifactKind.APK
    if ext == ".aab":
        return ArtifactKind.BUNDLE
    raise UploadError(f"Not an APK or app bundle: {path}")


class FileArtifactSource:
    """Artifacts at fixed paths; an optional ProGuard/R8 mapping file per path."""

    def __init__(self, paths: Sequence[str], mapping_files: Optional[dict[str, str]] = None):
        self.paths = list(paths)
        self.mapping_files = mapping_files or {}

    def list_artifacts(self) -> list[Artifact]:
        artifacts = []
        for path in self.paths:
            if not os.path.isfile(path):
                raise UploadError(f"Missing artifact: {path}")
            mapping = self.mapping_files.get(path)
            if mapping is not None and not os.path.isfile(mapping):
                raise UploadError(f"Missing mapping file: {mapping}")
            artifacts.append(Artifact(path=path, kind=kind_for_path(path), mapping_file=mapping))
        return artifacts
