"""Publish Android APKs and app bundles to Google Play through edit transactions."""

from playpublisher.edit import EditState, EditTransaction, PublishOutcome, TrackAssignment
from playpublisher.errors import (
    CredentialsError,
    ErrorCategory,
    PublisherApiError,
    UploadError,
    classify,
    get_publisher_error_message,
)
from playpublisher.release import (
    LocalizedText,
    RecentChanges,
    ReleaseStatus,
    TrackRelease,
    build_release,
    transform_release_notes,
)
from playpublisher.upload import ResumableUpload, RetryPolicy, upload_resumable

__version__ = "0.1.0"
