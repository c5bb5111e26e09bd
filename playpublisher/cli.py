from __future__ import annotations

import argparse
import functools
import logging
import sys
from typing import Optional, Sequence

from playpublisher.api import PublisherClient
from playpublisher.artifacts import FileArtifactSource
from playpublisher.config import DEFAULT_RETRIES, DEFAULT_TIMEOUT, PublishConfig
from playpublisher.credentials import ServiceAccountCredentialProvider
from playpublisher.edit import EditTransaction
from playpublisher.upload import RetryPolicy


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="playpublisher", description="Publish APKs and app bundles to Google Play.")
    ap.add_argument("--sa", default=None, help="Service account JSON file path (default: $GOOGLE_APPLICATION_CREDENTIALS)")
    ap.add_argument("--package", required=True, help="ApplicationId / package name")
    ap.add_argument("--aab", action="append", help="Path to .aab file (repeatable)")
    ap.add_argument("--apk", action="append", help="Path to .apk file (repeatable)")
    ap.add_argument("--mapping", action="append", help="Deobfuscation mapping file, paired with artifacts in order")
    ap.add_argument("--version-code", type=int, action="append", help="Already uploaded version code to assign (repeatable)")
    ap.add_argument("--track", action="append", help="internal|alpha|beta|production (repeatable, default: internal)")
    ap.add_argument("--rollout", default=None, help="Staged rollout percentage, e.g. 10%%; empty or 0 for a draft")
    ap.add_argument("--priority", type=int, default=None, help="In-app update priority (0-5)")
    ap.add_argument("--name", default=None, help="Release name (defaults to CI_COMMIT_TAG)")
    ap.add_argument("--release-notes", action="append", metavar="LANG=FILE", help="Release notes for a language (repeatable)")
    ap.add_argument("--complete-full-rollout", action="store_true", help="Mark a 100%% rollout as completed")
    ap.add_argument("--changes-not-sent-for-review", action="store_true", help="Commit without sending changes for review")
    ap.add_argument("--retries", type=int, default=DEFAULT_RETRIES, help="Retries for transient failures")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    try:
        config = PublishConfig.from_args(args)
    except ValueError as e:
        ap.error(str(e))

    transaction = EditTransaction(
        config.package_name,
        ServiceAccountCredentialProvider(config.service_account),
        FileArtifactSource(config.artifacts, config.mapping_files),
        client_factory=functools.partial(PublisherClient.from_credentials, timeout=config.timeout),
        retry=RetryPolicy(max_retries=config.retries),
        complete_on_full_rollout=config.complete_on_full_rollout,
        changes_not_sent_for_review=config.changes_not_sent_for_review,
    )
    outcome = transaction.publish(config.assignments())

    if not outcome.succeeded:
        print(outcome.message, file=sys.stderr)
        return outcome.exit_code

    codes = ",".join(str(code) for code in outcome.version_codes)
    print(f"OK: package={config.package_name} tracks={','.join(config.tracks)} versionCodes={codes} edit={outcome.edit_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
