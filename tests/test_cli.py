from __future__ import annotations

import pytest

from playpublisher import cli
from playpublisher.edit import EditState, PublishOutcome
from playpublisher.errors import ErrorCategory


class RecordingTransaction:
    outcome = PublishOutcome(state=EditState.COMMITTED, edit_id="e1", version_codes=(42,))
    instances = []

    def __init__(self, package_name, credentials, artifacts, **kwargs):
        self.package_name = package_name
        self.credentials = credentials
        self.artifacts = artifacts
        self.kwargs = kwargs
        self.assignments = None
        RecordingTransaction.instances.append(self)

    def publish(self, assignments):
        self.assignments = assignments
        return self.outcome


@pytest.fixture
def recording(monkeypatch):
    RecordingTransaction.instances = []
    monkeypatch.setattr(cli, "EditTransaction", RecordingTransaction)
    return RecordingTransaction


def test_main_success(recording, capsys) -> None:
    code = cli.main(["--sa", "k.json", "--package", "org.example.app", "--aab", "a.aab", "--rollout", "5%"])

    assert code == 0
    assert "OK: package=org.example.app tracks=internal versionCodes=42 edit=e1" in capsys.readouterr().out
    (tx,) = recording.instances
    assert tx.package_name == "org.example.app"
    assert tx.kwargs["retry"].max_retries == 8
    assert tx.assignments[0].rollout_fraction == 0.05


def test_main_failure_prints_message(recording, monkeypatch, capsys) -> None:
    outcome = PublishOutcome(
        state=EditState.ABANDONED,
        edit_id="e1",
        category=ErrorCategory.UNAUTHORIZED,
        message="\n- The API credentials provided do not have permission to apply these changes\n",
    )
    monkeypatch.setattr(recording, "outcome", outcome)

    code = cli.main(["--sa", "k.json", "--package", "org.example.app", "--aab", "a.aab"])

    assert code == ErrorCategory.UNAUTHORIZED.exit_code
    assert "do not have permission" in capsys.readouterr().err


def test_main_rejects_bad_rollout(recording) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--sa", "k.json", "--package", "org.example.app", "--aab", "a.aab", "--rollout", "150"])

    assert exc_info.value.code == 2
    assert recording.instances == []
