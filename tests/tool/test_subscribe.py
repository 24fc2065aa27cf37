"""Tests for the gitops-subscriber `subscribe` command."""

from pathlib import Path

import pytest
import yaml

from gitops_subscriber.tool.subscriber import main

from .conftest import REPO_FILES


def test_subscribe_once(
    subscription_file: Path, channel_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test a single cycle prints the registered deployables."""
    main(
        [
            "subscribe",
            "--subscription",
            str(subscription_file),
            "--channel",
            str(channel_file),
            "--once",
        ]
    )
    docs = list(yaml.safe_load_all(capsys.readouterr().out))
    assert [doc["metadata"]["name"] for doc in docs] == [
        "dev-ConfigMap-cfg",
        "dev-demo-0.2.0",
    ]
    assert all(doc["kind"] == "Deployable" for doc in docs)
    config_map = docs[0]["spec"]["template"]
    assert config_map["metadata"] == {"name": "cfg", "namespace": "default"}
    release = docs[1]["spec"]["template"]
    assert release["spec"]["source"]["git"]["chartPath"] == "deploy/chart"


def test_subscribe_failure(
    subscription_file: Path, tmp_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test a failed cycle exits with an error."""
    channel_file = tmp_dir / "missing-channel.yaml"
    channel_file.write_text(
        yaml.dump(
            {
                "apiVersion": "apps.gitops.dev/v1alpha1",
                "kind": "Channel",
                "metadata": {"name": "dev", "namespace": "ch-ns"},
                "spec": {"pathname": f"file://{tmp_dir}/does-not-exist"},
            }
        )
    )
    with pytest.raises(SystemExit) as exc_info:
        main(
            [
                "subscribe",
                "--subscription",
                str(subscription_file),
                "--channel",
                str(channel_file),
                "--once",
            ]
        )
    assert exc_info.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "gitops-subscriber error:" in captured.err


def test_missing_channel_kind(
    subscription_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test an input file without a Channel is rejected."""
    with pytest.raises(SystemExit):
        main(
            [
                "subscribe",
                "--subscription",
                str(subscription_file),
                "--channel",
                str(subscription_file),
                "--once",
            ]
        )
    assert "No Channel found" in capsys.readouterr().err


@pytest.mark.parametrize(
    "repo_files",
    [
        {
            **REPO_FILES,
            "deploy/cm.yaml": (
                "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\n"
                "  annotations:\n    created: 2024-01-01\n"
            ),
        }
    ],
)
def test_subscribe_timestamps(
    subscription_file: Path, channel_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test deployables with unquoted timestamps are written."""
    main(
        [
            "subscribe",
            "--subscription",
            str(subscription_file),
            "--channel",
            str(channel_file),
            "--once",
        ]
    )
    docs = list(yaml.safe_load_all(capsys.readouterr().out))
    config_map = docs[0]["spec"]["template"]
    assert config_map["metadata"]["annotations"] == {"created": "2024-01-01"}
