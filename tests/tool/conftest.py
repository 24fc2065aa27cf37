"""Fixtures for the command line tool tests."""

from collections.abc import Callable
from pathlib import Path

import git
import pytest

SUBSCRIPTION = """\
apiVersion: apps.gitops.dev/v1alpha1
kind: Subscription
metadata:
  name: sub
  namespace: default
spec:
  packageFilter:
    filterRef:
      name: sub-config
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: sub-config
  namespace: default
data:
  path: deploy
"""

CHANNEL = """\
apiVersion: apps.gitops.dev/v1alpha1
kind: Channel
metadata:
  name: dev
  namespace: ch-ns
spec:
  pathname: {url}
"""

REPO_FILES = {
    "deploy/cm.yaml": "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\n",
    "deploy/chart/Chart.yaml": "apiVersion: v2\nname: demo\nversion: 0.2.0\n",
    "other/cm.yaml": "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: ignored\n",
}


@pytest.fixture(name="repo_files")
def repo_files_fixture() -> dict[str, str]:
    """Files committed to the channel repository, override to customize."""
    return REPO_FILES


@pytest.fixture(name="repo")
def repo_fixture(
    git_repo_factory: Callable[[dict[str, str]], git.Repo],
    repo_files: dict[str, str],
) -> git.Repo:
    return git_repo_factory(repo_files)


@pytest.fixture(name="subscription_file")
def subscription_file_fixture(tmp_dir: Path) -> Path:
    path = tmp_dir / "subscription.yaml"
    path.write_text(SUBSCRIPTION)
    return path


@pytest.fixture(name="channel_file")
def channel_file_fixture(tmp_dir: Path, repo: git.Repo) -> Path:
    path = tmp_dir / "channel.yaml"
    path.write_text(CHANNEL.format(url=f"file://{repo.working_tree_dir}"))
    return path
