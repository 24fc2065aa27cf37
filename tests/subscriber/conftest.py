"""Fixtures for subscriber tests."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import git
import pytest
import yaml

from gitops_subscriber.client import InMemoryClient
from gitops_subscriber.config import SubscriberConfig
from gitops_subscriber.manifest import Channel, Subscription
from gitops_subscriber.subscriber import SubscriberItem
from gitops_subscriber.synchronizer import InMemorySynchronizer

CONFIG_MAP = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: cfg
  namespace: somewhere-else
  labels:
    app: web
data:
  color: blue
"""

CHART_YAML = """\
apiVersion: v2
name: demo
version: 1.0.0
"""

CHART_TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: demo
"""

REPO_FILES = {
    "README.md": "Repository with one resource and one chart",
    "apps/cm.yaml": CONFIG_MAP,
    "charts/demo/Chart.yaml": CHART_YAML,
    "charts/demo/templates/deployment.yaml": CHART_TEMPLATE,
}

SUBSCRIPTION = """
apiVersion: apps.gitops.dev/v1alpha1
kind: Subscription
metadata:
  name: sub
  namespace: default
  uid: 1234-abcd
spec: {}
"""


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


@pytest.fixture(name="subscription_spec")
def subscription_spec_fixture() -> dict[str, Any]:
    """The spec of the subscription, override to add filters and overrides."""
    return {}


@pytest.fixture(name="client")
def client_fixture(subscription_spec: dict[str, Any]) -> InMemoryClient:
    client = InMemoryClient()
    doc = yaml.safe_load(SUBSCRIPTION)
    doc["spec"] = subscription_spec
    client.add_object(doc)
    return client


@pytest.fixture(name="subscription")
async def subscription_fixture(client: InMemoryClient) -> Subscription:
    return await client.get_subscription("default", "sub")


@pytest.fixture(name="channel")
def channel_fixture(repo: git.Repo) -> Channel:
    return Channel(
        name="dev",
        namespace="ch-ns",
        path_name=f"file://{repo.working_tree_dir}",
    )


@pytest.fixture(name="synchronizer")
def synchronizer_fixture() -> InMemorySynchronizer:
    return InMemorySynchronizer()


@pytest.fixture(name="config")
def config_fixture(tmp_dir: Path) -> SubscriberConfig:
    return SubscriberConfig(sync_interval=0.05, staging_root=tmp_dir / "staging")


@pytest.fixture(name="item")
def item_fixture(
    subscription: Subscription,
    channel: Channel,
    client: InMemoryClient,
    synchronizer: InMemorySynchronizer,
    config: SubscriberConfig,
) -> SubscriberItem:
    return SubscriberItem(subscription, channel, client, synchronizer, config=config)
