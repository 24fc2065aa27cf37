"""Tests for manifest."""

import json

import pytest
import yaml

from gitops_subscriber.exceptions import InputException
from gitops_subscriber.manifest import (
    ANNOTATION_LOCAL,
    Channel,
    Deployable,
    GroupVersionKind,
    HelmReleaseDescriptor,
    NamespacedName,
    PackagePhase,
    Subscription,
)

SUBSCRIPTION = """
apiVersion: apps.gitops.dev/v1alpha1
kind: Subscription
metadata:
  name: sub
  namespace: default
  uid: 1234-abcd
  resourceVersion: "7"
spec:
  package: demo
  packageFilter:
    version: ">=1.0.0"
    filterRef:
      name: sub-config
  packageOverrides:
  - packageName: demo
    packageOverrides:
    - path: spec.values
      value:
        replicaCount: 2
status:
  phase: Subscribed
  packages:
    demo:
      phase: Failed
      message: boom
"""


def test_parse_subscription() -> None:
    """Test parsing a Subscription."""
    subscription = Subscription.parse_doc(yaml.safe_load(SUBSCRIPTION))
    assert subscription.name == "sub"
    assert subscription.namespace == "default"
    assert subscription.uid == "1234-abcd"
    assert subscription.resource_version == "7"
    assert subscription.package == "demo"
    assert subscription.package_filter
    assert subscription.package_filter.version == ">=1.0.0"
    assert subscription.package_filter.filter_ref
    assert subscription.package_filter.filter_ref.name == "sub-config"
    assert subscription.overrides_for("demo") == [
        {"path": "spec.values", "value": {"replicaCount": 2}}
    ]
    assert subscription.overrides_for("other") == []
    assert subscription.status.phase == PackagePhase.SUBSCRIBED
    assert subscription.status.packages["demo"].phase == PackagePhase.FAILED
    assert subscription.namespaced_name == NamespacedName("default", "sub")


def test_subscription_round_trip() -> None:
    """Test a Subscription renders back to an equivalent document."""
    subscription = Subscription.parse_doc(yaml.safe_load(SUBSCRIPTION))
    assert Subscription.parse_doc(subscription.to_doc()) == subscription


def test_subscription_missing_namespace() -> None:
    """Test a Subscription without a namespace is rejected."""
    doc = yaml.safe_load(SUBSCRIPTION)
    del doc["metadata"]["namespace"]
    with pytest.raises(InputException, match="missing metadata.namespace"):
        Subscription.parse_doc(doc)


def test_parse_channel() -> None:
    """Test parsing a Channel."""
    channel = Channel.parse_doc(
        yaml.safe_load(
            """
            apiVersion: apps.gitops.dev/v1alpha1
            kind: Channel
            metadata:
              name: dev
              namespace: ch-ns
            spec:
              pathname: https://example.com/repo.git
              secretRef:
                name: git-creds
              configMapRef:
                name: helm-config
              branch: main
            """
        )
    )
    assert channel.path_name == "https://example.com/repo.git"
    assert channel.secret_ref and channel.secret_ref.name == "git-creds"
    assert channel.config_map_ref and channel.config_map_ref.name == "helm-config"
    assert channel.branch == "main"
    assert str(channel.namespaced_name) == "ch-ns/dev"


def test_channel_missing_pathname() -> None:
    """Test a Channel without a repository URL is rejected."""
    with pytest.raises(InputException, match="spec.pathname"):
        Channel.parse_doc(
            {
                "kind": "Channel",
                "metadata": {"name": "dev", "namespace": "ch-ns"},
                "spec": {"type": "git"},
            }
        )


def test_group_version_kind() -> None:
    """Test parsing api versions with and without a group."""
    gvk = GroupVersionKind.from_api_version("apps/v1", "Deployment")
    assert gvk == GroupVersionKind("apps", "v1", "Deployment")
    assert gvk.api_version == "apps/v1"
    core = GroupVersionKind.from_api_version("v1", "ConfigMap")
    assert core.group == ""
    assert core.api_version == "v1"


def test_deployable_payload_is_deterministic() -> None:
    """Test the deployable payload does not depend on key order."""
    first = Deployable(
        name="dev-ConfigMap-cfg",
        namespace="ch-ns",
        template={"kind": "ConfigMap", "apiVersion": "v1", "data": {"b": "2", "a": "1"}},
        annotations={ANNOTATION_LOCAL: "true"},
    )
    second = Deployable(
        name="dev-ConfigMap-cfg",
        namespace="ch-ns",
        template={"apiVersion": "v1", "data": {"a": "1", "b": "2"}, "kind": "ConfigMap"},
    )
    assert first.raw == second.raw
    assert first.is_local
    assert not second.is_local
    assert first.key == NamespacedName("ch-ns", "dev-ConfigMap-cfg")
    doc = first.to_doc()
    assert doc["kind"] == "Deployable"
    assert doc["spec"]["template"] == json.loads(first.raw)


def test_helm_release_round_trip() -> None:
    """Test parsing and rendering a chart release."""
    doc = yaml.safe_load(
        """
        apiVersion: apps.gitops.dev/v1alpha1
        kind: HelmRelease
        metadata:
          name: demo-sub-default
          namespace: default
          ownerReferences:
          - apiVersion: apps.gitops.dev/v1alpha1
            kind: Subscription
            name: sub
            uid: 1234-abcd
        spec:
          source:
            type: git
            git:
              urls:
              - https://example.com/repo.git
              chartPath: charts/demo
          chartName: demo
          releaseName: my-demo
          version: 1.0.0
        """
    )
    release = HelmReleaseDescriptor.parse_doc(doc)
    assert release.spec.release_name == "my-demo"
    assert release.spec.source.git.chart_path == "charts/demo"
    assert release.owner_references[0].uid == "1234-abcd"
    assert release.to_doc() == doc


def test_helm_release_invalid_spec() -> None:
    """Test a release with an incomplete spec is rejected."""
    with pytest.raises(InputException):
        HelmReleaseDescriptor.parse_doc(
            {
                "kind": "HelmRelease",
                "metadata": {"name": "demo", "namespace": "default"},
                "spec": {"chartName": "demo"},
            }
        )
