"""Tests for the in memory synchronizer."""

import asyncio
from typing import Any

import pytest

from gitops_subscriber.exceptions import RegistrationError
from gitops_subscriber.manifest import Deployable, GroupVersionKind, NamespacedName
from gitops_subscriber.synchronizer import InMemorySynchronizer

HOST = NamespacedName("default", "sub")
SOURCE = "git-k8s-default/sub"


def make_deployable(name: str, template: dict[str, Any] | None = None) -> Deployable:
    return Deployable(
        name=name,
        namespace="default",
        template=template
        or {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": name}},
    )


@pytest.fixture(name="synchronizer")
def synchronizer_fixture() -> InMemorySynchronizer:
    return InMemorySynchronizer()


def test_get_validated_gvk(synchronizer: InMemorySynchronizer) -> None:
    """Test exact, normalized and unsupported kinds."""
    deployment = GroupVersionKind("apps", "v1", "Deployment")
    assert synchronizer.get_validated_gvk(deployment) == deployment
    assert (
        synchronizer.get_validated_gvk(GroupVersionKind("apps", "v1beta1", "Deployment"))
        == deployment
    )
    assert synchronizer.get_validated_gvk(GroupVersionKind("example.com", "v1", "Widget")) is None
    assert synchronizer.is_namespaced(deployment)
    assert not synchronizer.is_namespaced(GroupVersionKind("", "v1", "Namespace"))


async def test_register_and_apply_validator(synchronizer: InMemorySynchronizer) -> None:
    """Test deployables not marked valid are garbage collected."""
    gvk = GroupVersionKind("", "v1", "ConfigMap")
    await synchronizer.register_template(HOST, make_deployable("a"), SOURCE)
    await synchronizer.register_template(HOST, make_deployable("b"), SOURCE)
    await synchronizer.register_template(HOST, make_deployable("c"), "other-source")
    assert len(synchronizer.registrations) == 3

    validator = synchronizer.create_validator(SOURCE)
    validator.add_valid_resource(gvk, HOST, NamespacedName("default", "a"))
    await synchronizer.apply_validator(validator)

    assert [dpl.name for dpl in synchronizer.templates(SOURCE)] == ["a"]
    assert [dpl.name for dpl in synchronizer.templates("other-source")] == ["c"]


async def test_register_unsupported(synchronizer: InMemorySynchronizer) -> None:
    """Test registering templates the synchronizer cannot apply."""
    with pytest.raises(RegistrationError, match="not supported"):
        await synchronizer.register_template(
            HOST,
            make_deployable(
                "w", {"apiVersion": "example.com/v1", "kind": "Widget", "metadata": {}}
            ),
            SOURCE,
        )
    with pytest.raises(RegistrationError, match="not a resource"):
        await synchronizer.register_template(
            HOST, make_deployable("x", {"data": {}}), SOURCE
        )
    assert not synchronizer.registrations


async def test_concurrent_registration(synchronizer: InMemorySynchronizer) -> None:
    """Test concurrent registrations for the same host are all recorded."""
    await asyncio.gather(
        *(
            synchronizer.register_template(HOST, make_deployable(f"cm-{i}"), SOURCE)
            for i in range(10)
        )
    )
    assert len(synchronizer.templates(SOURCE)) == 10
