"""Tests for the in memory client."""

import pytest

from gitops_subscriber.client import InMemoryClient
from gitops_subscriber.exceptions import (
    ConflictError,
    InputException,
    ObjectNotFoundError,
)

SUBSCRIPTION = {
    "apiVersion": "apps.gitops.dev/v1alpha1",
    "kind": "Subscription",
    "metadata": {"name": "sub", "namespace": "default"},
    "spec": {"package": "demo"},
}


@pytest.fixture(name="client")
def client_fixture() -> InMemoryClient:
    return InMemoryClient()


async def test_add_and_get_object(client: InMemoryClient) -> None:
    """Test adding and reading back raw objects."""
    stored = client.add_object(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "cfg", "namespace": "default"},
            "data": {"path": "apps"},
        }
    )
    assert stored["metadata"]["resourceVersion"] == "1"

    config_map = await client.get_config_map("default", "cfg")
    assert config_map["data"] == {"path": "apps"}

    # Returned objects are copies
    config_map["data"]["path"] = "changed"
    assert (await client.get_config_map("default", "cfg"))["data"]["path"] == "apps"

    assert len(client.list_objects("ConfigMap")) == 1
    assert not client.list_objects("Secret")


async def test_object_not_found(client: InMemoryClient) -> None:
    """Test reading a missing object."""
    with pytest.raises(ObjectNotFoundError):
        await client.get_secret("default", "missing")


async def test_delete_object(client: InMemoryClient) -> None:
    """Test deleting an object."""
    client.add_object(SUBSCRIPTION)
    client.delete_object("Subscription", "default", "sub")
    client.delete_object("Subscription", "default", "sub")
    with pytest.raises(ObjectNotFoundError):
        await client.get_subscription("default", "sub")


def test_invalid_object(client: InMemoryClient) -> None:
    """Test objects without a kind or name are rejected."""
    with pytest.raises(InputException, match="missing kind"):
        client.add_object({"metadata": {"name": "x"}})
    with pytest.raises(InputException, match="missing metadata.name"):
        client.add_object({"kind": "ConfigMap", "metadata": {}})


async def test_update_subscription_status(client: InMemoryClient) -> None:
    """Test status updates bump the resource version and reject stale writes."""
    client.add_object(SUBSCRIPTION)
    subscription = await client.get_subscription("default", "sub")
    subscription.status.message = "updated"

    updated = await client.update_subscription_status(subscription)
    assert updated.status.message == "updated"
    assert updated.resource_version != subscription.resource_version

    # The original object is now stale
    with pytest.raises(ConflictError):
        await client.update_subscription_status(subscription)


async def test_update_missing_subscription(client: InMemoryClient) -> None:
    """Test updating the status of a subscription that does not exist."""
    client.add_object(SUBSCRIPTION)
    subscription = await client.get_subscription("default", "sub")
    client.delete_object("Subscription", "default", "sub")
    with pytest.raises(ObjectNotFoundError):
        await client.update_subscription_status(subscription)
