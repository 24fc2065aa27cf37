"""Module for an in memory object client."""

import copy
import itertools
import logging
from typing import Any

from gitops_subscriber.exceptions import (
    ConflictError,
    InputException,
    ObjectNotFoundError,
)
from gitops_subscriber.manifest import (
    SUBSCRIPTION_KIND,
    NamespacedName,
    Subscription,
)

from .client import Client


_LOGGER = logging.getLogger(__name__)

ObjectKey = tuple[str, NamespacedName]


class InMemoryClient(Client):
    """In-memory implementation of the Client interface.

    Stores raw objects keyed by kind and namespaced name. Every write bumps the
    object's `metadata.resourceVersion` which is used to reject stale status
    updates.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryClient."""
        self._objects: dict[ObjectKey, dict[str, Any]] = {}
        self._versions = itertools.count(1)

    @staticmethod
    def _key(kind: str, namespace: str | None, name: str) -> ObjectKey:
        return (kind, NamespacedName(namespace, name))

    def add_object(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Create or replace a raw object, returning the stored copy."""
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        metadata = doc.get("metadata") or {}
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        stored = copy.deepcopy(doc)
        stored.setdefault("metadata", {})["resourceVersion"] = str(next(self._versions))
        key = self._key(kind, metadata.get("namespace"), name)
        if key in self._objects:
            _LOGGER.debug("Replacing object %s %s", kind, key[1])
        else:
            _LOGGER.debug("Adding object %s %s", kind, key[1])
        self._objects[key] = stored
        return copy.deepcopy(stored)

    def delete_object(self, kind: str, namespace: str | None, name: str) -> None:
        """Remove an object, ignoring objects that do not exist."""
        self._objects.pop(self._key(kind, namespace, name), None)

    def list_objects(self, kind: str | None = None) -> list[dict[str, Any]]:
        """List copies of all objects, optionally filtered by kind."""
        return [
            copy.deepcopy(obj)
            for (obj_kind, _), obj in self._objects.items()
            if kind is None or obj_kind == kind
        ]

    async def get_object(
        self, kind: str, namespace: str | None, name: str
    ) -> dict[str, Any]:
        """Return a copy of a raw object."""
        key = self._key(kind, namespace, name)
        if (obj := self._objects.get(key)) is None:
            raise ObjectNotFoundError(f"{kind} {key[1]} not found")
        return copy.deepcopy(obj)

    async def update_subscription_status(
        self, subscription: Subscription
    ) -> Subscription:
        """Write the status of a subscription, returning the updated object."""
        key = self._key(SUBSCRIPTION_KIND, subscription.namespace, subscription.name)
        if (existing := self._objects.get(key)) is None:
            raise ObjectNotFoundError(f"{SUBSCRIPTION_KIND} {key[1]} not found")
        current_version = existing.get("metadata", {}).get("resourceVersion")
        if (
            subscription.resource_version is not None
            and subscription.resource_version != current_version
        ):
            raise ConflictError(
                str(key[1]),
                f"resourceVersion {subscription.resource_version} is stale (now {current_version})",
            )
        existing["status"] = subscription.status.to_dict()
        existing["metadata"]["resourceVersion"] = str(next(self._versions))
        _LOGGER.debug("Updated status of %s %s", SUBSCRIPTION_KIND, key[1])
        return Subscription.parse_doc(copy.deepcopy(existing))
