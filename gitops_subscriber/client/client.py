"""Client module for reading and writing kubernetes style objects."""

from abc import ABC, abstractmethod
from typing import Any

from gitops_subscriber.manifest import (
    CONFIG_MAP_KIND,
    SECRET_KIND,
    SUBSCRIPTION_KIND,
    Subscription,
)


class Client(ABC):
    """Abstract base class for the client used to read and write cluster objects."""

    @abstractmethod
    async def get_object(self, kind: str, namespace: str | None, name: str) -> dict[str, Any]:
        """Return a copy of a raw object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def update_subscription_status(self, subscription: Subscription) -> Subscription:
        """Write the status of a subscription, returning the updated object.

        Raises:
            ObjectNotFoundError: If the subscription does not exist.
            ConflictError: If the subscription was modified since it was read.
        """

    async def get_subscription(self, namespace: str, name: str) -> Subscription:
        """Return a freshly read subscription."""
        return Subscription.parse_doc(
            await self.get_object(SUBSCRIPTION_KIND, namespace, name)
        )

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        """Return a raw Secret object."""
        return await self.get_object(SECRET_KIND, namespace, name)

    async def get_config_map(self, namespace: str, name: str) -> dict[str, Any]:
        """Return a raw ConfigMap object."""
        return await self.get_object(CONFIG_MAP_KIND, namespace, name)
