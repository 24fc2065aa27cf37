"""Manager of the subscriber items of git channel subscriptions."""

import logging

from gitops_subscriber.client import Client
from gitops_subscriber.config import SubscriberConfig
from gitops_subscriber.manifest import Channel, NamespacedName, Subscription
from gitops_subscriber.source import RepositoryFetcher, StagingArea, get_staging_area
from gitops_subscriber.synchronizer import Synchronizer

from .item import SubscriberItem

__all__ = ["GitSubscriber"]

_LOGGER = logging.getLogger(__name__)


class GitSubscriber:
    """Creates, restarts and removes a SubscriberItem per subscription.

    Items share the client, the synchronizer, the fetcher and the staging area.
    """

    def __init__(
        self,
        client: Client,
        synchronizer: Synchronizer,
        fetcher: RepositoryFetcher | None = None,
        config: SubscriberConfig | None = None,
    ) -> None:
        """Initialize GitSubscriber."""
        self._client = client
        self._synchronizer = synchronizer
        self._fetcher = fetcher
        self._config = config or SubscriberConfig()
        self._staging: StagingArea = get_staging_area(self._config.staging_root)
        self._items: dict[NamespacedName, SubscriberItem] = {}

    @property
    def items(self) -> dict[NamespacedName, SubscriberItem]:
        return dict(self._items)

    def get(self, key: NamespacedName) -> SubscriberItem | None:
        return self._items.get(key)

    async def add_subscriber(
        self, subscription: Subscription, channel: Channel
    ) -> SubscriberItem:
        """Start reconciling a subscription, restarting it when it changed.

        An unchanged subscription keeps its running item. A changed one replaces
        the item once the previous one has finished its cycle, so the new item
        processes the current commit again.
        """
        key = subscription.namespaced_name
        if (item := self._items.get(key)) is not None:
            if item.subscription.to_doc()["spec"] == subscription.to_doc()[
                "spec"
            ] and item.channel == channel:
                item.start()
                return item
            _LOGGER.info("Subscription %s changed, restarting", key)
            item.stop()
            await item.join()

        item = SubscriberItem(
            subscription,
            channel,
            self._client,
            self._synchronizer,
            fetcher=self._fetcher,
            staging=self._staging,
            config=self._config,
        )
        self._items[key] = item
        item.start()
        return item

    async def remove_subscriber(self, key: NamespacedName) -> bool:
        """Stop the item of a subscription and clean up its staging directory.

        Returns false if there is no item for the subscription.
        """
        if (item := self._items.pop(key, None)) is None:
            return False
        _LOGGER.info("Removing subscription %s", key)
        item.stop()
        await item.join()
        await self._staging.cleanup(item.staging_path)
        return True

    async def stop(self) -> None:
        """Stop every item and wait for them to exit."""
        for item in self._items.values():
            item.stop()
        for item in self._items.values():
            await item.join()
