"""The subscriber module.

A SubscriberItem reconciles one subscription against the git repository of its
channel, registering the plain resources and chart releases it finds with the
synchronizer. The GitSubscriber manages the items of many subscriptions.
"""

from .chart import ChartSubscriber, release_name_for
from .item import SubscriberItem
from .manager import GitSubscriber
from .resource import ResourceSubscriber

__all__ = [
    "ChartSubscriber",
    "GitSubscriber",
    "ResourceSubscriber",
    "SubscriberItem",
    "release_name_for",
]
