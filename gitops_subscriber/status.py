"""Reporting of per package subscription status.

A cycle records the outcome of every package it handles in the subscription
status and accumulates the package names in a PackageSet. At the end of the
cycle the status is reconciled against the set: packages no longer present in
the repository are pruned and the result is written back through the client.
"""

import logging
from collections.abc import Iterator
from typing import Any

from .client import Client
from .exceptions import ConflictError, StatusReportError
from .manifest import (
    PackagePhase,
    PackageStatus,
    Subscription,
    SubscriptionStatus,
    now_timestamp,
)

__all__ = [
    "PackageSet",
    "set_package_status",
    "validate_packages_in_status",
    "reconcile_package_status",
]

_LOGGER = logging.getLogger(__name__)


class PackageSet:
    """The package names handled during a single cycle."""

    def __init__(self) -> None:
        self._packages: set[str] = set()

    def add(self, package_name: str) -> None:
        self._packages.add(package_name)

    def __contains__(self, package_name: object) -> bool:
        return package_name in self._packages

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._packages))

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"PackageSet({sorted(self._packages)})"


def set_package_status(
    status: SubscriptionStatus,
    package_name: str,
    error: Exception | str | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Record the outcome of a single package in the subscription status."""
    if not package_name:
        raise StatusReportError("Package name is required to set package status")
    phase = PackagePhase.FAILED if error else PackagePhase.SUBSCRIBED
    status.packages[package_name] = PackageStatus(
        phase=phase,
        message=str(error) if error else None,
        last_update_time=now_timestamp(),
        resource_status=extra,
    )
    status.last_update_time = now_timestamp()


def _update_status_packages(status: SubscriptionStatus, package_set: PackageSet) -> None:
    """Reconcile the status packages with the package set."""
    for package_name in list(status.packages):
        if package_name not in package_set:
            _LOGGER.debug("Pruning stale package %s from status", package_name)
            del status.packages[package_name]
    for package_name in package_set:
        if package_name not in status.packages:
            set_package_status(status, package_name)
    status.phase = (
        PackagePhase.FAILED
        if any(pkg.phase == PackagePhase.FAILED for pkg in status.packages.values())
        else PackagePhase.SUBSCRIBED
    )


async def validate_packages_in_status(
    client: Client, subscription: Subscription, package_set: PackageSet
) -> None:
    """Prune stale packages from the status and write it through the client.

    Raises ConflictError when the subscription was modified since it was read.
    """
    _update_status_packages(subscription.status, package_set)
    subscription.status.last_update_time = now_timestamp()
    updated = await client.update_subscription_status(subscription)
    subscription.resource_version = updated.resource_version


async def reconcile_package_status(
    client: Client, subscription: Subscription, package_set: PackageSet
) -> Subscription:
    """Reconcile the subscription status, retrying once on a stale object.

    Returns the subscription that holds the reported status, which is a freshly
    read object when a retry was needed.
    """
    try:
        await validate_packages_in_status(client, subscription, package_set)
        return subscription
    except ConflictError as err:
        _LOGGER.info("Retrying status update of %s: %s", subscription.namespaced_name, err)
    # Carry over the statuses recorded this cycle onto the fresh object
    packages = dict(subscription.status.packages)
    fresh = await client.get_subscription(subscription.namespace, subscription.name)
    fresh.status.packages.update(packages)
    await validate_packages_in_status(client, fresh, package_set)
    return fresh
