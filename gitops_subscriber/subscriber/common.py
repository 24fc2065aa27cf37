"""Helpers shared by the resource and chart subscription passes."""

import logging

from gitops_subscriber.exceptions import StatusReportError
from gitops_subscriber.manifest import (
    ANNOTATION_LOCAL,
    Channel,
    NamespacedName,
    Subscription,
)
from gitops_subscriber.status import PackageSet, set_package_status

_LOGGER = logging.getLogger(__name__)

GIT_K8S_SOURCE = "git-k8s-"
"""Registration source tag prefix of plain resources."""

GIT_HELM_SOURCE = "git-helm-"
"""Registration source tag prefix of chart releases."""


def deployable_owner(
    subscription: Subscription, channel: Channel | None
) -> NamespacedName:
    """Return the identity that deployable names and namespaces derive from.

    This is the channel when one is bound, otherwise the subscription.
    """
    if channel is None:
        return subscription.namespaced_name
    return channel.namespaced_name


def local_annotations() -> dict[str, str]:
    """Annotations marking a deployable as sourced from a local repository."""
    return {ANNOTATION_LOCAL: "true"}


def record_package(
    subscription: Subscription,
    package_set: PackageSet,
    package_name: str,
    error: Exception | None = None,
) -> None:
    """Record the outcome of a package and add it to the cycle package set."""
    package_set.add(package_name)
    try:
        set_package_status(subscription.status, package_name, error)
    except StatusReportError as err:
        _LOGGER.warning("Error setting status of package %s: %s", package_name, err)
