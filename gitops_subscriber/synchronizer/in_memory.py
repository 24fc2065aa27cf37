"""Module for an in memory synchronizer."""

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
import logging
from typing import DefaultDict

from gitops_subscriber.exceptions import RegistrationError
from gitops_subscriber.manifest import (
    API_VERSION,
    HELM_RELEASE_KIND,
    Deployable,
    GroupVersionKind,
    NamespacedName,
)
from gitops_subscriber.unstructured import get_gvk, is_resource

from .synchronizer import KubeResource, Synchronizer, Validator

_LOGGER = logging.getLogger(__name__)


def _resource(api_version: str, kind: str, namespaced: bool = True) -> KubeResource:
    return KubeResource(GroupVersionKind.from_api_version(api_version, kind), namespaced)


DEFAULT_KUBE_RESOURCES = [
    _resource("v1", "ConfigMap"),
    _resource("v1", "Secret"),
    _resource("v1", "Service"),
    _resource("v1", "ServiceAccount"),
    _resource("v1", "PersistentVolumeClaim"),
    _resource("v1", "Namespace", namespaced=False),
    _resource("apps/v1", "Deployment"),
    _resource("apps/v1", "StatefulSet"),
    _resource("apps/v1", "DaemonSet"),
    _resource("batch/v1", "Job"),
    _resource("batch/v1", "CronJob"),
    _resource("networking.k8s.io/v1", "Ingress"),
    _resource("rbac.authorization.k8s.io/v1", "Role"),
    _resource("rbac.authorization.k8s.io/v1", "RoleBinding"),
    _resource("rbac.authorization.k8s.io/v1", "ClusterRole", namespaced=False),
    _resource("rbac.authorization.k8s.io/v1", "ClusterRoleBinding", namespaced=False),
    _resource(
        "apiextensions.k8s.io/v1", "CustomResourceDefinition", namespaced=False
    ),
    _resource(API_VERSION, HELM_RELEASE_KIND),
]


@dataclass(frozen=True)
class Registration:
    """A single successful registration call."""

    host: NamespacedName
    deployable: NamespacedName
    source: str


class InMemorySynchronizer(Synchronizer):
    """In-memory implementation of the Synchronizer interface.

    Holds the registered templates per registration source and host, and keeps
    a log of every registration made which is useful for inspection.
    """

    def __init__(self, kube_resources: Iterable[KubeResource] | None = None) -> None:
        """Initialize the InMemorySynchronizer with the supported kinds."""
        self.kube_resources: dict[GroupVersionKind, KubeResource] = {
            resource.gvk: resource
            for resource in (
                kube_resources if kube_resources is not None else DEFAULT_KUBE_RESOURCES
            )
        }
        self.registrations: list[Registration] = []
        self._templates: DefaultDict[
            str, DefaultDict[NamespacedName, dict[NamespacedName, Deployable]]
        ] = defaultdict(lambda: defaultdict(dict))
        self._host_locks: DefaultDict[NamespacedName, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    def get_validated_gvk(self, gvk: GroupVersionKind) -> GroupVersionKind | None:
        """Return the supported kind, matching on group and kind if the version differs."""
        if gvk in self.kube_resources:
            return gvk
        for known in self.kube_resources:
            if known.group == gvk.group and known.kind == gvk.kind:
                _LOGGER.debug("Normalized %s to %s", gvk, known)
                return known
        return None

    def is_namespaced(self, gvk: GroupVersionKind) -> bool:
        if (resource := self.kube_resources.get(gvk)) is None:
            return False
        return resource.namespaced

    async def register_template(
        self, host: NamespacedName, deployable: Deployable, source: str
    ) -> None:
        """Register a deployable, rejecting templates of unsupported kinds."""
        if not is_resource(deployable.template):
            raise RegistrationError(
                f"Deployable {deployable.key} template is not a resource"
            )
        gvk = get_gvk(deployable.template)
        if self.get_validated_gvk(gvk) is None:
            raise RegistrationError(
                f"Deployable {deployable.key} template {gvk} is not supported"
            )
        async with self._host_locks[host]:
            self._templates[source][host][deployable.key] = deployable
            self.registrations.append(Registration(host, deployable.key, source))
        _LOGGER.debug("Registered %s for %s under %s", deployable.key, host, source)

    async def apply_validator(self, validator: Validator) -> None:
        """Remove the deployables of the source not marked valid by the validator."""
        hosts = self._templates.get(validator.source, {})
        for host, templates in hosts.items():
            async with self._host_locks[host]:
                for key in list(templates):
                    if not validator.is_valid(host, key):
                        _LOGGER.info("Removing stale deployable %s of %s", key, host)
                        del templates[key]

    def templates(self, source: str | None = None) -> list[Deployable]:
        """Return the registered deployables, optionally for a single source."""
        return [
            deployable
            for template_source, hosts in self._templates.items()
            if source is None or template_source == source
            for templates in hosts.values()
            for deployable in templates.values()
        ]
