"""Subscription of the plain resource manifests found in a repository.

Every recognized manifest file of every plain resource directory is parsed and
each document that looks like a resource becomes a deployable registered with
the synchronizer. Deployables that were registered by an earlier cycle but not
seen in this one are garbage collected by applying the validator at the end of
the pass.
"""

import asyncio
from collections.abc import Iterable
import copy
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from gitops_subscriber import unstructured
from gitops_subscriber.config import RegistrationPolicy, SubscriberConfig
from gitops_subscriber.context import trace_context
from gitops_subscriber.exceptions import (
    InputException,
    OverrideError,
    RegistrationError,
    UnsupportedKindError,
)
from gitops_subscriber.filters import check_filters
from gitops_subscriber.manifest import (
    Channel,
    Deployable,
    GroupVersionKind,
    Subscription,
)
from gitops_subscriber.overrides import apply_overrides
from gitops_subscriber.status import PackageSet
from gitops_subscriber.synchronizer import Synchronizer, Validator

from .common import GIT_K8S_SOURCE, deployable_owner, local_annotations, record_package

__all__ = ["ResourceSubscriber"]

_LOGGER = logging.getLogger(__name__)


@dataclass
class ResourceCandidate:
    """A resource converted into a deployable, ready to be registered."""

    deployable: Deployable
    gvk: GroupVersionKind


class ResourceSubscriber:
    """Registers the plain resources of a repository with the synchronizer."""

    def __init__(
        self,
        subscription: Subscription,
        channel: Channel | None,
        synchronizer: Synchronizer,
        package_set: PackageSet,
        config: SubscriberConfig | None = None,
    ) -> None:
        """Initialize ResourceSubscriber."""
        self._subscription = subscription
        self._channel = channel
        self._synchronizer = synchronizer
        self._package_set = package_set
        self._config = config or SubscriberConfig()
        self._host = subscription.namespaced_name
        self._owner = deployable_owner(subscription, channel)

    @property
    def source(self) -> str:
        """The registration source tag of this pass."""
        return f"{GIT_K8S_SOURCE}{self._host}"

    def _manifest_files(self, path: Path) -> list[Path]:
        try:
            entries = sorted(path.iterdir())
        except OSError as err:
            _LOGGER.error("Failed to list files in directory %s: %s", path, err)
            return []
        return [
            entry
            for entry in entries
            if entry.is_file()
            and entry.suffix.lower() in self._config.resource_extensions
        ]

    async def _read_documents(self, path: Path) -> list[Any]:
        try:
            async with aiofiles.open(str(path), encoding="utf-8") as manifest_file:
                content = await manifest_file.read()
        except (OSError, UnicodeDecodeError) as err:
            _LOGGER.warning("Skipping file %s, failed to read: %s", path, err)
            return []
        try:
            return list(unstructured.load_documents(content))
        except yaml.YAMLError as err:
            _LOGGER.warning("Skipping file %s, failed to parse YAML: %s", path, err)
            return []

    async def subscribe(self, resource_dirs: Iterable[Path]) -> None:
        """Register the resources of every directory and garbage collect the rest.

        When a registration fails and the pass is configured to abort, the
        remaining resources are not processed and no garbage collection happens.
        """
        validator = self._synchronizer.create_validator(self.source)
        with trace_context("Resources"):
            for resource_dir in resource_dirs:
                files = await asyncio.to_thread(self._manifest_files, resource_dir)
                for manifest_file in files:
                    _LOGGER.debug("Scanning file %s", manifest_file)
                    for doc in await self._read_documents(manifest_file):
                        if not unstructured.is_resource(doc):
                            _LOGGER.debug("Not a resource in %s", manifest_file)
                            continue
                        if not await self._subscribe_doc(doc, validator):
                            return
            await self._synchronizer.apply_validator(validator)

    async def _subscribe_doc(self, doc: dict[str, Any], validator: Validator) -> bool:
        """Register a single resource returning false when the pass must stop."""
        if (candidate := self.build_deployable(doc)) is None:
            return True
        deployable = candidate.deployable
        _LOGGER.debug("Registering %s for %s", deployable.key, self._host)
        try:
            await self._synchronizer.register_template(
                self._host, deployable, self.source
            )
        except RegistrationError as err:
            record_package(
                self._subscription, self._package_set, deployable.name, err
            )
            if self._config.resource_registration_policy == RegistrationPolicy.ABORT_PASS:
                _LOGGER.error(
                    "Aborting resource pass of %s, failed to register %s: %s",
                    self._host,
                    deployable.key,
                    err,
                )
                return False
            _LOGGER.warning("Failed to register %s: %s", deployable.key, err)
            return True
        validator.add_valid_resource(candidate.gvk, self._host, deployable.key)
        record_package(self._subscription, self._package_set, deployable.name)
        return True

    def build_deployable(self, doc: dict[str, Any]) -> ResourceCandidate | None:
        """Convert a resource into a deployable.

        Returns None when the resource is skipped because its kind is not
        supported, it does not pass the package filter, its overrides fail or
        it cannot be serialized. Everything but a filter mismatch is recorded
        in the package status.
        """
        kind = doc["kind"]
        name = unstructured.get_name(doc)
        deployable_name = f"{self._owner.name}-{kind}-{name}"

        gvk = unstructured.get_gvk(doc)
        if (valid_gvk := self._synchronizer.get_validated_gvk(gvk)) is None:
            err = UnsupportedKindError(str(gvk))
            _LOGGER.info("Skipping %s: %s", deployable_name, err)
            record_package(self._subscription, self._package_set, deployable_name, err)
            return None

        resource = copy.deepcopy(doc)
        if self._synchronizer.is_namespaced(valid_gvk):
            unstructured.set_namespace(resource, self._subscription.namespace)

        if self._subscription.package_filter is not None:
            if errmsg := check_filters(self._subscription, resource):
                _LOGGER.debug(errmsg)
                return None
            try:
                resource = apply_overrides(
                    resource, self._subscription.overrides_for(name)
                )
            except OverrideError as err:
                _LOGGER.warning("Failed to override package %s: %s", deployable_name, err)
                record_package(
                    self._subscription, self._package_set, deployable_name, err
                )
                return None

        try:
            template = unstructured.to_json_document(resource)
        except InputException as err:
            _LOGGER.warning("Failed to serialize package %s: %s", deployable_name, err)
            record_package(
                self._subscription, self._package_set, deployable_name, err
            )
            return None

        deployable = Deployable(
            name=deployable_name,
            namespace=self._owner.namespace,
            template=template,
            annotations=local_annotations(),
        )
        return ResourceCandidate(deployable=deployable, gvk=valid_gvk)
