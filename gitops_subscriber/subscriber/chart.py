"""Subscription of the chart packages found in a repository.

Every package remaining in the filtered chart index becomes a chart release
descriptor wrapped in a deployable. A release already present in the cluster
keeps its release name, everything else in its spec is replaced.
"""

import logging

from gitops_subscriber import unstructured
from gitops_subscriber.client import Client
from gitops_subscriber.config import RegistrationPolicy, SubscriberConfig
from gitops_subscriber.context import trace_context
from gitops_subscriber.chart_index import ChartIndex, ChartVersion
from gitops_subscriber.exceptions import (
    InputException,
    ObjectNotFoundError,
    OverrideError,
    RegistrationError,
)
from gitops_subscriber.manifest import (
    HELM_RELEASE_KIND,
    Channel,
    Deployable,
    GitChartSource,
    HelmReleaseDescriptor,
    HelmReleaseSpec,
    OwnerReference,
    ReleaseSource,
    Subscription,
)
from gitops_subscriber.overrides import override_release
from gitops_subscriber.status import PackageSet
from gitops_subscriber.synchronizer import Synchronizer

from .common import GIT_HELM_SOURCE, deployable_owner, local_annotations, record_package

__all__ = ["ChartSubscriber", "release_name_for"]

_LOGGER = logging.getLogger(__name__)


def release_name_for(package_name: str, subscription: Subscription) -> str:
    """Return the name of the release object of a package."""
    return f"{package_name}-{subscription.name}-{subscription.namespace}"


class ChartSubscriber:
    """Registers chart releases for the packages of a chart index."""

    def __init__(
        self,
        subscription: Subscription,
        channel: Channel | None,
        synchronizer: Synchronizer,
        client: Client,
        package_set: PackageSet,
        config: SubscriberConfig | None = None,
    ) -> None:
        """Initialize ChartSubscriber."""
        self._subscription = subscription
        self._channel = channel
        self._synchronizer = synchronizer
        self._client = client
        self._package_set = package_set
        self._config = config or SubscriberConfig()
        self._host = subscription.namespaced_name
        self._owner = deployable_owner(subscription, channel)

    @property
    def source(self) -> str:
        """The registration source tag of this pass."""
        return f"{GIT_HELM_SOURCE}{self._host}"

    def _release_spec(
        self, package_name: str, chart_version: ChartVersion, release_name: str
    ) -> HelmReleaseSpec:
        channel = self._channel
        return HelmReleaseSpec(
            source=ReleaseSource(
                git=GitChartSource(
                    urls=[channel.path_name] if channel else [],
                    chart_path=chart_version.urls[0],
                    branch=channel.branch if channel else None,
                )
            ),
            chart_name=package_name,
            release_name=release_name,
            version=chart_version.version,
            config_map_ref=channel.config_map_ref if channel else None,
            secret_ref=channel.secret_ref if channel else None,
        )

    async def _get_release(self, name: str) -> HelmReleaseDescriptor | None:
        try:
            doc = await self._client.get_object(
                HELM_RELEASE_KIND, self._subscription.namespace, name
            )
        except ObjectNotFoundError:
            return None
        return HelmReleaseDescriptor.parse_doc(doc)

    async def build_release(
        self, package_name: str, chart_version: ChartVersion
    ) -> HelmReleaseDescriptor:
        """Create a new release descriptor or update the existing one."""
        name = release_name_for(package_name, self._subscription)
        if (release := await self._get_release(name)) is None:
            _LOGGER.debug("Creating release %s", name)
            return HelmReleaseDescriptor(
                name=name,
                namespace=self._subscription.namespace,
                spec=self._release_spec(package_name, chart_version, package_name),
                owner_references=[
                    OwnerReference(
                        api_version=self._subscription.api_version,
                        kind=self._subscription.kind,
                        name=self._subscription.name,
                        uid=self._subscription.uid,
                    )
                ],
            )
        _LOGGER.debug("Updating release %s", name)
        release.spec = self._release_spec(
            package_name, chart_version, release.spec.release_name
        )
        return release

    async def subscribe(self, index: ChartIndex) -> None:
        """Register a release for the preferred version of every package."""
        with trace_context("Charts"):
            for package_name in sorted(index.entries):
                chart_version = index.best(package_name)
                if not await self._subscribe_package(package_name, chart_version):
                    return

    async def _subscribe_package(
        self, package_name: str, chart_version: ChartVersion
    ) -> bool:
        """Register a single package returning false when the pass must stop."""
        deployable_name = f"{self._owner.name}-{package_name}-{chart_version.version}"
        try:
            release = await self.build_release(package_name, chart_version)
            release = override_release(
                release, self._subscription.overrides_for(package_name)
            )
            template = unstructured.to_json_document(release.to_doc())
        except (InputException, OverrideError) as err:
            _LOGGER.error("Failed to build release of %s: %s", package_name, err)
            record_package(
                self._subscription, self._package_set, deployable_name, err
            )
            return True

        deployable = Deployable(
            name=deployable_name,
            namespace=self._owner.namespace,
            template=template,
            annotations=local_annotations(),
        )
        try:
            await self._synchronizer.register_template(
                self._host, deployable, self.source
            )
        except RegistrationError as err:
            _LOGGER.warning("Failed to register %s: %s", deployable.key, err)
            record_package(
                self._subscription, self._package_set, deployable_name, err
            )
            return self._config.chart_registration_policy == RegistrationPolicy.CONTINUE
        _LOGGER.info("Registered release %s as %s", release.name, deployable.key)
        record_package(self._subscription, self._package_set, deployable_name)
        return True
