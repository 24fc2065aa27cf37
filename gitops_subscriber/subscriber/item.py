"""A subscriber item reconciles one subscription against its channel.

The item owns a long running background task that runs a reconciliation cycle
and then waits for the sync interval before running the next one, so cycles of
the same item never overlap. A cycle fetches the repository of the channel and
does nothing else when the fetched commit was already processed. Otherwise the
repository is classified, its plain resources and chart packages are registered
with the synchronizer and the package status of the subscription is reported.

The processed commit is only recorded once the cycle finished without a fatal
error, so a cycle that fails partway is retried from scratch on the next tick.
"""

import asyncio
import logging
from pathlib import Path

from gitops_subscriber.chart_index import build_chart_index, filter_charts
from gitops_subscriber.classifier import classify_repository
from gitops_subscriber.client import Client
from gitops_subscriber.config import SubscriberConfig
from gitops_subscriber.context import cycle_context, trace_context
from gitops_subscriber.exceptions import (
    CycleTimeoutError,
    ObjectNotFoundError,
    StatusReportError,
    SubscriberException,
)
from gitops_subscriber.manifest import Channel, NamespacedName, Subscription
from gitops_subscriber.source import (
    Auth,
    GitArtifact,
    GitFetcher,
    RepositoryFetcher,
    StagingArea,
    get_staging_area,
    resolve_credentials,
)
from gitops_subscriber.status import PackageSet, reconcile_package_status
from gitops_subscriber.synchronizer import Synchronizer
from gitops_subscriber.task import get_task_service

from .chart import ChartSubscriber
from .resource import ResourceSubscriber

__all__ = ["SubscriberItem"]

_LOGGER = logging.getLogger(__name__)


class SubscriberItem:
    """Periodically reconciles a subscription against a git channel."""

    def __init__(
        self,
        subscription: Subscription,
        channel: Channel,
        client: Client,
        synchronizer: Synchronizer,
        fetcher: RepositoryFetcher | None = None,
        staging: StagingArea | None = None,
        config: SubscriberConfig | None = None,
    ) -> None:
        """Initialize SubscriberItem."""
        self.subscription = subscription
        self.channel = channel
        self.commit_id = ""
        """The last commit processed by a successful cycle, empty until then."""
        self._client = client
        self._synchronizer = synchronizer
        self._fetcher = fetcher or GitFetcher()
        self._config = config or SubscriberConfig()
        self._staging = staging or get_staging_area(self._config.staging_root)
        self._cycle = 0
        self._cycle_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def key(self) -> NamespacedName:
        return self.subscription.namespaced_name

    @property
    def config(self) -> SubscriberConfig:
        return self._config

    @property
    def staging_path(self) -> Path:
        """The directory the channel repository is fetched into."""
        return self._staging.path_for(self.channel, self.key)

    @property
    def running(self) -> bool:
        """Return true if the periodic loop is running and not asked to stop."""
        return (
            self._task is not None
            and not self._task.done()
            and self._stop_event is not None
            and not self._stop_event.is_set()
        )

    def start(self) -> None:
        """Start the periodic loop, doing nothing if it is already running."""
        if self.running:
            _LOGGER.debug("Subscriber item %s already started", self.key)
            return
        if self._task is not None and not self._task.done():
            # Stop was requested but the loop has not exited yet
            if self._stop_event is not None:
                _LOGGER.debug("Resuming subscriber item %s", self.key)
                self._stop_event.clear()
                return
        _LOGGER.info("Starting subscriber item %s", self.key)
        self._stop_event = asyncio.Event()
        self._task = get_task_service().create_background_task(
            self._run(self._stop_event), name=f"subscriber-{self.key}"
        )

    def stop(self) -> None:
        """Stop the periodic loop before its next cycle.

        A cycle in progress is allowed to complete. Calling stop more than once
        or on an item that was never started does nothing.
        """
        if self._stop_event is None or self._stop_event.is_set():
            return
        _LOGGER.info("Stopping subscriber item %s", self.key)
        self._stop_event.set()

    async def join(self) -> None:
        """Wait for the periodic loop to exit after stop was called."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.do_subscription()
            except Exception as e:
                _LOGGER.exception("Unexpected error in cycle of %s: %s", self.key, e)
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self._config.sync_interval
                )
            except asyncio.TimeoutError:
                pass
        _LOGGER.debug("Subscriber item %s loop exited", self.key)

    async def do_subscription(self) -> bool:
        """Run a single reconciliation cycle.

        Returns true if the cycle completed, either processing a new commit or
        finding the commit unchanged, and false if it failed with a fatal error.
        """
        async with self._cycle_lock:
            self._cycle += 1
            with cycle_context(str(self.key), self._cycle):
                try:
                    await self._run_cycle()
                except SubscriberException as err:
                    _LOGGER.error(
                        "Subscription %s cycle failed, will retry: %s", self.key, err
                    )
                    return False
        return True

    async def _run_cycle(self) -> None:
        if (timeout := self._config.cycle_timeout) is None:
            await self._sync()
            return
        try:
            await asyncio.wait_for(self._sync(), timeout=timeout)
        except asyncio.TimeoutError as err:
            raise CycleTimeoutError(
                f"Cycle of {self.key} did not complete within {timeout}s"
            ) from err

    async def _resolve_sub_path(self) -> str | None:
        """Return the repository sub path named by the filterRef ConfigMap."""
        package_filter = self.subscription.package_filter
        if package_filter is None or package_filter.filter_ref is None:
            return None
        name = package_filter.filter_ref.name
        try:
            config_map = await self._client.get_config_map(
                self.subscription.namespace, name
            )
        except ObjectNotFoundError as err:
            _LOGGER.error("Failed to get filterRef ConfigMap %s: %s", name, err)
            return None
        return (config_map.get("data") or {}).get("path")

    async def _fetch(self, repo_root: Path, auth: Auth | None) -> GitArtifact:
        """Fetch the channel repository into the staged directory.

        The clone runs in a worker thread that can not be interrupted, so a
        cancelled cycle waits for the fetch to finish before the staged
        directory is released to the next cycle.
        """
        fetch = asyncio.ensure_future(
            self._fetcher.fetch(
                self.channel.path_name,
                repo_root,
                branch=self.channel.branch or self._config.default_branch,
                auth=auth,
            )
        )
        try:
            return await asyncio.shield(fetch)
        except asyncio.CancelledError:
            _LOGGER.debug("Waiting for fetch of %s to finish", self.channel.path_name)
            await asyncio.wait([fetch])
            if not fetch.cancelled() and (err := fetch.exception()) is not None:
                _LOGGER.debug("Abandoned fetch failed: %s", err)
            raise

    async def _sync(self) -> None:
        channel = self.channel
        async with self._staging.stage(self.staging_path) as repo_root:
            with trace_context("Fetch"):
                auth = await resolve_credentials(self._client, channel)
                artifact = await self._fetch(repo_root, auth)
            if artifact.commit_id == self.commit_id:
                _LOGGER.debug(
                    "Commit %s of %s unchanged, skipping",
                    artifact.commit_id,
                    channel.path_name,
                )
                return
            _LOGGER.info(
                "Processing commit %s of %s", artifact.commit_id, channel.path_name
            )

            sub_path = await self._resolve_sub_path()
            with trace_context("Classify"):
                classified = await asyncio.to_thread(
                    classify_repository,
                    repo_root,
                    sub_path,
                    self._config.chart_manifest,
                    self._config.metadata_dirs,
                )
                index = await asyncio.to_thread(
                    build_chart_index, classified, self._config.chart_manifest
                )
                filter_charts(index, self.subscription)

            package_set = PackageSet()
            await ResourceSubscriber(
                self.subscription,
                channel,
                self._synchronizer,
                package_set,
                self._config,
            ).subscribe(classified.resource_dirs.values())
            await ChartSubscriber(
                self.subscription,
                channel,
                self._synchronizer,
                self._client,
                package_set,
                self._config,
            ).subscribe(index)
            await self._report_status(package_set)

        self.commit_id = artifact.commit_id
        _LOGGER.info("Subscription %s synced to commit %s", self.key, self.commit_id)

    async def _report_status(self, package_set: PackageSet) -> None:
        with trace_context("Status"):
            try:
                self.subscription = await reconcile_package_status(
                    self._client, self.subscription, package_set
                )
            except (StatusReportError, ObjectNotFoundError) as err:
                _LOGGER.error(
                    "Failed to report package status of %s: %s", self.key, err
                )
