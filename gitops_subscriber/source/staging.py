"""Staging directories for fetched repositories.

Every subscription gets its own staging directory so that two subscriptions of
the same channel never clone into the same path. Access to a directory is still
serialized with a lock since the directory is deleted and recreated on every
cycle.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import hashlib
import logging
from pathlib import Path
from shutil import rmtree

from slugify import slugify

from gitops_subscriber.exceptions import FetchError
from gitops_subscriber.manifest import Channel, NamespacedName

_LOGGER = logging.getLogger(__name__)


class StagingArea:
    """Manager for the staging directories under a root directory."""

    def __init__(self, root: Path) -> None:
        """Initialize the staging area."""
        self._root = root
        self._locks: dict[Path, asyncio.Lock] = {}

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, channel: Channel, subscription: NamespacedName) -> Path:
        """Return the staging path for a subscription of a channel.

        The path holds a readable slug of the channel, e.g.
        `/tmp/gitops-subscriber/ns-channel/ab1234567890abcd`.
        """
        key = hashlib.sha256()
        key.update(channel.path_name.encode("utf-8"))
        key.update(str(channel.namespaced_name).encode("utf-8"))
        key.update(str(subscription).encode("utf-8"))
        slug = slugify(
            f"{channel.namespace}-{channel.name}",
            max_length=50,
            lowercase=True,
            separator="-",
        )
        return self._root / slug / key.hexdigest()[:16]

    def _lock(self, path: Path) -> asyncio.Lock:
        if (lock := self._locks.get(path)) is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    @staticmethod
    def _reset(path: Path) -> None:
        try:
            if path.exists():
                rmtree(path)
            path.mkdir(parents=True)
        except OSError as err:
            raise FetchError(f"Failed to prepare staging directory {path}: {err}") from err

    @asynccontextmanager
    async def stage(self, path: Path) -> AsyncGenerator[Path, None]:
        """Hold the staging directory, emptied, for the duration of the context."""
        async with self._lock(path):
            _LOGGER.debug("Preparing staging directory %s", path)
            await asyncio.to_thread(self._reset, path)
            yield path

    async def cleanup(self, path: Path) -> None:
        """Remove a staging directory once no cycle is using it."""
        async with self._lock(path):
            if path.exists():
                _LOGGER.info("Cleaning up staging directory %s", path)
                await asyncio.to_thread(rmtree, path, True)
        self._locks.pop(path, None)


_staging_areas: dict[Path, StagingArea] = {}


def get_staging_area(root: Path) -> StagingArea:
    """Get the shared StagingArea instance for a root directory."""
    if (area := _staging_areas.get(root)) is None:
        area = StagingArea(root)
        _staging_areas[root] = area
    return area
