"""Command line tool for running a subscription against a git channel."""

import asyncio
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
import tempfile
from typing import Any, TextIO, cast

import yaml

from gitops_subscriber.client import InMemoryClient
from gitops_subscriber.config import DEFAULT_SYNC_INTERVAL, SubscriberConfig
from gitops_subscriber.exceptions import InputException, SubscriberException
from gitops_subscriber.manifest import (
    CHANNEL_KIND,
    SUBSCRIPTION_KIND,
    Channel,
    Subscription,
)
from gitops_subscriber.subscriber import SubscriberItem
from gitops_subscriber.synchronizer import InMemorySynchronizer
from gitops_subscriber.unstructured import is_resource, load_documents

_LOGGER = logging.getLogger(__name__)


def load_objects(client: InMemoryClient, path: pathlib.Path) -> list[dict[str, Any]]:
    """Load every resource in a YAML file into the client."""
    try:
        docs = list(load_documents(path.read_text()))
    except (OSError, yaml.YAMLError) as err:
        raise InputException(f"Unable to read {path}: {err}") from err
    return [client.add_object(doc) for doc in docs if is_resource(doc)]


def _find_kind(docs: list[dict[str, Any]], kind: str, path: pathlib.Path) -> dict[str, Any]:
    for doc in docs:
        if doc["kind"] == kind:
            return doc
    raise InputException(f"No {kind} found in {path}")


def write_deployables(synchronizer: InMemorySynchronizer, output: TextIO) -> None:
    """Write the registered deployables as a YAML stream."""
    deployables = sorted(synchronizer.templates(), key=lambda dpl: dpl.name)
    yaml.dump_all(
        [deployable.to_doc() for deployable in deployables],
        output,
        sort_keys=False,
        explicit_start=True,
    )


class SubscribeAction:
    """Run a subscription against its channel."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "subscribe",
                help="Subscribe to a git channel and print the registered deployables",
                description=(
                    "Fetch the repository of a channel, run the subscription "
                    "and print the deployables it registers."
                ),
            ),
        )
        args.add_argument(
            "--subscription",
            help="YAML file with the Subscription and any ConfigMaps it references",
            type=pathlib.Path,
            required=True,
        )
        args.add_argument(
            "--channel",
            help="YAML file with the Channel",
            type=pathlib.Path,
            required=True,
        )
        args.add_argument(
            "--secret",
            help="Optional YAML file with the Secret holding the channel credentials",
            type=pathlib.Path,
            default=None,
        )
        args.add_argument(
            "--once",
            help="Run a single cycle and exit",
            action="store_true",
        )
        args.add_argument(
            "--interval",
            help="Seconds between the end of a cycle and the start of the next one",
            type=float,
            default=DEFAULT_SYNC_INTERVAL,
        )
        args.add_argument(
            "--cycle-timeout",
            help="Optional deadline in seconds for a single cycle",
            type=float,
            default=None,
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        subscription: pathlib.Path,
        channel: pathlib.Path,
        secret: pathlib.Path | None,
        once: bool,
        interval: float,
        cycle_timeout: float | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        client = InMemoryClient()
        sub_doc = _find_kind(
            load_objects(client, subscription), SUBSCRIPTION_KIND, subscription
        )
        channel_doc = _find_kind(load_objects(client, channel), CHANNEL_KIND, channel)
        if secret is not None:
            load_objects(client, secret)

        synchronizer = InMemorySynchronizer()
        with tempfile.TemporaryDirectory() as staging_root:
            config = SubscriberConfig(
                sync_interval=interval,
                cycle_timeout=cycle_timeout,
                staging_root=pathlib.Path(staging_root),
            )
            item = SubscriberItem(
                Subscription.parse_doc(sub_doc),
                Channel.parse_doc(channel_doc),
                client,
                synchronizer,
                config=config,
            )
            while True:
                commit_id = item.commit_id
                if not await item.do_subscription():
                    if once:
                        raise SubscriberException(
                            f"Subscription {item.key} failed, see logs for details"
                        )
                elif item.commit_id != commit_id:
                    write_deployables(synchronizer, sys.stdout)
                if once:
                    return
                await asyncio.sleep(interval)
