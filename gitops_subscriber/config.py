"""Configuration objects for gitops-subscriber."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
import tempfile

DEFAULT_SYNC_INTERVAL = 60.0
CHART_MANIFEST = "Chart.yaml"


class RegistrationPolicy(StrEnum):
    """What a subscription pass does when a registration fails."""

    ABORT_PASS = "abort-pass"
    """Stop processing the remainder of the pass."""

    CONTINUE = "continue"
    """Skip the failed package and continue with the next one."""


@dataclass
class SubscriberConfig:
    """Configuration for a SubscriberItem."""

    sync_interval: float = DEFAULT_SYNC_INTERVAL
    """Seconds to wait after a cycle completes before the next one starts."""

    cycle_timeout: float | None = None
    """Deadline in seconds for a single cycle, unbounded when not set.

    A clone in progress when the deadline passes can not be interrupted, so the
    failed cycle still waits for it before the staged directory is reused.
    """

    staging_root: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "gitops-subscriber"
    )
    """Directory under which fetched repositories are staged."""

    default_branch: str | None = None
    """Branch fetched when the channel does not name one, remote HEAD when not set."""

    chart_manifest: str = CHART_MANIFEST
    """File name that marks a directory as a chart root."""

    resource_extensions: tuple[str, ...] = (".yaml", ".yml", ".json")
    """File extensions read as resource manifests, compared case-insensitively."""

    metadata_dirs: tuple[str, ...] = (".git",)
    """Version control metadata directory names that are never classified."""

    resource_registration_policy: RegistrationPolicy = RegistrationPolicy.ABORT_PASS
    """Behavior of the resource pass when a registration fails."""

    chart_registration_policy: RegistrationPolicy = RegistrationPolicy.CONTINUE
    """Behavior of the chart pass when a registration fails."""
