"""Library for building and filtering an index of the charts in a repository.

The index mirrors a chart repository index file: it maps each package name to
the list of versions found, sorted so the newest version comes first. The
subscription filters are then applied in place, first by package name and then
by version and tiller version.

Example usage:

```python
index = build_chart_index(classified)
filter_charts(index, subscription)
for name, versions in index.entries.items():
    print(f"Subscribing to {name} {versions[0].version}")
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

from mashumaro import field_options
from semver import Version
import yaml

from .classifier import ClassifiedRepository
from .config import CHART_MANIFEST
from .exceptions import ChartParseError, FilterParseError
from .manifest import BaseManifest, PackageFilter, Subscription
from .version import parse_range, parse_version

__all__ = [
    "ChartMetadata",
    "ChartVersion",
    "ChartIndex",
    "load_chart_metadata",
    "build_chart_index",
    "filter_charts",
]

_LOGGER = logging.getLogger(__name__)

GENERATED_DIGEST = "generated-by-gitops-subscriber"


@dataclass
class ChartMetadata(BaseManifest):
    """The contents of a chart manifest."""

    name: str
    """The name of the chart."""

    version: str
    """The version of the chart."""

    api_version: str | None = field(
        metadata=field_options(alias="apiVersion"), default=None
    )
    app_version: str | None = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    description: str | None = None
    tiller_version: str | None = field(
        metadata=field_options(alias="tillerVersion"), default=None
    )
    """Range of tiller versions the chart supports."""

    kube_version: str | None = field(
        metadata=field_options(alias="kubeVersion"), default=None
    )


def load_chart_metadata(manifest_path: Path) -> ChartMetadata:
    """Parse a chart manifest file into chart metadata."""
    try:
        doc = yaml.safe_load(manifest_path.read_text())
    except (OSError, yaml.YAMLError) as err:
        raise ChartParseError(f"Unable to read chart manifest {manifest_path}: {err}") from err
    if not isinstance(doc, dict):
        raise ChartParseError(f"Invalid chart manifest {manifest_path}: {doc}")
    if not (name := doc.get("name")):
        raise ChartParseError(f"Invalid chart manifest {manifest_path} missing name")
    if not (version := doc.get("version")):
        raise ChartParseError(f"Invalid chart manifest {manifest_path} missing version")
    return ChartMetadata(
        name=str(name),
        version=str(version),
        api_version=doc.get("apiVersion"),
        app_version=_optional_str(doc.get("appVersion")),
        description=doc.get("description"),
        tiller_version=_optional_str(doc.get("tillerVersion")),
        kube_version=_optional_str(doc.get("kubeVersion")),
    )


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass
class ChartVersion(BaseManifest):
    """A single version of a chart package in the index."""

    name: str
    version: str
    urls: list[str]
    """Chart locations relative to the repository root."""

    digest: str = GENERATED_DIGEST
    tiller_version: str | None = field(
        metadata=field_options(alias="tillerVersion"), default=None
    )
    app_version: str | None = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    description: str | None = None


def _sort_key(chart_version: ChartVersion) -> tuple[int, Version | str]:
    """Sort key placing unparseable versions below all valid versions."""
    try:
        return (1, parse_version(chart_version.version))
    except FilterParseError:
        return (0, chart_version.version)


@dataclass
class ChartIndex(BaseManifest):
    """Index of the chart packages found in a repository."""

    entries: dict[str, list[ChartVersion]] = field(default_factory=dict)

    def add(
        self,
        metadata: ChartMetadata,
        filename: str,
        base_url: str,
        digest: str = GENERATED_DIGEST,
    ) -> ChartVersion:
        """Add a chart version located at base_url/filename."""
        url = f"{base_url.rstrip('/')}/{filename}" if base_url else filename
        chart_version = ChartVersion(
            name=metadata.name,
            version=metadata.version,
            urls=[url],
            digest=digest,
            tiller_version=metadata.tiller_version,
            app_version=metadata.app_version,
            description=metadata.description,
        )
        self.entries.setdefault(metadata.name, []).append(chart_version)
        return chart_version

    def sort_entries(self) -> None:
        """Sort the versions of every package, newest first."""
        for name, versions in self.entries.items():
            self.entries[name] = sorted(versions, key=_sort_key, reverse=True)

    def best(self, name: str) -> ChartVersion:
        """Return the preferred version of a package."""
        return self.entries[name][0]

    def remove_non_matching_name(self, package: str) -> None:
        """Remove every package that is not named exactly `package`."""
        for name in list(self.entries):
            if name != package:
                del self.entries[name]
        _LOGGER.debug("After name matching: %s", list(self.entries))

    def filter_on_version(
        self, version_range: str | None, tiller_version: str | None
    ) -> None:
        """Keep only the versions that satisfy the version and tiller filters.

        Packages left without any version are removed from the index.
        """
        for name in list(self.entries):
            kept = [
                chart_version
                for chart_version in self.entries[name]
                if check_tiller_version(chart_version, tiller_version)
                and check_version(chart_version, version_range)
            ]
            if kept:
                self.entries[name] = kept
            else:
                _LOGGER.debug("No versions of %s match the filters", name)
                del self.entries[name]
        _LOGGER.debug("After version matching: %s", list(self.entries))


def check_version(chart_version: ChartVersion, version_range: str | None) -> bool:
    """Return true if the chart version satisfies the version range."""
    if not version_range:
        return True
    try:
        return parse_range(version_range)(parse_version(chart_version.version))
    except FilterParseError as err:
        _LOGGER.warning(
            "Excluding %s %s: %s", chart_version.name, chart_version.version, err
        )
        return False


def check_tiller_version(
    chart_version: ChartVersion, tiller_version: str | None
) -> bool:
    """Return true if the chart is compatible with the tiller version filter.

    A chart declares the range of tiller versions it supports. When the filter is
    a plain version it must fall inside the range declared by the chart. When the
    filter is itself a range, the chart must declare a plain version inside it.
    Charts that declare nothing never match an active filter.
    """
    if not tiller_version:
        return True
    if not chart_version.tiller_version:
        _LOGGER.debug(
            "Excluding %s %s: no tillerVersion declared",
            chart_version.name,
            chart_version.version,
        )
        return False
    try:
        try:
            platform = parse_version(tiller_version)
        except FilterParseError:
            return parse_range(tiller_version)(
                parse_version(chart_version.tiller_version)
            )
        return parse_range(chart_version.tiller_version)(platform)
    except FilterParseError as err:
        _LOGGER.warning(
            "Excluding %s %s: tillerVersion %s: %s",
            chart_version.name,
            chart_version.version,
            chart_version.tiller_version,
            err,
        )
        return False


def build_chart_index(
    classified: ClassifiedRepository, chart_manifest: str = CHART_MANIFEST
) -> ChartIndex:
    """Build a sorted index with one entry per chart root of the repository."""
    index = ChartIndex()
    for chart_dir in classified.chart_dirs.values():
        metadata = load_chart_metadata(chart_dir / chart_manifest)
        relative = chart_dir.relative_to(classified.repo_root)
        if relative == Path("."):
            # Chart at the root of the repository
            index.add(metadata, ".", "")
            continue
        parent = relative.parent
        index.add(
            metadata, relative.name, "" if parent == Path(".") else parent.as_posix()
        )
    index.sort_entries()
    return index


def filter_charts(index: ChartIndex, subscription: Subscription) -> None:
    """Filter the index in place by the subscription package name and filters."""
    if subscription.package:
        index.remove_non_matching_name(subscription.package)
    else:
        _LOGGER.info(
            "Subscription %s declares no package name, keeping all charts",
            subscription.namespaced_name,
        )
    package_filter = subscription.package_filter or PackageFilter()
    index.filter_on_version(package_filter.version, package_filter.tiller_constraint)
