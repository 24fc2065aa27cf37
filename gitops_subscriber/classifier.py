"""Library for classifying the contents of a fetched repository.

A repository holds two kinds of content: chart packages, which are directories
that contain a chart manifest (`Chart.yaml`), and plain resource directories that
hold kubernetes manifests. Everything beneath a chart root belongs to the chart,
so nested charts and the chart templates are never classified separately.

Example usage:

```python
from gitops_subscriber.classifier import classify_repository

classified = classify_repository(Path("/tmp/repo"), sub_path="deploy")
for chart_dir in classified.chart_dirs.values():
    print(f"Found chart: {chart_dir}")
for resource_dir in classified.resource_dirs.values():
    print(f"Found resources: {resource_dir}")
```
"""

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path

from .config import CHART_MANIFEST
from .exceptions import ClassificationError

__all__ = [
    "ClassifiedRepository",
    "classify_repository",
    "resolve_resource_path",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class ClassifiedRepository:
    """The directories of a repository partitioned by content type."""

    repo_root: Path
    """The root of the fetched repository."""

    resource_root: Path
    """The directory the classification started from."""

    chart_dirs: dict[str, Path] = field(default_factory=dict)
    """Chart root directories keyed by absolute path."""

    resource_dirs: dict[str, Path] = field(default_factory=dict)
    """Plain resource directories keyed by absolute path."""


def resolve_resource_path(
    repo_root: Path,
    sub_path: str | None,
    metadata_dirs: tuple[str, ...] = (".git",),
) -> Path:
    """Return the directory to classify, narrowed by an optional sub path."""
    root = repo_root.resolve()
    if not sub_path:
        return root
    resource_path = (root / sub_path.lstrip("/")).resolve()
    if not resource_path.is_relative_to(root):
        raise ClassificationError(
            f"Sub path '{sub_path}' is outside of the repository {repo_root}"
        )
    if any(part in metadata_dirs for part in resource_path.relative_to(root).parts):
        raise ClassificationError(
            f"Sub path '{sub_path}' points into repository metadata"
        )
    return resource_path


def classify_repository(
    repo_root: Path,
    sub_path: str | None = None,
    chart_manifest: str = CHART_MANIFEST,
    metadata_dirs: tuple[str, ...] = (".git",),
) -> ClassifiedRepository:
    """Partition the directories of a repository into charts and resources.

    Directories are visited depth first in lexical order so that a chart root is
    always found before any of its descendants, which are then never visited.
    Any error while traversing the tree raises a ClassificationError.
    """
    resource_path = resolve_resource_path(repo_root, sub_path, metadata_dirs)
    _LOGGER.debug("Repository resource root directory: %s", resource_path)
    if not resource_path.is_dir():
        raise ClassificationError(
            f"Repository resource path {resource_path} is not a directory"
        )

    def on_error(err: OSError) -> None:
        raise ClassificationError(
            f"Failed to traverse repository at {err.filename}: {err}"
        ) from err

    result = ClassifiedRepository(
        repo_root=repo_root.resolve(), resource_root=resource_path
    )
    for dirpath, dirnames, filenames in os.walk(resource_path, onerror=on_error):
        path = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if d not in metadata_dirs)
        if chart_manifest in filenames:
            _LOGGER.debug("Found chart manifest in %s", path)
            result.chart_dirs[str(path)] = path
            # Nested charts and chart templates belong to this chart
            dirnames[:] = []
            continue
        _LOGGER.debug("Found resource directory %s", path)
        result.resource_dirs[str(path)] = path

    _LOGGER.info(
        "Classified %s: %d chart(s), %d resource directories",
        resource_path,
        len(result.chart_dirs),
        len(result.resource_dirs),
    )
    return result
