"""Artifact representation."""

from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class GitArtifact:
    """Git artifact.

    This object is returned when a repository is fetched. The path references a
    local filesystem checkout of the fetched branch and the commit identifies its
    content for comparison across cycles.
    """

    url: str
    """URL of the git repository, for informational/logging purposes."""

    local_path: str
    """Local filesystem path to the git repository."""

    commit_id: str
    """The hash of the fetched HEAD commit."""

    branch: str | None = None
    """The branch that was fetched, None for the remote default branch."""
