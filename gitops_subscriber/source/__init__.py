"""The source module.

This module fetches the git repository of a channel into a staging directory,
resolving the credentials referenced by the channel.
"""

from .artifact import GitArtifact
from .git import GitFetcher, RepositoryFetcher
from .secret import Auth, get_auth_from_secret, resolve_credentials
from .staging import StagingArea, get_staging_area

__all__ = [
    "Auth",
    "GitArtifact",
    "GitFetcher",
    "RepositoryFetcher",
    "StagingArea",
    "get_auth_from_secret",
    "get_staging_area",
    "resolve_credentials",
]
