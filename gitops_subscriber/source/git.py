"""Git repository fetcher."""

from abc import ABC, abstractmethod
import asyncio
import logging
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

import git

from gitops_subscriber.exceptions import FetchError

from .artifact import GitArtifact
from .secret import Auth

_LOGGER = logging.getLogger(__name__)


class RepositoryFetcher(ABC):
    """Fetches a repository into a local directory."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        dest: Path,
        branch: str | None = None,
        auth: Auth | None = None,
    ) -> GitArtifact:
        """Fetch the repository into dest.

        Raises:
            FetchError: If the repository could not be fetched.
        """


def _auth_url(url: str, auth: Auth | None) -> str:
    """Return the URL with basic auth credentials for http(s) remotes."""
    if auth is None:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        _LOGGER.warning("Ignoring credentials for non http(s) repository %s", url)
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    userinfo = f"{quote(auth.username, safe='')}:{quote(auth.password, safe='')}"
    return urlunsplit(parts._replace(netloc=f"{userinfo}@{host}"))


def _redact(message: str, auth: Auth | None) -> str:
    if auth is None or not auth.password:
        return message
    return message.replace(quote(auth.password, safe=""), "***").replace(
        auth.password, "***"
    )


class GitFetcher(RepositoryFetcher):
    """Fetches a shallow, single branch clone of a git repository."""

    def __init__(self, depth: int = 1, recurse_submodules: bool = True) -> None:
        """Initialize the GitFetcher."""
        self._depth = depth
        self._recurse_submodules = recurse_submodules

    def _clone(
        self, url: str, dest: Path, branch: str | None, auth: Auth | None
    ) -> GitArtifact:
        options: dict[str, object] = {
            "depth": self._depth,
            "single_branch": True,
        }
        if branch:
            options["branch"] = branch
        if self._recurse_submodules:
            options["recurse_submodules"] = True
        _LOGGER.info("Cloning %s into %s", url, dest)
        try:
            repo = git.Repo.clone_from(_auth_url(url, auth), str(dest), **options)
            commit_id = repo.head.commit.hexsha
        except git.exc.GitCommandError as err:
            raise FetchError(
                f"Failed to clone {url}: {_redact(str(err), auth)}"
            ) from None
        except (git.exc.GitError, ValueError) as err:
            raise FetchError(
                f"Failed to read HEAD of {url}: {_redact(str(err), auth)}"
            ) from err
        _LOGGER.debug("Fetched %s at commit %s", url, commit_id)
        return GitArtifact(
            url=url, local_path=str(dest), commit_id=commit_id, branch=branch
        )

    async def fetch(
        self,
        url: str,
        dest: Path,
        branch: str | None = None,
        auth: Auth | None = None,
    ) -> GitArtifact:
        """Clone the repository into dest returning the HEAD commit."""
        return await asyncio.to_thread(self._clone, url, dest, branch, auth)
