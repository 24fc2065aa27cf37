"""Fixtures for creating local git repositories used as channels."""

from collections.abc import Callable, Generator
from pathlib import Path
import tempfile

import git
import pytest

RepoFactory = Callable[[dict[str, str | bytes]], git.Repo]


@pytest.fixture(name="tmp_dir")
def tmp_dir_fixture() -> Generator[Path, None, None]:
    """Create a temporary directory for test resources."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


def commit_files(
    repo: git.Repo, files: dict[str, str | bytes], message: str
) -> str:
    """Write the files into the repository and commit them, returning the sha."""
    root = Path(repo.working_tree_dir or "")
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    repo.git.add(".")
    repo.git.commit(m=message)
    return repo.head.commit.hexsha


@pytest.fixture(name="git_repo_factory")
def git_repo_factory_fixture(tmp_dir: Path) -> RepoFactory:
    """Return a function that creates a local git repository with files."""

    def factory(files: dict[str, str | bytes]) -> git.Repo:
        repo_path = tmp_dir / "git-repo"
        repo_path.mkdir()
        repo = git.Repo.init(repo_path)
        repo.config_writer().set_value("user", "name", "myusername").release()
        repo.config_writer().set_value("user", "email", "myemail").release()
        commit_files(repo, files, "Initial commit")
        return repo

    return factory


@pytest.fixture(name="commit")
def commit_fixture() -> Callable[[git.Repo, dict[str, str | bytes], str], str]:
    """Return a function that commits files to a repository."""
    return commit_files
