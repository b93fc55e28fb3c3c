"""Publishing the release directory to a remote hosting branch.

Publishing is delegated to the git executable. A throwaway repository is
built over a copy of the release directory, committed, and force-pushed to
the target branch, replacing whatever the branch held before. Authentication
is entirely git's business: whatever credentials git already uses for the
configured remote apply here too.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from .errors import MissingSourceError, PublishError
from .executable_utils import find_executable, run_tool

logger = logging.getLogger(__name__)


def _looks_like_location(remote: str) -> bool:
    return "://" in remote or remote.startswith("git@") or Path(remote).is_dir()


def resolve_remote(git: str, remote: str, cwd: Path) -> str:
    """Turn a remote name into a URL using the project repository.

    URLs and existing local paths are returned unchanged.

    Raises:
        PublishError: If the project repository does not know the remote.
    """
    if _looks_like_location(remote):
        return remote
    return run_tool([git, "remote", "get-url", remote], cwd=cwd, error_cls=PublishError).strip()


def publish_directory(
    source: Path,
    remote: str,
    branch: str = "gh-pages",
    message: str = "Update site",
    dotfiles: bool = True,
    cwd: Path | None = None,
) -> str:
    """Force-push the contents of a directory to a remote branch.

    Args:
        source: Directory whose contents become the branch's tree.
        remote: Remote name (resolved in cwd's repository), URL or local path.
        branch: Branch receiving the snapshot.
        message: Commit message.
        dotfiles: Include files and directories whose names start with a dot.
        cwd: Project directory used to resolve remote names.

    Returns:
        The URL or path the snapshot was pushed to.

    Raises:
        MissingSourceError: If the source directory does not exist.
        PublishError: If git is missing or any git command fails.
    """
    if not source.is_dir():
        raise MissingSourceError(f"Release directory not found: {source}")
    git = find_executable("git")
    if not git:
        raise PublishError("git executable not found; it is required to publish")
    target = resolve_remote(git, remote, cwd or Path.cwd())

    def ignore(_dir: str, names: list[str]) -> list[str]:
        return [n for n in names if n == ".git" or (not dotfiles and n.startswith("."))]

    with tempfile.TemporaryDirectory(prefix="siteflow-publish-") as tmp:
        work = Path(tmp) / "site"
        shutil.copytree(source, work, ignore=ignore)
        for args in (
            ["init", "--quiet"],
            ["add", "--all"],
            ["commit", "--quiet", "--allow-empty", "-m", message],
            ["push", "--force", "--quiet", target, f"HEAD:refs/heads/{branch}"],
        ):
            run_tool([git, *args], cwd=work, error_cls=PublishError)
    logger.info("Published %s to %s (%s)", source.name, target, branch)
    return target
