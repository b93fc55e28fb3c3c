"""Filesystem helpers shared by the pipeline tasks.

Key functions:
    remove_path: Delete a file or directory tree, tolerating absence.
    is_fresh: Freshness check used to skip redundant work.
    read_text: Read a UTF-8 source, raising FilesystemError on undecodable bytes.
    write_text: Write text, creating parent directories.
    write_if_changed: Write text only when it differs from what is on disk.
    require_file: Raise MissingSourceError for an absent declared input.
    url_path: Turn a project path into the URL path the preview server serves it at.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import FilesystemError, MissingSourceError


def remove_path(path: Path) -> bool:
    """Delete a file or directory tree.

    Args:
        path: Path to remove.

    Returns:
        True if something was removed, False if the path did not exist.
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def is_fresh(source: Path, dest: Path) -> bool:
    """Check whether dest is at least as new as source.

    Args:
        source: Input file.
        dest: Output file derived from the input.

    Returns:
        True if dest exists and its mtime is not older than the source's.
    """
    try:
        return dest.stat().st_mtime_ns >= source.stat().st_mtime_ns
    except FileNotFoundError:
        return False


def read_text(path: Path) -> str:
    """Read a source file as UTF-8.

    Raises:
        FilesystemError: If the file holds bytes that are not valid UTF-8.
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise FilesystemError(
            f"{path}: not valid UTF-8 (byte {exc.start}): {exc.reason}", original_error=exc
        ) from exc


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def write_if_changed(path: Path, content: str) -> bool:
    """Write content unless the file already holds exactly that text.

    Returns:
        True if the file was written.
    """
    if path.is_file() and path.read_bytes() == content.encode("utf-8"):
        return False
    write_text(path, content)
    return True


def require_file(path: Path, what: str = "Source file") -> Path:
    """Return path if it is an existing file, else raise MissingSourceError."""
    if not path.is_file():
        raise MissingSourceError(f"{what} not found: {path}")
    return path


def url_path(path: Path, served_root: Path) -> str:
    """Return the URL path of a file under the served root.

    Examples:
        >>> url_path(Path("/p/app/css/style.min.css"), Path("/p/app"))
        '/css/style.min.css'
    """
    try:
        return "/" + path.relative_to(served_root).as_posix()
    except ValueError:
        return "/" + path.name
