"""Executable discovery and invocation for command-line collaborators.

The stylesheet compiler, the prefixer and git are external programs. This
module finds them (system PATH first, then the project's node_modules/.bin)
and runs them, turning a non-zero exit into a CollaboratorError whose
message is the tool's own stderr.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
    run_tool: Run a located executable and return its stdout.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .errors import CollaboratorError, TaskError


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable to find (e.g., 'sass', 'postcss').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('sass', Path('/my/project'))  # With local lookup
        '/my/project/node_modules/.bin/sass'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None


def run_tool(
    cmd: Sequence[str],
    cwd: Path | None = None,
    input_text: str | None = None,
    env: dict[str, str] | None = None,
    error_cls: type[TaskError] = CollaboratorError,
) -> str:
    """Run an external tool and return its stdout.

    Args:
        cmd: Command line, executable first.
        cwd: Working directory for the tool.
        input_text: Text fed to the tool's stdin.
        env: Extra environment variables layered over the current environment.
        error_cls: TaskError subclass raised on failure.

    Returns:
        The tool's standard output.

    Raises:
        error_cls: If the tool cannot be started or exits non-zero.
    """
    try:
        result = subprocess.run(
            list(cmd),
            cwd=cwd,
            input=input_text,
            env={**os.environ, **env} if env else None,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise error_cls(f"Could not run {cmd[0]}: {exc}", original_error=exc) from exc
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise error_cls(detail or f"{Path(cmd[0]).name} exited with status {result.returncode}")
    return result.stdout
