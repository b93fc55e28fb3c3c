"""Pipeline task base class and the structural tasks.

Every pipeline task follows the same contract: read its sources, delegate
the transformation to a collaborator, write the destination, and optionally
notify the live reload broadcaster. The blocking part of that work lives in
execute() and runs in a worker thread so the event loop stays responsive;
the reload notification is awaited on the loop afterwards.

Key classes:
- PipelineTask: Abstract base shared by every task.
- CleanDirsTask: Removes the release tree (clean-dist).
- CleanFilesTask: Removes generated HTML (clean-html).
- FormatHtmlTask: Re-indents generated HTML in place (format-html).
- PackageTask: Copies selected compiled assets into the release (package-build).
- PublishTask: Pushes the release to the hosting branch (publish).

Asset tasks live in assets.py and template rendering in templates.py.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .broadcaster import ReloadSignal
from .config import SiteConfig
from .context import BuildContext
from .errors import MissingSourceError
from .globs import compile_globs, expand
from .htmlformat import format_html
from .publish import publish_directory
from .registry import Task
from .utils import read_text, remove_path, url_path, write_if_changed

logger = logging.getLogger(__name__)


class PipelineTask(ABC):
    """Base class for pipeline tasks.

    Subclasses set ``name`` and implement execute(). Instances are awaitable
    zero-argument actions, so ``as_task()`` can hand them straight to the
    registry.

    Attributes:
        context: Runtime context (configuration and broadcaster).
        config: Shortcut to context.config.
    """

    name: str = ""

    def __init__(self, context: BuildContext):
        self.context = context
        self.config: SiteConfig = context.config

    @property
    def inputs(self) -> tuple[str, ...]:
        """Globs this task reads from."""
        return ()

    @property
    def output(self) -> str | None:
        """Path this task writes to."""
        return None

    @abstractmethod
    def execute(self) -> Any:
        """Do the blocking work of the task.

        Returns:
            A task-specific summary (usually a count of files written).
        """
        ...

    def reload_signal(self) -> ReloadSignal | None:
        """Signal broadcast after a successful run, or None for no reload."""
        return None

    async def __call__(self) -> Any:
        result = await asyncio.to_thread(self.execute)
        signal = self.reload_signal()
        if signal is not None:
            await self.context.broadcaster.notify(signal)
        return result

    def as_task(self) -> Task:
        return Task(self.name, self, self.inputs, self.output)

    def served_url(self, path: Path) -> str:
        """URL path at which the preview server serves a project file."""
        return url_path(path, self.config.path(self.config.server.root))


class CleanDirsTask(PipelineTask):
    """Remove the release directory tree."""

    name = "clean-dist"

    @property
    def output(self) -> str | None:
        return self.config.package.dest

    def execute(self) -> int:
        removed = 0
        for rel in self.config.clean_dirs:
            if remove_path(self.config.path(rel)):
                logger.debug("Removed %s", rel)
                removed += 1
        return removed


class CleanFilesTask(PipelineTask):
    """Remove previously generated HTML files."""

    name = "clean-html"

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(self.config.clean_html)

    def execute(self) -> int:
        files = expand(self.config.project_root, self.config.clean_html)
        for path in files:
            path.unlink()
        return len(files)


class FormatHtmlTask(PipelineTask):
    """Re-indent generated HTML in place.

    Files are only rewritten when formatting changes them, so the write does
    not keep re-triggering the watch rule that runs this task.
    """

    name = "format-html"

    @property
    def inputs(self) -> tuple[str, ...]:
        return tuple(self.config.html.files)

    def execute(self) -> int:
        indent = self.config.html.indent_size
        changed = 0
        for path in expand(self.config.project_root, self.config.html.files):
            formatted = format_html(read_text(path), indent_size=indent)
            if write_if_changed(path, formatted):
                changed += 1
        return changed


class PackageTask(PipelineTask):
    """Copy the selected compiled assets into the release directory."""

    name = "package-build"

    @property
    def inputs(self) -> tuple[str, ...]:
        base = self.config.package.base
        return tuple(
            f"!{base}/{p[1:]}" if p.startswith("!") else f"{base}/{p}"
            for p in self.config.package.include
        )

    @property
    def output(self) -> str | None:
        return self.config.package.dest

    def execute(self) -> int:
        options = self.config.package
        base = self.config.path(options.base)
        if not base.is_dir():
            raise MissingSourceError(f"Package base directory not found: {base}")
        dest = self.config.path(options.dest)
        copied = 0
        for source in expand(base, compile_globs(options.include)):
            if dest in source.parents:
                continue
            target = dest / source.relative_to(base)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            copied += 1
        logger.info("Packaged %d file(s) into %s", copied, options.dest)
        return copied


class PublishTask(PipelineTask):
    """Push the release directory to the configured hosting branch."""

    name = "publish"

    @property
    def inputs(self) -> tuple[str, ...]:
        return (f"{self.config.publish.source}/**/*",)

    def execute(self) -> str:
        options = self.config.publish
        return publish_directory(
            self.config.path(options.source),
            remote=options.remote,
            branch=options.branch,
            message=options.message,
            dotfiles=options.dotfiles,
            cwd=self.config.project_root,
        )
