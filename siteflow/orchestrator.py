"""Task wiring and the top-level pipelines.

The Orchestrator registers every pipeline task under its public name and
builds the composite pipelines from them:

- build: sequence(clean-dist, optimize-images, package-build)
- develop: sequence(clean-html, concurrent(render-templates, compile-styles,
  optimize-images, bundle-scripts, start-preview-server, start-watch-loop,
  format-html))
- deploy: sequence(build, publish)

In develop mode, file-system changes are routed through a table of watch
rules that is resolved once at startup. Every change event is matched against
the whole table, and each matching rule triggers its task through a per-task
worker. A task that is already busy keeps only the latest event as pending and
runs once more after its current run finishes. A failing triggered run is
logged, and the watch loop and the other tasks keep going.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .assets import ImageOptimizeTask, ScriptBundleTask, StyleCompileTask
from .context import BuildContext
from .errors import TaskError
from .globs import GlobSet, compile_globs
from .registry import Task, TaskRegistry
from .server import PreviewServer
from .tasks import (
    CleanDirsTask,
    CleanFilesTask,
    FormatHtmlTask,
    PackageTask,
    PipelineTask,
    PublishTask,
)
from .templates import TemplateRenderTask
from .watcher import ChangeEvent, FileWatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchRule:
    """Binding between file patterns and the task their changes trigger.

    Attributes:
        patterns: Compiled globs relative to the project root.
        task: Task run when a matching path changes.
    """

    patterns: GlobSet
    task: Task


def create_pipeline_tasks(context: BuildContext) -> list[PipelineTask]:
    """Instantiate every pipeline task bound to the given context."""
    return [
        CleanDirsTask(context),
        CleanFilesTask(context),
        ImageOptimizeTask(context),
        ScriptBundleTask(context),
        StyleCompileTask(context),
        TemplateRenderTask(context),
        FormatHtmlTask(context),
        PackageTask(context),
        PublishTask(context),
    ]


class Orchestrator:
    """Registers tasks, builds pipelines and drives the develop watch loop.

    Attributes:
        context: Runtime context shared with every task.
        registry: Registry holding all named tasks.
    """

    def __init__(
        self,
        context: BuildContext,
        registry: TaskRegistry | None = None,
        watcher_factory: Callable[..., FileWatcher] = FileWatcher,
        server_factory: Callable[..., PreviewServer] = PreviewServer,
    ):
        self.context = context
        self.registry = registry or TaskRegistry(context)
        self._watcher_factory = watcher_factory
        self._server_factory = server_factory
        self._rules: list[WatchRule] = []
        self._pending: dict[str, ChangeEvent] = {}
        self._workers: dict[str, asyncio.Task] = {}

        for pipeline_task in create_pipeline_tasks(context):
            self.registry.add(pipeline_task.as_task())
        self.registry.register("start-preview-server", self.start_preview_server)
        self.registry.register("start-watch-loop", self.start_watch_loop)
        self.registry.add(self.build())
        self.registry.add(self.develop())
        self.registry.add(self.deploy())

    def build(self) -> Task:
        return self.registry.sequence(
            "clean-dist", "optimize-images", "package-build", name="build"
        )

    def develop(self) -> Task:
        return self.registry.sequence(
            "clean-html",
            self.registry.concurrent(
                "render-templates",
                "compile-styles",
                "optimize-images",
                "bundle-scripts",
                "start-preview-server",
                "start-watch-loop",
                "format-html",
            ),
            name="develop",
        )

    def deploy(self) -> Task:
        return self.registry.sequence("build", "publish", name="deploy")

    def watch_rules(self) -> list[WatchRule]:
        """Return the table mapping source patterns to the tasks they trigger."""
        config = self.context.config
        table = [
            (config.styles.watch, "compile-styles"),
            (config.scripts.watch, "bundle-scripts"),
            (config.templates.watch, "render-templates"),
            (config.html.files, "format-html"),
        ]
        return [
            WatchRule(compile_globs(patterns), self.registry.get(name))
            for patterns, name in table
        ]

    async def start_preview_server(self) -> None:
        config = self.context.config
        server = self._server_factory(
            config.path(config.server.root), config.server, self.context.broadcaster
        )
        await server.serve()

    async def start_watch_loop(self) -> None:
        config = self.context.config
        self._rules = self.watch_rules()
        watcher = self._watcher_factory(config.project_root, debounce=config.watch.debounce)
        watcher.watch([rule.patterns for rule in self._rules], self.dispatch)
        logger.info("Watching for changes...")
        await watcher.run()

    def dispatch(self, event: ChangeEvent) -> list[str]:
        """Trigger every task whose watch rule matches the event.

        Returns:
            Names of the triggered tasks.
        """
        if not self._rules:
            self._rules = self.watch_rules()
        triggered = []
        for rule in self._rules:
            if rule.patterns.match(event.path):
                self.trigger(rule.task, event)
                triggered.append(rule.task.name)
        return triggered

    def trigger(self, task: Task, event: ChangeEvent) -> None:
        """Queue a run of task for event, coalescing with any pending event."""
        self._pending[task.name] = event
        worker = self._workers.get(task.name)
        if worker is None or worker.done():
            self._workers[task.name] = asyncio.get_running_loop().create_task(
                self._drain(task), name=f"watch:{task.name}"
            )

    async def _drain(self, task: Task) -> None:
        while task.name in self._pending:
            event = self._pending.pop(task.name)
            logger.info("%s %s", event.kind.capitalize(), event.path)
            try:
                await self.registry.run(task)
            except TaskError as exc:
                logger.error("'%s' errored: %s", task.name, exc.message)
        self._workers.pop(task.name, None)

    async def idle(self) -> None:
        """Wait until no triggered run is queued or executing."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()))

    async def run(self, *names: str) -> None:
        """Run the named tasks one after another."""
        for name in names:
            await self.registry.run(name)

    async def run_develop(self) -> None:
        """Run develop until cancelled.

        If the initial concurrent block reports a failure, it is logged and the
        still-running siblings (preview server, watch loop) keep serving.
        """
        try:
            await self.registry.run("develop")
        except TaskError as exc:
            logger.error("'%s' errored: %s", exc.task, exc.message)
            if not self.context.detached:
                raise
            logger.info("Still watching; fix the source to retry.")
            await self.context.wait_detached()
