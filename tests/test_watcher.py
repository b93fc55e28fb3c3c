import asyncio

from siteflow.globs import compile_globs
from siteflow.watcher import ChangeEvent, FileWatcher, _ChangeHandler


class DummyEvent:
    def __init__(self, event_type, path, dest=None, is_directory=False):
        self.event_type = event_type
        self.src_path = path
        self.dest_path = dest
        self.is_directory = is_directory


def test_rapid_changes_collapse_into_one_event(tmp_path):
    events = []
    watcher = FileWatcher(tmp_path, debounce=0.05)
    watcher.watch("app/scss/**/*.scss", events.append)

    async def scenario():
        for _ in range(3):
            watcher.queue("app/scss/base.scss", "modified")
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.15)

    asyncio.run(scenario())
    assert len(events) == 1
    assert isinstance(events[0], ChangeEvent)
    assert events[0].path == "app/scss/base.scss"
    assert events[0].kind == "modified"


def test_distinct_paths_are_debounced_separately(tmp_path):
    events = []
    watcher = FileWatcher(tmp_path, debounce=0.02)
    watcher.watch("app/js/*.js", events.append)

    async def scenario():
        watcher.queue("app/js/a.js", "modified")
        watcher.queue("app/js/b.js", "created")
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert sorted((e.path, e.kind) for e in events) == [
        ("app/js/a.js", "modified"),
        ("app/js/b.js", "created"),
    ]


def test_created_then_modified_reports_created(tmp_path):
    events = []
    watcher = FileWatcher(tmp_path, debounce=0.02)
    watcher.watch("*.json", events.append)

    async def scenario():
        watcher.queue("data.json", "created")
        watcher.queue("data.json", "modified")
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert [e.kind for e in events] == ["created"]


def test_only_matching_subscriptions_are_called(tmp_path):
    styles, scripts, union = [], [], []
    watcher = FileWatcher(tmp_path, debounce=0.0)
    watcher.watch("app/scss/**/*.scss", styles.append)
    watcher.watch(["app/js/**/*.js", "!app/js/main.min.js"], scripts.append)
    watcher.watch([compile_globs("app/*.html"), compile_globs("data.json")], union.append)

    async def scenario():
        watcher.queue("app/js/main.min.js", "modified")
        watcher.queue("app/js/main.js", "modified")
        watcher.queue("data.json", "modified")
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert styles == []
    assert [e.path for e in scripts] == ["app/js/main.js"]
    assert [e.path for e in union] == ["data.json"]


def test_stop_cancels_pending_events(tmp_path):
    events = []
    watcher = FileWatcher(tmp_path, debounce=0.05)
    watcher.watch("*.json", events.append)

    async def scenario():
        watcher.queue("data.json", "modified")
        watcher.stop()
        await asyncio.sleep(0.1)

    asyncio.run(scenario())
    assert events == []


def test_change_handler_reports_relative_paths(tmp_path):
    watcher = FileWatcher(tmp_path)
    reported = []
    watcher.notify_threadsafe = lambda path, kind: reported.append((path, kind))
    handler = _ChangeHandler(watcher)
    root = tmp_path.resolve()

    handler.on_any_event(DummyEvent("modified", str(root / "app" / "scss" / "a.scss")))
    handler.on_any_event(
        DummyEvent("moved", str(root / "app" / "old.html"), dest=str(root / "app" / "new.html"))
    )
    handler.on_any_event(DummyEvent("modified", str(root / "app"), is_directory=True))
    handler.on_any_event(DummyEvent("created", str(root / "node_modules" / "x" / "a.js")))
    handler.on_any_event(DummyEvent("closed", str(root / "app" / "a.html")))

    assert reported == [
        ("app/scss/a.scss", "modified"),
        ("app/old.html", "deleted"),
        ("app/new.html", "created"),
    ]


def test_relative_outside_project(tmp_path):
    watcher = FileWatcher(tmp_path / "project")
    assert watcher.relative(str(tmp_path / "elsewhere.txt")) is None
    assert watcher.relative(str(tmp_path / "project" / "a.txt").encode()) == "a.txt"


def test_start_skips_missing_directories(tmp_path):
    (tmp_path / "app").mkdir()
    watcher = FileWatcher(tmp_path, debounce=0.01)
    watcher.watch(["app/*.html", "missing/**/*.scss"], lambda event: None)

    async def scenario():
        watcher.start()
        watcher.stop()

    asyncio.run(scenario())
    assert watcher._observer is None
