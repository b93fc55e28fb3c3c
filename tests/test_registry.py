import asyncio

import pytest

from siteflow.config import SiteConfig
from siteflow.context import BuildContext
from siteflow.errors import (
    CollaboratorError,
    DuplicateTaskError,
    FilesystemError,
    MissingSourceError,
    UnknownTaskError,
)
from siteflow.registry import Task, TaskRegistry


def make_registry(tmp_path) -> TaskRegistry:
    return TaskRegistry(BuildContext(SiteConfig(project_root=tmp_path)))


def recorder(log, name, delay=0.0, error=None):
    async def action():
        log.append(("start", name))
        await asyncio.sleep(delay)
        if error is not None:
            raise error
        log.append(("end", name))

    return action


def test_register_and_lookup(tmp_path):
    registry = make_registry(tmp_path)
    task = registry.register("a", recorder([], "a"), inputs=["src/*.js"], output="out.js")
    assert registry.get("a") is task
    assert task.inputs == ("src/*.js",)
    assert "a" in registry
    assert registry.names() == ["a"]


def test_duplicate_name_rejected(tmp_path):
    registry = make_registry(tmp_path)
    registry.register("a", recorder([], "a"))
    with pytest.raises(DuplicateTaskError):
        registry.register("a", recorder([], "a"))


def test_unknown_name_rejected(tmp_path):
    registry = make_registry(tmp_path)
    with pytest.raises(UnknownTaskError):
        registry.get("nope")
    with pytest.raises(UnknownTaskError):
        registry.sequence("nope")


def test_sequence_runs_in_order(tmp_path):
    registry = make_registry(tmp_path)
    log = []
    registry.register("a", recorder(log, "a", delay=0.02))
    registry.register("b", recorder(log, "b"))
    registry.register("c", recorder(log, "c"))
    pipeline = registry.sequence("a", "b", "c")

    asyncio.run(registry.run(pipeline))
    assert log == [
        ("start", "a"),
        ("end", "a"),
        ("start", "b"),
        ("end", "b"),
        ("start", "c"),
        ("end", "c"),
    ]
    assert pipeline.name == "sequence(a, b, c)"


def test_sequence_stops_at_first_failure(tmp_path):
    registry = make_registry(tmp_path)
    log = []
    registry.register("a", recorder(log, "a", error=MissingSourceError("gone")))
    registry.register("b", recorder(log, "b"))

    with pytest.raises(MissingSourceError) as excinfo:
        asyncio.run(registry.run(registry.sequence("a", "b", name="both")))
    assert excinfo.value.task == "a"
    assert ("start", "b") not in log


def test_concurrent_completes_when_all_finish(tmp_path):
    registry = make_registry(tmp_path)
    log = []
    registry.register("slow", recorder(log, "slow", delay=0.05))
    registry.register("fast", recorder(log, "fast"))

    asyncio.run(registry.run(registry.concurrent("slow", "fast")))
    assert log.index(("start", "fast")) < log.index(("end", "slow"))
    assert ("end", "slow") in log and ("end", "fast") in log


def test_concurrent_fails_fast_and_leaves_siblings_running(tmp_path):
    registry = make_registry(tmp_path)
    log = []
    registry.register("broken", recorder(log, "broken", delay=0.01, error=CollaboratorError("boom")))
    registry.register("slow", recorder(log, "slow", delay=0.2))

    async def scenario():
        with pytest.raises(CollaboratorError) as excinfo:
            await registry.run(registry.concurrent("broken", "slow"))
        assert excinfo.value.task == "broken"
        assert ("end", "slow") not in log
        assert len(registry.context.detached) == 1
        await registry.context.wait_detached()

    asyncio.run(scenario())
    assert ("end", "slow") in log
    assert not registry.context.detached


def test_concurrent_reports_first_failure_to_complete(tmp_path):
    registry = make_registry(tmp_path)
    registry.register("late", recorder([], "late", delay=0.05, error=CollaboratorError("late")))
    registry.register("early", recorder([], "early", delay=0.01, error=CollaboratorError("early")))

    async def scenario():
        await registry.run(registry.concurrent("late", "early"))

    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.task == "early"


def test_concurrent_with_no_members(tmp_path):
    registry = make_registry(tmp_path)
    asyncio.run(registry.run(registry.concurrent(name="empty")))


def test_one_execution_in_flight_per_task(tmp_path):
    registry = make_registry(tmp_path)
    active = []
    peak = []

    async def action():
        active.append(1)
        peak.append(len(active))
        await asyncio.sleep(0.01)
        active.pop()

    task = registry.register("busy", action)

    async def scenario():
        await asyncio.gather(*(registry.run(task) for _ in range(3)))

    asyncio.run(scenario())
    assert peak == [1, 1, 1]


def test_is_running_tracks_in_flight(tmp_path):
    registry = make_registry(tmp_path)
    seen = {}

    async def action():
        seen["during"] = registry.is_running("watch")

    registry.register("watch", action)
    asyncio.run(registry.run("watch"))
    assert seen["during"] is True
    assert registry.is_running("watch") is False


def test_os_errors_become_filesystem_errors(tmp_path):
    registry = make_registry(tmp_path)

    async def action():
        raise PermissionError("denied")

    registry.register("write", action)
    with pytest.raises(FilesystemError) as excinfo:
        asyncio.run(registry.run("write"))
    assert excinfo.value.task == "write"
    assert isinstance(excinfo.value.original_error, PermissionError)


def test_undecodable_input_becomes_filesystem_error(tmp_path):
    registry = make_registry(tmp_path)
    source = tmp_path / "main.js"
    source.write_bytes(b"var s = '\xe9t\xe9';\n")

    async def action():
        source.read_text(encoding="utf-8")

    registry.register("read", action)
    with pytest.raises(FilesystemError) as excinfo:
        asyncio.run(registry.run("read"))
    assert excinfo.value.task == "read"
    assert isinstance(excinfo.value.original_error, UnicodeDecodeError)


def test_value_errors_become_collaborator_errors(tmp_path):
    registry = make_registry(tmp_path)
    registry.register("parse", recorder([], "parse", error=ValueError("bad token")))
    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(registry.run("parse"))
    assert excinfo.value.task == "parse"
    assert excinfo.value.message == "bad token"


def test_inner_task_name_is_kept(tmp_path):
    registry = make_registry(tmp_path)
    registry.register("inner", recorder([], "inner", error=CollaboratorError("bad input")))
    outer = registry.add(Task("outer", registry.sequence("inner").action))
    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(registry.run(outer))
    assert excinfo.value.task == "inner"
    assert str(excinfo.value) == "inner: bad input"


def test_registry_runs_on_successive_event_loops(tmp_path):
    registry = make_registry(tmp_path)
    log = []
    registry.register("a", recorder(log, "a"))
    asyncio.run(registry.run("a"))
    asyncio.run(registry.run("a"))
    assert log.count(("end", "a")) == 2
