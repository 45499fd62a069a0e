"""Tests for PaneRuntime wiring and shutdown ordering."""

from datetime import datetime

import pytest

from pane_shells.events import EventBus, EventType, PaneEvent
from pane_shells.runtime import PaneRuntime


class RecordingSupervisor:

    def __init__(self, config, cwds, calls):
        self.config = config
        self.event_bus = EventBus()
        self._cwds = cwds
        self.calls = calls

    async def get_cwd(self, pane_id):
        return self._cwds.get(pane_id)

    async def get_all_cwds(self):
        self.calls.append("get_all_cwds")
        return dict(self._cwds)

    async def kill_all(self, *, wait=False):
        self.calls.append(("kill_all", wait))


class TestShutdown:

    @pytest.mark.asyncio
    async def test_order_and_final_flush(self, config, project_dir):
        calls = []
        supervisor = RecordingSupervisor(config, {0: str(project_dir)}, calls)
        runtime = PaneRuntime(config=config, supervisor=supervisor)
        await runtime.start(prewarm_env=False)

        await supervisor.event_bus.publish(
            PaneEvent(type=EventType.PANE_OUTPUT, pane_id=0, data={"chunk": "last words\n"})
        )
        cwds = await runtime.shutdown()

        assert cwds == {0: str(project_dir)}
        assert calls == ["get_all_cwds", ("kill_all", True)]
        project_id = await runtime.history.find_project_id(str(project_dir))
        day = runtime.history.paths.day_path(project_id, datetime.now().date().isoformat())
        assert "last words" in day.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_shutdown_runs_once(self, config, project_dir):
        calls = []
        runtime = PaneRuntime(config=config, supervisor=RecordingSupervisor(config, {}, calls))
        async with runtime:
            pass
        assert await runtime.shutdown() == {}
        assert calls == ["get_all_cwds", ("kill_all", True)]

    @pytest.mark.asyncio
    async def test_events_after_shutdown_are_ignored(self, config, project_dir):
        supervisor = RecordingSupervisor(config, {0: str(project_dir)}, [])
        runtime = PaneRuntime(config=config, supervisor=supervisor)
        await runtime.start(prewarm_env=False)
        await runtime.shutdown()

        await supervisor.event_bus.publish(
            PaneEvent(type=EventType.PANE_OUTPUT, pane_id=0, data={"chunk": "late\n"})
        )
        assert runtime.output.buffered(0) == ""
