from __future__ import annotations

import logging
from typing import Dict, Optional

from .config import PaneConfig, load_config
from .environment import resolve_login_path
from .events import EventBus
from .history import HistoryStore
from .hooks import PaneLifecycleHooks
from .output import OutputPipeline
from .store import HistoryPaths
from .supervisor import PaneSupervisor

logger = logging.getLogger(__name__)


class PaneRuntime:
    """One supervisor, output pipeline and history store for a host process.

    Construct once and hand it to the interface layer; there is no
    module-level instance.
    """

    def __init__(
        self,
        *,
        config: Optional[PaneConfig] = None,
        hooks: Optional[PaneLifecycleHooks] = None,
        paths: Optional[HistoryPaths] = None,
        supervisor: Optional[PaneSupervisor] = None,
    ) -> None:
        self.config = config or load_config()
        self.supervisor = supervisor or PaneSupervisor(config=self.config, event_bus=EventBus(), hooks=hooks)
        self.event_bus = self.supervisor.event_bus
        self.history = HistoryStore(paths, config=self.config)
        self.output = OutputPipeline(self.supervisor, self.history, config=self.config)
        self._started = False
        self._shut_down = False

    async def start(self, *, prewarm_env: bool = True) -> None:
        if self._started:
            return
        self._started = True
        if prewarm_env:
            await resolve_login_path(self.config)
        self.output.start()
        self.history.start()
        logger.info("Pane runtime started")

    async def shutdown(self) -> Dict[int, str]:
        """Ordered shutdown; returns the pane cwd snapshot taken before killing.

        Cwds are captured first so the host can persist them, then output is
        drained into history, history is flushed, and finally panes are killed.
        """
        if self._shut_down:
            return {}
        self._shut_down = True
        cwds: Dict[int, str] = {}
        try:
            cwds = await self.supervisor.get_all_cwds()
            if cwds:
                logger.info("Captured cwds for %d pane(s) on shutdown", len(cwds))
        except Exception:
            logger.exception("Failed to snapshot pane cwds on shutdown")
        await self.output.stop()
        await self.history.shutdown()
        await self.supervisor.kill_all(wait=True)
        logger.info("Pane runtime shut down")
        return cwds

    async def __aenter__(self) -> "PaneRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
