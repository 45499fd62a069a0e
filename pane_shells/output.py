from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from .config import PaneConfig
from .events import EventType, PaneEvent
from .history import HistoryStore, is_ephemeral
from .supervisor import PaneSupervisor
from .textclean import clean_input, has_line_terminator, normalize_output

logger = logging.getLogger(__name__)


class OutputPipeline:
    """Routes pane text into the history store.

    Output is accumulated per pane and flushed on a fixed period; input lines
    are submitted as soon as they are written. Each pane's project id is
    resolved from its working directory and cached until a new shell is
    spawned in that pane.
    """

    def __init__(
        self,
        supervisor: PaneSupervisor,
        history: HistoryStore,
        *,
        config: Optional[PaneConfig] = None,
    ) -> None:
        self.config = config or supervisor.config
        self._supervisor = supervisor
        self._history = history
        self._buffers: Dict[int, List[str]] = {}
        self._project_ids: Dict[int, str] = {}
        self._generations: Dict[int, int] = {}
        self._pending: Set[asyncio.Task] = set()
        self._unlisten: Optional[Callable[[], None]] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle

    def attach(self) -> None:
        if self._unlisten is None:
            self._unlisten = self._supervisor.event_bus.listen(self._on_event)

    def detach(self) -> None:
        if self._unlisten is not None:
            self._unlisten()
            self._unlisten = None

    def start(self) -> None:
        self.attach()
        if self._flush_task is not None or self._stopped:
            return
        self._flush_task = asyncio.create_task(self._flush_loop())

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.output_flush_interval)
            try:
                await self.flush()
            except Exception:
                logger.exception("Periodic output flush failed")

    async def stop(self) -> None:
        """Cancel the periodic flush, then drain once."""
        if self._stopped:
            return
        self._stopped = True
        task, self._flush_task = self._flush_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.flush()
        self.detach()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_event(self, event: PaneEvent) -> None:
        if event.type is EventType.PANE_OUTPUT:
            self.ingest(event.pane_id, event.data.get("chunk", ""))
        elif event.type is EventType.PANE_INPUT:
            data = event.data.get("data", "")
            if has_line_terminator(data):
                self._spawn(self.record_input(event.pane_id, data))
        elif event.type is EventType.PANE_SPAWNED:
            # New shell, possibly in another project: re-resolve eagerly.
            self._project_ids.pop(event.pane_id, None)
            self._generations[event.pane_id] = self._generations.get(event.pane_id, 0) + 1
            self._spawn(self.resolve_project_id(event.pane_id))

    # ------------------------------------------------------------------
    # Project ids

    async def resolve_project_id(self, pane_id: int) -> Optional[str]:
        cached = self._project_ids.get(pane_id)
        if cached:
            return cached
        generation = self._generations.get(pane_id, 0)
        cwd = await self._supervisor.get_cwd(pane_id)
        if not cwd:
            return None
        project_id = await self._history.get_or_create_project_id(cwd)
        if generation != self._generations.get(pane_id, 0):
            # A newer shell spawned meanwhile; its own resolve owns the cache.
            return project_id
        if project_id and not is_ephemeral(project_id):
            self._project_ids[pane_id] = project_id
            logger.info("Pane %s mapped to project %s", pane_id, project_id)
        return project_id

    def project_id_for(self, pane_id: int) -> Optional[str]:
        return self._project_ids.get(pane_id)

    # ------------------------------------------------------------------
    # Text routing

    def ingest(self, pane_id: int, text: str) -> None:
        if text:
            self._buffers.setdefault(pane_id, []).append(text)

    def buffered(self, pane_id: int) -> str:
        return "".join(self._buffers.get(pane_id, []))

    async def record_input(self, pane_id: int, data: str) -> bool:
        """Submit a typed line as an input exchange; single keystrokes are ignored."""
        if not has_line_terminator(data):
            return False
        cleaned = clean_input(data)
        if len(cleaned) <= 1:
            return False
        project_id = await self.resolve_project_id(pane_id)
        if not project_id:
            return False
        self._history.append_exchange(project_id, pane_id, "input", cleaned)
        return True

    async def flush(self) -> int:
        """Hand every pane's buffered output to history; buffers always clear."""
        buffers, self._buffers = self._buffers, {}
        submitted = 0
        for pane_id, chunks in buffers.items():
            raw = "".join(chunks)
            if not raw.strip():
                continue
            try:
                project_id = await self.resolve_project_id(pane_id)
            except Exception:
                logger.exception("Project resolution failed for pane %s", pane_id)
                project_id = None
            if not project_id:
                logger.debug("Dropping %d buffered chars for pane %s: no project", len(raw), pane_id)
                continue
            cleaned = normalize_output(raw)
            if cleaned:
                self._history.append_exchange(project_id, pane_id, "output", cleaned)
                submitted += 1
        return submitted
