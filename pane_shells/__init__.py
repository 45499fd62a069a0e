"""Pane Shells - pty pane supervisor with per-project transcript history."""

from .config import PaneConfig, load_config
from .events import EventBus, EventType, PaneEvent
from .history import HistoryStore
from .hooks import PaneLifecycleHooks
from .output import OutputPipeline
from .pty import PaneSession
from .record import Exchange, GitStatus, HistoryIndex, HistorySession
from .runtime import PaneRuntime
from .store import HistoryPaths
from .supervisor import PaneSupervisor

__all__ = [
    "PaneConfig",
    "load_config",
    "EventBus",
    "EventType",
    "PaneEvent",
    "HistoryStore",
    "PaneLifecycleHooks",
    "OutputPipeline",
    "PaneSession",
    "Exchange",
    "GitStatus",
    "HistoryIndex",
    "HistorySession",
    "PaneRuntime",
    "HistoryPaths",
    "PaneSupervisor",
]
