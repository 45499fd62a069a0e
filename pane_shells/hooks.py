from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


MaybeAwaitable = Any


@dataclass(frozen=True)
class PaneLifecycleHooks:
    """Optional callbacks for integrating PaneSupervisor with a host UI.

    Callbacks may be sync or async; exceptions are logged and swallowed
    (best-effort), so a failing host callback never breaks pane I/O.
    """

    # Called after a pane's shell is spawned.
    on_pane_spawned: Optional[Callable[[int, int], MaybeAwaitable]] = None

    # Called for every chunk of pane output, before history buffering.
    on_output: Optional[Callable[[int, str], MaybeAwaitable]] = None

    # Called exactly once when a pane's shell terminates.
    on_exit: Optional[Callable[[int, Optional[int]], MaybeAwaitable]] = None
