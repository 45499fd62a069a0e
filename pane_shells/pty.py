from dataclasses import dataclass, field
import asyncio
import time
from typing import Optional

from .cwd_tracker import CwdTracker
from .record import GitStatus


@dataclass
class PaneSession:
    pane_id: int
    master_fd: int
    process: asyncio.subprocess.Process
    tracker: CwdTracker
    shell: str
    started_at: float = field(default_factory=time.time)
    git_status: Optional[GitStatus] = None
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    write_waiter: Optional[asyncio.Future] = None
    reader: Optional[asyncio.Task] = None
    waiter: Optional[asyncio.Task] = None
    fd_closed: bool = False
    exit_reported: bool = False

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    @property
    def tracked_cwd(self) -> str:
        return self.tracker.value

    def to_payload(self) -> dict:
        return {
            "pane_id": self.pane_id,
            "pid": self.pid,
            "shell": self.shell,
            "cwd": self.tracked_cwd,
            "started_at": self.started_at,
            "uptime": max(0.0, time.time() - self.started_at),
            "git_status": self.git_status.to_dict() if self.git_status else None,
        }
