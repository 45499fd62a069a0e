from __future__ import annotations

import asyncio
import codecs
import errno
import fcntl
import inspect
import logging
import os
import pty
import select
import shutil
import signal
import struct
import termios
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .config import PaneConfig
from .cwd_tracker import CwdTracker
from .environment import build_shell_env
from .events import EventBus, EventType, PaneEvent
from .hooks import PaneLifecycleHooks
from .probe import probe_cwd, probe_git_status
from .pty import PaneSession
from .record import GitStatus

logger = logging.getLogger(__name__)

HOME_DIR = os.path.expanduser("~")
DEFAULT_COLS = 80
DEFAULT_ROWS = 24
READ_CHUNK = 4096

CwdProbe = Callable[..., Awaitable[Optional[str]]]
GitProbe = Callable[..., Awaitable[GitStatus]]


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    winsz = struct.pack("HHHH", max(1, rows), max(1, cols), 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsz)


def _claim_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave.
    try:
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)
    except OSError:
        pass


class PaneSupervisor:
    """Owns one pseudo-terminal shell per pane id."""

    def __init__(
        self,
        *,
        config: Optional[PaneConfig] = None,
        event_bus: Optional[EventBus] = None,
        hooks: Optional[PaneLifecycleHooks] = None,
        cwd_probe: Optional[CwdProbe] = None,
        git_probe: Optional[GitProbe] = None,
    ) -> None:
        self.config = config or PaneConfig()
        self._panes: Dict[int, PaneSession] = {}
        self._event_bus = event_bus or EventBus()
        self._hooks = hooks
        self._cwd_probe = cwd_probe or probe_cwd
        self._git_probe = git_probe or probe_git_status
        self._background: Set[asyncio.Task] = set()

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    def _spawn_background(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Hooks and events

    def _fire_hook(self, result: Any) -> None:
        """Best-effort hook execution; never blocks core flow."""
        if result is None:
            return
        if not inspect.isawaitable(result):
            return
        try:
            self._spawn_background(result)
        except Exception:
            logger.debug("Failed to schedule hook coroutine", exc_info=True)

    def _run_hook(self, name: str, *args: Any) -> None:
        hook = getattr(self._hooks, name, None) if self._hooks else None
        if not hook:
            return
        try:
            self._fire_hook(hook(*args))
        except Exception:
            logger.exception("Hook %s failed for pane %s", name, args[0] if args else None)

    async def _emit(self, event_type: EventType, pane_id: int, **data: Any) -> None:
        await self._event_bus.publish(PaneEvent(type=event_type, pane_id=pane_id, data=data))

    # ------------------------------------------------------------------
    # Spawn helpers

    def valid_pane_id(self, pane_id: Any) -> bool:
        return isinstance(pane_id, int) and not isinstance(pane_id, bool) and 0 <= pane_id < self.config.max_panes

    def _resolve_shell(self) -> str:
        shell = self.config.resolved_shell()
        if os.path.isabs(shell) and os.access(shell, os.X_OK):
            return shell
        found = shutil.which(shell)
        if found:
            return found
        logger.warning("Shell %s not found, falling back to /bin/sh", shell)
        return "/bin/sh"

    def _resolve_cwd(self, cwd: Optional[str]) -> str:
        return os.path.abspath(os.path.expanduser(cwd or HOME_DIR))

    # ------------------------------------------------------------------
    # Lifecycle

    async def create_pty(self, pane_id: int, cwd: Optional[str] = None) -> bool:
        """Spawn a shell for `pane_id`, replacing any existing one.

        Returns False (and logs) if the pty or the shell cannot be started.
        """
        await self.kill_pty(pane_id)
        if not self.valid_pane_id(pane_id):
            logger.error("Refusing to create pty for invalid pane id %r", pane_id)
            return False

        shell = self._resolve_shell()
        working_dir = self._resolve_cwd(cwd)
        master_fd: Optional[int] = None
        slave_fd: Optional[int] = None
        try:
            env = await build_shell_env(self.config)
            master_fd, slave_fd = await asyncio.to_thread(pty.openpty)
            _set_winsize(slave_fd, DEFAULT_ROWS, DEFAULT_COLS)
            os.set_blocking(master_fd, False)
            proc = await asyncio.create_subprocess_exec(
                shell,
                cwd=working_dir,
                env=env,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_claim_controlling_tty,
            )
        except Exception:
            logger.exception("Failed to create pty for pane %s (shell=%s cwd=%s)", pane_id, shell, working_dir)
            if master_fd is not None:
                os.close(master_fd)
            return False
        finally:
            if slave_fd is not None:
                os.close(slave_fd)

        # A concurrent create for the same pane may have landed meanwhile.
        await self.kill_pty(pane_id)

        session = PaneSession(
            pane_id=pane_id,
            master_fd=master_fd,
            process=proc,
            tracker=CwdTracker(working_dir),
            shell=shell,
        )
        self._panes[pane_id] = session
        session.reader = asyncio.create_task(self._pty_reader(session))
        session.waiter = asyncio.create_task(self._watch_exit(session))
        logger.info("Pane %s spawned %s (pid=%s cwd=%s)", pane_id, shell, proc.pid, working_dir)

        await self._emit(EventType.PANE_SPAWNED, pane_id, pid=proc.pid, cwd=working_dir, shell=shell)
        self._run_hook("on_pane_spawned", pane_id, proc.pid)
        return True

    async def _pty_reader(self, session: PaneSession) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        loop = asyncio.get_running_loop()
        while not session.stop.is_set():
            try:
                rlist, _, _ = await loop.run_in_executor(
                    None,
                    lambda: select.select([session.master_fd], [], [], 0.5),
                )
                if not rlist:
                    continue
                data = await asyncio.to_thread(os.read, session.master_fd, READ_CHUNK)
            except BlockingIOError:
                continue
            except (OSError, ValueError):
                # EIO once the slave side is gone, EBADF after kill.
                break
            if not data:
                break
            text = decoder.decode(data)
            if not text:
                continue
            self._run_hook("on_output", session.pane_id, text)
            await self._emit(EventType.PANE_OUTPUT, session.pane_id, chunk=text)

        tail = decoder.decode(b"", final=True)
        if tail and not session.stop.is_set():
            await self._emit(EventType.PANE_OUTPUT, session.pane_id, chunk=tail)

    async def _watch_exit(self, session: PaneSession) -> None:
        try:
            exit_code: Optional[int] = await session.process.wait()
        except Exception:
            logger.debug("wait() failed for pane %s", session.pane_id, exc_info=True)
            exit_code = None

        # Let the reader drain trailing output before reporting the exit.
        if session.reader and not session.reader.done():
            try:
                await asyncio.wait_for(asyncio.shield(session.reader), timeout=0.5)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass
        await self._finalize(session, exit_code)

    async def _finalize(self, session: PaneSession, exit_code: Optional[int]) -> None:
        if self._panes.get(session.pane_id) is session:
            self._panes.pop(session.pane_id, None)
        self._release(session)
        if session.exit_reported:
            return
        session.exit_reported = True
        logger.info("Pane %s exited (code=%s)", session.pane_id, exit_code)
        await self._emit(EventType.PANE_EXITED, session.pane_id, exit_code=exit_code, pid=session.pid)
        self._run_hook("on_exit", session.pane_id, exit_code)

    def _release(self, session: PaneSession) -> None:
        session.stop.set()
        if session.reader and not session.reader.done():
            session.reader.cancel()
        if not session.fd_closed:
            session.fd_closed = True
            waiter, session.write_waiter = session.write_waiter, None
            if waiter is not None:
                asyncio.get_running_loop().remove_writer(session.master_fd)
                if not waiter.done():
                    waiter.set_exception(OSError(errno.EBADF, "pane closed"))
            try:
                os.close(session.master_fd)
            except OSError:
                pass

    def _signal_group(self, session: PaneSession, sig: int) -> None:
        pid = session.pid
        if not pid or session.process.returncode is not None:
            return
        try:
            os.killpg(os.getpgid(pid), sig)
            return
        except (ProcessLookupError, PermissionError):
            pass
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass

    async def _escalate(self, session: PaneSession) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(session.process.wait()), timeout=self.config.kill_grace)
            return
        except asyncio.TimeoutError:
            pass
        logger.warning("Pane %s ignored SIGHUP, sending SIGKILL", session.pane_id)
        self._signal_group(session, signal.SIGKILL)

    async def kill_pty(self, pane_id: int) -> None:
        session = self._panes.pop(pane_id, None)
        if not session:
            return
        logger.info("Killing pane %s (pid=%s)", pane_id, session.pid)
        self._signal_group(session, signal.SIGHUP)
        self._release(session)
        self._spawn_background(self._escalate(session))

    async def kill_all(self, *, wait: bool = False) -> None:
        for pane_id in list(self._panes):
            await self.kill_pty(pane_id)
        if wait and self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # I/O

    async def _write_all(self, session: PaneSession, payload: bytes) -> None:
        # Master fd is non-blocking: a pane that stops reading parks only its own writer.
        loop = asyncio.get_running_loop()
        view = memoryview(payload)
        while view:
            if session.fd_closed:
                raise OSError(errno.EBADF, "pane closed")
            try:
                view = view[os.write(session.master_fd, view):]
                continue
            except BlockingIOError:
                pass
            ready = loop.create_future()
            session.write_waiter = ready
            loop.add_writer(session.master_fd, lambda: ready.done() or ready.set_result(None))
            try:
                await ready
            finally:
                session.write_waiter = None
                if not session.fd_closed:
                    loop.remove_writer(session.master_fd)

    async def write(self, pane_id: int, data: str) -> None:
        """Forward input to the pane verbatim; unknown panes are ignored."""
        session = self._panes.get(pane_id)
        if not session or not data:
            return
        async with session.write_lock:
            try:
                await self._write_all(session, data.encode("utf-8"))
            except OSError as exc:
                logger.warning("Write to pane %s failed: %s", pane_id, exc)
                return

        new_cwd = session.tracker.observe_input(data)
        if new_cwd is not None:
            logger.info("Tracked cd for pane %s: %s", pane_id, new_cwd)
        await self._emit(EventType.PANE_INPUT, pane_id, data=data)

    async def resize(self, pane_id: int, cols: int, rows: int) -> None:
        session = self._panes.get(pane_id)
        if not session:
            return
        try:
            await asyncio.to_thread(_set_winsize, session.master_fd, int(rows), int(cols))
        except (OSError, ValueError) as exc:
            logger.debug("Resize of pane %s failed: %s", pane_id, exc)
            return
        if self.config.signal_winch_on_resize:
            self._signal_group(session, signal.SIGWINCH)

    # ------------------------------------------------------------------
    # Introspection

    def pane_ids(self) -> List[int]:
        return sorted(self._panes)

    def has_pane(self, pane_id: int) -> bool:
        return pane_id in self._panes

    def describe(self, pane_id: int) -> Optional[Dict[str, Any]]:
        session = self._panes.get(pane_id)
        return session.to_payload() if session else None

    def get_tracked_cwd(self, pane_id: int) -> Optional[str]:
        session = self._panes.get(pane_id)
        return session.tracked_cwd if session else None

    async def get_cwd(self, pane_id: int) -> Optional[str]:
        """Authoritative cwd when the probe succeeds, else the tracked estimate."""
        session = self._panes.get(pane_id)
        if not session:
            return None
        try:
            fresh = await self._cwd_probe(session.pid, timeout=self.config.probe_timeout)
        except Exception as exc:
            logger.warning("Failed to get cwd for pane %s: %s", pane_id, exc)
            fresh = None
        if fresh and self._panes.get(pane_id) is session:
            session.tracker.override(fresh)
        return session.tracked_cwd

    async def get_all_cwds(self) -> Dict[int, str]:
        cwds: Dict[int, str] = {}
        logger.info("Getting cwds for %d active panes", len(self._panes))
        for pane_id in self.pane_ids():
            cwd = await self.get_cwd(pane_id)
            if cwd:
                cwds[pane_id] = cwd
            else:
                logger.warning("Pane %s has no cwd", pane_id)
        return cwds

    async def get_git_status(self, pane_id: int) -> Optional[GitStatus]:
        session = self._panes.get(pane_id)
        if not session:
            return None
        cwd = await self.get_cwd(pane_id) or session.tracked_cwd
        try:
            status = await self._git_probe(cwd, timeout=self.config.git_timeout)
        except Exception as exc:
            logger.warning("Failed to get git status for pane %s: %s", pane_id, exc)
            status = GitStatus(is_git_repo=False)
        if self._panes.get(pane_id) is session:
            session.git_status = status
        return status
