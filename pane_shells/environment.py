from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Optional

from .config import PaneConfig

logger = logging.getLogger(__name__)

FALLBACK_PATH_DIRS = [
    "/opt/homebrew/bin",
    "/opt/homebrew/sbin",
    "/usr/local/bin",
    "/usr/local/sbin",
    "/usr/bin",
    "/bin",
    "/usr/sbin",
    "/sbin",
]

_cached_path: Optional[str] = None
_resolve_lock: Optional[asyncio.Lock] = None


def _get_lock() -> asyncio.Lock:
    global _resolve_lock
    if _resolve_lock is None:
        _resolve_lock = asyncio.Lock()
    return _resolve_lock


def fallback_path() -> str:
    return ":".join(FALLBACK_PATH_DIRS + [os.environ.get("PATH", "")])


async def _run_login_shell(shell: str, timeout: float) -> str:
    proc = await asyncio.create_subprocess_exec(
        shell, "-l", "-c", "echo $PATH",
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
        start_new_session=True,
    )
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        raise
    if proc.returncode != 0:
        raise RuntimeError(f"{shell} exited with status {proc.returncode}")
    # Profile scripts may print banners; PATH is the last line.
    lines = [ln.strip() for ln in stdout.decode("utf-8", errors="replace").splitlines() if ln.strip()]
    return lines[-1] if lines else ""


async def resolve_login_path(config: Optional[PaneConfig] = None) -> str:
    """Return the login shell's PATH, resolved once per process."""
    global _cached_path
    if _cached_path is not None:
        return _cached_path

    cfg = config or PaneConfig()
    async with _get_lock():
        if _cached_path is not None:
            return _cached_path
        shell = cfg.resolved_shell()
        logger.info("Resolving login shell PATH via %s", shell)
        try:
            result = await _run_login_shell(shell, cfg.login_path_timeout)
            if not result:
                raise RuntimeError("login shell printed an empty PATH")
            logger.info("Login shell PATH obtained (%d chars)", len(result))
            _cached_path = result
        except Exception as exc:
            logger.warning("Failed to get login shell PATH, using fallback: %s", exc)
            _cached_path = fallback_path()
    return _cached_path


def reset_cache() -> None:
    global _cached_path, _resolve_lock
    _cached_path = None
    _resolve_lock = None


async def build_shell_env(config: Optional[PaneConfig] = None) -> Dict[str, str]:
    """Inherited environment merged with the settings every pane shell needs."""
    cfg = config or PaneConfig()
    env = os.environ.copy()
    env["PATH"] = await resolve_login_path(cfg)
    env["TERM"] = "xterm-256color"
    env["COLORTERM"] = "truecolor"
    env["LANG"] = os.environ.get("LANG") or "en_US.UTF-8"
    env["HOME"] = os.path.expanduser("~")
    # Suppresses macOS zsh "Restored session" banners.
    env["SHELL_SESSIONS_DISABLE"] = "1"
    env["TERM_PROGRAM"] = cfg.term_program
    env["TERM_PROGRAM_VERSION"] = cfg.term_program_version
    return env
