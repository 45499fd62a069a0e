from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import List, Optional, Tuple

import psutil

from .record import GitStatus

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 1.0


async def run_bounded(
    argv: List[str],
    *,
    cwd: Optional[str] = None,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> Tuple[int, str]:
    """Run a short external command; kill it if it outlives `timeout`.

    Raises on spawn failure or timeout. Callers decide how to degrade.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
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
    return proc.returncode or 0, stdout.decode("utf-8", errors="replace")


def _psutil_cwd(pid: int) -> Optional[str]:
    try:
        return psutil.Process(pid).cwd() or None
    except psutil.AccessDenied:
        raise
    except (psutil.NoSuchProcess, psutil.ZombieProcess, OSError):
        return None


async def _lsof_cwd(pid: int, timeout: float) -> Optional[str]:
    code, out = await run_bounded(["lsof", "-a", "-d", "cwd", "-p", str(pid), "-F", "n"], timeout=timeout)
    if code != 0:
        return None
    for line in out.splitlines():
        if line.startswith("n"):
            path = line[1:].strip()
            if path.startswith("/"):
                return path
    return None


async def probe_cwd(pid: Optional[int], *, timeout: float = DEFAULT_PROBE_TIMEOUT) -> Optional[str]:
    """Authoritative working directory of a live process, or None."""
    if not pid:
        return None
    try:
        try:
            return await asyncio.wait_for(asyncio.to_thread(_psutil_cwd, pid), timeout=timeout)
        except psutil.AccessDenied:
            # macOS refuses proc_pidinfo for some sessions; lsof still works.
            if sys.platform == "darwin":
                return await _lsof_cwd(pid, timeout)
            return None
    except Exception as exc:
        logger.debug("cwd probe failed for pid %s: %s", pid, exc)
        return None


# ----------------------------------------------------------------------
# Git status


async def _git(args: List[str], cwd: str, timeout: float) -> Optional[str]:
    """Run one git step; None means the step failed and its field degrades."""
    try:
        code, out = await run_bounded(["git", *args], cwd=cwd, timeout=timeout)
    except Exception as exc:
        logger.debug("git %s failed in %s: %s", " ".join(args), cwd, exc)
        return None
    if code != 0:
        return None
    return out


async def _branch_label(cwd: str, timeout: float) -> str:
    chain = (
        ["symbolic-ref", "--short", "HEAD"],
        ["describe", "--tags", "--exact-match"],
        ["rev-parse", "--short", "HEAD"],
    )
    for args in chain:
        out = await _git(args, cwd, timeout)
        if out and out.strip():
            return out.strip()
    return "HEAD"


async def _ahead_behind(cwd: str, timeout: float) -> Tuple[int, int]:
    out = await _git(["rev-list", "--left-right", "--count", "HEAD...@{u}"], cwd, timeout)
    if not out:
        return 0, 0
    parts = out.split()
    try:
        ahead = int(parts[0]) if len(parts) > 0 else 0
        behind = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return 0, 0
    return ahead, behind


async def _dirty_count(cwd: str, timeout: float) -> int:
    out = await _git(["status", "--porcelain"], cwd, timeout)
    if not out:
        return 0
    return len([line for line in out.split("\n") if line.strip()])


async def probe_git_status(cwd: Optional[str], *, timeout: float = DEFAULT_PROBE_TIMEOUT) -> GitStatus:
    """Git status for a directory; only the repo check can fail the whole call."""
    if not cwd or not os.path.isdir(cwd):
        return GitStatus(is_git_repo=False)

    inside = await _git(["rev-parse", "--is-inside-work-tree"], cwd, timeout)
    if inside is None or inside.strip() != "true":
        return GitStatus(is_git_repo=False)

    branch = await _branch_label(cwd, timeout)
    ahead, behind = await _ahead_behind(cwd, timeout)
    dirty = await _dirty_count(cwd, timeout)
    return GitStatus(is_git_repo=True, branch=branch, ahead=ahead, behind=behind, dirty=dirty)
