"""Per-project transcript history.

Layout under the history root::

    <base>/history/<project_id>/
        index.json
        2026-10-17.md
        2026-10-16.md

Each project directory on disk carries a marker file
(``<project>/.pane_shells/project-id``) holding its UUID, so history
follows the project across renames. Writes are buffered in memory and
flushed periodically; every disk operation is best-effort and degrades to
an empty or false result.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from .config import PaneConfig
from .record import EXCHANGE_TYPES, Exchange, HistoryIndex, HistorySession
from .store import HistoryPaths, is_valid_date

logger = logging.getLogger(__name__)

EPHEMERAL_PREFIX = "temp-"
PREVIEW_LINES = 20
PREVIEW_CHARS = 100
CONTEXT_BEFORE = 2
CONTEXT_AFTER = 3
DEFAULT_SEARCH_LIMIT = 50

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_RECORD_START_RE = re.compile(r"^### \[", re.MULTILINE)
_RECORD_HEADER_RE = re.compile(r"^### \[(?P<time>[^\]]*)\] Terminal (?P<pane>\d+) - (?P<type>input|output)\s*$")
_PREVIEW_STRIP_RE = re.compile(r"[#*`]")


def is_valid_uuid(value: str) -> bool:
    return bool(value) and bool(_UUID_RE.match(value))


def is_ephemeral(project_id: str) -> bool:
    return project_id.startswith(EPHEMERAL_PREFIX)


def _time_label(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"


def format_exchange(dt: datetime, pane_id: int, type: str, content: str) -> str:
    label = "**Input:**" if type == "input" else "**Output:**"
    return f"### [{_time_label(dt)}] Terminal {pane_id + 1} - {type}\n{label}\n```\n{content.strip()}\n```\n\n"


def format_session_header(dt: datetime) -> str:
    date_label = f"{dt.strftime('%A')}, {dt.strftime('%B')} {dt.day}, {dt.year}"
    return f"\n---\n## Session: {date_label} at {_time_label(dt)}\n\n"


def build_preview(content: str) -> str:
    tail = " ".join(content.split("\n")[-PREVIEW_LINES:])[:PREVIEW_CHARS]
    return _PREVIEW_STRIP_RE.sub("", tail).strip()


def count_exchanges(content: str) -> int:
    return len(_RECORD_START_RE.findall(content))


def parse_exchanges(content: str, date: str = "") -> List[Exchange]:
    """Parse a day file back into exchange records."""
    lines = content.split("\n")
    starts = [i for i, line in enumerate(lines) if _RECORD_HEADER_RE.match(line)]
    out: List[Exchange] = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        match = _RECORD_HEADER_RE.match(lines[start])
        block = lines[start + 1:end]
        fences = [i for i, line in enumerate(block) if line.strip() == "```"]
        if len(fences) < 2:
            continue
        body = "\n".join(block[fences[0] + 1:fences[-1]])
        time_label = match.group("time")
        out.append(Exchange(
            timestamp=f"{date} {time_label}".strip(),
            pane_id=int(match.group("pane")) - 1,
            type=match.group("type"),
            content=body,
        ))
    return out


class HistoryStore:
    """Buffered, best-effort transcript writer and reader."""

    def __init__(self, paths: Optional[HistoryPaths] = None, *, config: Optional[PaneConfig] = None):
        self.config = config or PaneConfig()
        self.paths = paths or HistoryPaths(config=self.config)
        self._write_buffers: Dict[str, List[str]] = {}
        self._index_locks: Dict[str, asyncio.Lock] = {}
        self._marker_locks: Dict[str, asyncio.Lock] = {}
        self._flush_lock: Optional[asyncio.Lock] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        if self._flush_task is not None or self._stopped:
            return
        self._flush_task = asyncio.create_task(self._flush_loop())
        logger.info("History store started (%s)", self.paths.history_dir)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.history_flush_interval)
            try:
                await self.flush()
            except Exception:
                logger.exception("Periodic history flush failed")

    async def shutdown(self) -> None:
        """Stop the periodic flush and drain what is buffered."""
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
        await self.flush()
        logger.info("History store shut down")

    def _get_flush_lock(self) -> asyncio.Lock:
        if self._flush_lock is None:
            self._flush_lock = asyncio.Lock()
        return self._flush_lock

    def _index_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._index_locks.get(project_id)
        if lock is None:
            lock = self._index_locks[project_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Project identity

    async def _read_marker(self, project_path: str) -> Optional[str]:
        marker = self.paths.marker_path(project_path)
        if not await asyncio.to_thread(marker.is_file):
            return None
        async with aiofiles.open(marker, "r", encoding="utf-8") as fh:
            value = (await fh.read()).strip()
        return value if is_valid_uuid(value) else None

    async def get_or_create_project_id(self, project_path: str) -> str:
        """Stable UUID for a project directory, minted on first use.

        Returns an ephemeral ``temp-`` id (never persisted) on I/O failure.
        """
        try:
            if not await asyncio.to_thread(os.path.isdir, project_path):
                raise FileNotFoundError(f"not a directory: {project_path}")
            # Serialize minting per directory.
            key = os.path.realpath(project_path)
            lock = self._marker_locks.setdefault(key, asyncio.Lock())
            async with lock:
                existing = await self._read_marker(project_path)
                if existing:
                    logger.debug("Found existing project id %s for %s", existing, project_path)
                    return existing

                project_id = str(uuid.uuid4())
                marker = self.paths.marker_path(project_path)
                await asyncio.to_thread(marker.parent.mkdir, parents=True, exist_ok=True)
                await self._write_atomic(marker, project_id)
                await asyncio.to_thread(self.paths.project_dir(project_id).mkdir, parents=True, exist_ok=True)
                async with self._index_lock(project_id):
                    await self._write_index(HistoryIndex(project_id=project_id, project_path=str(project_path)))
            logger.info("Created project id %s for %s", project_id, project_path)
            return project_id
        except Exception as exc:
            logger.error("Failed to get/create project id for %s: %s", project_path, exc)
            return f"{EPHEMERAL_PREFIX}{uuid.uuid4()}"

    async def find_project_id(self, project_path: str) -> Optional[str]:
        """Existing project id for a directory, without minting one."""
        try:
            return await self._read_marker(project_path)
        except Exception:
            logger.debug("Failed to read project marker in %s", project_path, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Writing

    def append_exchange(self, project_id: str, pane_id: int, type: str, content: str) -> None:
        """Queue one exchange; disk is only touched by flush()."""
        if type not in EXCHANGE_TYPES:
            raise ValueError(f"exchange type must be one of {EXCHANGE_TYPES}, got {type!r}")
        if not project_id or is_ephemeral(project_id):
            return
        entry = format_exchange(datetime.now(), pane_id, type, content)
        self._write_buffers.setdefault(project_id, []).append(entry)

    def pending(self, project_id: Optional[str] = None) -> int:
        if project_id is not None:
            return len(self._write_buffers.get(project_id, []))
        return sum(len(v) for v in self._write_buffers.values())

    async def flush(self) -> int:
        """Append buffered records to today's day files; returns records written."""
        async with self._get_flush_lock():
            buffers, self._write_buffers = self._write_buffers, {}
            if not buffers:
                return 0
            today = datetime.now().date().isoformat()
            written = 0
            for project_id, entries in buffers.items():
                if not entries or not is_valid_uuid(project_id):
                    continue
                try:
                    await self._flush_project(project_id, today, entries)
                    written += len(entries)
                    logger.info("Flushed %d entries for project %s", len(entries), project_id)
                except Exception:
                    logger.exception("Failed to flush history for project %s", project_id)
            return written

    def _is_new_session(self, path: Path) -> bool:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return True
        return (time.time() - mtime) > self.config.session_gap

    async def _flush_project(self, project_id: str, date: str, entries: List[str]) -> None:
        project_dir = self.paths.project_dir(project_id)
        await asyncio.to_thread(project_dir.mkdir, parents=True, exist_ok=True)
        path = self.paths.day_path(project_id, date)

        content = ""
        if await asyncio.to_thread(self._is_new_session, path):
            content = format_session_header(datetime.now())
        content += "".join(entries)

        async with self._index_lock(project_id):
            async with aiofiles.open(path, "a", encoding="utf-8") as fh:
                await fh.write(content)
            await self._update_index(project_id, date, path)

    # ------------------------------------------------------------------
    # Index

    async def _read_index(self, project_id: str) -> HistoryIndex:
        path = self.paths.index_path(project_id)
        if not await asyncio.to_thread(path.exists):
            return HistoryIndex(project_id=project_id)
        async with aiofiles.open(path, "r", encoding="utf-8") as fh:
            data = json.loads(await fh.read())
        if not isinstance(data, dict):
            raise ValueError(f"index for {project_id} is not an object")
        return HistoryIndex.from_dict(data, project_id)

    async def _write_index(self, index: HistoryIndex) -> None:
        await self._write_atomic(self.paths.index_path(index.project_id), json.dumps(index.to_dict(), indent=2))

    async def _write_atomic(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as fh:
            await fh.write(text)
        await asyncio.to_thread(tmp_path.replace, path)

    async def _update_index(self, project_id: str, date: str, path: Path) -> None:
        """Recompute one day's index entry. Caller holds the project's index lock."""
        try:
            try:
                index = await self._read_index(project_id)
            except (ValueError, OSError) as exc:
                logger.warning("Rebuilding unreadable index for %s: %s", project_id, exc)
                index = HistoryIndex(project_id=project_id)
            stat = await asyncio.to_thread(path.stat)
            async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as fh:
                content = await fh.read()
            index.upsert(HistorySession(
                date=date,
                file=path.name,
                size=stat.st_size,
                preview=build_preview(content),
                exchange_count=count_exchanges(content),
            ))
            await self._write_index(index)
        except Exception:
            logger.exception("Failed to update index for project %s", project_id)

    # ------------------------------------------------------------------
    # Reading

    async def get_sessions(self, project_id: str) -> List[HistorySession]:
        """Index entries, most recent day first."""
        if not is_valid_uuid(project_id):
            return []
        try:
            index = await self._read_index(project_id)
        except Exception as exc:
            logger.error("Failed to read sessions for %s: %s", project_id, exc)
            return []
        return sorted(index.sessions, key=lambda s: s.date, reverse=True)

    async def get_day_content(self, project_id: str, date: str) -> str:
        if not is_valid_uuid(project_id) or not is_valid_date(date):
            return ""
        path = self.paths.day_path(project_id, date)
        try:
            if not await asyncio.to_thread(path.exists):
                return ""
            async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as fh:
                return await fh.read()
        except Exception as exc:
            logger.error("Failed to read day content %s/%s: %s", project_id, date, exc)
            return ""

    async def get_day_exchanges(self, project_id: str, date: str) -> List[Exchange]:
        content = await self.get_day_content(project_id, date)
        if not content:
            return []
        return parse_exchanges(content, date)

    async def search(self, project_id: str, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """Case-insensitive substring search, newest day first.

        Each hit yields a context block of the two lines before through the
        three lines after the match; scanning resumes after the block so a line
        is never reported as a hit twice. At most `limit` blocks are returned
        across all days.
        """
        results: List[Dict[str, Any]] = []
        if not query or limit <= 0 or not is_valid_uuid(project_id):
            return results
        project_dir = self.paths.project_dir(project_id)
        try:
            if not await asyncio.to_thread(project_dir.is_dir):
                return results
            names = await asyncio.to_thread(os.listdir, project_dir)
            files = sorted((n for n in names if n.endswith(".md")), reverse=True)

            needle = query.lower()
            total = 0
            for name in files:
                if total >= limit:
                    break
                async with aiofiles.open(project_dir / name, "r", encoding="utf-8", errors="replace") as fh:
                    lines = (await fh.read()).split("\n")
                matches: List[str] = []
                i = 0
                while i < len(lines) and total < limit:
                    if needle in lines[i].lower():
                        start = max(0, i - CONTEXT_BEFORE)
                        end = min(len(lines), i + CONTEXT_AFTER + 1)
                        matches.append("\n".join(lines[start:end]))
                        total += 1
                        i = end
                        continue
                    i += 1
                if matches:
                    results.append({"date": name[: -len(".md")], "matches": matches})
        except Exception as exc:
            logger.error("Search failed for %s: %s", project_id, exc)
        return results

    async def delete_day(self, project_id: str, date: str) -> bool:
        """Remove a day file and its index entry; True if the file existed."""
        if not is_valid_uuid(project_id) or not is_valid_date(date):
            return False
        path = self.paths.day_path(project_id, date)
        try:
            async with self._index_lock(project_id):
                existed = await asyncio.to_thread(path.exists)
                if existed:
                    await asyncio.to_thread(path.unlink)
                index_path = self.paths.index_path(project_id)
                if await asyncio.to_thread(index_path.exists):
                    index = await self._read_index(project_id)
                    if index.remove(date):
                        await self._write_index(index)
            if existed:
                logger.info("Deleted history day %s for project %s", date, project_id)
            return existed
        except Exception as exc:
            logger.error("Failed to delete day %s for %s: %s", date, project_id, exc)
            return False
