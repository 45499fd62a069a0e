from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

EXCHANGE_TYPES = ("input", "output")


@dataclass
class Exchange:
    """One recorded unit of pane text."""

    timestamp: str
    pane_id: int
    type: str
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "paneId": self.pane_id,
            "type": self.type,
            "content": self.content,
        }


@dataclass
class HistorySession:
    """Index entry describing one day file."""

    date: str
    file: str
    size: int = 0
    preview: str = ""
    exchange_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "file": self.file,
            "size": self.size,
            "preview": self.preview,
            "exchangeCount": self.exchange_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["HistorySession"]:
        date = data.get("date")
        if not isinstance(date, str) or not date:
            return None
        try:
            return cls(
                date=date,
                file=str(data.get("file") or f"{date}.md"),
                size=int(data.get("size") or 0),
                preview=str(data.get("preview") or ""),
                exchange_count=int(data.get("exchangeCount") or 0),
            )
        except (TypeError, ValueError):
            return None


@dataclass
class HistoryIndex:
    """Serializable per-project index of day files."""

    project_id: str
    project_path: str = ""
    sessions: List[HistorySession] = field(default_factory=list)

    def upsert(self, session: HistorySession) -> None:
        for i, existing in enumerate(self.sessions):
            if existing.date == session.date:
                self.sessions[i] = session
                return
        self.sessions.append(session)

    def remove(self, date: str) -> bool:
        before = len(self.sessions)
        self.sessions = [s for s in self.sessions if s.date != date]
        return len(self.sessions) != before

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectPath": self.project_path,
            "projectId": self.project_id,
            "sessions": [s.to_dict() for s in self.sessions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], project_id: str) -> "HistoryIndex":
        # Missing or malformed fields fall back to defaults.
        raw_sessions = data.get("sessions") if isinstance(data.get("sessions"), list) else []
        sessions = []
        for item in raw_sessions:
            if isinstance(item, dict):
                session = HistorySession.from_dict(item)
                if session:
                    sessions.append(session)
        return cls(
            project_id=str(data.get("projectId") or project_id),
            project_path=str(data.get("projectPath") or ""),
            sessions=sessions,
        )


@dataclass
class GitStatus:
    is_git_repo: bool
    branch: Optional[str] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None
    dirty: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"isGitRepo": self.is_git_repo}
        if not self.is_git_repo:
            return payload
        payload.update({
            "branch": self.branch,
            "ahead": self.ahead,
            "behind": self.behind,
            "dirty": self.dirty,
        })
        return payload
