from pathlib import Path
from typing import Optional
import re

from .config import PaneConfig

PROJECT_MARKER_DIR = ".pane_shells"
PROJECT_MARKER_FILE = "project-id"
INDEX_FILE = "index.json"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_valid_date(date: str) -> bool:
    return bool(date) and bool(_DATE_RE.match(date))


class HistoryPaths:
    """Namespaced storage paths for transcript history."""

    def __init__(self, base_dir: Optional[Path] = None, *, config: Optional[PaneConfig] = None):
        cfg = config or PaneConfig()
        self.root = Path(base_dir) if base_dir else cfg.resolved_base_dir()
        self.history_dir = self.root / "history"

    def project_dir(self, project_id: str) -> Path:
        return self.history_dir / project_id

    def index_path(self, project_id: str) -> Path:
        return self.project_dir(project_id) / INDEX_FILE

    def day_path(self, project_id: str, date: str) -> Path:
        return self.project_dir(project_id) / f"{date}.md"

    @staticmethod
    def marker_path(project_path: str) -> Path:
        return Path(project_path) / PROJECT_MARKER_DIR / PROJECT_MARKER_FILE
