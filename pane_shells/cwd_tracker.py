"""Best-effort working-directory estimate from typed `cd` commands.

This is only an estimate: compound statements, aliases, subshells, `cd -`
and `pushd` are not understood. The supervisor overwrites the estimate
whenever an authoritative probe of the shell process succeeds.
"""

from __future__ import annotations

import os
import re
from typing import Optional

CD_RE = re.compile(r"^cd\s+(.+)")
_TRAILING_EOL_RE = re.compile(r"[\r\n]+$")


def parse_cd_target(data: str) -> Optional[str]:
    """Return the argument of a leading `cd <path>`, or None."""
    clean = _TRAILING_EOL_RE.sub("", data).strip()
    match = CD_RE.match(clean)
    if not match:
        return None
    target = match.group(1).strip()
    target = target.replace('"', "").replace("'", "")
    target = target.replace("\r", "").replace("\n", "")
    return target or None


def resolve_cd(current: str, target: str, *, home: Optional[str] = None) -> str:
    home = home or os.path.expanduser("~")
    if target.startswith("/"):
        return os.path.normpath(target)
    if target == "~":
        return home
    if target.startswith("~/"):
        return os.path.normpath(os.path.join(home, target[2:]))
    if target.startswith("~"):
        return os.path.normpath(os.path.expanduser(target))
    return os.path.normpath(os.path.join(current, target))


class CwdTracker:
    """Holds one pane's working-directory estimate."""

    def __init__(self, initial: str):
        self.value = initial

    def observe_input(self, data: str) -> Optional[str]:
        """Update the estimate from written input; returns the new value if changed."""
        target = parse_cd_target(data)
        if target is None:
            return None
        self.value = resolve_cd(self.value, target)
        return self.value

    def override(self, authoritative: str) -> None:
        self.value = authoritative
