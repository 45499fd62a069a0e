"""Normalize raw terminal output into readable transcript text.

Strips escape sequences and carriage returns, then removes TUI noise:
spinner/progress glyph lines, box-drawing borders and bare status words
("Thinking…", "Generating…") that interactive agents redraw constantly.
"""

from __future__ import annotations

import re

# OSC (window title, cwd hints), terminated by BEL or ST; a chunk cut
# mid-sequence is stripped to the end.
OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\|\Z)")

# CSI: cursor movement, colors, DEC private modes like ?2004h.
CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")

# Character set designation, e.g. ESC ( B.
CHARSET_RE = re.compile(r"\x1b[()*+][A-Za-z0-9]")

# Remaining two-byte escapes: keypad mode (ESC = / ESC >), save/restore, etc.
# A trailing lone ESC goes too.
ESC_RE = re.compile(r"\x1b(?:[ -/]*[0-~]|\Z)")

SPINNER_LINE_RE = re.compile(
    r"^[✶✳✢·✽✻⏺▐▛▜▝▘⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏⣾⣽⣻⢿⡿⣟⣯⣷░▒▓█▌▀▄\s]+$"
)

BOX_DRAWING_RE = re.compile(
    r"^[─│╭╮╰╯├┤┬┴┼═║╔╗╚╝╠╣╦╩╬┌┐└┘┊┈╌╎\s]+$"
)

THINKING_RE = re.compile(
    r"^(Running|Cogitating|Thinking|Processing|Generating|Analyzing|Searching|Reading|Writing)…?\s*$"
)

BLANK_RUN_RE = re.compile(r"\n{3,}")
NEWLINE_RUN_RE = re.compile(r"[\r\n]+")


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences and carriage returns."""
    text = OSC_RE.sub("", text)
    text = CSI_RE.sub("", text)
    text = CHARSET_RE.sub("", text)
    text = ESC_RE.sub("", text)
    return text.replace("\r", "")


def _is_noise(line: str) -> bool:
    trimmed = line.strip()
    if not trimmed:
        # blank lines are collapsed afterwards
        return False
    if SPINNER_LINE_RE.match(trimmed):
        return True
    if BOX_DRAWING_RE.match(trimmed):
        return True
    if THINKING_RE.match(trimmed):
        return True
    return False


def clean_terminal_output(text: str) -> str:
    """Drop TUI noise lines, collapse blank runs and trim."""
    kept = [line for line in text.split("\n") if not _is_noise(line)]
    return BLANK_RUN_RE.sub("\n\n", "\n".join(kept)).strip()


def normalize_output(raw: str) -> str:
    return clean_terminal_output(strip_ansi(raw))


def clean_input(raw: str) -> str:
    # CR/LF runs are collapsed before stripping so "\r\n" keeps one break.
    collapsed = NEWLINE_RUN_RE.sub("\n", raw)
    return strip_ansi(collapsed).strip()


def has_line_terminator(data: str) -> bool:
    return "\r" in data or "\n" in data
