"""Tests for terminal text normalization."""

from pane_shells.textclean import (
    clean_input,
    clean_terminal_output,
    has_line_terminator,
    normalize_output,
    strip_ansi,
)


class TestStripAnsi:
    """Escape and control sequence removal."""

    def test_removes_cursor_mode_and_osc_sequences(self):
        raw = (
            "\x1b]0;user@host: ~/proj\x07"
            "\x1b[?2004h"
            "\x1b[2K\x1b[1G"
            "\x1b[1;32mok\x1b[0m done\r\n"
            "\x1b]7;file:///tmp\x1b\\"
            "next line\n"
        )
        out = strip_ansi(raw)
        assert "\x1b" not in out
        assert "\r" not in out
        assert out == "ok done\nnext line\n"

    def test_removes_charset_and_keypad_sequences(self):
        assert strip_ansi("\x1b(Babc\x1b=def\x1b>") == "abcdef"

    def test_preserves_plain_text_and_tabs(self):
        text = "col1\tcol2\nünïcødé → ✓\n\n"
        assert strip_ansi(text) == text

    def test_keeps_control_bytes_outside_escapes(self):
        assert strip_ansi("a\x07b\x08c\n") == "a\x07b\x08c\n"

    def test_unterminated_osc_is_stripped_to_end(self):
        assert strip_ansi("x\x1b]0;my title") == "x"
        assert strip_ansi("ok\x1b") == "ok"


class TestCleanTerminalOutput:
    """TUI noise filtering."""

    def test_drops_spinner_box_and_status_lines(self):
        text = "\n".join([
            "real output",
            "⠋ ⠙ ⠹",
            "╭────────╮",
            "│        │",
            "Thinking…",
            "Generating",
            "more output",
        ])
        assert clean_terminal_output(text) == "real output\nmore output"

    def test_keeps_status_word_inside_sentence(self):
        text = "Reading config from disk"
        assert clean_terminal_output(text) == text

    def test_collapses_blank_runs_and_trims(self):
        text = "\n\na\n\n\n\n\nb\n\n"
        assert clean_terminal_output(text) == "a\n\nb"

    def test_normalize_output_combines_both(self):
        raw = "\x1b[32m$ ls\x1b[0m\r\nfile.txt\r\n\x1b[?25l⠼\r\n"
        assert normalize_output(raw) == "$ ls\nfile.txt"


class TestInputCleaning:
    """Input line normalization."""

    def test_clean_input_trims_and_collapses_newlines(self):
        assert clean_input("git status\r\n") == "git status"
        assert clean_input("a\r\r\nb\r") == "a\nb"

    def test_arrow_key_cleans_to_empty(self):
        assert clean_input("\x1b[A") == ""

    def test_has_line_terminator(self):
        assert has_line_terminator("ls\r")
        assert has_line_terminator("ls\n")
        assert not has_line_terminator("l")
