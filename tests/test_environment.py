"""Tests for shell environment construction."""

import os

import pytest

from pane_shells import environment
from pane_shells.config import PaneConfig


@pytest.fixture
def fresh_cache():
    environment.reset_cache()
    yield
    environment.reset_cache()


class TestLoginPath:

    @pytest.mark.asyncio
    async def test_unusable_shell_uses_fallback(self, fresh_cache):
        cfg = PaneConfig(shell="/nonexistent/shell", login_path_timeout=2.0)
        path = await environment.resolve_login_path(cfg)
        assert path.startswith("/opt/homebrew/bin:/opt/homebrew/sbin:/usr/local/bin")
        assert path.endswith(os.environ.get("PATH", ""))

    @pytest.mark.asyncio
    async def test_result_is_cached(self, fresh_cache):
        cfg = PaneConfig(shell="/nonexistent/shell", login_path_timeout=2.0)
        first = await environment.resolve_login_path(cfg)
        # A working shell now would give a different answer; the cache wins.
        second = await environment.resolve_login_path(PaneConfig(shell="/bin/sh"))
        assert second == first

    @pytest.mark.asyncio
    async def test_login_shell_path_is_read(self, fresh_cache):
        if not os.path.exists("/bin/sh"):
            pytest.skip("needs /bin/sh")
        path = await environment.resolve_login_path(PaneConfig(shell="/bin/sh", login_path_timeout=5.0))
        assert path
        assert "\n" not in path


class TestBuildShellEnv:

    @pytest.mark.asyncio
    async def test_sets_terminal_variables(self, monkeypatch):
        monkeypatch.setenv("PANE_SHELLS_TEST_MARKER", "kept")
        env = await environment.build_shell_env(PaneConfig(term_program="panes", term_program_version="9.9"))
        assert env["TERM"] == "xterm-256color"
        assert env["COLORTERM"] == "truecolor"
        assert env["SHELL_SESSIONS_DISABLE"] == "1"
        assert env["TERM_PROGRAM"] == "panes"
        assert env["TERM_PROGRAM_VERSION"] == "9.9"
        assert env["HOME"] == os.path.expanduser("~")
        assert env["PATH"] == environment._cached_path
        assert env["PANE_SHELLS_TEST_MARKER"] == "kept"

    @pytest.mark.asyncio
    async def test_lang_defaults_when_unset(self, monkeypatch):
        monkeypatch.delenv("LANG", raising=False)
        env = await environment.build_shell_env(PaneConfig())
        assert env["LANG"] == "en_US.UTF-8"
