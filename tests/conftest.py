"""Shared fixtures for pane_shells tests."""

import os

import pytest

from pane_shells import environment
from pane_shells.config import PaneConfig
from pane_shells.history import HistoryStore
from pane_shells.store import HistoryPaths


@pytest.fixture(autouse=True)
def _login_path(monkeypatch):
    """Skip the login-shell PATH probe; tests use the inherited PATH."""
    monkeypatch.setattr(environment, "_cached_path", os.environ.get("PATH") or "/usr/bin:/bin")


@pytest.fixture(autouse=True)
def _no_parent_git(monkeypatch, tmp_path):
    """Keep git from discovering a repository above the test directory."""
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))


@pytest.fixture
def config(tmp_path):
    return PaneConfig(
        shell="/bin/sh",
        base_dir=str(tmp_path / "data"),
        kill_grace=1.0,
        probe_timeout=2.0,
        git_timeout=5.0,
        output_flush_interval=0.05,
        history_flush_interval=0.05,
    )


@pytest.fixture
def history(config):
    return HistoryStore(HistoryPaths(config=config), config=config)


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "proj"
    path.mkdir()
    return path
