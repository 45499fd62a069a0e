"""Tests for configuration loading."""

from pathlib import Path

import pytest

from pane_shells.config import PaneConfig, config_from_mapping, load_config


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PANE_SHELLS_BASE_DIR", raising=False)
        monkeypatch.delenv("PANE_SHELLS_SHELL", raising=False)
        monkeypatch.delenv("PANE_SHELLS_SIGWINCH_ON_RESIZE", raising=False)
        cfg = load_config(tmp_path / "nope.yaml")
        assert cfg == PaneConfig()
        assert cfg.output_flush_interval == 5.0
        assert cfg.history_flush_interval == 30.0
        assert cfg.session_gap == 1800.0

    def test_yaml_values_and_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(
            "shell: /bin/bash\n"
            "max-panes: 2\n"
            "history_flush_interval: 10\n"
            "signal_winch_on_resize: 'yes'\n"
            "unknown_key: 1\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("PANE_SHELLS_BASE_DIR", str(tmp_path / "base"))
        monkeypatch.delenv("PANE_SHELLS_SHELL", raising=False)
        monkeypatch.delenv("PANE_SHELLS_SIGWINCH_ON_RESIZE", raising=False)

        cfg = load_config(path)
        assert cfg.shell == "/bin/bash"
        assert cfg.max_panes == 2
        assert cfg.history_flush_interval == 10.0
        assert cfg.signal_winch_on_resize is True
        assert cfg.resolved_base_dir() == (tmp_path / "base").resolve()

    def test_malformed_yaml_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PANE_SHELLS_BASE_DIR", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("shell: [unclosed\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.shell is None

    def test_env_config_path(self, tmp_path, monkeypatch):
        path = tmp_path / "alt.yaml"
        path.write_text("kill_grace: 0.5\n", encoding="utf-8")
        monkeypatch.setenv("PANE_SHELLS_CONFIG", str(path))
        assert load_config().kill_grace == 0.5


class TestConfigFromMapping:

    def test_rejects_zero_panes(self):
        with pytest.raises(ValueError):
            config_from_mapping({"max_panes": 0})

    def test_bad_value_keeps_default(self):
        cfg = config_from_mapping({"probe_timeout": "fast"})
        assert cfg.probe_timeout == PaneConfig().probe_timeout

    def test_default_base_dir_under_home(self):
        assert str(PaneConfig().resolved_base_dir()).startswith(str(Path.home()))
