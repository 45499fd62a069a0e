"""Tests for the cd-based working directory estimate."""

import os

import pytest

from pane_shells.cwd_tracker import CwdTracker, parse_cd_target, resolve_cd


class TestParseCdTarget:

    @pytest.mark.parametrize("data,expected", [
        ("cd sub\n", "sub"),
        ("cd /var/log\r", "/var/log"),
        ("  cd   'My Dir'\r\n", "My Dir"),
        ('cd "a b"\n', "a b"),
        ("cd ~\n", "~"),
    ])
    def test_extracts_target(self, data, expected):
        assert parse_cd_target(data) == expected

    @pytest.mark.parametrize("data", ["ls -la\n", "echo cd foo\n", "cd\n", "c", ""])
    def test_ignores_non_cd_input(self, data):
        assert parse_cd_target(data) is None


class TestResolveCd:

    def test_absolute(self):
        assert resolve_cd("/tmp/proj", "/etc") == "/etc"

    def test_relative_and_parent(self):
        assert resolve_cd("/tmp/proj", "sub") == "/tmp/proj/sub"
        assert resolve_cd("/tmp/proj/sub", "..") == "/tmp/proj"

    def test_home_forms(self):
        assert resolve_cd("/tmp", "~", home="/home/me") == "/home/me"
        assert resolve_cd("/tmp", "~/code/x", home="/home/me") == "/home/me/code/x"


class TestCwdTracker:

    def test_observe_and_override(self):
        tracker = CwdTracker("/tmp/proj")
        assert tracker.observe_input("ls\n") is None
        assert tracker.observe_input("cd sub\n") == "/tmp/proj/sub"
        assert tracker.value == "/tmp/proj/sub"
        tracker.override("/srv/real")
        assert tracker.value == "/srv/real"

    def test_tilde_uses_real_home(self):
        tracker = CwdTracker("/tmp")
        tracker.observe_input("cd ~\n")
        assert tracker.value == os.path.expanduser("~")
