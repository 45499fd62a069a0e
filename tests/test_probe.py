"""Tests for process cwd and git status probes."""

import asyncio
import os
import shutil
import subprocess
import sys

import pytest

from pane_shells.probe import probe_cwd, probe_git_status, run_bounded

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(cwd, *args):
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com",
         "-c", "commit.gpgsign=false", *args],
        cwd=cwd, check=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
    )


@pytest.fixture
def repo(project_dir):
    _git(project_dir, "init", "-q")
    _git(project_dir, "symbolic-ref", "HEAD", "refs/heads/main")
    (project_dir / "README").write_text("hello\n", encoding="utf-8")
    _git(project_dir, "add", "README")
    _git(project_dir, "commit", "-q", "-m", "initial")
    return project_dir


class TestRunBounded:

    @pytest.mark.asyncio
    async def test_returns_code_and_stdout(self, tmp_path):
        code, out = await run_bounded(["/bin/sh", "-c", "pwd; exit 4"], cwd=str(tmp_path), timeout=5.0)
        assert code == 4
        assert os.path.realpath(out.strip()) == os.path.realpath(str(tmp_path))

    @pytest.mark.asyncio
    async def test_timeout_kills_child(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_bounded(["/bin/sh", "-c", "sleep 30"], timeout=0.2)


class TestProbeCwd:

    @pytest.mark.asyncio
    async def test_own_process(self):
        assert await probe_cwd(os.getpid(), timeout=2.0) == os.getcwd()

    @pytest.mark.asyncio
    async def test_missing_or_empty_pid(self):
        assert await probe_cwd(None) is None
        assert await probe_cwd(2 ** 22 + 12345, timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_child_process_cwd(self, tmp_path):
        proc = await asyncio.create_subprocess_exec(sys.executable, "-c", "import time; time.sleep(30)", cwd=str(tmp_path))
        try:
            cwd = await probe_cwd(proc.pid, timeout=2.0)
            assert os.path.realpath(cwd) == os.path.realpath(str(tmp_path))
        finally:
            proc.kill()
            await proc.wait()


@needs_git
class TestGitStatus:

    @pytest.mark.asyncio
    async def test_non_repo_and_vanished_directory(self, project_dir):
        status = await probe_git_status(str(project_dir), timeout=5.0)
        assert status.to_dict() == {"isGitRepo": False}

        shutil.rmtree(project_dir)
        status = await probe_git_status(str(project_dir), timeout=5.0)
        assert status.to_dict() == {"isGitRepo": False}

    @pytest.mark.asyncio
    async def test_clean_then_dirty_repo(self, repo):
        status = await probe_git_status(str(repo), timeout=5.0)
        assert status.to_dict() == {"isGitRepo": True, "branch": "main", "ahead": 0, "behind": 0, "dirty": 0}

        (repo / "untracked.txt").write_text("x", encoding="utf-8")
        (repo / "README").write_text("changed\n", encoding="utf-8")
        status = await probe_git_status(str(repo), timeout=5.0)
        assert status.dirty == 2

    @pytest.mark.asyncio
    async def test_detached_head_on_tag(self, repo):
        _git(repo, "tag", "v1.0")
        _git(repo, "checkout", "-q", "--detach", "v1.0")
        status = await probe_git_status(str(repo), timeout=5.0)
        assert status.branch == "v1.0"

    @pytest.mark.asyncio
    async def test_detached_head_without_tag_uses_short_sha(self, repo):
        (repo / "second").write_text("2", encoding="utf-8")
        _git(repo, "add", "second")
        _git(repo, "commit", "-q", "-m", "second")
        _git(repo, "checkout", "-q", "--detach", "HEAD")
        sha = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"], cwd=repo, check=True, capture_output=True, text=True,
        ).stdout.strip()

        status = await probe_git_status(str(repo), timeout=5.0)
        assert status.branch == sha

    @pytest.mark.asyncio
    async def test_subdirectory_of_repo(self, repo):
        sub = repo / "pkg"
        sub.mkdir()
        status = await probe_git_status(str(sub), timeout=5.0)
        assert status.is_git_repo is True
        assert status.branch == "main"
