"""Tests for GitClient."""

import subprocess
from pathlib import Path, PurePosixPath
from unittest.mock import MagicMock, patch

import pytest

from hometree.errors import GitError
from hometree.git import GitClient
from hometree.types import WorkTreeBinding


@pytest.fixture
def binding(tmp_path):
    return WorkTreeBinding(
        git_dir=tmp_path / "data" / "bash.git", work_tree=tmp_path / "home"
    )


class TestRun:
    """Tests for running user commands."""

    def test_binds_git_dir_and_work_tree(self, binding):
        """Both the flags and the environment name the binding."""
        client = GitClient()

        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert client.run(binding, ["status", "--short"]) == 0

        cmd = mock_run.call_args[0][0]
        assert cmd == [
            "git",
            "--git-dir",
            str(binding.git_dir),
            "--work-tree",
            str(binding.work_tree),
            "status",
            "--short",
        ]
        kwargs = mock_run.call_args[1]
        assert kwargs["cwd"] == str(binding.work_tree)
        assert kwargs["env"]["GIT_DIR"] == str(binding.git_dir)
        assert kwargs["env"]["GIT_WORK_TREE"] == str(binding.work_tree)
        assert "capture_output" not in kwargs

    def test_returns_exit_code(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=128)
            assert GitClient().run(binding, ["pull"]) == 128

    def test_custom_cwd(self, binding, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            GitClient().run(binding, ["status"], cwd=tmp_path)
        assert mock_run.call_args[1]["cwd"] == str(tmp_path)

    def test_inherited_git_dir_replaced(self, binding, monkeypatch):
        """A GIT_DIR from the caller's shell never leaks through."""
        monkeypatch.setenv("GIT_DIR", "/somewhere/else")
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            GitClient().run(binding, ["status"])
        assert mock_run.call_args[1]["env"]["GIT_DIR"] == str(
            binding.git_dir
        )

    def test_custom_executable(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            GitClient(executable="/opt/git/bin/git").run(binding, ["status"])
        assert mock_run.call_args[0][0][0] == "/opt/git/bin/git"

    def test_run_program_uses_environment_only(self, binding):
        """Other programs find the repo through GIT_DIR/GIT_WORK_TREE."""
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=3)
            assert GitClient().run_program(binding, ["tig", "--all"]) == 3

        assert mock_run.call_args[0][0] == ["tig", "--all"]
        kwargs = mock_run.call_args[1]
        assert kwargs["cwd"] == str(binding.work_tree)
        assert kwargs["env"]["GIT_DIR"] == str(binding.git_dir)
        assert kwargs["env"]["GIT_WORK_TREE"] == str(binding.work_tree)


class TestListTrackedPaths:
    """Tests for list_tracked_paths()."""

    def test_parses_nul_separated_output(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0,
                stdout=".bashrc\0.config/nvim/init.lua\0with space\0",
                stderr="",
            )
            paths = GitClient().list_tracked_paths(binding)

        assert paths == [
            PurePosixPath(".bashrc"),
            PurePosixPath(".config/nvim/init.lua"),
            PurePosixPath("with space"),
        ]
        cmd = mock_run.call_args[0][0]
        assert cmd[-3:] == ["ls-files", "-z", "--full-name"]

    def test_empty_repo(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0, stdout="", stderr=""
            )
            assert GitClient().list_tracked_paths(binding) == []

    def test_failure_raises_git_error(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=128, stdout="", stderr="fatal: not a git repository"
            )
            with pytest.raises(GitError) as exc:
                GitClient().list_tracked_paths(binding)
        assert "not a git repository" in str(exc.value)


    def test_missing_executable_raises_git_error(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError(2, "No such file")
            with pytest.raises(GitError, match="Could not run"):
                GitClient(executable="/nonexistent/git").list_tracked_paths(
                    binding
                )

    def test_timeout_raises_git_error(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(["git"], 120)
            with pytest.raises(GitError, match="timed out"):
                GitClient().list_tracked_paths(binding)


class TestSetup:
    """Tests for init/clone/config helpers."""

    def test_init_bare(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")
            GitClient().init(tmp_path / "x.git", bare=True)

        args = mock_run.call_args[0][0]
        assert args == ["git", "init", "--bare", str(tmp_path / "x.git")]

    def test_clone_bare(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")
            GitClient().clone("https://example.com/dots.git", tmp_path, True)

        args = mock_run.call_args[0][0]
        assert "clone" in args
        assert "--bare" in args

    def test_clone_failure_raises(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=128, stderr="fatal: repository not found"
            )
            with pytest.raises(GitError, match="repository not found"):
                GitClient().clone("https://example.com/nope.git", tmp_path)

    def test_fetch_refspec_added_when_missing(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.side_effect = [
                MagicMock(returncode=1, stdout="", stderr=""),
                MagicMock(returncode=0, stdout="", stderr=""),
            ]
            GitClient().ensure_fetch_refspec(binding)

        assert mock_run.call_count == 2
        last = mock_run.call_args[0][0]
        assert last[-3:] == [
            "--add",
            "remote.origin.fetch",
            "+refs/heads/*:refs/remotes/origin/*",
        ]

    def test_fetch_refspec_left_alone(self, binding):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0,
                stdout="+refs/heads/*:refs/remotes/origin/*\n",
                stderr="",
            )
            GitClient().ensure_fetch_refspec(binding)
        assert mock_run.call_count == 1

    def test_checkout_in_chunks(self, binding):
        paths = [PurePosixPath(f"file{i}") for i in range(450)]
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stderr="")
            GitClient().checkout(binding, paths)
        assert mock_run.call_count == 3


class TestIsRepository:
    """Tests for is_repository()."""

    def test_missing_directory(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            assert not GitClient().is_repository(tmp_path / "nope", True)
        mock_run.assert_not_called()

    def test_bare(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0, stdout="true\n", stderr=""
            )
            assert GitClient().is_repository(tmp_path, bare=True)

    def test_not_bare(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0, stdout="false\n", stderr=""
            )
            assert not GitClient().is_repository(tmp_path, bare=True)

    def test_work_tree_top_level(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0, stdout=f"{tmp_path}\n", stderr=""
            )
            assert GitClient().is_repository(tmp_path, bare=False)

    def test_subdirectory_is_not_a_repository(self, tmp_path):
        with patch("hometree.git.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(
                returncode=0, stdout=f"{Path(tmp_path).parent}\n", stderr=""
            )
            assert not GitClient().is_repository(tmp_path, bare=False)
