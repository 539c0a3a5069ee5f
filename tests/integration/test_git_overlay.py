"""Integration tests for overlay repos against a real git."""

import shutil
import subprocess
from pathlib import Path, PurePosixPath

import pytest

from hometree import operations, overlay
from hometree.dispatch import Dispatcher, OutcomeStatus, TargetSpec
from hometree.errors import PathConflict
from hometree.git import GitClient
from hometree.paths import detect_comparison_mode
from hometree.registry import Registry
from hometree.types import RepoKind

pytestmark = pytest.mark.skipif(
    shutil.which("git") is None, reason="git is not installed"
)

COMMIT = ["-c", "user.name=Test", "-c", "user.email=test@test.com", "commit"]


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    # Keep the user's global git config out of the tests.
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    return home


@pytest.fixture
def registry(home):
    return Registry(home, detect_comparison_mode(home))


def _git(*args, cwd=None):
    return subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )


def _create_remote(tmp_path: Path, files: dict) -> Path:
    """A bare repo whose main branch holds ``files``."""
    remote = tmp_path / "remote.git"
    _git("init", "--bare", str(remote))
    _git("--git-dir", str(remote), "symbolic-ref", "HEAD", "refs/heads/main")

    work = tmp_path / "seed"
    work.mkdir()
    _git("init", cwd=work)
    for name, content in files.items():
        path = work / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    _git("add", ".", cwd=work)
    _git(*COMMIT, "-m", "seed", cwd=work)
    _git("push", str(remote), "HEAD:refs/heads/main", cwd=work)
    return remote


def _track(client, descriptor, *names):
    binding = overlay.bind(descriptor)
    assert client.run(binding, ["add", *names]) == 0
    assert client.run(binding, [*COMMIT, "-q", "-m", "track"]) == 0


def test_new_overlay_repo_is_bare_and_quiet(tmp_path, home, registry):
    """A new overlay repo hides untracked files in the shared root."""
    client = GitClient()
    descriptor = operations.create_repo(
        registry,
        client,
        "bash",
        RepoKind.OVERLAY,
        tmp_path / "data" / "overlay" / "bash.git",
    )

    assert client.is_repository(descriptor.git_dir, bare=True)
    result = _git(
        "--git-dir",
        str(descriptor.git_dir),
        "config",
        "status.showUntrackedFiles",
    )
    assert result.stdout.strip() == "no"


def test_tracked_paths_and_conflicts(tmp_path, home, registry):
    """Two overlay repos tracking .bashrc conflict on it."""
    client = GitClient()
    overlay_dir = tmp_path / "data" / "overlay"
    bash = operations.create_repo(
        registry, client, "dotfiles-bash", RepoKind.OVERLAY,
        overlay_dir / "dotfiles-bash.git",
    )
    vim = operations.create_repo(
        registry, client, "dotfiles-vim", RepoKind.OVERLAY,
        overlay_dir / "dotfiles-vim.git",
    )
    (home / ".bashrc").write_text("# bash")
    (home / ".vimrc").write_text("set nocompatible")
    (home / ".config" / "nvim").mkdir(parents=True)
    (home / ".config" / "nvim" / "init.lua").write_text("-- nvim")

    _track(client, bash, ".bashrc")
    _track(client, vim, ".vimrc", ".bashrc", ".config/nvim/init.lua")

    tracked = client.list_tracked_paths(overlay.bind(vim))
    assert PurePosixPath(".config/nvim/init.lua") in tracked

    conflicts = overlay.check_all(registry, client)
    assert [c.path for c in conflicts] == [".bashrc"]
    with pytest.raises(PathConflict) as exc:
        overlay.check_collision(bash, registry, client)
    assert "dotfiles-vim" in str(exc.value)


def test_clone_overlay_checks_out_missing_files(tmp_path, home, registry):
    """Cloning into a populated home never overwrites local files."""
    remote = _create_remote(
        tmp_path, {".zshrc": "# from repo", ".tmux.conf": "# tmux"}
    )
    (home / ".zshrc").write_text("# mine")
    client = GitClient()

    descriptor, result = operations.clone_repo(
        registry,
        client,
        str(remote),
        "zsh",
        RepoKind.OVERLAY,
        tmp_path / "data" / "overlay" / "zsh.git",
    )

    assert (home / ".zshrc").read_text() == "# mine"
    assert (home / ".tmux.conf").read_text() == "# tmux"
    assert result.existing == [PurePosixPath(".zshrc")]
    assert result.written == [PurePosixPath(".tmux.conf")]
    assert registry.get("zsh") == descriptor


def test_for_each_across_kinds(tmp_path, home, registry):
    """Standalone and overlay repos run side by side in one batch."""
    client = GitClient()
    notes = tmp_path / "src" / "notes"
    notes.mkdir(parents=True)
    _git("init", cwd=notes)
    operations.register_existing(
        registry, client, "notes", RepoKind.STANDALONE, notes
    )
    operations.create_repo(
        registry, client, "bash", RepoKind.OVERLAY,
        tmp_path / "data" / "overlay" / "bash.git",
    )

    dispatcher = Dispatcher(registry, client)
    report = dispatcher.for_each([], ["status", "--short"])
    assert report.exit_code == 0
    assert [o.name for o in report.outcomes] == ["notes", "bash"]

    report = dispatcher.for_each(
        [TargetSpec.parse("kind:overlay")],
        ["rev-parse", "--verify", "--quiet", "refs/heads/nope"],
    )
    assert [o.status for o in report.outcomes] == [OutcomeStatus.FAILED]
    assert report.exit_code != 0


def test_subdirectory_is_not_a_standalone_repo(tmp_path, home, registry):
    client = GitClient()
    repo = tmp_path / "src" / "project"
    (repo / "docs").mkdir(parents=True)
    _git("init", cwd=repo)

    assert client.is_repository(repo, bare=False)
    assert not client.is_repository(repo / "docs", bare=False)


def test_remove_overlay_deletes_only_tracked_files(tmp_path, home, registry):
    client = GitClient()
    bash = operations.create_repo(
        registry, client, "bash", RepoKind.OVERLAY,
        tmp_path / "data" / "overlay" / "bash.git",
    )
    (home / ".bashrc").write_text("# bash")
    (home / ".notes").write_text("keep me")
    _track(client, bash, ".bashrc")

    operations.remove_repo(registry, client, "bash")

    assert not (home / ".bashrc").exists()
    assert (home / ".notes").read_text() == "keep me"
    assert not bash.git_dir.exists()
    assert "bash" not in registry


def test_remove_overlay_keeps_files_tracked_elsewhere(
    tmp_path, home, registry
):
    client = GitClient()
    overlay_dir = tmp_path / "data" / "overlay"
    bash = operations.create_repo(
        registry, client, "dotfiles-bash", RepoKind.OVERLAY,
        overlay_dir / "dotfiles-bash.git",
    )
    vim = operations.create_repo(
        registry, client, "dotfiles-vim", RepoKind.OVERLAY,
        overlay_dir / "dotfiles-vim.git",
    )
    (home / ".bashrc").write_text("# shared")
    (home / ".inputrc").write_text("# bash only")
    (home / ".vimrc").write_text("set nu")
    _track(client, bash, ".bashrc", ".inputrc")
    _track(client, vim, ".bashrc", ".vimrc")

    _, result = operations.remove_repo(registry, client, "dotfiles-bash")

    assert (home / ".bashrc").read_text() == "# shared"
    assert not (home / ".inputrc").exists()
    assert result.shared == [PurePosixPath(".bashrc")]
    assert not bash.git_dir.exists()
    assert ".bashrc" in [
        str(p) for p in client.list_tracked_paths(overlay.bind(vim))
    ]


def test_remove_overlay_keep_files_leaves_root_alone(
    tmp_path, home, registry
):
    client = GitClient()
    bash = operations.create_repo(
        registry, client, "bash", RepoKind.OVERLAY,
        tmp_path / "data" / "overlay" / "bash.git",
    )
    (home / ".bashrc").write_text("# bash")
    _track(client, bash, ".bashrc")

    operations.remove_repo(registry, client, "bash", keep_files=True)

    assert (home / ".bashrc").read_text() == "# bash"
    assert not bash.git_dir.exists()
    assert "bash" not in registry
