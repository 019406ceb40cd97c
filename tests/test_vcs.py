# This file is part of uosp, a tool for maintaining Ubuntu OpenStack packages.
#
# Copyright 2025 Canonical Ltd.
#
# SPDX-License-Identifier: GPL-3.0-only
#
# uosp is free software: you can redistribute it and/or modify it under
# the terms of the GNU General Public License version 3, as published by the
# Free Software Foundation.
#
# uosp is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranties of MERCHANTABILITY,
# SATISFACTORY QUALITY, or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along with
# uosp. If not, see <http://www.gnu.org/licenses/>.

"""Tests for the git backend against real repositories."""

from __future__ import annotations

import datetime
import shutil
import tarfile
from pathlib import Path

import git
import pytest

from uosp.core.exceptions import ToolError, UpstreamUnreachableError
from uosp.vcs import GitBackend, git_author_env, no_gpg_sign_enabled

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git from the host configuration."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Jane Packager")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "jane@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Jane Packager")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "jane@example.com")


def _commit(repo: git.Repo, files: dict[str, str], message: str, when: str) -> str:
    root = Path(repo.working_tree_dir)
    for rel, text in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
    repo.git.add(A=True)
    repo.git.commit("-m", message, env={"GIT_AUTHOR_DATE": when, "GIT_COMMITTER_DATE": when})
    return repo.head.commit.hexsha


@pytest.fixture
def upstream_repo(tmp_path: Path, git_env: None) -> tuple[Path, dict[str, str]]:
    """Upstream history: 1.2.0 (Jan), 1.3.0 (Feb, tagged), one dev commit (Mar)."""
    path = tmp_path / "upstream"
    repo = git.Repo.init(path, initial_branch="master")
    shas = {
        "1.2.0": _commit(repo, {"setup.py": "# 1.2.0\n"}, "Release 1.2.0", "2025-01-10T10:00:00+00:00"),
        "1.3.0": _commit(repo, {"setup.py": "# 1.3.0\n", "foo/core.py": "X = 1\n"}, "Release 1.3.0", "2025-02-10T10:00:00+00:00"),
    }
    repo.create_tag("1.2.0", ref=shas["1.2.0"])
    repo.create_tag("1.3.0", ref=shas["1.3.0"], message="1.3.0")
    shas["dev"] = _commit(repo, {"foo/core.py": "X = 2\n"}, "Change X", "2025-03-01T10:00:00+00:00")
    return path, shas


class TestGitBackend:
    def test_resolve_tag(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, shas = upstream_repo
        backend = GitBackend()

        assert backend.resolve_tag(path, "1.2.0") == shas["1.2.0"]
        # Annotated tags resolve to the commit, not the tag object.
        assert backend.resolve_tag(path, "1.3.0") == shas["1.3.0"]
        assert backend.resolve_tag(path, "9.9.9") is None

    def test_commit_before(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, shas = upstream_repo
        backend = GitBackend()

        at = datetime.datetime(2025, 2, 20, tzinfo=datetime.UTC)
        assert backend.commit_before(path, "master", at) == shas["1.3.0"]
        later = datetime.datetime(2025, 3, 2, tzinfo=datetime.UTC)
        assert backend.commit_before(path, "master", later) == shas["dev"]
        early = datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC)
        assert backend.commit_before(path, "master", early) is None

    def test_commit_time(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, shas = upstream_repo
        when = GitBackend().commit_time(path, shas["dev"])
        assert when == datetime.datetime(2025, 3, 1, 10, 0, tzinfo=datetime.UTC)

    def test_export_tag(self, upstream_repo: tuple[Path, dict[str, str]], tmp_path: Path) -> None:
        path, shas = upstream_repo
        dest = GitBackend().export(path, shas["1.3.0"], tmp_path / "export" / "tag-1.3.0")

        assert (dest / "setup.py").read_text() == "# 1.3.0\n"
        assert (dest / "foo" / "core.py").read_text() == "X = 1\n"
        assert not (dest / ".git").exists()

    def test_dirty_paths_and_commit(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, _ = upstream_repo
        backend = GitBackend()
        assert backend.dirty_paths(path) == []

        (path / "setup.py").write_text("# changed\n")
        (path / "NEW").write_text("new\n")
        assert backend.dirty_paths(path) == ["NEW", "setup.py"]

        sha = backend.write_commit(path, "Local change", env=git_author_env())
        assert backend.dirty_paths(path) == []
        assert backend.head_commit(path) == sha
        assert git.Repo(path).head.commit.message.strip() == "Local change"

    def test_commit_stages_only_given_paths(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, _ = upstream_repo
        backend = GitBackend()
        (path / "setup.py").write_text("# changed\n")
        (path / "foo" / "extra.py").write_text("Y = 1\n")
        (path / "NEW").write_text("new\n")

        backend.write_commit(path, "Upstream files only", env=git_author_env(), paths=["foo/extra.py", "setup.py"])

        assert backend.dirty_paths(path) == ["NEW"]
        committed = git.Repo(path).head.commit
        assert sorted(committed.stats.files) == ["foo/extra.py", "setup.py"]

    def test_archive_tag(self, upstream_repo: tuple[Path, dict[str, str]], tmp_path: Path) -> None:
        path, shas = upstream_repo
        tarball = tmp_path / "work" / "python-foo_1.3.0.orig.tar.gz"

        GitBackend().archive(path, shas["1.3.0"], tarball, prefix="python-foo-1.3.0/")

        with tarfile.open(tarball, "r:gz") as tar:
            names = tar.getnames()
        assert "python-foo-1.3.0/setup.py" in names
        assert "python-foo-1.3.0/foo/core.py" in names

    def test_archive_unknown_ref(self, upstream_repo: tuple[Path, dict[str, str]], tmp_path: Path) -> None:
        path, _ = upstream_repo
        tarball = tmp_path / "bad.orig.tar.gz"
        with pytest.raises(ToolError):
            GitBackend().archive(path, "no-such-ref", tarball)
        assert not tarball.exists()

    def test_branches(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, _ = upstream_repo
        repo = git.Repo(path)
        repo.create_head("upstream")
        backend = GitBackend()

        assert backend.list_branches(path) == ["master", "upstream"]
        assert backend.current_branch(path) == "master"
        assert backend.read_branch(path, "upstream") == repo.heads["upstream"].commit.hexsha
        assert backend.read_branch(path, "pristine-tar") is None

    def test_checkout_remote_branch(self, upstream_repo: tuple[Path, dict[str, str]], tmp_path: Path) -> None:
        path, _ = upstream_repo
        git.Repo(path).create_head("pristine-tar")
        clone = tmp_path / "clone"
        backend = GitBackend()
        backend.clone(str(path), clone)

        backend.checkout(clone, "pristine-tar")

        assert backend.current_branch(clone) == "pristine-tar"
        with pytest.raises(ToolError):
            backend.checkout(clone, "stable/zed")

    def test_fetch_without_remote(self, upstream_repo: tuple[Path, dict[str, str]]) -> None:
        path, _ = upstream_repo
        with pytest.raises(UpstreamUnreachableError):
            GitBackend().fetch_remote(path)

    def test_clone_failure(self, tmp_path: Path, git_env: None) -> None:
        with pytest.raises(UpstreamUnreachableError):
            GitBackend().clone(str(tmp_path / "missing"), tmp_path / "dest")

    def test_push_all_branches(self, upstream_repo: tuple[Path, dict[str, str]], tmp_path: Path) -> None:
        path, shas = upstream_repo
        target = tmp_path / "target.git"
        git.Repo.init(target, bare=True)

        GitBackend().push(path, str(target))

        assert git.Repo(target).heads["master"].commit.hexsha == shas["dev"]


class TestIdentity:
    def test_git_author_env_from_debian_variables(self) -> None:
        env = git_author_env()
        assert env["GIT_AUTHOR_NAME"] == "Jane Packager"
        assert env["GIT_COMMITTER_EMAIL"] == "jane@example.com"

    def test_no_gpg_sign(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UOSP_NO_GPG_SIGN", "yes")
        assert no_gpg_sign_enabled() is True
        monkeypatch.setenv("UOSP_NO_GPG_SIGN", "")
        assert no_gpg_sign_enabled() is False
