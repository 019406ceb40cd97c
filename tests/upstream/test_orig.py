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

"""Tests for uosp.upstream.orig module."""

from __future__ import annotations

import datetime
import shutil
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import git
import pytest
from conftest import FakeVcs, write_changelog

from uosp.core.exceptions import ContentReplaceError
from uosp.debpkg.changelog import ChangelogWriter
from uosp.debpkg.gbp import ImportOrigResult
from uosp.debpkg.patches import GitApplyPatcher
from uosp.debpkg.version import parse
from uosp.packaging.state import PackagingTree, RepositoryState
from uosp.rebase.engine import RebaseEngine
from uosp.rebase.scheduler import SnapshotScheduler
from uosp.rebase.workflow import Workflow
from uosp.upstream import orig
from uosp.upstream.orig import GbpOrigImporter
from uosp.upstream.resolver import UpstreamResolver
from uosp.vcs import GitBackend

RELEASE_DATE = datetime.datetime(2025, 2, 1, tzinfo=datetime.UTC)


@pytest.fixture
def resolver(fake_vcs: FakeVcs, tmp_path: Path) -> UpstreamResolver:
    repo = tmp_path / "upstream-clone"
    repo.mkdir()
    fake_vcs.add_upstream_commit("r130", RELEASE_DATE, {"setup.py": "# 1.3.0\n"}, tag="1.3.0")
    fake_vcs.branch_files["upstream"] = {"setup.py": "# 1.3.0\n", "PKG-INFO": "Version: 1.3.0\n"}
    return UpstreamResolver(fake_vcs, repo_path=repo, export_root=tmp_path / "exports")


def _tree(make_tree: Callable[..., Path], fake_vcs: FakeVcs) -> PackagingTree:
    return RepositoryState(fake_vcs).load(make_tree(version="1.2.0-1"))


class TestGbpOrigImporter:
    """Tests for GbpOrigImporter with gbp mocked out."""

    def test_imports_tarball_and_reads_upstream_branch(
        self, make_tree: Callable[..., Path], fake_vcs: FakeVcs, resolver: UpstreamResolver
    ) -> None:
        tree = _tree(make_tree, fake_vcs)
        ref = resolver.resolve_release("1.3.0")

        with patch.object(orig, "import_orig", return_value=ImportOrigResult(True, "", "1.3.0")) as gbp_import:
            imported = GbpOrigImporter(resolver, fake_vcs).import_upstream(tree, ref, parse("1.3.0-1"))

        tarball = tree.root_path.parent / "python-foo_1.3.0.orig.tar.gz"
        gbp_import.assert_called_once_with(
            tree.root_path,
            tarball,
            upstream_version="1.3.0",
            upstream_branch="upstream",
            pristine_tar=True,
        )
        assert imported.tarball == tarball
        assert (imported.content_root / "PKG-INFO").read_text() == "Version: 1.3.0\n"
        assert imported.commit == ref.commit

    def test_snapshot_version_names_tarball(
        self, make_tree: Callable[..., Path], fake_vcs: FakeVcs, resolver: UpstreamResolver
    ) -> None:
        tree = _tree(make_tree, fake_vcs)
        ref = resolver.resolve_snapshot(RELEASE_DATE)
        new_version = parse(f"1.4.0~git20250201.1.{ref.short_commit}-1")

        with patch.object(orig, "import_orig", return_value=ImportOrigResult(True, "", "")) as gbp_import:
            imported = GbpOrigImporter(resolver, fake_vcs, pristine_tar=False).import_upstream(tree, ref, new_version)

        assert imported.tarball.name == f"python-foo_1.4.0~git20250201.1.{ref.short_commit}.orig.tar.gz"
        assert gbp_import.call_args.kwargs["pristine_tar"] is False

    def test_gbp_failure(self, make_tree: Callable[..., Path], fake_vcs: FakeVcs, resolver: UpstreamResolver) -> None:
        tree = _tree(make_tree, fake_vcs)
        ref = resolver.resolve_release("1.3.0")
        failed = ImportOrigResult(False, "gbp:error: Upstream tag 'upstream/1.3.0' already exists\n", "1.3.0")

        with patch.object(orig, "import_orig", return_value=failed), pytest.raises(ContentReplaceError) as exc_info:
            GbpOrigImporter(resolver, fake_vcs).import_upstream(tree, ref, parse("1.3.0-1"))

        assert "already exists" in exc_info.value.message


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git and gbp from the host configuration."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Jane Packager")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "jane@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Jane Packager")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "jane@example.com")


def _commit_all(repo: git.Repo, message: str) -> str:
    repo.git.add(A=True)
    repo.git.commit("-m", message)
    return repo.head.commit.hexsha


@pytest.mark.skipif(shutil.which("git") is None or shutil.which("gbp") is None, reason="git or gbp not installed")
def test_rebase_imports_onto_upstream_branch(tmp_path: Path, git_env: None) -> None:
    project = tmp_path / "upstream-clone" / "foo"
    upstream_repo = git.Repo.init(project, initial_branch="master")
    (project / "setup.py").write_text("# 1.2.0\n")
    upstream_repo.create_tag("1.2.0", ref=_commit_all(upstream_repo, "Release 1.2.0"))
    (project / "setup.py").write_text("# 1.3.0\n")
    (project / "foo").mkdir()
    (project / "foo" / "core.py").write_text("X = 1\n")
    upstream_repo.create_tag("1.3.0", ref=_commit_all(upstream_repo, "Release 1.3.0"))

    root = tmp_path / "work" / "python-foo"
    packaging = git.Repo.init(root, initial_branch="upstream")
    (root / "setup.py").write_text("# 1.2.0\n")
    _commit_all(packaging, "Import upstream version 1.2.0")
    packaging.create_tag("upstream/1.2.0")
    upstream_before = packaging.heads["upstream"].commit.hexsha
    packaging.git.checkout("-b", "master")
    write_changelog(root / "debian" / "changelog", "python-foo", "1.2.0-1")
    (root / "debian" / "source").mkdir()
    (root / "debian" / "source" / "format").write_text("3.0 (quilt)\n")
    (root / "debian" / "patches").mkdir()
    (root / "debian" / "patches" / "series").write_text("")
    _commit_all(packaging, "Initial packaging")

    vcs = GitBackend()
    resolver = UpstreamResolver(vcs, repo_path=project, export_root=tmp_path / "exports", offline=True)
    workflow = Workflow(
        state=RepositoryState(vcs),
        resolver=resolver,
        scheduler=SnapshotScheduler(resolver),
        engine=RebaseEngine(GitApplyPatcher(), importer=GbpOrigImporter(resolver, vcs, pristine_tar=False)),
        writer=ChangelogWriter(),
        packaging_branch="master",
    )

    outcome = workflow.rebase(root, "1.3.0")

    assert outcome.commit is not None
    assert (tmp_path / "work" / "python-foo_1.3.0.orig.tar.gz").is_file()
    packaging = git.Repo(root)
    assert packaging.active_branch.name == "master"
    assert packaging.heads["upstream"].commit.hexsha != upstream_before
    assert packaging.heads["upstream"].commit.parents[0].hexsha == upstream_before
    assert "upstream/1.3.0" in [t.name for t in packaging.tags]
    upstream_tree = packaging.heads["upstream"].commit.tree
    assert upstream_tree["setup.py"].data_stream.read() == b"# 1.3.0\n"
    head_tree = packaging.head.commit.tree
    assert head_tree["setup.py"].data_stream.read() == b"# 1.3.0\n"
    assert head_tree["foo/core.py"].data_stream.read() == b"X = 1\n"
    assert not packaging.is_dirty(untracked_files=True)
