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

"""Pytest fixtures and test doubles for uosp tests."""

from __future__ import annotations

import datetime
import hashlib
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest import mock

import pytest

from uosp.debpkg.patches import ApplyOutcome, PatchFailureReason, PatchRef

DEFAULT_AUTHOR = "Jane Packager <jane@example.com>"
DEFAULT_HEAD_DATE = "Mon, 03 Mar 2025 12:00:00 +0000"


@pytest.fixture
def temp_home(monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create a temporary home directory and set HOME/XDG paths."""
    with tempfile.TemporaryDirectory() as tmpdir:
        home = Path(tmpdir)
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
        monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
        monkeypatch.setattr(Path, "home", lambda: home)
        yield home


@pytest.fixture
def mock_config(temp_home: Path) -> Path:
    """Create a minimal config file in the temp home."""
    config_dir = temp_home / ".config" / "uosp"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "config.yaml"
    config_file.write_text("""
paths:
  cache_root: "~/.cache/uosp"
  upstream_cache: "~/.cache/uosp/upstream"
  export_root: "~/.cache/uosp/exports"
  runs_root: "~/.cache/uosp/runs"

defaults:
  distribution: "UNRELEASED"
  baseline_revision: 1

behavior:
  offline: true
  commit_on_conflict: false
""")
    return config_file


@pytest.fixture(autouse=True)
def maintainer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin the changelog/commit identity so tests do not depend on the host."""
    monkeypatch.setenv("DEBFULLNAME", "Jane Packager")
    monkeypatch.setenv("DEBEMAIL", "jane@example.com")


@pytest.fixture
def non_tty_stdout(monkeypatch: pytest.MonkeyPatch) -> mock.MagicMock:
    """Replace sys.__stdout__ with a non-TTY mock that records writes."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = False
    monkeypatch.setattr("sys.__stdout__", mock_stdout)
    return mock_stdout


@pytest.fixture
def tty_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mock sys.__stdout__.isatty() to return True."""
    mock_stdout = mock.MagicMock()
    mock_stdout.isatty.return_value = True
    mock_stdout.write = lambda x: None
    mock_stdout.flush = lambda: None
    monkeypatch.setattr("sys.__stdout__", mock_stdout)


def printed_lines(stdout: mock.MagicMock) -> list[str]:
    """Return what print() wrote to a mocked stdout, one entry per line."""
    text = "".join(call.args[0] for call in stdout.write.call_args_list)
    return [line for line in text.splitlines() if line]


def fake_sha(label: str) -> str:
    return hashlib.sha1(label.encode()).hexdigest()


class FakeVcs:
    """In-memory ``VcsBackend`` for a packaging tree and its upstream.

    Upstream history is a list of (sha, committed_at, files) in commit order;
    ``export`` writes the files of the requested commit, or of a branch listed
    in ``branch_files``.
    """

    def __init__(self) -> None:
        self.branches = ["master", "pristine-tar", "upstream"]
        self.current = "master"
        self.head: str | None = fake_sha("packaging-0")
        self.dirty: list[str] = []
        self.commits: list[tuple[str, str, dict[str, str] | None]] = []
        self.tags: dict[str, str] = {}
        self.history: list[tuple[str, datetime.datetime, dict[str, str]]] = []
        self.fetches = 0
        self.pushes: list[tuple[Path, str, bool]] = []
        self.checkouts: list[str] = []
        self.clones: list[tuple[str, Path]] = []
        self.fetch_error: Exception | None = None
        self.clone_error: Exception | None = None
        self.staged: list[list[str] | None] = []
        self.archives: list[tuple[str, Path, str]] = []
        self.branch_files: dict[str, dict[str, str]] = {}

    def add_upstream_commit(
        self,
        label: str,
        when: datetime.datetime,
        files: dict[str, str],
        tag: str | None = None,
    ) -> str:
        sha = fake_sha(label)
        self.history.append((sha, when, files))
        if tag:
            self.tags[tag] = sha
        return sha

    def clone(self, url: str, dest: Path) -> None:
        if self.clone_error is not None:
            raise self.clone_error
        self.clones.append((url, dest))
        dest.mkdir(parents=True, exist_ok=True)

    def list_branches(self, path: Path) -> list[str]:
        return sorted(self.branches)

    def current_branch(self, path: Path) -> str:
        return self.current

    def read_branch(self, path: Path, branch: str) -> str | None:
        return fake_sha(branch) if branch in self.branches else None

    def head_commit(self, path: Path) -> str | None:
        return self.head

    def dirty_paths(self, path: Path) -> list[str]:
        return list(self.dirty)

    def write_commit(
        self,
        path: Path,
        message: str,
        env: dict[str, str] | None = None,
        paths: list[str] | None = None,
    ) -> str:
        sha = fake_sha(f"packaging-{len(self.commits) + 1}")
        self.commits.append((sha, message, env))
        self.staged.append(None if paths is None else list(paths))
        self.head = sha
        return sha

    def fetch_remote(self, path: Path, remote: str = "origin") -> None:
        if self.fetch_error is not None:
            raise self.fetch_error
        self.fetches += 1

    def resolve_tag(self, path: Path, tag: str) -> str | None:
        return self.tags.get(tag)

    def commit_before(self, path: Path, ref: str, when: datetime.datetime) -> str | None:
        candidates = [sha for sha, at, _ in self.history if at <= when]
        return candidates[-1] if candidates else None

    def commit_time(self, path: Path, commit: str) -> datetime.datetime:
        for sha, at, _ in self.history:
            if sha == commit:
                return at
        raise KeyError(commit)

    def export(self, path: Path, ref: str, dest: Path) -> Path:
        if ref in self.branch_files:
            files = self.branch_files[ref]
        else:
            files = next(f for sha, _, f in self.history if sha == ref)
        dest.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text)
        return dest

    def archive(self, path: Path, ref: str, tarball: Path, prefix: str = "") -> Path:
        self.archives.append((ref, tarball, prefix))
        tarball.parent.mkdir(parents=True, exist_ok=True)
        tarball.write_bytes(b"orig")
        return tarball

    def push(self, path: Path, url: str, force: bool = True) -> None:
        self.pushes.append((path, url, force))

    def checkout(self, path: Path, branch: str) -> None:
        self.checkouts.append(branch)
        self.current = branch


class FakeApplier:
    """``PatchApplier`` that fails the patches named in ``failing``."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.applied: list[str] = []

    def apply(self, workdir: Path, patch: PatchRef) -> ApplyOutcome:
        self.applied.append(patch.name)
        if patch.name in self.failing:
            return ApplyOutcome(
                success=False,
                output=f"error: patch failed: {patch.name}",
                reason=PatchFailureReason.CONFLICT,
            )
        return ApplyOutcome(success=True)


def write_changelog(
    path: Path,
    package: str,
    version: str,
    date: str = DEFAULT_HEAD_DATE,
    author: str = DEFAULT_AUTHOR,
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f"{package} ({version}) UNRELEASED; urgency=medium\n"
        "\n"
        "  * Previous entry.\n"
        "\n"
        f" -- {author}  {date}\n"
    )


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating a packaging tree on disk.

    The tree holds an upstream-looking ``setup.py`` and ``foo/`` package, a
    ``launchpad.yaml`` owned by packaging, ``debian/changelog`` and a patch
    series.
    """

    def _make(
        version: str = "1.2.0-1",
        package: str = "python-foo",
        patches: tuple[str, ...] = ("fix-config.patch", "drop-pbr.patch"),
        date: str = DEFAULT_HEAD_DATE,
        name: str = "python-foo",
    ) -> Path:
        root = tmp_path / "work" / name
        (root / "foo").mkdir(parents=True)
        (root / "setup.py").write_text("# old upstream\n")
        (root / "foo" / "__init__.py").write_text("VERSION = 'old'\n")
        (root / "launchpad.yaml").write_text("pipeline: []\n")
        debian = root / "debian"
        write_changelog(debian / "changelog", package, version, date=date)
        (debian / "control").write_text(f"Source: {package}\n")
        patches_dir = debian / "patches"
        patches_dir.mkdir(parents=True)
        (patches_dir / "series").write_text("".join(f"{p}\n" for p in patches))
        for p in patches:
            (patches_dir / p).write_text(f"--- a/foo/__init__.py\n+++ b/foo/__init__.py\n# {p}\n")
        return root

    return _make
