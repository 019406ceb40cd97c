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

"""Version control capability used by the repository state and the upstream resolver.

``VcsBackend`` is the narrow interface the core needs; ``GitBackend``
implements it with GitPython. Tests substitute an in-memory double.
"""

from __future__ import annotations

import datetime
import logging
import os
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import git

from uosp.core.exceptions import ToolError, UpstreamUnreachableError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class VcsBackend(Protocol):
    """Operations on a local repository the core relies on."""

    def clone(self, url: str, dest: Path) -> None: ...

    def list_branches(self, path: Path) -> list[str]: ...

    def current_branch(self, path: Path) -> str: ...

    def read_branch(self, path: Path, branch: str) -> str | None: ...

    def head_commit(self, path: Path) -> str | None: ...

    def dirty_paths(self, path: Path) -> list[str]: ...

    def write_commit(
        self,
        path: Path,
        message: str,
        env: dict[str, str] | None = None,
        paths: Sequence[str] | None = None,
    ) -> str: ...

    def fetch_remote(self, path: Path, remote: str = "origin") -> None: ...

    def resolve_tag(self, path: Path, tag: str) -> str | None: ...

    def commit_before(self, path: Path, ref: str, when: datetime.datetime) -> str | None: ...

    def commit_time(self, path: Path, commit: str) -> datetime.datetime: ...

    def export(self, path: Path, ref: str, dest: Path) -> Path: ...

    def archive(self, path: Path, ref: str, tarball: Path, prefix: str = "") -> Path: ...

    def push(self, path: Path, url: str, force: bool = True) -> None: ...

    def checkout(self, path: Path, branch: str) -> None: ...


def no_gpg_sign_enabled() -> bool:
    """Return True when UOSP_NO_GPG_SIGN asks commits not to be signed."""
    return os.environ.get("UOSP_NO_GPG_SIGN", "").lower() in {"1", "true", "yes"}


def git_author_env() -> dict[str, str]:
    """Return git author/committer variables derived from DEBFULLNAME/DEBEMAIL.

    Commits made by uosp are attributed to the Debian maintainer identity
    rather than to the system git config. Empty when nothing is set.
    """
    env: dict[str, str] = {}
    name = os.environ.get("DEBFULLNAME") or os.environ.get("NAME")
    email = os.environ.get("DEBEMAIL") or os.environ.get("EMAIL")
    if name:
        env["GIT_AUTHOR_NAME"] = name
        env["GIT_COMMITTER_NAME"] = name
    if email:
        env["GIT_AUTHOR_EMAIL"] = email
        env["GIT_COMMITTER_EMAIL"] = email
    return env


class GitBackend:
    """``VcsBackend`` implemented with GitPython."""

    def _repo(self, path: Path) -> git.Repo:
        return git.Repo(path)

    def clone(self, url: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            git.Repo.clone_from(url, dest)
        except git.GitCommandError as e:
            raise UpstreamUnreachableError(message=f"Clone of {url} failed: {e}", url=url) from e

    def list_branches(self, path: Path) -> list[str]:
        repo = self._repo(path)
        branches = {head.name for head in repo.heads}
        for remote in repo.remotes:
            prefix = f"{remote.name}/"
            for ref in remote.refs:
                name = ref.name.removeprefix(prefix)
                if name != "HEAD":
                    branches.add(name)
        return sorted(branches)

    def current_branch(self, path: Path) -> str:
        repo = self._repo(path)
        if repo.head.is_detached:
            return ""
        return repo.active_branch.name

    def read_branch(self, path: Path, branch: str) -> str | None:
        repo = self._repo(path)
        for ref in (f"refs/heads/{branch}", f"refs/remotes/origin/{branch}"):
            try:
                return repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}")
            except git.GitCommandError:
                continue
        return None

    def head_commit(self, path: Path) -> str | None:
        repo = self._repo(path)
        try:
            return repo.head.commit.hexsha
        except ValueError:
            # Unborn branch: no commits yet.
            return None

    def dirty_paths(self, path: Path) -> list[str]:
        repo = self._repo(path)
        paths: set[str] = set(repo.untracked_files)
        paths.update(item.a_path for item in repo.index.diff(None))
        if repo.head.is_valid():
            paths.update(item.a_path for item in repo.index.diff("HEAD"))
        return sorted(paths)

    def write_commit(
        self,
        path: Path,
        message: str,
        env: dict[str, str] | None = None,
        paths: Sequence[str] | None = None,
    ) -> str:
        """Commit the working tree.

        Only ``paths`` are staged when given; otherwise every change is.
        """
        repo = self._repo(path)
        args = ["-m", message]
        if no_gpg_sign_enabled():
            args.insert(0, "--no-gpg-sign")
        try:
            if paths is None:
                repo.git.add(A=True)
            elif paths:
                repo.git.add("-A", "--", *paths)
            repo.git.commit(*args, env=env or None)
        except git.GitCommandError as e:
            raise ToolError(message=f"git commit failed: {e}", output=str(e)) from e
        return repo.head.commit.hexsha

    def fetch_remote(self, path: Path, remote: str = "origin") -> None:
        repo = self._repo(path)
        try:
            repo.remotes[remote].fetch(tags=True, prune=True)
        except (git.GitCommandError, IndexError) as e:
            raise UpstreamUnreachableError(message=f"Fetch from {remote} failed: {e}", url=remote) from e

    def resolve_tag(self, path: Path, tag: str) -> str | None:
        repo = self._repo(path)
        try:
            return repo.git.rev_parse("--verify", "--quiet", f"refs/tags/{tag}^{{commit}}")
        except git.GitCommandError:
            return None

    def commit_before(self, path: Path, ref: str, when: datetime.datetime) -> str | None:
        repo = self._repo(path)
        try:
            sha = repo.git.rev_list("-1", f"--before={when.isoformat()}", ref)
        except git.GitCommandError:
            return None
        return sha.strip() or None

    def commit_time(self, path: Path, commit: str) -> datetime.datetime:
        return self._repo(path).commit(commit).committed_datetime

    def export(self, path: Path, ref: str, dest: Path) -> Path:
        """Write the tree of ``ref`` into ``dest`` using git archive."""
        repo = self._repo(path)
        dest.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile() as fh:
            try:
                repo.archive(fh, treeish=ref, format="tar")
            except git.GitCommandError as e:
                raise ToolError(message=f"git archive of {ref} failed", output=str(e)) from e
            fh.seek(0)
            with tarfile.open(fileobj=fh) as tar:
                tar.extractall(dest, filter="data")
        logger.debug("exported %s of %s to %s", ref, path, dest)
        return dest

    def archive(self, path: Path, ref: str, tarball: Path, prefix: str = "") -> Path:
        """Write ``ref`` as a gzipped tarball, every member under ``prefix``."""
        repo = self._repo(path)
        tarball.parent.mkdir(parents=True, exist_ok=True)
        try:
            with tarball.open("wb") as fh:
                repo.archive(fh, treeish=ref, prefix=prefix, format="tar.gz")
        except git.GitCommandError as e:
            tarball.unlink(missing_ok=True)
            raise ToolError(message=f"git archive of {ref} failed", output=str(e)) from e
        logger.debug("archived %s of %s to %s", ref, path, tarball)
        return tarball

    def push(self, path: Path, url: str, force: bool = True) -> None:
        repo = self._repo(path)
        args = ["--all"]
        if force:
            args.insert(0, "-f")
        try:
            repo.git.push(*args, url)
        except git.GitCommandError as e:
            raise ToolError(message=f"Push to {url} failed", output=str(e)) from e

    def checkout(self, path: Path, branch: str) -> None:
        """Check out ``branch``, creating a local tracking branch if needed."""
        repo = self._repo(path)
        try:
            if branch in [head.name for head in repo.heads]:
                repo.heads[branch].checkout()
            else:
                repo.git.checkout("-b", branch, f"origin/{branch}")
        except git.GitCommandError as e:
            raise ToolError(message=f"Checkout of {branch} failed", output=str(e)) from e
