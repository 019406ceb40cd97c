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

"""Cloning of Ubuntu OpenStack packaging repositories.

Packaging repositories live on Launchpad under ubuntu-openstack-dev. A usable
working copy needs local ``pristine-tar`` and ``upstream`` branches besides
the packaging branch itself, because gbp reads the orig tarball and upstream
history from them.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from uosp.core.exceptions import ToolError, UpstreamUnreachableError
from uosp.packaging.state import DEFAULT_UPSTREAM_BRANCH, PRISTINE_TAR_BRANCH
from uosp.vcs import GitBackend, VcsBackend

logger = logging.getLogger(__name__)

LAUNCHPAD_BASE_URL = "https://git.launchpad.net/~ubuntu-openstack-dev/ubuntu/+source"

# Seconds to wait for another process cloning the same package.
LOCK_TIMEOUT = 300


@dataclass
class FetchResult:
    """Result of a clone or update of a packaging repository."""

    package: str
    path: Path
    cloned: bool = False
    updated: bool = False
    branches: list[str] = field(default_factory=list)
    checked_out: list[str] = field(default_factory=list)
    error: str | None = None
    was_locked: bool = False


class GitFetcher:
    """Fetches packaging repositories and prepares their local branches."""

    def __init__(
        self,
        base_url: str = LAUNCHPAD_BASE_URL,
        lock_timeout: float = LOCK_TIMEOUT,
        vcs: VcsBackend | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.lock_timeout = lock_timeout
        self.vcs = vcs or GitBackend()

    def build_url(self, package: str) -> str:
        """Return the clone URL of ``package``."""
        return f"{self.base_url}/{package}"

    @contextlib.contextmanager
    def _locked(self, lock_path: Path) -> Iterator[bool]:
        """Hold an exclusive lock on ``lock_path``; yields False on timeout."""
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("w") as fd:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= self.lock_timeout:
                        yield False
                        return
                    time.sleep(0.5)
            try:
                yield True
            finally:
                fcntl.flock(fd.fileno(), fcntl.LOCK_UN)

    def fetch_package(self, package: str, dest_dir: Path, offline: bool = False) -> FetchResult:
        """Clone ``package`` into ``dest_dir``, or fetch it if already there.

        Args:
            package: Source package name.
            dest_dir: Directory the repository is placed in.
            offline: Skip network operations; only report what exists.

        Returns:
            FetchResult; ``error`` is set when nothing usable is on disk.
        """
        pkg_path = dest_dir / package
        result = FetchResult(package=package, path=pkg_path)
        exists = (pkg_path / ".git").is_dir()

        if offline:
            if exists:
                result.branches = self.vcs.list_branches(pkg_path)
            else:
                result.error = "Repository not found in offline mode"
            return result

        with self._locked(dest_dir / f".{package}.clone.lock") as acquired:
            if not acquired:
                result.error = f"Timeout waiting for lock on {package}"
                result.was_locked = True
                return result

            try:
                if exists:
                    self.vcs.fetch_remote(pkg_path)
                    result.updated = True
                else:
                    url = self.build_url(package)
                    logger.info("cloning %s into %s", url, pkg_path)
                    self.vcs.clone(url, pkg_path)
                    result.cloned = True
            except UpstreamUnreachableError as e:
                action = "Fetch" if exists else "Clone"
                result.error = f"{action} failed: {e.message}"
                return result

            result.branches = self.vcs.list_branches(pkg_path)

        return result

    def checkout_branches(self, repo_path: Path, branches: list[str]) -> list[str]:
        """Check out each branch in order; the last one stays checked out.

        Raises:
            ToolError: A branch could not be checked out.
        """
        for branch in branches:
            self.vcs.checkout(repo_path, branch)
        return list(branches)

    def clone_packaging(
        self,
        package: str,
        dest_dir: Path,
        packaging_branch: str = "master",
        upstream_branch: str = DEFAULT_UPSTREAM_BRANCH,
        offline: bool = False,
    ) -> FetchResult:
        """Fetch ``package`` and leave it on ``packaging_branch``.

        ``pristine-tar`` and the upstream branch are checked out first so that
        local branches exist for gbp. Missing remote branches are skipped;
        a missing packaging branch is an error.
        """
        result = self.fetch_package(package, dest_dir, offline=offline)
        if result.error:
            return result

        if packaging_branch not in result.branches:
            result.error = f"Branch {packaging_branch} not found in {package}"
            return result

        wanted = [b for b in (PRISTINE_TAR_BRANCH, upstream_branch) if b in result.branches]
        wanted.append(packaging_branch)
        try:
            result.checked_out = self.checkout_branches(result.path, wanted)
        except ToolError as e:
            result.error = f"{e.message}: {e.output}"
        return result
