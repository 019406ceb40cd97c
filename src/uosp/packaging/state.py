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

"""Packaging repository state.

Loads an immutable view of a packaging tree (changelog head, patch series,
branch) and commits the outcome of an operation. The tree is held under an
exclusive lease for the whole operation so that two runs never act on the
same working tree at once.
"""

from __future__ import annotations

import contextlib
import datetime
import email.utils
import fcntl
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from debian.changelog import Changelog, ChangelogParseError

from uosp.core.exceptions import (
    DirtyWorkingTreeError,
    MissingUpstreamBranchError,
    NotAPackagingTreeError,
    TreeLockedError,
)
from uosp.debpkg.patches import PatchRef, read_series
from uosp.debpkg.version import Version, parse
from uosp.vcs import git_author_env

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from uosp.vcs import VcsBackend

logger = logging.getLogger(__name__)

DEBIAN_DIR = "debian"
DEFAULT_UPSTREAM_BRANCH = "upstream"
PRISTINE_TAR_BRANCH = "pristine-tar"
CHANGELOG_PATH = "debian/changelog"
STABLE_BRANCH_PREFIX = "stable"


def packaging_branch(release: str, prefix: str = STABLE_BRANCH_PREFIX) -> str:
    """Return the packaging branch for an OpenStack release.

    ``master`` tracks development; every other release lives on
    ``stable/<release>``.
    """
    if release == "master":
        return release
    return f"{prefix}/{release}"


@dataclass(frozen=True)
class PackagingTree:
    """Snapshot of a packaging repository at the start of an operation.

    Attributes:
        root_path: Repository root.
        branch_name: Checked out packaging branch.
        changelog_head: Version of the topmost changelog entry.
        patch_series: Patches in apply order.
        package: Source package name from the changelog.
        head_date: Timestamp of the topmost changelog entry.
        base_commit: HEAD commit when the tree was loaded.
    """

    root_path: Path
    branch_name: str
    changelog_head: Version
    patch_series: tuple[PatchRef, ...] = ()
    package: str = ""
    head_date: datetime.datetime | None = None
    base_commit: str | None = None

    @property
    def debian_dir(self) -> Path:
        return self.root_path / DEBIAN_DIR

    @property
    def changelog_path(self) -> Path:
        return self.debian_dir / "changelog"

    @property
    def patches_dir(self) -> Path:
        return self.debian_dir / "patches"


def read_changelog_head(changelog_path: Path) -> tuple[str, Version, datetime.datetime | None, str | None]:
    """Return (package, version, date, author) of the topmost changelog entry.

    Raises:
        NotAPackagingTreeError: The changelog cannot be parsed or is empty.
        MalformedVersionError: The head version is not usable.
    """
    try:
        with changelog_path.open(encoding="utf-8") as f:
            cl = Changelog(f, max_blocks=1)
    except (ChangelogParseError, UnicodeDecodeError) as e:
        raise NotAPackagingTreeError(message=f"Unreadable changelog {changelog_path}: {e}") from e

    if not list(cl) or not cl.version:
        raise NotAPackagingTreeError(message=f"Changelog {changelog_path} has no entries")

    date = None
    if cl.date:
        try:
            date = email.utils.parsedate_to_datetime(cl.date)
            if date.tzinfo is None:
                date = date.replace(tzinfo=datetime.UTC)
        except (TypeError, ValueError):
            logger.warning("Unparseable changelog date %r in %s", cl.date, changelog_path)
    return cl.package, parse(str(cl.version)), date, cl.author


class RepositoryState:
    """Reads and commits packaging trees through a ``VcsBackend``."""

    def __init__(
        self,
        vcs: VcsBackend,
        upstream_branch: str = DEFAULT_UPSTREAM_BRANCH,
        lock_timeout: float = 0.0,
    ) -> None:
        self.vcs = vcs
        self.upstream_branch = upstream_branch
        self.lock_timeout = lock_timeout

    def load(self, root: Path) -> PackagingTree:
        """Load the packaging tree at ``root``.

        Raises:
            NotAPackagingTreeError: debian/changelog or debian/patches is missing.
            DirtyWorkingTreeError: The working tree has uncommitted changes,
                for instance left behind by an interrupted run.
        """
        root = root.resolve()
        changelog_path = root / DEBIAN_DIR / "changelog"
        patches_dir = root / DEBIAN_DIR / "patches"
        if not changelog_path.is_file():
            raise NotAPackagingTreeError(message=f"{root} has no debian/changelog")
        if not patches_dir.is_dir():
            raise NotAPackagingTreeError(message=f"{root} has no debian/patches directory")

        dirty = self.vcs.dirty_paths(root)
        if dirty:
            raise DirtyWorkingTreeError(
                message=f"{root} has uncommitted changes; clean the tree before retrying",
                paths=dirty,
            )

        package, head, date, _author = read_changelog_head(changelog_path)
        tree = PackagingTree(
            root_path=root,
            branch_name=self.vcs.current_branch(root),
            changelog_head=head,
            patch_series=read_series(patches_dir),
            package=package,
            head_date=date,
            base_commit=self.vcs.head_commit(root),
        )
        logger.debug("loaded %s %s on %s", package, head, tree.branch_name)
        return tree

    def check_branch_layout(self, tree: PackagingTree) -> None:
        """Verify the upstream-tracking branch exists next to the packaging branch.

        Raises:
            MissingUpstreamBranchError: The branch is missing or is the
                branch currently used for packaging.
        """
        branches = self.vcs.list_branches(tree.root_path)
        if self.upstream_branch not in branches:
            raise MissingUpstreamBranchError(
                message=f"Branch '{self.upstream_branch}' not found in {tree.root_path}",
                branch=self.upstream_branch,
            )
        if self.upstream_branch == tree.branch_name:
            raise MissingUpstreamBranchError(
                message=f"Packaging work is checked out on the upstream branch '{self.upstream_branch}'",
                branch=self.upstream_branch,
            )

    def checkout_packaging_branch(self, root: Path, branch: str) -> None:
        """Put the tree at ``root`` on ``branch`` before an operation.

        ``pristine-tar`` and the upstream branch are checked out first, when
        they exist, so that gbp finds local branches.

        Raises:
            DirtyWorkingTreeError: The tree has uncommitted changes.
            MissingUpstreamBranchError: ``branch`` does not exist.
            ToolError: A checkout failed.
        """
        root = root.resolve()
        dirty = self.vcs.dirty_paths(root)
        if dirty:
            raise DirtyWorkingTreeError(
                message=f"{root} has uncommitted changes; clean the tree before retrying",
                paths=dirty,
            )

        branches = self.vcs.list_branches(root)
        if branch not in branches:
            raise MissingUpstreamBranchError(
                message=f"Packaging branch '{branch}' not found in {root}",
                branch=branch,
            )
        for support in (PRISTINE_TAR_BRANCH, self.upstream_branch):
            if support in branches and support != branch:
                self.vcs.checkout(root, support)
        self.vcs.checkout(root, branch)
        logger.debug("checked out %s in %s", branch, root)

    def commit(self, tree: PackagingTree, message: str, paths: Sequence[str] = (CHANGELOG_PATH,)) -> str:
        """Commit the changes under ``paths`` and return the new commit id.

        Args:
            tree: Tree as loaded at the start of the operation.
            message: Commit message.
            paths: Files or directories, relative to the tree root, the
                operation wrote. Nothing else may have changed.

        Raises:
            DirtyWorkingTreeError: HEAD moved since the tree was loaded, or
                files outside ``paths`` changed; the operation did not make
                those changes and they are not committed.
        """
        head = self.vcs.head_commit(tree.root_path)
        if head != tree.base_commit:
            raise DirtyWorkingTreeError(
                message=f"{tree.root_path} moved from {tree.base_commit} to {head} during the operation",
            )

        owned = tuple(p.rstrip("/") for p in paths)
        staged: list[str] = []
        stray: list[str] = []
        for path in self.vcs.dirty_paths(tree.root_path):
            if any(path == o or path.startswith(f"{o}/") for o in owned):
                staged.append(path)
            else:
                stray.append(path)
        if stray:
            raise DirtyWorkingTreeError(
                message=f"{tree.root_path} has changes this operation did not make; not committing",
                paths=stray,
            )

        commit_id = self.vcs.write_commit(tree.root_path, message, env=git_author_env(), paths=staged)
        logger.info("committed %s as %s", tree.changelog_head, commit_id)
        return commit_id

    @staticmethod
    def lock_path(root: Path) -> Path:
        # Kept outside the tree so the lock never shows up as a change.
        root = root.resolve()
        return root.parent / f".{root.name}.uosp.lock"

    @contextlib.contextmanager
    def lease(self, root: Path) -> Iterator[None]:
        """Hold an exclusive lock on ``root`` for the duration of the block.

        The lock is released on every exit path, including exceptions.

        Raises:
            TreeLockedError: Another run holds the lease past ``lock_timeout``.
        """
        lock_path = self.lock_path(root)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = lock_path.open("w")
        start = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= self.lock_timeout:
                        raise TreeLockedError(message=f"{root} is in use by another uosp run") from None
                    time.sleep(0.5)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()
