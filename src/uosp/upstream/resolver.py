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

"""Locate upstream content for a rebase or a snapshot.

The upstream project is kept as a plain git clone next to the packaging
repositories. A release is identified by its tag; a snapshot by the newest
commit on the upstream branch at or before a given time. Either way the tree
is exported to a directory the rebase engine can copy from.
"""

from __future__ import annotations

import datetime
import logging
import re
import shutil
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from uosp.core.exceptions import UnknownUpstreamTagError, UpstreamUnreachableError

if TYPE_CHECKING:
    from uosp.vcs import VcsBackend

logger = logging.getLogger(__name__)

OPENSTACK_UPSTREAM_URL = "https://opendev.org/openstack"


class UpstreamKind(Enum):
    TAG = "tag"
    SNAPSHOT_COMMIT = "snapshot-commit"


@dataclass(frozen=True)
class UpstreamRef:
    """Resolved upstream content. Read-only once resolved."""

    kind: UpstreamKind
    identifier: str
    content_root: Path
    commit: str = ""
    committed_at: datetime.datetime | None = None
    tarball: Path | None = None

    @property
    def short_commit(self) -> str:
        return self.commit[:7]


def upstream_url(project: str, base_url: str = OPENSTACK_UPSTREAM_URL) -> str:
    """Return the clone URL of an OpenStack project."""
    return f"{base_url.rstrip('/')}/{project}"


def orig_tarball_name(package: str, upstream_version: str) -> str:
    """Return the Debian file name of the orig tarball (``<pkg>_<ver>.orig.tar.gz``)."""
    return f"{package}_{upstream_version}.orig.tar.gz"


class UpstreamResolver:
    """Resolves releases and snapshots of one upstream project.

    Args:
        vcs: Backend used for all git access.
        repo_path: Local clone of the upstream project.
        export_root: Directory exported trees are written under.
        url: Clone URL, used when ``repo_path`` does not exist yet.
        branch: Upstream branch snapshots are taken from.
        offline: Never fetch; work with what the local clone has.
    """

    def __init__(
        self,
        vcs: VcsBackend,
        repo_path: Path,
        export_root: Path,
        url: str | None = None,
        branch: str = "master",
        offline: bool = False,
    ) -> None:
        self.vcs = vcs
        self.repo_path = repo_path
        self.export_root = export_root
        self.url = url
        self.branch = branch
        self.offline = offline
        self._fetched = False

    def ensure_checkout(self) -> None:
        """Clone the upstream project if there is no local copy yet."""
        if self.repo_path.exists():
            return
        if self.offline or not self.url:
            raise UpstreamUnreachableError(
                message=f"No upstream clone at {self.repo_path} and no way to fetch one",
                url=self.url or "",
            )
        logger.info("cloning %s into %s", self.url, self.repo_path)
        self.vcs.clone(self.url, self.repo_path)
        self._fetched = True

    def fetch(self) -> None:
        """Bring the local clone up to date, at most once per resolver.

        Raises:
            UpstreamUnreachableError: The remote could not be reached. The
                caller may retry.
        """
        self.ensure_checkout()
        if self._fetched or self.offline:
            return
        self.vcs.fetch_remote(self.repo_path)
        self._fetched = True

    @property
    def branch_ref(self) -> str:
        return f"origin/{self.branch}"

    def tag_commit(self, tag: str) -> str | None:
        """Return the commit a release tag points to, or None."""
        self.fetch()
        return self.vcs.resolve_tag(self.repo_path, tag)

    def latest_commit(self, as_of: datetime.datetime) -> str | None:
        """Return the newest upstream branch commit at or before ``as_of``."""
        self.fetch()
        return self.vcs.commit_before(self.repo_path, self.branch_ref, as_of)

    def export_dir(self, label: str) -> Path:
        """Return an empty directory under ``export_root`` named after ``label``."""
        dest = self.export_root / re.sub(r"[^A-Za-z0-9._-]", "_", label)
        if dest.exists():
            shutil.rmtree(dest)
        return dest

    def _export(self, kind: UpstreamKind, identifier: str, commit: str) -> Path:
        return self.vcs.export(self.repo_path, commit, self.export_dir(f"{kind.value}-{identifier}"))

    def resolve_release(self, tag: str) -> UpstreamRef:
        """Resolve an upstream release tag.

        Raises:
            UnknownUpstreamTagError: The tag does not exist upstream. Not retryable.
            UpstreamUnreachableError: Fetching failed. Retryable.
        """
        commit = self.tag_commit(tag)
        if commit is None:
            raise UnknownUpstreamTagError(message=f"Upstream tag '{tag}' not found", tag=tag)

        content_root = self._export(UpstreamKind.TAG, tag, commit)
        return UpstreamRef(
            kind=UpstreamKind.TAG,
            identifier=tag,
            content_root=content_root,
            commit=commit,
            committed_at=self.vcs.commit_time(self.repo_path, commit),
        )

    def resolve_snapshot(self, as_of: datetime.datetime) -> UpstreamRef:
        """Resolve the newest upstream commit at or before ``as_of``.

        The same upstream history and timestamp always give the same commit.

        Raises:
            UnknownUpstreamTagError: The branch has no commit that old.
            UpstreamUnreachableError: Fetching failed. Retryable.
        """
        commit = self.latest_commit(as_of)
        if commit is None:
            raise UnknownUpstreamTagError(
                message=f"No commit on upstream branch '{self.branch}' at or before {as_of.isoformat()}",
                tag=self.branch,
            )

        content_root = self._export(UpstreamKind.SNAPSHOT_COMMIT, commit[:7], commit)
        return UpstreamRef(
            kind=UpstreamKind.SNAPSHOT_COMMIT,
            identifier=commit[:7],
            content_root=content_root,
            commit=commit,
            committed_at=self.vcs.commit_time(self.repo_path, commit),
        )

    def write_orig_tarball(
        self,
        upstream: UpstreamRef,
        package: str,
        upstream_version: str,
        dest_dir: Path,
    ) -> UpstreamRef:
        """Write the orig tarball of ``upstream`` into ``dest_dir``.

        The tarball is produced with git archive from the resolved commit, the
        way uscan or pkgos-generate-snapshot would name it, with every member
        under ``<package>-<upstream_version>/``.

        Returns:
            ``upstream`` with ``tarball`` set.
        """
        tarball = dest_dir / orig_tarball_name(package, upstream_version)
        self.vcs.archive(self.repo_path, upstream.commit, tarball, prefix=f"{package}-{upstream_version}/")
        logger.info("wrote %s from %s", tarball.name, upstream.short_commit)
        return replace(upstream, tarball=tarball)
