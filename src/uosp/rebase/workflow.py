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

"""Rebase and snapshot operations.

Each operation runs under the tree lease and threads an explicit
``PackagingTree`` value through the components:

    rebase:   checkout -> load -> resolve_release -> next_rebase -> engine -> append -> commit
    snapshot: checkout -> load -> is_due -> resolve_snapshot -> next_snapshot -> engine -> append -> commit

Only the paths the engine and the changelog writer touched are committed.

A run with patch conflicts still writes the changelog entry so the operator
can fix the patches in place; it is only committed when the policy allows.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from uosp.core.exceptions import EXIT_NEEDS_MANUAL_RESOLUTION, EXIT_SUCCESS
from uosp.debpkg.changelog import generate_changelog_message
from uosp.debpkg.version import DEFAULT_BASELINE_REVISION, next_rebase, next_snapshot
from uosp.packaging.state import CHANGELOG_PATH

if TYPE_CHECKING:
    from pathlib import Path

    from uosp.debpkg.changelog import ChangelogWriter
    from uosp.debpkg.version import Version
    from uosp.packaging.state import PackagingTree, RepositoryState
    from uosp.rebase.engine import RebaseEngine, RebaseResult
    from uosp.rebase.scheduler import SnapshotPolicy, SnapshotScheduler
    from uosp.upstream.resolver import UpstreamRef, UpstreamResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationOutcome:
    """What a rebase or snapshot run did."""

    kind: str
    tree: PackagingTree
    result: RebaseResult | None = None
    commit: str | None = None
    summary: str = ""
    skipped: bool = False

    @property
    def exit_code(self) -> int:
        if self.result is not None and not self.result.is_clean:
            return EXIT_NEEDS_MANUAL_RESOLUTION
        return EXIT_SUCCESS


@dataclass
class Workflow:
    """Wires the components together for one packaging tree."""

    state: RepositoryState
    resolver: UpstreamResolver
    scheduler: SnapshotScheduler
    engine: RebaseEngine
    writer: ChangelogWriter
    baseline_revision: int = DEFAULT_BASELINE_REVISION
    commit_on_conflict: bool = False
    packaging_branch: str | None = None

    def _load(self, root: Path) -> PackagingTree:
        if self.packaging_branch is not None:
            self.state.checkout_packaging_branch(root, self.packaging_branch)
        tree = self.state.load(root)
        self.state.check_branch_layout(tree)
        return tree

    def rebase(
        self,
        root: Path,
        tag: str,
        bug: int | None = None,
        openstack_series: str | None = None,
        author: str | None = None,
        now: datetime.datetime | None = None,
    ) -> OperationOutcome:
        """Rebase the tree at ``root`` onto upstream release ``tag``."""
        with self.state.lease(root):
            tree = self._load(root)
            upstream = self.resolver.resolve_release(tag)
            new_version = next_rebase(tree.changelog_head, tag, baseline=self.baseline_revision)
            summary = generate_changelog_message("release", tag, bug=bug, openstack_series=openstack_series)
            return self._finish("rebase", tree, upstream, new_version, summary, author, now)

    def snapshot(
        self,
        root: Path,
        policy: SnapshotPolicy,
        next_upstream: str | None = None,
        openstack_series: str | None = None,
        author: str | None = None,
        now: datetime.datetime | None = None,
    ) -> OperationOutcome:
        """Move the tree at ``root`` to the latest upstream snapshot, when due."""
        now = now or datetime.datetime.now(datetime.UTC)
        with self.state.lease(root):
            tree = self._load(root)
            if not self.scheduler.is_due(tree, policy, now):
                return OperationOutcome(kind="snapshot", tree=tree, skipped=True)

            upstream = self.resolver.resolve_snapshot(now)
            recorded = self.scheduler.recorded_commit(tree)
            has_activity = recorded is None or not upstream.commit.startswith(recorded)
            new_version = next_snapshot(
                tree.changelog_head,
                now,
                next_upstream=next_upstream,
                commit=upstream.commit,
                has_upstream_activity=has_activity,
                baseline=self.baseline_revision,
            )
            summary = generate_changelog_message(
                "snapshot", new_version.upstream_version, openstack_series=openstack_series
            )
            return self._finish("snapshot", tree, upstream, new_version, summary, author, now)

    def _finish(
        self,
        kind: str,
        tree: PackagingTree,
        upstream: UpstreamRef,
        new_version: Version,
        summary: str,
        author: str | None,
        now: datetime.datetime | None,
    ) -> OperationOutcome:
        result = self.engine.run(tree, upstream, new_version)
        updated = self.writer.append(result.tree, new_version, summary, author=author, date=now)

        commit = None
        if result.is_clean or self.commit_on_conflict:
            commit = self.state.commit(updated, summary, paths=(*result.touched, CHANGELOG_PATH))
        else:
            logger.warning(
                "%s of %s left uncommitted: %d conflicting patches",
                kind,
                tree.package,
                len(result.conflicts),
            )
        return OperationOutcome(
            kind=kind,
            tree=updated,
            result=result,
            commit=commit,
            summary=summary,
        )
