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

"""Decide whether a snapshot run should produce a new version."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from uosp.packaging.state import PackagingTree
    from uosp.upstream.resolver import UpstreamResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotPolicy:
    """When a snapshot is worth taking.

    Attributes:
        min_interval_hours: Minimum age of the changelog head before another
            snapshot; None or 0 disables the check.
        only_if_upstream_changed: Skip when upstream has no commit beyond
            the one the head was built from.
    """

    min_interval_hours: float | None = None
    only_if_upstream_changed: bool = True

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> SnapshotPolicy:
        interval = section.get("min_interval_hours")
        return cls(
            min_interval_hours=float(interval) if interval else None,
            only_if_upstream_changed=bool(section.get("only_if_upstream_changed", True)),
        )


class SnapshotScheduler:
    """Answers "is a snapshot due?" for a packaging tree."""

    def __init__(self, resolver: UpstreamResolver) -> None:
        self.resolver = resolver

    def recorded_commit(self, tree: PackagingTree) -> str | None:
        """Return the upstream commit the changelog head was built from.

        Snapshots carry it in their version. A snapshot version without a sha
        is taken to be the last upstream commit of its snapshot day (UTC). For
        a release it is the commit the release tag points to.
        """
        head = tree.changelog_head
        if head.snapshot is not None:
            if head.snapshot.commit:
                return head.snapshot.commit
            end_of_day = datetime.datetime.combine(head.snapshot.date, datetime.time(23, 59, 59), tzinfo=datetime.UTC)
            return self.resolver.latest_commit(end_of_day)
        return self.resolver.tag_commit(head.upstream)

    def upstream_changed(self, tree: PackagingTree, now: datetime.datetime) -> bool:
        """Return True when upstream has a commit the head does not carry."""
        latest = self.resolver.latest_commit(now)
        if latest is None:
            return False
        recorded = self.recorded_commit(tree)
        if recorded is None:
            # Nothing recorded: assume upstream moved.
            return True
        return not latest.startswith(recorded)

    def is_due(
        self,
        tree: PackagingTree,
        policy: SnapshotPolicy,
        now: datetime.datetime | None = None,
    ) -> bool:
        """Return True when a snapshot run should produce a new version."""
        now = now or datetime.datetime.now(datetime.UTC)

        if policy.min_interval_hours and tree.head_date is not None:
            age = now - tree.head_date
            if age < datetime.timedelta(hours=policy.min_interval_hours):
                logger.info("snapshot not due: head is %s old, interval %sh", age, policy.min_interval_hours)
                return False

        if policy.only_if_upstream_changed and not self.upstream_changed(tree, now):
            logger.info("snapshot not due: no upstream change since %s", tree.changelog_head)
            return False

        return True
