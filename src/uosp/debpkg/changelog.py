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

"""Debian changelog entries for rebases and snapshots.

The changelog is a strictly increasing history: a new entry is only ever
added on top when its version sorts after the current head.
"""

from __future__ import annotations

import datetime
import email.utils
import logging
import os
from dataclasses import replace
from typing import TYPE_CHECKING

from debian.changelog import Changelog

from uosp.core.exceptions import VersionNotGreaterError

if TYPE_CHECKING:
    from pathlib import Path

    from uosp.debpkg.version import Version
    from uosp.packaging.state import PackagingTree

logger = logging.getLogger(__name__)

DEFAULT_DISTRIBUTION = "UNRELEASED"
DEFAULT_URGENCY = "medium"


def generate_changelog_message(
    kind: str,
    upstream_version: str,
    bug: int | None = None,
    openstack_series: str | None = None,
) -> str:
    """Return the changelog line describing an upstream update.

    Args:
        kind: "release" or "snapshot".
        upstream_version: Upstream version (or snapshot ref) being packaged.
        bug: Optional Launchpad bug number to reference.
        openstack_series: OpenStack series name (e.g. "caracal").
    """
    lp_ref = f" (LP: #{bug})" if bug else ""
    series_name = f" for OpenStack {openstack_series.capitalize()}" if openstack_series else ""

    if kind == "release":
        return f"New upstream release {upstream_version}{series_name}.{lp_ref}"
    if kind == "snapshot":
        return f"New upstream snapshot {upstream_version}{series_name}.{lp_ref}"
    return f"New upstream version {upstream_version}{series_name}.{lp_ref}"


def _head_author(changelog_path: Path) -> str | None:
    with changelog_path.open(encoding="utf-8") as f:
        cl = Changelog(f, max_blocks=1)
    return str(cl.author) if cl.author else None


def resolve_maintainer(changelog_path: Path) -> str:
    """Pick the author for a new entry.

    DEBFULLNAME/DEBEMAIL win; otherwise the author of the current head entry
    is reused so the changelog does not switch maintainers by accident.
    """
    name = os.environ.get("DEBFULLNAME")
    email = os.environ.get("DEBEMAIL")
    if name and email:
        return f"{name} <{email}>"
    author = _head_author(changelog_path) if changelog_path.exists() else None
    if author:
        return author
    name = name or os.environ.get("NAME", "uosp")
    email = email or os.environ.get("EMAIL", "uosp@ubuntu.com")
    return f"{name} <{email}>"


def format_changelog_date(date: datetime.datetime) -> str:
    """Format a timestamp the way debian/changelog trailers expect."""
    if date.tzinfo is None:
        date = date.replace(tzinfo=datetime.UTC)
    return email.utils.format_datetime(date)


class ChangelogWriter:
    """Adds entries on top of debian/changelog."""

    def __init__(
        self,
        distribution: str = DEFAULT_DISTRIBUTION,
        urgency: str = DEFAULT_URGENCY,
    ) -> None:
        self.distribution = distribution
        self.urgency = urgency

    def append(
        self,
        tree: PackagingTree,
        new_version: Version,
        summary: str,
        author: str | None = None,
        date: datetime.datetime | None = None,
    ) -> PackagingTree:
        """Write a new head entry and return the updated tree.

        Args:
            tree: Tree whose changelog receives the entry.
            new_version: Version of the new entry.
            summary: Free text; each line becomes part of one bullet.
            author: "Name <email>"; resolved from the environment if None.
            date: Entry timestamp; now (UTC) if None.

        Raises:
            VersionNotGreaterError: ``new_version`` does not sort after the
                current head.
        """
        head = tree.changelog_head
        if not new_version > head:
            raise VersionNotGreaterError(
                message=f"New version {new_version} is not greater than current {head}",
                current=str(head),
                proposed=str(new_version),
            )

        date = date or datetime.datetime.now(datetime.UTC)
        author = author or resolve_maintainer(tree.changelog_path)

        with tree.changelog_path.open(encoding="utf-8") as f:
            cl = Changelog(f)

        cl.new_block(
            package=tree.package or cl.package,
            version=str(new_version),
            distributions=self.distribution,
            urgency=self.urgency,
            author=author,
            date=format_changelog_date(date),
        )
        lines = [line.strip() for line in summary.strip().splitlines() if line.strip()]
        cl.add_change("")
        for i, line in enumerate(lines):
            cl.add_change(f"  * {line}" if i == 0 else f"    {line}")
        cl.add_change("")

        tmp_path = tree.changelog_path.with_suffix(".uosp-new")
        with tmp_path.open("w", encoding="utf-8") as f:
            cl.write_to_open_file(f)
        tmp_path.replace(tree.changelog_path)

        logger.info("changelog head %s -> %s", head, new_version)
        return replace(tree, changelog_head=new_version, head_date=date)
