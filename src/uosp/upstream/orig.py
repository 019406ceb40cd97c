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

"""Import resolved upstream content as an orig tarball.

The tarball is written next to the packaging tree and imported with
``gbp import-orig``, which commits it onto the upstream branch, tags it and
records it on the pristine-tar branch. The packaging branch is not merged;
the rebase engine then copies the imported upstream branch under the tree.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from uosp.core.exceptions import ContentReplaceError, ToolError
from uosp.debpkg.gbp import import_orig

if TYPE_CHECKING:
    from uosp.debpkg.version import Version
    from uosp.packaging.state import PackagingTree
    from uosp.upstream.resolver import UpstreamRef, UpstreamResolver
    from uosp.vcs import VcsBackend

logger = logging.getLogger(__name__)


class GbpOrigImporter:
    """Produces the orig tarball for a run and imports it with gbp.

    Args:
        resolver: Resolver the upstream content came from; writes the tarball.
        vcs: Backend used to export the imported upstream branch.
        upstream_branch: Upstream-tracking branch of the packaging repository.
        pristine_tar: Record the tarball on the pristine-tar branch.
    """

    def __init__(
        self,
        resolver: UpstreamResolver,
        vcs: VcsBackend,
        upstream_branch: str = "upstream",
        pristine_tar: bool = True,
    ) -> None:
        self.resolver = resolver
        self.vcs = vcs
        self.upstream_branch = upstream_branch
        self.pristine_tar = pristine_tar

    def import_upstream(self, tree: PackagingTree, upstream: UpstreamRef, new_version: Version) -> UpstreamRef:
        """Import ``upstream`` for ``new_version`` into the repository of ``tree``.

        Returns:
            ``upstream`` with ``tarball`` set and ``content_root`` pointing at
            an export of the upstream branch after the import.

        Raises:
            ContentReplaceError: The tarball could not be written or gbp
                refused the import.
        """
        version = new_version.upstream_version
        try:
            ref = self.resolver.write_orig_tarball(upstream, tree.package, version, tree.root_path.parent)
        except ToolError as e:
            raise ContentReplaceError(message=f"Writing the orig tarball failed: {e.output}") from e

        result = import_orig(
            tree.root_path,
            ref.tarball,
            upstream_version=version,
            upstream_branch=self.upstream_branch,
            pristine_tar=self.pristine_tar,
        )
        if not result.success:
            raise ContentReplaceError(message=f"gbp import-orig of {ref.tarball.name} failed: {result.output.strip()}")
        logger.info("imported %s onto %s", ref.tarball.name, self.upstream_branch)

        try:
            content_root = self.vcs.export(
                tree.root_path,
                self.upstream_branch,
                self.resolver.export_dir(f"imported-{tree.package}-{version}"),
            )
        except ToolError as e:
            raise ContentReplaceError(message=f"Reading {self.upstream_branch} after import failed: {e.output}") from e
        return replace(ref, content_root=content_root)
