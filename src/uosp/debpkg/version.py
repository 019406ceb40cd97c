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

"""Version model for Ubuntu OpenStack packages.

Versions handled here have the shape::

    [epoch:]<upstream>[~git<YYYYMMDD>.<seq>[.<sha>]]-<prefix><revision>[<suffix>]

for example ``1:29.0.0-0ubuntu1`` or ``30.0.0~git20250114.2.1a2b3c4-0ubuntu1``.
The ``~git`` part marks a snapshot of upstream development taken on a given
day; ``seq`` distinguishes several snapshots taken the same day and the
optional sha records which upstream commit the snapshot was cut from.

Ordering is epoch, then upstream (dpkg rules), then packaging revision, then
snapshot (a snapshot sorts before the matching release), then snapshot date
and sequence. Everything in this module is pure; nothing touches the disk.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field, replace
from functools import total_ordering

from debian.debian_support import version_compare

from uosp.core.exceptions import MalformedVersionError, NotASnapshotCandidateError

DEFAULT_BASELINE_REVISION = 1

EPOCH_RE = re.compile(r"^(?P<epoch>\d+):(?P<rest>.*)$")
UPSTREAM_RE = re.compile(r"^[0-9][A-Za-z0-9.+~-]*$")
# <prefix><number><suffix>: "0ubuntu1", "0ubuntu1.1", "0ubuntu1~cloud0", "0ubuntu1build1".
REVISION_RE = re.compile(r"^(?P<prefix>\d*[A-Za-z]+)?(?P<number>\d+)(?P<suffix>[.+~A-Za-z][A-Za-z0-9.+~]*)?$")
SNAPSHOT_RE = re.compile(
    r"^(?P<base>.+?)~git(?P<date>\d{8})\.(?P<sequence>\d+)(?:\.(?P<commit>[0-9a-f]{7,40}))?$"
)


@dataclass(frozen=True)
class SnapshotId:
    """Identifies one upstream snapshot: the day it was taken and its rank that day.

    The commit is informational only and takes no part in comparisons.
    """

    date: datetime.date
    sequence: int
    commit: str | None = field(default=None, compare=False)

    def __str__(self) -> str:
        text = f"~git{self.date:%Y%m%d}.{self.sequence}"
        if self.commit:
            text += f".{self.commit}"
        return text


@total_ordering
@dataclass(frozen=True)
class Version:
    """A package version.

    Attributes:
        upstream: Upstream version without snapshot suffix (e.g. "29.0.0").
        debian_revision: Packaging revision number (the 1 in "0ubuntu1").
        snapshot: Snapshot identifier, None for a final release.
        epoch: Debian epoch, 0 when absent.
        revision_prefix: Text before the revision number ("0ubuntu", or "").
        revision_suffix: Text after the revision number, as carried by stable
            updates and backports (".1" in "0ubuntu1.1", or "").
    """

    upstream: str
    debian_revision: int
    snapshot: SnapshotId | None = None
    epoch: int = 0
    revision_prefix: str = ""
    revision_suffix: str = ""

    def __str__(self) -> str:
        parts = []
        if self.epoch:
            parts.append(f"{self.epoch}:")
        parts.append(self.upstream_version)
        parts.append(f"-{self.revision}")
        return "".join(parts)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare(self, other) < 0

    @property
    def upstream_version(self) -> str:
        """Upstream part as it appears in the orig tarball name."""
        if self.snapshot is None:
            return self.upstream
        return f"{self.upstream}{self.snapshot}"

    @property
    def revision(self) -> str:
        """Packaging revision as written after the last hyphen."""
        return f"{self.revision_prefix}{self.debian_revision}{self.revision_suffix}"

    @property
    def is_snapshot(self) -> bool:
        return self.snapshot is not None


def _check_upstream(raw: str, upstream: str) -> None:
    if not UPSTREAM_RE.match(upstream) or "~git" in upstream:
        raise MalformedVersionError(
            message=f"Invalid upstream version '{upstream}' in '{raw}'",
            raw=raw,
        )


def parse(raw: str) -> Version:
    """Parse a version string.

    Raises:
        MalformedVersionError: If the string is not a non-native package
            version in the format described in the module docstring.
    """
    text = raw.strip()
    if not text:
        raise MalformedVersionError(message="Empty version string", raw=raw)

    epoch = 0
    match = EPOCH_RE.match(text)
    if match:
        epoch = int(match.group("epoch"))
        text = match.group("rest")

    if "-" not in text:
        raise MalformedVersionError(message=f"Missing packaging revision in '{raw}'", raw=raw)
    upstream, revision = text.rsplit("-", 1)

    rev_match = REVISION_RE.match(revision)
    if not rev_match:
        raise MalformedVersionError(message=f"Invalid packaging revision '{revision}' in '{raw}'", raw=raw)

    snapshot = None
    snap_match = SNAPSHOT_RE.match(upstream)
    if snap_match:
        try:
            day = datetime.datetime.strptime(snap_match.group("date"), "%Y%m%d").date()
        except ValueError as e:
            raise MalformedVersionError(message=f"Invalid snapshot date in '{raw}'", raw=raw) from e
        snapshot = SnapshotId(
            date=day,
            sequence=int(snap_match.group("sequence")),
            commit=snap_match.group("commit"),
        )
        upstream = snap_match.group("base")

    _check_upstream(raw, upstream)

    return Version(
        upstream=upstream,
        debian_revision=int(rev_match.group("number")),
        snapshot=snapshot,
        epoch=epoch,
        revision_prefix=rev_match.group("prefix") or "",
        revision_suffix=rev_match.group("suffix") or "",
    )


def _cmp(a: object, b: object) -> int:
    return (a > b) - (a < b)  # type: ignore[operator]


def _compare_text(a: str, b: str) -> int:
    # dpkg treats "1.0" and "1.00" as equal; fall back to the raw text so that
    # distinct versions never compare equal.
    result = version_compare(a, b) if a and b else _cmp(a, b)
    if result:
        return 1 if result > 0 else -1
    return _cmp(a, b)


def compare(a: Version, b: Version) -> int:
    """Compare two versions.

    Returns:
        -1 if a < b, 0 if a == b, 1 if a > b.
    """
    if a.epoch != b.epoch:
        return _cmp(a.epoch, b.epoch)

    result = _compare_text(a.upstream, b.upstream)
    if result:
        return result

    # With equal prefixes this orders by revision number, then by suffix.
    result = _compare_text(a.revision, b.revision)
    if result:
        return result

    if a.snapshot is None or b.snapshot is None:
        # A release sorts after any snapshot of the same upstream.
        return _cmp(a.snapshot is None, b.snapshot is None)

    return _cmp(
        (a.snapshot.date, a.snapshot.sequence),
        (b.snapshot.date, b.snapshot.sequence),
    )


def increment_upstream_version(version: str) -> str:
    """Increment the first numeric component of an upstream version.

    Used to estimate the next version for snapshot builds when the operator
    did not name one ("29.0.0" -> "30.0.0").
    """
    parts = version.split(".")
    for i, part in enumerate(parts):
        if part.isdigit():
            parts[i] = str(int(part) + 1)
            for j in range(i + 1, len(parts)):
                if parts[j].isdigit():
                    parts[j] = "0"
            break
    return ".".join(parts)


def next_rebase(
    current: Version,
    new_upstream: str,
    baseline: int = DEFAULT_BASELINE_REVISION,
) -> Version:
    """Return the version for a rebase of ``current`` onto ``new_upstream``.

    A new upstream release starts a fresh packaging revision cycle: the
    revision goes back to ``baseline`` and any snapshot suffix is dropped.
    Epoch and revision prefix are carried over.
    """
    _check_upstream(new_upstream, new_upstream)
    return Version(
        upstream=new_upstream,
        debian_revision=baseline,
        epoch=current.epoch,
        revision_prefix=current.revision_prefix,
    )


def _as_utc_date(as_of: datetime.datetime) -> datetime.date:
    if as_of.tzinfo is not None:
        as_of = as_of.astimezone(datetime.UTC)
    return as_of.date()


def next_snapshot(
    current: Version,
    as_of: datetime.datetime,
    next_upstream: str | None = None,
    commit: str | None = None,
    has_upstream_activity: bool = True,
    baseline: int = DEFAULT_BASELINE_REVISION,
) -> Version:
    """Return the version for a snapshot taken at ``as_of``.

    Args:
        current: Current changelog head.
        as_of: Time the snapshot is taken; its UTC date is recorded.
        next_upstream: Upstream version the snapshot leads up to. Defaults to
            the current upstream when ``current`` is already a snapshot, and
            to the next major version when it is a release.
        commit: Upstream commit the snapshot was cut from (recorded short).
        has_upstream_activity: Whether upstream moved past ``current``.
            Decided by the caller.
        baseline: Revision used when a new snapshot line starts.

    Raises:
        NotASnapshotCandidateError: ``current`` is a final release and
            upstream has no newer activity.
        MalformedVersionError: ``next_upstream`` is not a valid upstream version.
    """
    if current.snapshot is None and not has_upstream_activity:
        raise NotASnapshotCandidateError(
            message=f"{current} is a final release with no newer upstream activity",
        )

    if next_upstream is None:
        upstream = current.upstream if current.is_snapshot else increment_upstream_version(current.upstream)
    else:
        _check_upstream(next_upstream, next_upstream)
        upstream = next_upstream

    day = _as_utc_date(as_of)
    same_line = current.snapshot is not None and upstream == current.upstream
    if same_line and current.snapshot is not None and current.snapshot.date == day:
        sequence = current.snapshot.sequence + 1
    else:
        sequence = 1

    return replace(
        current,
        upstream=upstream,
        debian_revision=current.debian_revision if same_line else baseline,
        revision_suffix=current.revision_suffix if same_line else "",
        snapshot=SnapshotId(date=day, sequence=sequence, commit=commit[:7].lower() if commit else None),
    )
