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

"""CLI application definition for uosp."""

from __future__ import annotations

from typer import Typer

from uosp.commands.build import build
from uosp.commands.clone import clone
from uosp.commands.publish import publish
from uosp.commands.pushlp import pushlp
from uosp.commands.rebase import rebase
from uosp.commands.snapshot import snapshot

app: Typer = Typer(
    name="uosp",
    help="Tools for maintaining Ubuntu OpenStack packages.",
    add_completion=False,
)

app.command(name="clone")(clone)
app.command(name="rebase")(rebase)
app.command(name="snapshot")(snapshot)
app.command(name="build")(build)
app.command(name="publish")(publish)
app.command(name="pushlp")(pushlp)
