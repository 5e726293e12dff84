#
# microceph.py
# cluster membership tool wrappers
#
# Copyright (C) 2025  fastslice developers
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
#

import json

from ..errors import CommandError, CreationError, ParseError
from ..tasks import availability
from ..util import default_namedtuple
from .. import util

import logging
log = logging.getLogger("fastslice")

AvailableDisk = default_namedtuple("AvailableDisk", ["path", "type"])
DiskList = default_namedtuple("DiskList", [("configured", ()), ("available", ())],
                              doc="""Disks known to the cluster on this host.

                                     :param configured: paths of disks already used as OSDs
                                     :param available: :class:`AvailableDisk` candidates
                                  """)


def _get(entry, key):
    # field names have been both capitalized and lower case across releases
    if not isinstance(entry, dict):
        return None
    value = entry.get(key)
    if value is None:
        value = entry.get(key.lower())
    return value


def parse_disk_list(raw):
    """ Parse ``microceph disk list --json`` output into a :class:`DiskList`. """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError("disk list output is not valid JSON", raw=raw) from e

    if not isinstance(data, dict):
        raise ParseError("disk list output is not a JSON object", raw=raw)

    configured = []
    for entry in _get(data, "ConfiguredDisks") or []:
        path = _get(entry, "Path")
        if path:
            configured.append(path)

    available = []
    for entry in _get(data, "AvailableDisks") or []:
        path = _get(entry, "Path")
        if path:
            available.append(AvailableDisk(path=path, type=_get(entry, "Type")))

    return DiskList(configured=tuple(configured), available=tuple(available))


def disk_list():
    """ Query the disks configured and available on this host. """
    argv = [availability.MICROCEPH_APP.name, "disk", "list", "--json", "--host-only"]
    rc, out = util.run_program_and_capture_output(argv, stderr_to_stdout=False)
    if rc:
        raise CommandError("microceph disk list failed with status %d" % rc, output=out)
    if not out.strip():
        raise ParseError("microceph disk list returned no output")
    return parse_disk_list(out)


def add_command(data, db=None, wal=None, wipe=True):
    """ Return the argv adding data as an OSD with optional DB/WAL devices.

        Every device role gets its own wipe directive.
    """
    argv = [availability.MICROCEPH_APP.name, "disk", "add", data]
    if wipe:
        argv.append("--wipe")
    if db:
        argv.extend(["--db-device", db])
        if wipe:
            argv.append("--db-wipe")
    if wal:
        argv.extend(["--wal-device", wal])
        if wipe:
            argv.append("--wal-wipe")
    return argv


def add_disk(data, db=None, wal=None, wipe=True):
    argv = add_command(data, db=db, wal=wal, wipe=wipe)
    rc, out = util.run_program_and_capture_output(argv, stderr_to_stdout=True)
    if rc:
        raise CreationError("microceph disk add %s failed with status %d" % (data, rc), output=out)
    return out
