#
# disk.py
# block device inspection through lsblk
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

from ..errors import CommandError, ParseError
from ..tasks import availability
from ..util import default_namedtuple
from .. import util

import logging
log = logging.getLogger("fastslice")

LSBLK_COLUMNS = "NAME,PATH,SIZE,TYPE,ROTA,MOUNTPOINT"

BlockInfo = default_namedtuple("BlockInfo", ["name", "path", "size", "type", "rota",
                                             ("mountpoint", None), ("children", ())],
                               doc="One lsblk entry; children are BlockInfo as well.")


def _as_bool(value):
    # lsblk reports ROTA as true/false in newer and "1"/"0" in older versions
    if isinstance(value, bool):
        return value
    return str(value).strip() in ("1", "true")


def _as_int(value, raw):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ParseError("invalid lsblk size '%s'" % value, raw=raw)


def _block_info(entry, raw):
    try:
        name = entry["name"]
    except (KeyError, TypeError):
        raise ParseError("lsblk entry without a name", raw=raw)

    children = tuple(_block_info(child, raw) for child in entry.get("children") or ())
    return BlockInfo(name=name,
                     path=entry.get("path") or "/dev/%s" % name,
                     size=_as_int(entry.get("size", 0), raw),
                     type=entry.get("type"),
                     rota=_as_bool(entry.get("rota", False)),
                     mountpoint=entry.get("mountpoint") or None,
                     children=children)


def parse_lsblk_json(raw):
    """ Parse ``lsblk -J -b`` output into a list of :class:`BlockInfo`. """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError("lsblk output is not valid JSON", raw=raw) from e

    if not isinstance(data, dict) or not isinstance(data.get("blockdevices"), list):
        raise ParseError("lsblk output has no blockdevices list", raw=raw)

    return [_block_info(entry, raw) for entry in data["blockdevices"]]


def _lsblk(args):
    argv = [availability.LSBLK_APP.name, "-J", "-b", "-o", LSBLK_COLUMNS] + args
    rc, out = util.run_program_and_capture_output(argv, stderr_to_stdout=False)
    if rc:
        raise CommandError("lsblk %s failed with status %d" % (" ".join(args), rc), output=out)
    return parse_lsblk_json(out)


def block_info(device):
    """ Return the :class:`BlockInfo` tree rooted at device. """
    entries = _lsblk([device])
    if not entries:
        raise ParseError("lsblk returned nothing for %s" % device)
    return entries[0]


def total_bytes(device):
    return block_info(device).size


def partitions(info):
    """ Direct partitions of a device in the order lsblk lists them. """
    return [child for child in info.children if child.type == "part"]


def used_bytes(device):
    """ Sum of the sizes of all partitions on device. """
    return sum(part.size for part in partitions(block_info(device)))


def mountpoints(info):
    """ Every mountpoint on the device or anything stacked on it. """
    found = [info.mountpoint] if info.mountpoint else []
    for child in info.children:
        found.extend(mountpoints(child))
    return found


def partition_paths(device):
    """ Paths of the partitions lsblk reports on device. """
    return [part.path for part in partitions(block_info(device))]


def rotating_disks():
    """ Whole rotational disks, NVMe excluded, in lsblk order. """
    entries = _lsblk(["-d"])
    return [e for e in entries
            if e.type == "disk" and e.rota and not e.name.startswith("nvme")]


def reread_partition_table(device):
    """ Ask the kernel to re-read the partition table of device.

        Failures are logged; the following lookup decides whether the new
        partition showed up.
    """
    if availability.PARTPROBE_APP.available:
        rc = util.run_program([availability.PARTPROBE_APP.name, device])
    else:
        rc = util.run_program(["blockdev", "--rereadpt", device])
    if rc:
        log.warning("re-reading the partition table of %s failed (%d)", device, rc)
