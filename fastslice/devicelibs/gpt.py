# gpt.py
# Partition table helpers (sgdisk with an sfdisk fallback)
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

from ..errors import CreationError, DependencyError, SizingError, CommandError
from ..size import MiB, SECTOR_SIZE
from ..tasks import availability
from .. import util

import logging
log = logging.getLogger("fastslice")

# "Linux filesystem" in sgdisk's short type codes
GPT_LINUX_TYPECODE = "8300"
# the same for sfdisk's shortcut syntax
SFDISK_LINUX_TYPE = "L"


def backend():
    """ The partitioning tool to use: sgdisk if present, else sfdisk. """
    app = availability.first_available(availability.SGDISK_APP, availability.SFDISK_APP)
    if app is None:
        raise DependencyError("neither %s nor %s found" % (availability.SGDISK_APP.name,
                                                           availability.SFDISK_APP.name))
    return app


def size_in_mib(size):
    if size <= 0 or size % MiB:
        raise SizingError("partition size %d is not a positive whole number of MiB" % size)
    return size // MiB


def create_command(device, size, name, app=None):
    """ Return (argv, stdin) appending a partition of size bytes to device.

        The partition starts at the first free offset; with sgdisk it is
        also given the GPT partition name.
    """
    app = app or backend()
    mib = size_in_mib(size)
    if app is availability.SGDISK_APP:
        argv = [app.name, "--new=0:0:+%dM" % mib,
                "--typecode=0:%s" % GPT_LINUX_TYPECODE,
                "--change-name=0:%s" % name, device]
        return argv, None

    sectors = mib * MiB // SECTOR_SIZE
    return [app.name, "--append", device], ",%d,%s\n" % (sectors, SFDISK_LINUX_TYPE)


def create_partition(device, size, name):
    """ Append a partition to device.

        :raises DependencyError: no partitioning tool is available
        :raises SizingError: size is not a whole number of MiB
        :raises CreationError: the tool failed
    """
    argv, stdin_data = create_command(device, size, name)
    rc, out = util.run_program_and_capture_output(argv, stdin_data=stdin_data,
                                                  stderr_to_stdout=True)
    if rc:
        raise CreationError("%s failed to create a partition on %s (status %d)" % (argv[0], device, rc),
                            output=out)


def wipe_partitions(device):
    """ Remove every partition from device. """
    app = backend()
    if app is availability.SGDISK_APP:
        commands = [[app.name, "--zap-all", device], [app.name, "-g", device]]
    else:
        commands = [[app.name, "--delete", device]]

    for argv in commands:
        rc, out = util.run_program_and_capture_output(argv, stderr_to_stdout=True)
        if rc:
            raise CommandError("%s failed on %s" % (" ".join(argv[:2]), device), output=out)
