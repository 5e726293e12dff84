# partitioning.py
# Partition provisioning on plain block devices.
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

import re
import time

from .devicelibs import disk as disklib
from .devicelibs import gpt
from .devices import BLOCK, ProvisionedSlice
from .errors import PreconditionError, StorageError, TrackingError
from .flags import flags
from .storage_log import log_method_call, log_transition
from . import udev

import logging
log = logging.getLogger("fastslice")

ABSENT = "absent"
CREATED = "created"
RESOLVED = "resolved"
FAILED = "failed"

re_part_number = re.compile(r'(\d+)$')


def partition_number(path):
    """ The partition number of path, from udev or the node name. """
    info = udev.get_device(device_node=path)
    if info is not None:
        number = udev.device_get_part_number(info)
        if number is not None:
            return number

    match = re_part_number.search(path)
    if match is None:
        return None
    return int(match.group(1))


def check_partitioning_allowed(path, allow_partition=None):
    if allow_partition is None:
        allow_partition = flags.allow_partition
    if not allow_partition:
        raise PreconditionError("refusing to partition %s without the partitioning opt-in" % path)


def wipe_partitions(path, allow_partition=None):
    """ Remove the partition table of path. """
    check_partitioning_allowed(path, allow_partition)
    log.warning("removing all partitions on %s", path)
    gpt.wipe_partitions(path)
    disklib.reread_partition_table(path)


class PartitionProvisioner(object):

    """ Appends partitions to one block device.

        Each :meth:`provision` call walks absent -> created -> resolved.
    """

    def __init__(self, device, allow_partition=None, settle_delay=None, sleep=time.sleep):
        self.device = device
        self.path = device.path
        self.allow_partition = flags.allow_partition if allow_partition is None else allow_partition
        self.settle_delay = flags.partition_settle_delay if settle_delay is None else settle_delay
        self._sleep = sleep

        self.state = ABSENT

    @property
    def name(self):
        return self.path

    def _set_state(self, state, **details):
        log_transition(self, self.state, state, **details)
        self.state = state

    def check(self, request=None):
        """ Refuse before anything is written unless partitioning was allowed.

            :raises PreconditionError: partitioning is not allowed
            :raises SizingError: the request is not a whole number of MiB
        """
        check_partitioning_allowed(self.path, self.allow_partition)
        if request is not None:
            gpt.size_in_mib(request.size)

    def commands(self, request):
        argv, stdin_data = gpt.create_command(self.path, request.size, request.label)
        cmd = " ".join(argv)
        if stdin_data:
            cmd = "echo '%s' | %s" % (stdin_data.strip(), cmd)
        return [cmd, "partprobe %s" % self.path]

    def discover_partition(self, before):
        """ The one partition listed now that was not in before.

            The new partition takes the first free number, which need not be
            the highest one.

            :raises TrackingError: no new partition or more than one
        """
        new = [p for p in disklib.partition_paths(self.path) if p not in before]
        if len(new) != 1:
            raise TrackingError("expected one new partition on %s, found %s; "
                                "inspect the partition table manually"
                                % (self.path, ", ".join(new) or "none"))
        return new[0]

    def provision(self, request):
        """ Append a partition for request and return where it appeared.

            :rtype: :class:`~.devices.ProvisionedSlice`
            :raises PreconditionError: partitioning is not allowed
            :raises CreationError: the partitioning tool failed
            :raises TrackingError: the new partition cannot be told apart
        """
        log_method_call(self, request.label, size=request.size)
        self.state = ABSENT
        self.check(request)
        before = set(disklib.partition_paths(self.path))

        try:
            gpt.create_partition(self.path, request.size, request.label)
            self._set_state(CREATED, label=request.label)

            disklib.reread_partition_table(self.path)
            if self.settle_delay:
                self._sleep(self.settle_delay)

            part_path = self.discover_partition(before)
            number = partition_number(part_path)
            self._set_state(RESOLVED, path=part_path, number=number)
        except StorageError:
            self._set_state(FAILED)
            raise

        return ProvisionedSlice(path=part_path, object_type="partition", backend=BLOCK,
                                backend_id=number, label=request.label,
                                size=request.size, device=self.device)
