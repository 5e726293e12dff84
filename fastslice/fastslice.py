#
# fastslice.py
# Top-level entry point tying inspection, planning and provisioning together.
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

from .allocator import SliceAllocator
from .devicelibs import disk as disklib
from .devicelibs import gpt
from .devices import NVME, classify_device
from .errors import Notices, PreconditionError
from .fastmap import (DeviceSequence, MapWriter, MappingRow, MAPPING_HEADER, MAPPING_PREFIX,
                      format_backend_id, new_artifact)
from .flags import flags
from .naming import LinkManager
from .nvme import NamespaceProvisioner, block_count, wipe_namespaces
from .partitioning import PartitionProvisioner, wipe_partitions
from .size import bytes_to_gib_str
from .storage_log import log_method_call
from .tasks import availability
from . import udev
from . import util

import logging
log = logging.getLogger("fastslice")


class ProvisionResult(object):

    """ What one :meth:`FastSlice.apply` call did (or would do). """

    def __init__(self, applied):
        self.applied = applied
        self.slices = []
        self.links = []
        self.commands = []
        self.mapping_path = None
        # device path -> used bytes after provisioning
        self.capacity = {}


def mapping_row(provisioned, request, seq, object_path=None):
    """ The creation mapping row recording provisioned. """
    if provisioned.backend == NVME:
        backend_id = format_backend_id(seq, nsid=provisioned.backend_id)
    else:
        backend_id = format_backend_id(seq, partition=provisioned.backend_id)

    return MappingRow(object_path=object_path or provisioned.path,
                      object_type=provisioned.object_type,
                      for_osd=request.unit_name or "",
                      label=request.label,
                      size_gib=bytes_to_gib_str(request.size),
                      backend=provisioned.backend,
                      backend_id=backend_id)


class FastSlice(object):

    """ Carves DB/WAL slices out of fast devices.

        Typical use::

            fs = FastSlice()
            fs.inspect(["/dev/nvme0n1", "/dev/nvme1n1"])
            plan = fs.plan(Workload(12, db_size=100 * GiB, wal_size=6 * GiB, wal_separate=True))
            result = fs.apply(plan)

        Nothing is changed unless :attr:`~.flags.Flags.apply` is set or
        ``apply=True`` is passed.
    """

    def __init__(self, link_manager=None, map_root=None):
        self.notices = Notices()
        self.devices = []
        self.sequence = DeviceSequence()
        self.link_manager = link_manager or LinkManager(notices=self.notices)
        self.map_root = map_root or flags.map_root

    def inspect(self, paths, block_size=None):
        """ Classify paths and read their capacity.

            :param paths: fast device paths in the order slices are spread
            :returns: list of :class:`~.devices.FastDevice`
            :raises PreconditionError: a device is missing or mounted
        """
        if not paths:
            raise PreconditionError("no fast devices given")
        availability.require(availability.LSBLK_APP)

        self.devices = [classify_device(path, block_size=block_size)
                        for path in util.dedup_list(paths)]

        controllers = [d.controller for d in self.devices if d.is_nvme]
        if len(set(controllers)) != len(controllers):
            raise PreconditionError("more than one path given for the same controller: %s"
                                    % ", ".join(sorted(controllers)))
        return self.devices

    def wipe_requested(self, device):
        """ Whether existing namespaces or partitions of device are to be removed.

            Namespaces need both ``allow_modify_existing_ns`` and
            ``wipe_existing_ns``; partitions need ``allow_partition`` and
            ``wipe_existing_parts``.
        """
        if device.is_nvme:
            return flags.allow_modify_existing_ns and flags.wipe_existing_ns
        return flags.allow_partition and flags.wipe_existing_parts

    def wipe_existing(self, apply=None):
        """ Remove existing namespaces and partitions where that was asked for.

            Called by :meth:`apply` once every check has passed.
        """
        apply = flags.apply if apply is None else apply
        for device in self.devices:
            if not self.wipe_requested(device):
                continue

            if device.is_nvme:
                if apply:
                    wipe_namespaces(device.controller)
                else:
                    log.info("would delete namespaces %s on %s", device.namespace_ids(), device.controller)
            else:
                if apply:
                    wipe_partitions(device.path, allow_partition=True)
                else:
                    log.info("would remove all partitions on %s", device.path)

            if apply:
                device.used_before = device.used

    def plan(self, workload):
        """ Spread workload over the inspected devices.

            Devices that will be wiped are planned as empty.

            :rtype: :class:`~.allocator.AllocationPlan`
        """
        for device in self.devices:
            if self.wipe_requested(device) and device.used_before:
                log.info("%s: existing allocation of %d bytes will be removed", device.path,
                         device.used_before)
                device.used_before = 0
        plan = SliceAllocator(self.devices).plan(workload)
        self.notices.extend(plan.notices)
        return plan

    def provisioner_for(self, device):
        if device.is_nvme:
            return NamespaceProvisioner(device, block_size=device.block_size, notices=self.notices)
        return PartitionProvisioner(device)

    def check(self, plan, provisioners):
        """ Everything that can be refused before a device is changed.

            :raises PreconditionError: a tool is missing, partitioning was not
                                       allowed or a size does not fit
        """
        touched = [row.device for row in plan] + [d for d in self.devices if self.wipe_requested(d)]

        resources = [availability.UDEVADM_APP]
        if any(device.is_nvme for device in touched):
            resources.append(availability.NVME_APP)
        availability.require(*resources)

        if any(not device.is_nvme for device in touched):
            gpt.backend()

        for row in plan:
            provisioner = provisioners[row.device.path]
            if row.device.is_nvme:
                block_count(row.request.size, provisioner.block_size)
            else:
                provisioner.check(row.request)

    def apply(self, plan, apply=None):
        """ Create every slice of plan, record it and give it its label.

            In dry-run mode only the commands that would run are collected.

            :rtype: :class:`ProvisionResult`
        """
        apply = flags.apply if apply is None else apply
        log_method_call(self, len(plan), apply=apply)

        provisioners = dict((p.device.path, self.provisioner_for(p.device))
                            for p in plan.projections.values())
        self.check(plan, provisioners)

        result = ProvisionResult(apply)
        self.wipe_existing(apply=apply)
        if not apply:
            for row in plan:
                for cmd in provisioners[row.device.path].commands(row.request):
                    result.commands.append(cmd)
                    log.info("would run: %s", cmd)
            return result

        for projection in plan.projections.values():
            projection.used_before = projection.device.used_before

        result.mapping_path = new_artifact(self.map_root, MAPPING_PREFIX)
        writer = MapWriter(result.mapping_path, MAPPING_HEADER)

        for row in plan:
            provisioned = provisioners[row.device.path].provision(row.request)
            result.slices.append(provisioned)

            seq = self.sequence.next(row.device)
            if flags.make_links:
                target = self.link_manager.link_target_for(provisioned.path)
            else:
                target = provisioned.path
            writer.write(mapping_row(provisioned, row.request, seq, object_path=target))

            if flags.make_links:
                result.links.append(self.link_manager.ensure_link(row.request.label, provisioned.path))

        if flags.make_links:
            udev.reload_rules()
            udev.trigger(subsystem="block")

        for device in self.devices:
            result.capacity[device.path] = device.used

        log.info("created %d slices, mapping written to %s", len(result.slices), result.mapping_path)
        return result


def auto_detect_rotating_count():
    """ Number of rotational non-NVMe disks on this host. """
    availability.require(availability.LSBLK_APP)
    count = len(disklib.rotating_disks())
    log.info("detected %d rotating disks", count)
    return count
