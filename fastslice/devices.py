# devices.py
# Fast device classification and capacity accounting.
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

import os

from .devicelibs import disk as disklib
from .devicelibs import nvme as nvmelib
from .errors import PreconditionError
from .flags import flags
from .storage_log import log_method_call
from .util import default_namedtuple

import logging
log = logging.getLogger("fastslice")

NVME = "nvme"
BLOCK = "block"

ProvisionedSlice = default_namedtuple("ProvisionedSlice",
                                      ["path", "object_type", "backend", "backend_id", "label",
                                       ("size", 0), ("device", None)],
                                      doc="""A slice that exists on the hardware.

                                             :param str path: resolved device node
                                             :param str object_type: "namespace" or "partition"
                                             :param str backend: :const:`NVME` or :const:`BLOCK`
                                             :param int backend_id: nsid or partition number
                                             :param str label: the label it was created for
                                             :param int size: size in bytes
                                             :param device: the :class:`FastDevice` it was carved from
                                          """)


class FastDevice(object):

    """ A fast device slices are carved from.

        :attr:`used_before` is the allocation found when the device was
        inspected; :attr:`used` asks the hardware again on every access.
    """

    def __init__(self, path, kind, controller=None, total=0, used_before=0,
                 block_size=None):
        self.path = path
        self.kind = kind
        self.controller = controller
        self.total = total
        self.used_before = used_before
        self.block_size = block_size or flags.block_size

    def __repr__(self):
        return "FastDevice(%r, kind=%r, controller=%r, total=%d, used_before=%d)" % \
            (self.path, self.kind, self.controller, self.total, self.used_before)

    def __str__(self):
        return self.path

    @property
    def name(self):
        return os.path.basename(self.path)

    @property
    def is_nvme(self):
        return self.kind == NVME

    @property
    def used(self):
        if self.is_nvme:
            return namespace_used_bytes(self.controller, self.block_size)
        return disklib.used_bytes(self.path)

    def namespace_ids(self):
        if not self.is_nvme:
            return []
        return nvmelib.list_namespace_ids(self.controller)


def namespace_used_bytes(ctrl, block_size):
    """ Sum of the capacity of every namespace on ctrl.

        Every namespace is accounted with the configured block size.
    """
    used = 0
    for nsid in nvmelib.list_namespace_ids(ctrl):
        blocks = nvmelib.namespace_blocks(ctrl, nsid)
        if blocks is None:
            log.debug("no capacity reported for nsid %d on %s", nsid, ctrl)
            continue
        used += blocks * block_size
    return used


def is_namespace_capable(path):
    """ Whether path is an NVMe controller or one of its namespaces. """
    if nvmelib.is_controller(path):
        return True

    ctrl = nvmelib.controller_for(path)
    return ctrl != path and nvmelib.is_controller(ctrl)


def require_unused_block(path):
    info = disklib.block_info(path)
    mounted = disklib.mountpoints(info)
    if mounted:
        raise PreconditionError("%s is mounted (%s)" % (path, ", ".join(mounted)))


def classify_device(path, block_size=None):
    """ Inspect path and return a :class:`FastDevice` for it.

        :raises PreconditionError: if path does not exist or a plain block
                                   device is mounted
    """
    if not os.path.exists(path):
        raise PreconditionError("fast device %s not found" % path)

    block_size = block_size or flags.block_size
    if is_namespace_capable(path):
        ctrl = nvmelib.controller_for(path)
        device = FastDevice(path, NVME, controller=ctrl, block_size=block_size)
        device.total = nvmelib.total_capacity(ctrl)
        device.used_before = namespace_used_bytes(ctrl, block_size)
    else:
        require_unused_block(path)
        device = FastDevice(path, BLOCK, block_size=block_size)
        device.total = disklib.total_bytes(path)
        device.used_before = disklib.used_bytes(path)

    log_method_call(device, path, kind=device.kind, total=device.total,
                    used_before=device.used_before)
    return device
