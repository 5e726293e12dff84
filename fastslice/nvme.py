#
# nvme.py - NVMe namespace provisioning
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
import time

from .devicelibs import nvme as nvmelib
from .devices import NVME, ProvisionedSlice
from .errors import AttachWarning, CommandError, Notices, SizingError, StorageError, TrackingError
from .flags import flags
from .storage_log import log_method_call, log_transition
from . import udev
from . import util

import logging
log = logging.getLogger("fastslice")

ABSENT = "absent"
CREATED = "created"
ATTACHED = "attached"
RESOLVED = "resolved"
FAILED = "failed"


def block_count(size, block_size):
    """ Number of logical blocks for a namespace of size bytes.

        :raises SizingError: unless size is a positive whole number of blocks
    """
    if block_size <= 0:
        raise SizingError("invalid logical block size %d" % block_size)
    if size % block_size:
        raise SizingError("%d bytes is not a whole number of %d-byte blocks" % (size, block_size))
    blocks = size // block_size
    if blocks <= 0:
        raise SizingError("%d bytes with %d-byte blocks gives no blocks" % (size, block_size))
    return blocks


def wipe_namespaces(ctrl):
    """ Detach and delete every namespace on ctrl. """
    for nsid in nvmelib.list_namespace_ids(ctrl):
        log.warning("deleting nsid %d on %s", nsid, ctrl)
        if nvmelib.detach_namespace(ctrl, nsid):
            log.debug("detach of nsid %d on %s failed, deleting anyway", nsid, ctrl)
        nvmelib.delete_namespace(ctrl, nsid)


class NamespaceProvisioner(object):

    """ Creates namespaces on one controller.

        Each :meth:`provision` call walks absent -> created -> attached ->
        resolved. Any fatal error leaves :attr:`state` at failed; the nsid
        reached so far stays in :attr:`nsid` for the operator.
    """

    def __init__(self, device, block_size=None, nsid_poll=None, path_resolve=None,
                 by_id_root=None, settle_timeout=None, notices=None, sleep=time.sleep):
        self.device = device
        self.ctrl = device.controller
        self.block_size = block_size or flags.block_size
        self.nsid_poll = nsid_poll or flags.nsid_poll
        self.path_resolve = path_resolve or flags.path_resolve
        self.by_id_root = by_id_root or flags.by_id_root
        self.settle_timeout = settle_timeout if settle_timeout is not None else flags.settle_timeout
        self.notices = notices if notices is not None else Notices()
        self._sleep = sleep

        self.state = ABSENT
        self.nsid = None

    @property
    def name(self):
        return self.ctrl

    def _set_state(self, state, **details):
        log_transition(self, self.state, state, **details)
        self.state = state

    def commands(self, request):
        """ Describe what :meth:`provision` would run, for dry runs. """
        blocks = block_count(request.size, self.block_size)
        return ["nvme create-ns %s --nsze=%d --ncap=%d --block-size=%d" %
                (self.ctrl, blocks, blocks, self.block_size),
                "nvme attach-ns %s -n <nsid> (per controller, ignoring 'Namespace Is Private')" % self.ctrl]

    def provision(self, request):
        """ Create, attach and locate a namespace for request.

            :param request: the slice to create
            :type request: :class:`~.allocator.SliceRequest`
            :rtype: :class:`~.devices.ProvisionedSlice`
            :raises SizingError: before anything is changed
            :raises CreationError: if create-ns fails
            :raises TrackingError: if the namespace cannot be found afterwards
        """
        log_method_call(self, request.label, size=request.size)
        self.state = ABSENT
        self.nsid = None

        blocks = block_count(request.size, self.block_size)
        try:
            before = nvmelib.list_namespace_ids(self.ctrl)
            controller_ids = nvmelib.list_controller_ids(self.ctrl)

            self.nsid = nvmelib.create_namespace(self.ctrl, blocks, self.block_size,
                                                 shared=len(controller_ids) > 1)
            self._set_state(CREATED, nsid=self.nsid, blocks=blocks)

            if self.nsid is None:
                self.nsid = self.discover_nsid(before)

            self.attach(self.nsid, controller_ids)
            self._set_state(ATTACHED, nsid=self.nsid)

            udev.settle(timeout=self.settle_timeout)
            path = self.resolve_path(self.nsid)
            self._set_state(RESOLVED, nsid=self.nsid, path=path)
        except StorageError:
            self._set_state(FAILED, nsid=self.nsid)
            raise

        return ProvisionedSlice(path=path, object_type="namespace", backend=NVME,
                                backend_id=self.nsid, label=request.label,
                                size=request.size, device=self.device)

    def discover_nsid(self, before):
        """ Find the nsid that appeared since before was listed.

            :raises TrackingError: if no new nsid shows up in time
        """
        known = set(before)

        def new_nsid():
            try:
                current = nvmelib.list_namespace_ids(self.ctrl)
            except CommandError as e:
                log.debug("listing namespaces on %s failed: %s", self.ctrl, e)
                return None
            for nsid in current:
                if nsid not in known:
                    return nsid
            return None

        nsid = util.wait_for(new_nsid, self.nsid_poll, sleep=self._sleep)
        if nsid is None:
            raise TrackingError("created a namespace on %s but could not determine its nsid; "
                                "inspect the controller manually" % self.ctrl)
        log.info("discovered new nsid %d on %s", nsid, self.ctrl)
        return nsid

    def attach(self, nsid, controller_ids):
        """ Attach nsid to every controller identity of the controller.

            A namespace the hardware already attached privately counts as
            attached; other failures are recorded as warnings.
        """
        if not controller_ids:
            rc, out = nvmelib.attach_namespace(self.ctrl, nsid)
            if rc and not nvmelib.is_private_attach_error(out):
                self.notices.add(AttachWarning("attach-ns of nsid %d on %s failed: %s" %
                                               (nsid, self.ctrl, out.strip())))
            return

        for cid in controller_ids:
            rc, out = nvmelib.attach_namespace(self.ctrl, nsid, controller_id=cid)
            if not rc:
                continue
            if nvmelib.is_private_attach_error(out):
                log.info("nsid %d is already attached to controller %#x (private)", nsid, cid)
            else:
                self.notices.add(AttachWarning("attach-ns of nsid %d to controller %#x on %s failed: %s" %
                                               (nsid, cid, self.ctrl, out.strip())))

    def path_candidates(self, nsid):
        """ Possible device paths for nsid, most stable first. """
        descs = nvmelib.namespace_descriptors(self.ctrl, nsid)
        candidates = []
        if descs.nguid:
            candidates.append(os.path.join(self.by_id_root, "nvme-eui.%s" % descs.nguid))
            candidates.append(os.path.join(self.by_id_root, "nvme-ns-%s" % descs.nguid))
        if descs.eui64:
            candidates.append(os.path.join(self.by_id_root, "nvme-eui.%s" % descs.eui64))
        candidates.append(nvmelib.namespace_node(self.ctrl, nsid))
        return candidates

    def resolve_path(self, nsid):
        """ Wait for udev to expose nsid and return its device node.

            :raises TrackingError: if it does not show up in time
        """
        def existing_path():
            for candidate in self.path_candidates(nsid):
                if os.path.exists(candidate):
                    return util.resolve_path(candidate)
            return None

        def settle():
            udev.settle(timeout=self.settle_timeout)

        path = util.wait_for(existing_path, self.path_resolve, between=settle, sleep=self._sleep)
        if path is None:
            raise TrackingError("created nsid %d on %s but could not resolve its device path; "
                                "the namespace exists and must be located manually" % (nsid, self.ctrl))
        return path
