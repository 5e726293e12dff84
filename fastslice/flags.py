# flags.py
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

from .util import RetryPolicy

SUPPORTED_BLOCK_SIZES = (512, 4096)


class Flags(object):

    def __init__(self):
        #
        # mode of operation
        #
        # nothing is changed on any device unless this is set
        self.apply = False
        self.debug = False

        #
        # namespace creation
        #
        # every namespace is created with this logical block size
        self.block_size = 512

        #
        # destructive opt-ins
        #
        self.allow_partition = False
        self.allow_modify_existing_ns = False
        self.wipe_existing_ns = False
        self.wipe_existing_parts = False

        #
        # persistent naming
        #
        self.make_links = True
        self.link_root = "/dev/disk/by-mfast"
        self.udev_rule_file = "/etc/udev/rules.d/99-mfast.rules"
        self.by_id_root = "/dev/disk/by-id"

        # plan artifacts are written here
        self.map_root = "/var/lib/fastmap"

        #
        # OSD planning and application
        #
        # plan only the first K workload units when there are fewer
        # rotating disks than units instead of refusing
        self.relaxed_osd_plan = False
        self.rotating_disk_type = "scsi"
        self.wipe_osd_devices = True

        #
        # polling
        #
        self.nsid_poll = RetryPolicy(attempts=30, interval=0.1)
        self.path_resolve = RetryPolicy(attempts=30, interval=0.1)
        self.settle_timeout = 3
        self.partition_settle_delay = 0.6

    def set_block_size(self, block_size):
        block_size = int(block_size)
        if block_size not in SUPPORTED_BLOCK_SIZES:
            raise ValueError("block size must be one of %s" % (SUPPORTED_BLOCK_SIZES,))
        self.block_size = block_size


flags = Flags()
