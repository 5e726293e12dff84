# osdapply.py
# Resumable application of an OSD placement plan.
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

from .devicelibs import microceph
from .errors import PlanError
from .fastmap import read_osd_plan
from .flags import flags
from .storage_log import log_method_call
from .tasks import availability
from . import util

import logging
log = logging.getLogger("fastslice")


class ApplySummary(object):

    def __init__(self):
        self.added = []
        self.skipped_configured = []
        self.skipped_filtered = []
        self.skipped_missing = []
        self.rows = 0

    def __str__(self):
        return ("rows: %d, added: %d, skipped (configured): %d, skipped (filtered): %d, "
                "skipped (missing data): %d" % (self.rows, len(self.added), len(self.skipped_configured),
                                                len(self.skipped_filtered), len(self.skipped_missing)))


class ConfiguredDisks(object):

    """ The set of data disks in use, matched by literal and resolved path. """

    def __init__(self, paths=()):
        self._paths = set()
        for path in paths:
            self.add(path)

    def add(self, path):
        self._paths.add(path)
        self._paths.add(util.resolve_path(path))

    def __contains__(self, path):
        return path in self._paths or util.resolve_path(path) in self._paths

    def __len__(self):
        return len(self._paths)


def in_range(index, start=None, end=None):
    if start is not None and index < start:
        return False
    if end is not None and index > end:
        return False
    return True


class PlanApplier(object):

    """ Adds the data disks of a placement plan to the cluster.

        Rows whose data disk is already configured are skipped, so a plan
        can be applied again after a partial run.
    """

    def __init__(self, apply=None, wipe=None, start=None, end=None):
        self.apply = flags.apply if apply is None else apply
        self.wipe = flags.wipe_osd_devices if wipe is None else wipe
        self.start = start
        self.end = end
        if start is not None and end is not None and start > end:
            raise PlanError("start index %d is after end index %d" % (start, end))

    def configured_disks(self):
        """ Disks already configured on this host.

            :raises CommandError: the cluster tool failed
        """
        availability.require(availability.MICROCEPH_APP)
        disk_list = microceph.disk_list()
        return ConfiguredDisks(disk_list.configured)

    def run(self, placements, configured=None):
        """ Apply placements in order and return an :class:`ApplySummary`.

            :raises CreationError: a disk add failed; the run stops there
        """
        log_method_call(self, len(placements), apply=self.apply, start=self.start, end=self.end)
        if configured is None:
            configured = self.configured_disks()

        summary = ApplySummary()
        for placement in placements:
            summary.rows += 1
            if placement.index is None:
                log.warning("skipping row with unexpected unit name %r", placement.osd)
                summary.skipped_missing.append(placement)
                continue

            if not in_range(placement.index, self.start, self.end):
                summary.skipped_filtered.append(placement)
                continue

            data = placement.rotating
            if not data or not os.path.exists(data):
                log.warning("%s: data disk %r not found, skipping", placement.osd, data)
                summary.skipped_missing.append(placement)
                continue

            if data in configured:
                log.info("%s: %s is already configured, skipping", placement.osd, data)
                summary.skipped_configured.append(placement)
                continue

            if self.apply:
                microceph.add_disk(data, db=placement.db, wal=placement.wal, wipe=self.wipe)
                log.info("%s: added %s", placement.osd, data)
            else:
                log.info("would run: %s",
                         " ".join(microceph.add_command(data, db=placement.db, wal=placement.wal,
                                                        wipe=self.wipe)))
            configured.add(data)
            summary.added.append(placement)

        log.info("%s", summary)
        return summary

    def run_file(self, path, configured=None):
        """ Read a placement artifact and apply it. """
        return self.run(read_osd_plan(path), configured=configured)
