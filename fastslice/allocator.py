# allocator.py
# Balanced allocation of slices over fast devices.
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

from collections import OrderedDict, namedtuple

from .errors import CapacityWarning, Notices, PreconditionError
from .size import human_readable
from .util import default_namedtuple

import logging
log = logging.getLogger("fastslice")

META = "meta"
DB = "db"
WAL = "wal"
COMBINED = "combined"

SLICE_KINDS = (META, DB, WAL, COMBINED)

# label suffix per workload unit role
ROLE_SUFFIX = {DB: "db", WAL: "wal", COMBINED: "cmb"}

DEFAULT_UNIT_PREFIX = "osd"
META_PREFIX = "meta"

SliceRequest = default_namedtuple("SliceRequest", ["kind", "size", "label", ("unit", None), ("unit_name", "")],
                                  doc="""One slice to be carved from a fast device.

                                         :param str kind: one of :const:`SLICE_KINDS`
                                         :param int size: size in bytes
                                         :param str label: unique label, e.g. osd3-db
                                         :param unit: workload unit index (None for metadata)
                                         :param str unit_name: workload unit name, e.g. osd3
                                      """)

PlanRow = namedtuple("PlanRow", ["device", "request"])


def unit_label(prefix, unit, kind):
    return "%s%d-%s" % (prefix, unit, ROLE_SUFFIX[kind])


class Workload(object):

    """ What the fast devices have to provide.

        Either one combined slice per unit (``combined_size > 0``) or a
        database slice per unit plus, with ``wal_separate``, a log slice.
    """

    def __init__(self, unit_count, db_size=0, wal_size=0, wal_separate=False,
                 combined_size=0, meta_count=0, meta_size=0,
                 unit_prefix=DEFAULT_UNIT_PREFIX):
        self.unit_count = unit_count
        self.db_size = db_size
        self.wal_size = wal_size
        self.combined_size = combined_size
        # a combined slice serves both roles
        self.wal_separate = wal_separate and not combined_size
        self.meta_count = meta_count
        self.meta_size = meta_size
        self.unit_prefix = unit_prefix

    @property
    def combined(self):
        return self.combined_size > 0

    def validate(self):
        if self.unit_count <= 0:
            raise PreconditionError("workload unit count must be > 0")
        if self.meta_count < 0:
            raise PreconditionError("metadata slice count must be >= 0")
        if self.meta_count and self.meta_size <= 0:
            raise PreconditionError("metadata slice size must be > 0")
        if self.combined:
            return
        if self.db_size <= 0:
            raise PreconditionError("database slice size must be > 0 (or use a combined slice size)")
        if self.wal_separate and self.wal_size <= 0:
            raise PreconditionError("log slice size must be > 0 with separate log slices")


class CapacityProjection(object):

    """ Capacity of one device before and after a plan. """

    def __init__(self, device, total, used_before, planned_add=0):
        self.device = device
        self.total = total
        self.used_before = used_before
        self.planned_add = planned_add

    @property
    def free_after(self):
        return self.total - (self.used_before + self.planned_add)

    @property
    def overcommitted(self):
        return self.free_after < 0

    def __repr__(self):
        return "CapacityProjection(%s, total=%d, used_before=%d, planned_add=%d, free_after=%d)" % \
            (self.device, self.total, self.used_before, self.planned_add, self.free_after)


class AllocationPlan(object):

    """ Ordered (device, slice request) rows plus capacity projections. """

    def __init__(self, devices):
        self.rows = []
        self.projections = OrderedDict()
        self.notices = Notices()
        for device in devices:
            self.projections[device.path] = CapacityProjection(device, device.total,
                                                               device.used_before)

    def add(self, device, request):
        self.rows.append(PlanRow(device, request))
        self.projections[device.path].planned_add += request.size

    def projection(self, device):
        return self.projections[device.path]

    @property
    def overcommitted(self):
        return [p for p in self.projections.values() if p.overcommitted]

    @property
    def labels(self):
        return [row.request.label for row in self.rows]

    def __iter__(self):
        return iter(self.rows)

    def __len__(self):
        return len(self.rows)


class RoundRobin(object):

    """ A cursor cycling over devices; each role owns one. """

    def __init__(self, devices):
        self._devices = devices
        self._position = 0

    def next(self):
        device = self._devices[self._position % len(self._devices)]
        self._position += 1
        return device


class SliceAllocator(object):

    """ Spreads slices over fast devices.

        Planning is pure: nothing is read from or written to the devices.
    """

    def __init__(self, devices):
        if not devices:
            raise PreconditionError("at least one fast device is required")
        self.devices = list(devices)

    def plan(self, workload):
        """ Build the :class:`AllocationPlan` for workload.

            Metadata slice i goes to device (i - 1) mod D. Database, log and
            combined slices advance their own cursors, so a unit's log slice
            may land on a different device than its database slice.
        """
        workload.validate()
        plan = AllocationPlan(self.devices)

        meta_cursor = RoundRobin(self.devices)
        for i in range(1, workload.meta_count + 1):
            plan.add(meta_cursor.next(),
                     SliceRequest(META, workload.meta_size, "%s%d" % (META_PREFIX, i)))

        db_cursor = RoundRobin(self.devices)
        wal_cursor = RoundRobin(self.devices)
        combined_cursor = RoundRobin(self.devices)
        for unit in range(1, workload.unit_count + 1):
            unit_name = "%s%d" % (workload.unit_prefix, unit)
            if workload.combined:
                plan.add(combined_cursor.next(),
                         SliceRequest(COMBINED, workload.combined_size,
                                      unit_label(workload.unit_prefix, unit, COMBINED),
                                      unit, unit_name))
                continue

            plan.add(db_cursor.next(),
                     SliceRequest(DB, workload.db_size,
                                  unit_label(workload.unit_prefix, unit, DB),
                                  unit, unit_name))
            if workload.wal_separate:
                plan.add(wal_cursor.next(),
                         SliceRequest(WAL, workload.wal_size,
                                      unit_label(workload.unit_prefix, unit, WAL),
                                      unit, unit_name))

        for projection in plan.overcommitted:
            if not projection.total:
                plan.notices.add(CapacityWarning("total capacity of %s is unknown" % projection.device))
                continue
            plan.notices.add(CapacityWarning("%s is short by %s after the planned slices" %
                                             (projection.device, human_readable(-projection.free_after))))

        log.debug("planned %d slices on %d device(s)", len(plan), len(self.devices))
        return plan
