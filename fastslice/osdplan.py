# osdplan.py
# Pairing of rotating data disks with provisioned fast slices.
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

from .allocator import DEFAULT_UNIT_PREFIX, ROLE_SUFFIX, DB, WAL, COMBINED
from .devicelibs import microceph
from .errors import Notices, PlanError, PlanMismatchWarning
from .fastmap import MapWriter, OSD_PLAN_HEADER, OSD_PLAN_PREFIX, OsdPlacement, new_artifact
from .flags import flags
from .naming import LinkManager
from .tasks import availability
from . import util

import logging
log = logging.getLogger("fastslice")

SUFFIX_ROLE = dict((suffix, role) for role, suffix in ROLE_SUFFIX.items())


class FastUnit(object):

    """ The fast slices found for one workload unit. """

    def __init__(self, prefix, index):
        self.prefix = prefix
        self.index = index
        self.slices = {}

    @property
    def name(self):
        return "%s%d" % (self.prefix, self.index)

    @property
    def combined(self):
        return COMBINED in self.slices

    @property
    def labels(self):
        return [label for label, _path in self.labelled()]

    def labelled(self):
        """ (label, link path) for every slice of the unit. """
        for role, path in sorted(self.slices.items()):
            yield "%s-%s" % (self.name, ROLE_SUFFIX[role]), path

    def placement(self, rotating):
        if self.combined:
            return OsdPlacement(self.name, rotating, self.slices[COMBINED], None, True)
        return OsdPlacement(self.name, rotating, self.slices.get(DB), self.slices.get(WAL), False)

    def __repr__(self):
        return "FastUnit(%s, %s)" % (self.name, sorted(self.slices))


def unit_pattern(prefix):
    return re.compile(r'^%s(\d+)-(%s)$' % (re.escape(prefix), "|".join(sorted(SUFFIX_ROLE))))


def scan_fast_units(links, prefix=DEFAULT_UNIT_PREFIX):
    """ Group label links into workload units.

        :param dict links: label -> link path
        :returns: :class:`FastUnit` instances ordered by unit number
    """
    pattern = unit_pattern(prefix)
    units = {}
    for label, path in links.items():
        match = pattern.match(label)
        if match is None:
            continue
        index = int(match.group(1))
        unit = units.setdefault(index, FastUnit(prefix, index))
        unit.slices[SUFFIX_ROLE[match.group(2)]] = path

    return [units[index] for index in sorted(units)]


def rotating_candidates(disk_list, disk_type=None):
    """ Unconfigured available disks of disk_type, sorted by path.

        A disk is configured when its path or its resolved path matches
        any configured disk's path or resolved path.
    """
    disk_type = disk_type or flags.rotating_disk_type
    configured = set()
    for path in disk_list.configured:
        configured.add(path)
        configured.add(util.resolve_path(path))

    candidates = []
    for disk in disk_list.available:
        if disk.type != disk_type:
            continue
        if disk.path in configured or util.resolve_path(disk.path) in configured:
            log.debug("%s is already configured", disk.path)
            continue
        candidates.append(disk.path)

    return sorted(util.dedup_list(candidates))


class OsdPlan(object):

    """ An ordered list of :class:`~.fastmap.OsdPlacement` rows. """

    def __init__(self, placements=None, notices=None, unused_units=None, unused_disks=None):
        self.placements = list(placements or [])
        self.notices = notices if notices is not None else Notices()
        self.unused_units = list(unused_units or [])
        self.unused_disks = list(unused_disks or [])
        self.path = None

    def __iter__(self):
        return iter(self.placements)

    def __len__(self):
        return len(self.placements)


class OsdPlanBuilder(object):

    """ Builds the OSD placement plan from label links and cluster disks.

        When there are fewer rotating disks than workload units the build
        fails unless ``relaxed`` is set; relaxed builds plan the
        lowest-numbered units and report the others. Surplus disks are left
        for a later run.
    """

    def __init__(self, link_manager=None, unit_prefix=DEFAULT_UNIT_PREFIX, relaxed=None,
                 disk_type=None):
        self.link_manager = link_manager or LinkManager()
        self.unit_prefix = unit_prefix
        self.relaxed = flags.relaxed_osd_plan if relaxed is None else relaxed
        self.disk_type = disk_type or flags.rotating_disk_type

    def fast_units(self):
        links = self.link_manager.links(unit_pattern(self.unit_prefix))
        return scan_fast_units(links, self.unit_prefix)

    def build(self, units, disks):
        """ Pair units with disks.

            :param units: :class:`FastUnit` list in unit order
            :param disks: sorted rotating disk paths
            :rtype: :class:`OsdPlan`
            :raises PlanError: nothing to plan, or too few disks in strict mode
        """
        if not units:
            raise PlanError("no fast slices labelled %s<N>-db/wal/cmb found" % self.unit_prefix)
        if not disks:
            raise PlanError("no unconfigured rotating disks of type %s available" % self.disk_type)

        plan = OsdPlan()
        if len(disks) < len(units):
            unused = units[len(disks):]
            unused_labels = [label for unit in unused for label in unit.labels]
            if not self.relaxed:
                raise PlanError("%d workload units with fast slices but only %d rotating disks"
                                % (len(units), len(disks)))
            plan.unused_units = [unit.name for unit in unused]
            plan.notices.add(PlanMismatchWarning("only %d rotating disks for %d workload units; unused fast slices"
                                                 % (len(disks), len(units)), unused_labels))
            units = units[:len(disks)]
        elif len(disks) > len(units):
            plan.unused_disks = disks[len(units):]
            plan.notices.add(PlanMismatchWarning("%d rotating disks left for a later run" % len(plan.unused_disks),
                                                 plan.unused_disks))

        for unit, disk in zip(units, disks):
            plan.placements.append(unit.placement(disk))

        log.info("planned %d OSD placements", len(plan))
        return plan

    def plan(self, disk_list=None):
        """ Discover label links and rotating disks and build the plan. """
        if disk_list is None:
            availability.require(availability.MICROCEPH_APP)
            disk_list = microceph.disk_list()
        return self.build(self.fast_units(), rotating_candidates(disk_list, self.disk_type))


def write_osd_plan(plan, root=None, path=None):
    """ Store plan as a placement artifact and return its path. """
    if path is None:
        path = new_artifact(root or flags.map_root, OSD_PLAN_PREFIX)
    writer = MapWriter(path, OSD_PLAN_HEADER)
    for placement in plan:
        writer.write(placement)
    plan.path = path
    log.info("wrote %d OSD placements to %s", writer.rows_written, path)
    return path

