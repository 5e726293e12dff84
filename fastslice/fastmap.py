# fastmap.py
# CSV plan artifacts handed from one phase to the next.
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

import csv
import os
import re
import tempfile
from collections import namedtuple

from .errors import PlanError
from . import util

import logging
log = logging.getLogger("fastslice")

MAPPING_HEADER = ("object_path", "object_type", "for_osd", "label", "size_gib", "backend", "backend_id")
OSD_PLAN_HEADER = ("osd", "rotating", "db", "wal", "combined_dbwal")

MAPPING_PREFIX = "fastmap"
OSD_PLAN_PREFIX = "microceph-osd-plan"

NONE = "none"
YES = "yes"
NO = "no"

re_unit_name = re.compile(r'^[A-Za-z_-]*?(\d+)$')

MappingRow = namedtuple("MappingRow", MAPPING_HEADER)


class OsdPlacement(namedtuple("OsdPlacement", ["osd", "rotating", "db", "wal", "combined"])):

    """ One OSD: a rotating data disk plus optional fast slices.

        ``db`` and ``wal`` are link paths or None; for a combined slice
        ``db`` holds the combined slice and ``wal`` is None.
    """

    __slots__ = ()

    @property
    def index(self):
        return unit_index(self.osd)

    def to_row(self):
        return (self.osd, self.rotating or "", self.db or NONE, self.wal or NONE,
                YES if self.combined else NO)

    @classmethod
    def from_row(cls, row):
        osd, rotating, db, wal, combined = row

        def _ref(value):
            value = value.strip()
            return None if value in ("", NONE) else value

        return cls(osd.strip(), rotating.strip(), _ref(db), _ref(wal),
                   combined.strip().lower() == YES)


def unit_index(name):
    """ The number of a workload unit name: osd5 -> 5; None if there is none. """
    match = re_unit_name.match(name or "")
    if not match:
        return None
    return int(match.group(1))


def format_backend_id(seq, nsid=None, partition=None):
    if nsid is not None:
        return "devseq:%d;nsid:%d" % (seq, nsid)
    if partition is not None:
        return "devseq:%d;part:%d" % (seq, partition)
    return "devseq:%d;part" % seq


class DeviceSequence(object):

    """ Friendly per-device sequence numbers (device -> n). """

    def __init__(self):
        self._counters = {}

    def next(self, device):
        key = str(device)
        self._counters[key] = self._counters.get(key, 0) + 1
        return self._counters[key]

    def current(self, device):
        return self._counters.get(str(device), 0)


def new_artifact(root, prefix):
    """ Create an empty, uniquely named CSV file under root. """
    util.makedirs(root)
    fd, path = tempfile.mkstemp(prefix="%s." % prefix, suffix=".csv", dir=root)
    os.close(fd)
    return path


def _check_fields(fields):
    for field in fields:
        if any(c in str(field) for c in ",\r\n"):
            raise PlanError("value %r cannot be stored in the plan artifact" % (field,))


class MapWriter(object):

    """ Appends rows to a plan artifact, one durable write per row. """

    def __init__(self, path, header):
        self.path = path
        self.header = tuple(header)
        self.rows_written = 0
        if not os.path.exists(path) or os.path.getsize(path) == 0:
            self._write(self.header)

    def _write(self, fields):
        _check_fields(fields)
        with open(self.path, "a", newline="") as f:
            csv.writer(f, lineterminator="\n").writerow(fields)
            f.flush()
            os.fsync(f.fileno())

    def write(self, row):
        fields = row.to_row() if hasattr(row, "to_row") else tuple(row)
        if len(fields) != len(self.header):
            raise PlanError("row %r does not match header %s" % (fields, ",".join(self.header)))
        self._write(fields)
        self.rows_written += 1


def read_rows(path, header):
    """ Read a plan artifact and return its rows as tuples of str.

        :raises PlanError: if the file is missing, the header differs or a
                           row has the wrong number of fields
    """
    if not os.path.isfile(path):
        raise PlanError("plan file not found: %s" % path)

    rows = []
    with open(path, newline="") as f:
        reader = csv.reader(f)
        try:
            found = next(reader)
        except StopIteration:
            raise PlanError("plan file %s is empty" % path)

        if tuple(h.strip() for h in found) != tuple(header):
            raise PlanError("unexpected header in %s: %s (expected %s)" %
                            (path, ",".join(found), ",".join(header)))

        for row in reader:
            if not row or not any(field.strip() for field in row):
                continue
            if len(row) != len(header):
                raise PlanError("%s line %d: expected %d fields, got %d" %
                                (path, reader.line_num, len(header), len(row)))
            rows.append(tuple(row))

    return rows


def read_mapping(path):
    return [MappingRow(*row) for row in read_rows(path, MAPPING_HEADER)]


def read_osd_plan(path):
    return [OsdPlacement.from_row(row) for row in read_rows(path, OSD_PLAN_HEADER)]
