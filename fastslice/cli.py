#
# cli.py
# Command line interface.
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

import argparse
import logging
import sys

from . import __version__
from .allocator import DEFAULT_UNIT_PREFIX, Workload
from .errors import StorageError, TrackingError
from .fastslice import FastSlice, auto_detect_rotating_count
from .flags import SUPPORTED_BLOCK_SIZES, flags
from .naming import LinkManager
from .osdapply import PlanApplier
from .osdplan import OsdPlanBuilder, write_osd_plan
from .size import human_readable, parse_size
from .storage_log import log_exception_info
from .util import set_up_console_log, set_up_logging

log = logging.getLogger("fastslice")


def _add_common(parser):
    parser.add_argument("--apply", action="store_true",
                        help="make changes (default is a dry run)")
    parser.add_argument("--debug", action="store_true", help="log debugging messages")
    parser.add_argument("--unit-prefix", default=DEFAULT_UNIT_PREFIX,
                        help="label prefix of workload units (default: %(default)s)")
    parser.add_argument("--link-root", default=flags.link_root,
                        help="directory holding label symlinks (default: %(default)s)")
    parser.add_argument("--map-root", default=flags.map_root,
                        help="directory for plan files (default: %(default)s)")
    parser.add_argument("--log-dir", help="also write a debug log file into this directory")


def build_parser():
    parser = argparse.ArgumentParser(prog="fastslice",
                                     description="Provision fast DB/WAL slices and OSD placements")
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    slices = subparsers.add_parser("slices", help="create namespaces or partitions on fast devices")
    _add_common(slices)
    slices.add_argument("devices", nargs="+", metavar="DEVICE", help="fast devices, in spreading order")
    count = slices.add_mutually_exclusive_group(required=True)
    count.add_argument("--osd-count", type=int, help="number of workload units")
    count.add_argument("--auto-osd-count", action="store_true",
                       help="one workload unit per rotating disk found")
    slices.add_argument("--db-size", type=parse_size, default=0, help="database slice size (GiB)")
    slices.add_argument("--wal-size", type=parse_size, default=0, help="log slice size (GiB)")
    slices.add_argument("--separate-wal", action="store_true", help="create a log slice per unit")
    slices.add_argument("--combined-size", type=parse_size, default=0,
                        help="one combined DB/WAL slice per unit of this size (GiB)")
    slices.add_argument("--meta-count", type=int, default=0, help="number of metadata slices")
    slices.add_argument("--meta-size", type=parse_size, default=0, help="metadata slice size (GiB)")
    slices.add_argument("--block-size", type=int, default=flags.block_size, choices=SUPPORTED_BLOCK_SIZES,
                        help="namespace logical block size (default: %(default)s)")
    slices.add_argument("--allow-partition", action="store_true",
                        help="allow partitioning of plain block devices")
    slices.add_argument("--allow-modify-existing-ns", action="store_true",
                        help="allow changes to existing namespaces")
    slices.add_argument("--wipe-existing-ns", action="store_true",
                        help="delete existing namespaces first (with --allow-modify-existing-ns)")
    slices.add_argument("--wipe-existing-parts", action="store_true",
                        help="remove existing partitions first (with --allow-partition)")
    slices.add_argument("--no-links", action="store_true", help="do not create label links or udev rules")
    slices.add_argument("--udev-rule-file", default=flags.udev_rule_file,
                        help="udev rule file (default: %(default)s)")
    slices.set_defaults(func=cmd_slices)

    plan = subparsers.add_parser("plan-osds", help="pair rotating disks with fast slices")
    _add_common(plan)
    plan.add_argument("--relaxed", action="store_true",
                      help="plan the first units when there are too few rotating disks")
    plan.add_argument("--disk-type", default=flags.rotating_disk_type,
                      help="disk type of rotating disks (default: %(default)s)")
    plan.add_argument("--output", help="write the plan here instead of a new file")
    plan.set_defaults(func=cmd_plan_osds)

    apply_ = subparsers.add_parser("apply-osds", help="add the disks of an OSD plan to the cluster")
    _add_common(apply_)
    apply_.add_argument("plan", help="OSD plan file")
    apply_.add_argument("--start-osd", type=int, help="first workload unit number to apply")
    apply_.add_argument("--end-osd", type=int, help="last workload unit number to apply")
    apply_.add_argument("--no-wipe", action="store_true", help="do not wipe the devices being added")
    apply_.set_defaults(func=cmd_apply_osds)

    return parser


def set_flags(args):
    flags.apply = args.apply
    flags.debug = args.debug
    flags.link_root = args.link_root
    flags.map_root = args.map_root


def print_notices(notices):
    notices = list(notices)
    if not notices:
        return
    print("\nWarnings:")
    for notice in notices:
        print("  %s: %s" % (notice.__class__.__name__, notice))


def cmd_slices(args):
    flags.set_block_size(args.block_size)
    flags.allow_partition = args.allow_partition
    flags.allow_modify_existing_ns = args.allow_modify_existing_ns
    flags.wipe_existing_ns = args.wipe_existing_ns
    flags.wipe_existing_parts = args.wipe_existing_parts
    flags.make_links = not args.no_links
    flags.udev_rule_file = args.udev_rule_file

    unit_count = args.osd_count
    if args.auto_osd_count:
        unit_count = auto_detect_rotating_count()

    fs = FastSlice()
    fs.inspect(args.devices)

    workload = Workload(unit_count, db_size=args.db_size, wal_size=args.wal_size,
                        wal_separate=args.separate_wal, combined_size=args.combined_size,
                        meta_count=args.meta_count, meta_size=args.meta_size,
                        unit_prefix=args.unit_prefix)
    plan = fs.plan(workload)

    print("%-24s %-10s %-12s %s" % ("DEVICE", "KIND", "SIZE", "LABEL"))
    for row in plan:
        print("%-24s %-10s %-12s %s" % (row.device.path, row.request.kind,
                                        human_readable(row.request.size), row.request.label))

    print("\n%-24s %-14s %-14s %-14s %s" % ("DEVICE", "TOTAL", "USED", "PLANNED", "FREE AFTER"))
    for projection in plan.projections.values():
        print("%-24s %-14s %-14s %-14s %s" % (projection.device.path, human_readable(projection.total),
                                              human_readable(projection.used_before),
                                              human_readable(projection.planned_add),
                                              human_readable(projection.free_after)))

    result = fs.apply(plan)
    if result.applied:
        print("\nCreated %d slices; mapping written to %s" % (len(result.slices), result.mapping_path))
        for path, used in result.capacity.items():
            print("  %s: %s used" % (path, human_readable(used)))
    else:
        print("\nDry run, nothing changed. Re-run with --apply to create the slices.")

    print_notices(fs.notices)
    return 0


def cmd_plan_osds(args):
    builder = OsdPlanBuilder(link_manager=LinkManager(link_root=args.link_root),
                             unit_prefix=args.unit_prefix, relaxed=args.relaxed,
                             disk_type=args.disk_type)
    plan = builder.plan()

    for placement in plan:
        print(",".join(placement.to_row()))

    if args.apply or args.output:
        path = write_osd_plan(plan, root=args.map_root, path=args.output)
        print("\nPlan written to %s" % path)
    else:
        print("\nDry run; re-run with --apply to write the plan file.")

    print_notices(plan.notices)
    return 0


def cmd_apply_osds(args):
    applier = PlanApplier(apply=args.apply, wipe=not args.no_wipe,
                          start=args.start_osd, end=args.end_osd)
    summary = applier.run_file(args.plan)
    print(summary)
    if not args.apply:
        print("Dry run, nothing changed. Re-run with --apply to add the disks.")
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    set_flags(args)
    log_names = ["fastslice", "program"] if args.debug else ["fastslice"]
    set_up_console_log(log_names=log_names, level=logging.DEBUG if args.debug else logging.INFO)
    for name in log_names:
        logging.getLogger(name).setLevel(logging.DEBUG)
    if args.log_dir:
        set_up_logging(log_dir=args.log_dir)

    try:
        return args.func(args)
    except TrackingError as e:
        log.error("%s", e)
        log.error("the hardware was changed; inspect it manually before re-running")
        return 1
    except StorageError as e:
        log.error("%s", e)
        log_exception_info(log.debug)
        return 1


if __name__ == "__main__":
    sys.exit(main())
