import json
import unittest
from unittest.mock import patch

from fastslice.devicelibs import disk as disklib
from fastslice.errors import ParseError

LSBLK_DISK = json.dumps({
    "blockdevices": [
        {"name": "sdb", "path": "/dev/sdb", "size": 1920383410176, "type": "disk", "rota": False,
         "mountpoint": None,
         "children": [
             {"name": "sdb1", "path": "/dev/sdb1", "size": 107374182400, "type": "part", "rota": False,
              "mountpoint": None},
             {"name": "sdb2", "path": "/dev/sdb2", "size": 6442450944, "type": "part", "rota": False,
              "mountpoint": None,
              "children": [
                  {"name": "ceph--wal", "path": "/dev/mapper/ceph--wal", "size": 6442450944,
                   "type": "lvm", "rota": False, "mountpoint": "/var/lib/wal"}]}]}]})

LSBLK_DISKS = json.dumps({
    "blockdevices": [
        {"name": "sda", "path": "/dev/sda", "size": 8001563222016, "type": "disk", "rota": "1"},
        {"name": "sdc", "path": "/dev/sdc", "size": 960197124096, "type": "disk", "rota": "0"},
        {"name": "sr0", "path": "/dev/sr0", "size": 1073741312, "type": "rom", "rota": "1"},
        {"name": "nvme0n1", "path": "/dev/nvme0n1", "size": 3840755982336, "type": "disk", "rota": True},
        {"name": "sdd", "size": 8001563222016, "type": "disk", "rota": True}]})


class LsblkTestCase(unittest.TestCase):

    def test_parse_lsblk_json(self):
        entries = disklib.parse_lsblk_json(LSBLK_DISK)
        self.assertEqual(len(entries), 1)
        sdb = entries[0]
        self.assertEqual(sdb.size, 1920383410176)
        self.assertFalse(sdb.rota)
        self.assertEqual([p.path for p in disklib.partitions(sdb)], ["/dev/sdb1", "/dev/sdb2"])
        self.assertEqual(disklib.mountpoints(sdb), ["/var/lib/wal"])

    def test_parse_errors(self):
        with self.assertRaises(ParseError):
            disklib.parse_lsblk_json("not json")
        with self.assertRaises(ParseError):
            disklib.parse_lsblk_json('{"devices": []}')
        with self.assertRaises(ParseError):
            disklib.parse_lsblk_json('{"blockdevices": [{"name": "sda", "size": "big"}]}')

    @patch("fastslice.devicelibs.disk.util.run_program_and_capture_output")
    def test_capacity(self, run):
        run.return_value = (0, LSBLK_DISK)
        self.assertEqual(disklib.total_bytes("/dev/sdb"), 1920383410176)
        self.assertEqual(disklib.used_bytes("/dev/sdb"), 107374182400 + 6442450944)
        self.assertEqual(disklib.partition_paths("/dev/sdb"), ["/dev/sdb1", "/dev/sdb2"])

    @patch("fastslice.devicelibs.disk.util.run_program_and_capture_output")
    def test_rotating_disks(self, run):
        run.return_value = (0, LSBLK_DISKS)
        self.assertEqual([d.path for d in disklib.rotating_disks()], ["/dev/sda", "/dev/sdd"])
