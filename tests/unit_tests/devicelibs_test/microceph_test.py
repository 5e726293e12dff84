import json
import unittest
from unittest.mock import patch

from fastslice.devicelibs import microceph
from fastslice.errors import CommandError, CreationError, ParseError

DISK_LIST = json.dumps({
    "ConfiguredDisks": [
        {"osd": 1, "location": "node1", "path": "/dev/disk/by-id/wwn-0x5000c500a1b2c3d4"}],
    "AvailableDisks": [
        {"model": "ST8000NM017B", "size": "7.28TiB", "type": "scsi",
         "path": "/dev/disk/by-id/wwn-0x5000c500a1b2c3d5"},
        {"model": "SAMSUNG MZQL23T8", "size": "3.49TiB", "type": "nvme",
         "path": "/dev/disk/by-id/nvme-eui.36344730528004650025384500000001"}]})


class MicroCephTestCase(unittest.TestCase):

    def test_parse_disk_list(self):
        disks = microceph.parse_disk_list(DISK_LIST)
        self.assertEqual(disks.configured, ("/dev/disk/by-id/wwn-0x5000c500a1b2c3d4",))
        self.assertEqual([d.type for d in disks.available], ["scsi", "nvme"])
        self.assertEqual(disks.available[0].path, "/dev/disk/by-id/wwn-0x5000c500a1b2c3d5")

    def test_parse_capitalized_keys(self):
        raw = json.dumps({"ConfiguredDisks": [{"Path": "/dev/sdb"}],
                          "AvailableDisks": [{"Path": "/dev/sdc", "Type": "scsi"}]})
        disks = microceph.parse_disk_list(raw)
        self.assertEqual(disks.configured, ("/dev/sdb",))
        self.assertEqual(disks.available[0], microceph.AvailableDisk("/dev/sdc", "scsi"))

    def test_parse_errors(self):
        with self.assertRaises(ParseError):
            microceph.parse_disk_list("Error: daemon not running")
        with self.assertRaises(ParseError):
            microceph.parse_disk_list("[]")

    def test_add_command(self):
        self.assertEqual(microceph.add_command("/dev/sdc", db="/dev/disk/by-mfast/osd1-db",
                                               wal="/dev/disk/by-mfast/osd1-wal"),
                         ["microceph", "disk", "add", "/dev/sdc", "--wipe",
                          "--db-device", "/dev/disk/by-mfast/osd1-db", "--db-wipe",
                          "--wal-device", "/dev/disk/by-mfast/osd1-wal", "--wal-wipe"])
        self.assertEqual(microceph.add_command("/dev/sdc", wipe=False),
                         ["microceph", "disk", "add", "/dev/sdc"])

    @patch("fastslice.devicelibs.microceph.util.run_program_and_capture_output")
    def test_tool_failures(self, run):
        run.return_value = (1, "Error: not bootstrapped")
        with self.assertRaises(CommandError):
            microceph.disk_list()
        with self.assertRaises(CreationError):
            microceph.add_disk("/dev/sdc")

        run.return_value = (0, "")
        with self.assertRaises(ParseError):
            microceph.disk_list()
