import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from fastslice.errors import NamingWarning
from fastslice.naming import LinkManager, is_concrete_node


class LinkManagerTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = os.path.realpath(tempfile.mkdtemp(prefix="fastslice-naming-"))
        self.addCleanup(shutil.rmtree, self.tmp)

        self.by_id = os.path.join(self.tmp, "by-id")
        os.makedirs(self.by_id)
        self.manager = LinkManager(link_root=os.path.join(self.tmp, "by-mfast"),
                                   rule_file=os.path.join(self.tmp, "rules.d", "99-mfast.rules"),
                                   by_id_root=self.by_id)

        patcher = patch("fastslice.naming.udev.reload_rules")
        self.reload_rules = patcher.start()
        self.addCleanup(patcher.stop)

    def _rules(self):
        with open(self.manager.rule_file) as f:
            return f.read().splitlines()

    def test_is_concrete_node(self):
        self.assertTrue(is_concrete_node("/dev/nvme0n3"))
        self.assertTrue(is_concrete_node("/dev/nvme0n1p2"))
        self.assertTrue(is_concrete_node("/dev/sdb4"))
        self.assertFalse(is_concrete_node("/dev/dm-3"))
        self.assertFalse(is_concrete_node("/dev/disk/by-id/nvme-eui.1234"))

    def test_namespace_rule_idempotent(self):
        info = {"DEVTYPE": "disk", "ID_WWN": "eui.36344730528004650025384500000007", "DEVLINKS": ""}
        with patch("fastslice.naming.udev.get_device", return_value=info):
            first = self.manager.ensure_link("osd1-db", "/dev/nvme0n7")
            second = self.manager.ensure_link("osd1-db", "/dev/nvme0n7")

        self.assertEqual(first, second)
        self.assertEqual(first.target, "/dev/nvme0n7")
        self.assertEqual(os.readlink(first.link_path), "/dev/nvme0n7")
        self.assertEqual(self._rules(),
                         ['SUBSYSTEM=="block", ENV{DEVTYPE}=="disk", '
                          'ENV{ID_WWN}=="eui.36344730528004650025384500000007", '
                          'SYMLINK+="disk/by-mfast/osd1-db"'])
        self.reload_rules.assert_called_once_with()

    def test_partition_rule(self):
        info = {"DEVTYPE": "partition", "ID_WWN": "0x5002538e40a1b2c3", "ID_PART_ENTRY_NAME": "osd2-wal"}
        with patch("fastslice.naming.udev.get_device", return_value=info):
            link = self.manager.ensure_link("osd2-wal", "/dev/sdb2")

        self.assertEqual(link.rule,
                         'SUBSYSTEM=="block", ENV{DEVTYPE}=="partition", ENV{ID_WWN}=="0x5002538e40a1b2c3", '
                         'ENV{ID_PART_ENTRY_NAME}=="osd2-wal", SYMLINK+="disk/by-mfast/osd2-wal"')

    def test_devlinks_fallback(self):
        info = {"DEVTYPE": "partition",
                "DEVLINKS": "/dev/disk/by-path/pci-0000:01:00.0-part1 %s/nvme-SAMSUNG_S64A-part1" % self.by_id}
        with patch("fastslice.naming.udev.get_device", return_value=info):
            link = self.manager.ensure_link("meta1", "/dev/nvme0n1p1")

        self.assertEqual(link.rule, 'SUBSYSTEM=="block", ENV{DEVLINKS}=="*nvme-SAMSUNG_S64A-part1*", '
                                    'SYMLINK+="disk/by-mfast/meta1"')

    def test_no_stable_identifier(self):
        with patch("fastslice.naming.udev.get_device", return_value={"DEVTYPE": "disk"}):
            link = self.manager.ensure_link("osd3-db", "/dev/sdc")

        self.assertIsNone(link.rule)
        self.assertEqual(os.readlink(link.link_path), "/dev/sdc")
        self.assertEqual(len(self.manager.notices.of_type(NamingWarning)), 1)
        self.assertFalse(os.path.exists(self.manager.rule_file))
        self.reload_rules.assert_not_called()

    def test_link_replaced_in_place(self):
        with patch("fastslice.naming.udev.get_device", return_value=None):
            self.manager.ensure_link("osd1-db", "/dev/nvme0n2")
            link = self.manager.ensure_link("osd1-db", "/dev/nvme0n3")

        self.assertEqual(os.readlink(link.link_path), "/dev/nvme0n3")
        self.assertEqual(os.listdir(self.manager.link_root), ["osd1-db"])

    def test_link_target_prefers_nvme_alias(self):
        node = os.path.join(self.tmp, "dm-node")
        open(node, "w").close()
        os.symlink(node, os.path.join(self.by_id, "wwn-0x5000"))
        os.symlink(node, os.path.join(self.by_id, "nvme-eui.abcd"))

        self.assertEqual(self.manager.link_target_for(node), os.path.join(self.by_id, "nvme-eui.abcd"))

    def test_links(self):
        with patch("fastslice.naming.udev.get_device", return_value=None):
            for label in ("osd2-db", "osd1-db", "meta1"):
                self.manager.ensure_link(label, "/dev/nvme0n1")

        self.assertEqual(sorted(self.manager.links()), ["meta1", "osd1-db", "osd2-db"])
