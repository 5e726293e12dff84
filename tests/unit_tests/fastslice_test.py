import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, patch

from fastslice.allocator import Workload
from fastslice.devices import BLOCK, NVME, FastDevice, ProvisionedSlice
from fastslice.errors import PreconditionError, SizingError
from fastslice.fastmap import read_mapping
from fastslice.fastslice import FastSlice, mapping_row
from fastslice.flags import flags
from fastslice.naming import LinkManager
from fastslice.size import GiB


class FakeProvisioner(object):

    def __init__(self, device, block_size=4096):
        self.device = device
        self.block_size = block_size
        self.next_id = 1
        self.provisioned = []

    def check(self, request=None):
        pass

    def commands(self, request):
        return ["create %s on %s" % (request.label, self.device.path)]

    def provision(self, request):
        nsid = self.next_id
        self.next_id += 1
        provisioned = ProvisionedSlice(path="%sn%d" % (self.device.controller, nsid), object_type="namespace",
                                       backend=NVME, backend_id=nsid, label=request.label,
                                       size=request.size, device=self.device)
        self.provisioned.append(provisioned)
        return provisioned


class FastSliceTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = os.path.realpath(tempfile.mkdtemp(prefix="fastslice-apply-"))
        self.addCleanup(shutil.rmtree, self.tmp)

        self.link_manager = LinkManager(link_root=os.path.join(self.tmp, "by-mfast"),
                                        rule_file=os.path.join(self.tmp, "99-mfast.rules"),
                                        by_id_root=os.path.join(self.tmp, "by-id"))
        self.fs = FastSlice(link_manager=self.link_manager, map_root=self.tmp)
        self.fs.devices = [FastDevice("/dev/nvme%dn1" % i, NVME, controller="/dev/nvme%d" % i,
                                      total=3840 * GiB, block_size=4096)
                           for i in range(2)]

        for target in ("fastslice.fastslice.availability.require", "fastslice.fastslice.udev",
                       "fastslice.naming.udev.reload_rules"):
            patcher = patch(target)
            patcher.start()
            self.addCleanup(patcher.stop)

        patcher = patch("fastslice.naming.udev.get_device", return_value={"DEVTYPE": "disk", "ID_WWN": "eui.01"})
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_apply_records_every_slice(self):
        plan = self.fs.plan(Workload(3, db_size=100 * GiB, wal_size=6 * GiB, wal_separate=True))
        provisioners = dict((d.path, FakeProvisioner(d)) for d in self.fs.devices)

        with patch.object(FastSlice, "provisioner_for", side_effect=lambda d: provisioners[d.path]), \
             patch.object(FastDevice, "used", 0):
            result = self.fs.apply(plan, apply=True)

        self.assertEqual(len(result.slices), 6)
        rows = read_mapping(result.mapping_path)
        self.assertEqual([row.label for row in rows], plan.labels)
        self.assertEqual(rows[0].object_path, "/dev/nvme0n1")
        self.assertEqual(rows[0].for_osd, "osd1")
        self.assertEqual(rows[0].size_gib, "100")
        self.assertEqual(rows[0].backend_id, "devseq:1;nsid:1")
        self.assertEqual(rows[1].backend_id, "devseq:2;nsid:2")
        self.assertEqual(rows[2].backend_id, "devseq:1;nsid:1")

        # each label resolves to the device recorded for it
        links = self.link_manager.links()
        self.assertEqual(dict((row.label, row.object_path) for row in rows),
                         dict((label, os.readlink(path)) for label, path in links.items()))

    def test_dry_run_changes_nothing(self):
        plan = self.fs.plan(Workload(2, combined_size=110 * GiB))
        provisioner = Mock(block_size=4096)
        provisioner.commands.return_value = ["nvme create-ns ..."]

        with patch.object(FastSlice, "provisioner_for", return_value=provisioner):
            result = self.fs.apply(plan, apply=False)

        self.assertFalse(result.applied)
        self.assertEqual(len(result.commands), 2)
        provisioner.provision.assert_not_called()
        self.assertIsNone(result.mapping_path)
        self.assertEqual(os.listdir(self.tmp), [])

    def test_partitioning_refused_before_any_change(self):
        self.fs.devices = [FastDevice("/dev/nvme0n1", NVME, controller="/dev/nvme0", total=3840 * GiB),
                           FastDevice("/dev/sdb", BLOCK, total=960 * GiB)]
        plan = self.fs.plan(Workload(2, db_size=100 * GiB))

        with patch.object(flags, "allow_partition", False), \
             patch("fastslice.fastslice.gpt.backend"), \
             patch("fastslice.nvme.NamespaceProvisioner.provision") as provision:
            with self.assertRaises(PreconditionError):
                self.fs.apply(plan, apply=True)
        provision.assert_not_called()

    def test_sizing_checked_before_any_change(self):
        plan = self.fs.plan(Workload(1, db_size=100 * GiB + 512))
        with patch("fastslice.nvme.NamespaceProvisioner.provision") as provision:
            with self.assertRaises(SizingError):
                self.fs.apply(plan, apply=True)
        provision.assert_not_called()

    @patch("fastslice.fastslice.classify_device")
    def test_inspect(self, classify_device):
        classify_device.side_effect = lambda path, block_size=None: FastDevice(
            path, NVME, controller=path[:-2])
        devices = self.fs.inspect(["/dev/nvme0n1", "/dev/nvme1n1", "/dev/nvme0n1"])
        self.assertEqual([d.path for d in devices], ["/dev/nvme0n1", "/dev/nvme1n1"])

        with self.assertRaises(PreconditionError):
            self.fs.inspect(["/dev/nvme0n1", "/dev/nvme0n2"])
        with self.assertRaises(PreconditionError):
            self.fs.inspect([])

    def test_mapping_row(self):
        device = FastDevice("/dev/sdb", BLOCK)
        provisioned = ProvisionedSlice("/dev/sdb4", "partition", BLOCK, 4, "meta2", 10 * GiB, device)
        request = Mock(unit_name="", label="meta2", size=10 * GiB)
        row = mapping_row(provisioned, request, 3)
        self.assertEqual(tuple(row), ("/dev/sdb4", "partition", "", "meta2", "10", "block", "devseq:3;part:4"))

    def test_wipe_waits_for_checks(self):
        plan_flags = {"allow_modify_existing_ns": True, "wipe_existing_ns": True}
        with patch.multiple(flags, **plan_flags), \
             patch("fastslice.fastslice.wipe_namespaces") as wipe_namespaces:
            plan = self.fs.plan(Workload(1, db_size=100 * GiB + 512))
            with self.assertRaises(SizingError):
                self.fs.apply(plan, apply=True)
        wipe_namespaces.assert_not_called()

    def test_wipe_before_provisioning(self):
        for device in self.fs.devices:
            device.used_before = 3000 * GiB
        provisioners = dict((d.path, FakeProvisioner(d)) for d in self.fs.devices)

        plan_flags = {"allow_modify_existing_ns": True, "wipe_existing_ns": True}
        with patch.multiple(flags, **plan_flags), \
             patch("fastslice.fastslice.wipe_namespaces") as wipe_namespaces, \
             patch.object(FastSlice, "provisioner_for", side_effect=lambda d: provisioners[d.path]), \
             patch.object(FastDevice, "used", 0):
            plan = self.fs.plan(Workload(2, db_size=1000 * GiB))
            self.assertEqual(plan.overcommitted, [])
            self.fs.apply(plan, apply=True)

        self.assertEqual([c[0][0] for c in wipe_namespaces.call_args_list], ["/dev/nvme0", "/dev/nvme1"])
        self.assertEqual([p.used_before for p in plan.projections.values()], [0, 0])
