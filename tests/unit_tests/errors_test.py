import unittest

from fastslice.errors import (AttachWarning, CommandError, CreationError, NamingWarning, Notices,
                              PreconditionError, SizingError, StorageError, TrackingError)


class ErrorsTestCase(unittest.TestCase):

    def test_hierarchy(self):
        self.assertTrue(issubclass(SizingError, PreconditionError))
        self.assertTrue(issubclass(SizingError, ValueError))
        self.assertTrue(issubclass(CreationError, CommandError))
        self.assertTrue(issubclass(TrackingError, StorageError))
        self.assertTrue(TrackingError("lost nsid").manual_intervention)
        self.assertFalse(StorageError("x").hardware_fault)
        self.assertTrue(StorageError("x", hardware_fault=True).hardware_fault)

    def test_command_output(self):
        err = CreationError("nvme create-ns failed", output="NVMe status: Invalid Format(0x10a)\n")
        self.assertEqual(str(err), "nvme create-ns failed\nNVMe status: Invalid Format(0x10a)")
        self.assertEqual(str(CommandError("lsblk failed")), "lsblk failed")

    def test_notices(self):
        notices = Notices()
        self.assertFalse(notices)

        notices.add(AttachWarning("attach failed"))
        notices.add(NamingWarning("no stable identifier", ["osd1-db", "osd2-db"]))
        self.assertEqual(len(notices), 2)
        self.assertEqual(str(notices.of_type(NamingWarning)[0]), "no stable identifier: osd1-db, osd2-db")

        other = Notices()
        other.extend(notices)
        self.assertEqual(list(other), list(notices))
