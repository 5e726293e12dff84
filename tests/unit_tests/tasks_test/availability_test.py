import unittest
from unittest.mock import patch

from fastslice.errors import DependencyError
from fastslice.tasks import availability


class AvailabilityTestCase(unittest.TestCase):

    def test_application(self):
        missing = availability.application("fastslice-no-such-tool", "run tests")
        self.assertFalse(missing.available)
        self.assertIn("not in $PATH", missing.availability_errors[0])

        with patch("fastslice.tasks.availability.shutil.which", return_value="/usr/bin/true"):
            present = availability.application("true")
            self.assertTrue(present.available)

    def test_require_reports_all(self):
        first = availability.application("fastslice-no-such-tool-1", "create things")
        second = availability.application("fastslice-no-such-tool-2")

        with self.assertRaises(DependencyError) as ctx:
            availability.require(first, second)
        msg = str(ctx.exception)
        self.assertIn("fastslice-no-such-tool-1", msg)
        self.assertIn("needed to create things", msg)
        self.assertIn("fastslice-no-such-tool-2", msg)

    def test_first_available(self):
        missing = availability.application("fastslice-no-such-tool-3")
        with patch("fastslice.tasks.availability.shutil.which", return_value="/usr/sbin/sfdisk"):
            present = availability.application("sfdisk")
            present.availability_errors  # pylint: disable=pointless-statement
        self.assertIs(availability.first_available(missing, present), present)
        self.assertIsNone(availability.first_available(missing))

    def test_reset(self):
        with patch("fastslice.tasks.availability.shutil.which", return_value=None):
            tool = availability.application("partprobe")
            self.assertFalse(tool.available)

        with patch("fastslice.tasks.availability.shutil.which", return_value="/usr/sbin/partprobe"):
            # cached until reset
            self.assertFalse(tool.available)
            tool.reset()
            self.assertTrue(tool.available)
