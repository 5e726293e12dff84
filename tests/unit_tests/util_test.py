import logging
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, patch

from fastslice import util
from fastslice.util import RetryPolicy


class WaitForTestCase(unittest.TestCase):

    def test_first_truthy_result(self):
        lookup = Mock(side_effect=[None, 0, 7, 9])
        between = Mock()
        sleep = Mock()

        self.assertEqual(util.wait_for(lookup, RetryPolicy(5, 0.1), between=between, sleep=sleep), 7)
        self.assertEqual(lookup.call_count, 3)
        self.assertEqual(between.call_count, 2)
        sleep.assert_called_with(0.1)
        self.assertEqual(sleep.call_count, 2)

    def test_exhausted(self):
        lookup = Mock(return_value=None)
        between = Mock()
        sleep = Mock()

        self.assertIsNone(util.wait_for(lookup, RetryPolicy(4, 0.5), between=between, sleep=sleep))
        self.assertEqual(lookup.call_count, 4)
        # nothing is waited for after the last attempt
        self.assertEqual(between.call_count, 3)
        self.assertEqual(sleep.call_count, 3)

    def test_zero_interval(self):
        sleep = Mock()
        util.wait_for(Mock(return_value=None), RetryPolicy(3, 0), sleep=sleep)
        sleep.assert_not_called()

    def test_default_policy(self):
        self.assertEqual(RetryPolicy(), (30, 0.1))
        self.assertEqual(RetryPolicy(attempts=5).interval, 0.1)


class MiscUtilTestCase(unittest.TestCase):

    def test_dedup_list(self):
        self.assertEqual(util.dedup_list(["/dev/sdc", "/dev/sdb", "/dev/sdc"]), ["/dev/sdc", "/dev/sdb"])
        self.assertEqual(util.dedup_list([]), [])

    def test_resolve_path(self):
        self.assertEqual(util.resolve_path(""), "")
        self.assertIsNone(util.resolve_path(None))

    @patch("fastslice.util.subprocess.Popen")
    def test_run_program(self, popen):
        proc = popen.return_value
        proc.communicate.return_value = (b"[   0]:0x1\n", b"")
        proc.returncode = 0

        rc, out = util.run_program_and_capture_output(["nvme", "list-ns", "/dev/nvme0"])
        self.assertEqual(rc, 0)
        self.assertEqual(out, "[   0]:0x1\n")
        self.assertEqual(popen.call_args[1]["env"]["LC_ALL"], "C")

        util.run_program(["sfdisk", "--append", "/dev/sdb"], stdin_data=",2048,L\n")
        proc.communicate.assert_called_with(input=b",2048,L\n")


class LoggingTestCase(unittest.TestCase):

    def setUp(self):
        self.log_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.log_dir)

        loggers = [logging.getLogger(name) for name in ("fastslice", "program", "py.warnings")]
        saved = [(l, l.level, list(l.handlers)) for l in loggers]

        def restore():
            for logger, level, handlers in saved:
                for handler in logger.handlers:
                    if handler not in handlers:
                        handler.close()
                logger.handlers = handlers
                logger.setLevel(level)
        self.addCleanup(restore)

    def test_set_up_logging(self):
        util.set_up_logging(log_dir=self.log_dir, log_prefix="test")
        util.program_log.info("Running... nvme list-ns /dev/nvme0")

        with open(os.path.join(self.log_dir, "test.log")) as f:
            self.assertIn("Running... nvme list-ns /dev/nvme0", f.read())
