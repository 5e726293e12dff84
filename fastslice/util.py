# util.py
# Helpers for running external programs, polling and logging.
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

import os
import subprocess
import sys
import time
from collections import namedtuple

import logging
log = logging.getLogger("fastslice")
program_log = logging.getLogger("program")
console_log = logging.getLogger("fastslice.console")


def _run_program(argv, stdin_data=None, env_prune=None, stderr_to_stdout=False):
    if env_prune is None:
        env_prune = []

    program_log.info("Running... %s", " ".join(argv))

    env = os.environ.copy()
    env.update({"LC_ALL": "C"})
    for var in env_prune:
        env.pop(var, None)

    if stderr_to_stdout:
        stderr_dir = subprocess.STDOUT
    else:
        stderr_dir = subprocess.PIPE
    try:
        proc = subprocess.Popen(argv,
                                stdin=subprocess.PIPE if stdin_data is not None else None,
                                stdout=subprocess.PIPE,
                                stderr=stderr_dir,
                                close_fds=True,
                                env=env)

        out, err = proc.communicate(input=stdin_data.encode("utf-8") if stdin_data is not None else None)
        out = out.decode("utf-8", errors="replace")
        if out:
            if not stderr_to_stdout:
                program_log.info("stdout:")
            for line in out.splitlines():
                program_log.info("%s", line)

        if not stderr_to_stdout and err:
            program_log.info("stderr:")
            for line in err.decode("utf-8", errors="replace").splitlines():
                program_log.info("%s", line)

    except OSError as e:
        program_log.error("Error running %s: %s", argv[0], e.strerror)
        raise

    program_log.debug("Return code: %d", proc.returncode)

    return (proc.returncode, out)


def run_program(*args, **kwargs):
    return _run_program(*args, **kwargs)[0]


def run_program_and_capture_output(*args, **kwargs):
    return _run_program(*args, **kwargs)


def makedirs(path):
    if not os.path.isdir(path):
        os.makedirs(path, 0o755)


def resolve_path(path):
    """ Return the canonical device node for path, following symlinks.

        Like ``readlink -f``: a path that cannot be resolved is returned
        unchanged.
    """
    if not path:
        return path
    try:
        return os.path.realpath(path)
    except OSError:
        return path


def dedup_list(alist):
    """Deduplicates the given list by removing duplicates while preserving the order"""
    seen = set()
    ret = []
    for item in alist:
        if item not in seen:
            ret.append(item)
        seen.add(item)
    return ret


def default_namedtuple(name, fields, doc=""):
    """Create a namedtuple class

    The difference between a namedtuple class and this class is that default
    values may be specified for fields and fields with missing values on
    initialization being initialized to None.

    :param str name: name of the new class
    :param fields: field descriptions - an iterable of either "name" or ("name", default_value)
    :type fields: list of str or (str, object) objects
    :param str doc: the docstring for the new class (should at least describe the meanings and
                    types of fields)
    :returns: a new default namedtuple class
    :rtype: type

    """
    field_names = list()
    for field in fields:
        if isinstance(field, tuple):
            field_names.append(field[0])
        else:
            field_names.append(field)
    nt = namedtuple(name, field_names)

    class TheDefaultNamedTuple(nt):
        if doc:
            __doc__ = doc

        def __new__(cls, *args, **kwargs):
            args_list = list(args)
            sorted_kwargs = sorted(kwargs.keys(), key=field_names.index)
            for i in range(len(args), len(field_names)):
                if field_names[i] in sorted_kwargs:
                    args_list.append(kwargs[field_names[i]])
                elif isinstance(fields[i], tuple):
                    args_list.append(fields[i][1])
                else:
                    args_list.append(None)

            return nt.__new__(cls, *args_list)

    TheDefaultNamedTuple.__name__ = name
    return TheDefaultNamedTuple


RetryPolicy = default_namedtuple("RetryPolicy", [("attempts", 30), ("interval", 0.1)],
                                 doc="""How often and how fast a bounded poll is retried.

                                        :param int attempts: maximum number of attempts
                                        :param float interval: seconds slept between attempts
                                     """)


def wait_for(func, policy, between=None, sleep=time.sleep):
    """ Call func until it returns something truthy or the policy runs out.

        :param func: callable taking no arguments
        :param policy: the retry policy
        :type policy: :class:`RetryPolicy`
        :param between: optional callable run after every failed attempt
                        (e.g. waiting for udev to settle)
        :param sleep: function used to block between attempts
        :returns: the first truthy value returned by func, or None

        This blocks the calling thread; there are no background tasks.
    """
    for attempt in range(1, policy.attempts + 1):
        result = func()
        if result:
            log.debug("wait_for: %s succeeded after %d attempt(s)",
                      getattr(func, "__name__", "func"), attempt)
            return result

        if attempt == policy.attempts:
            break

        if between is not None:
            between()
        if policy.interval:
            sleep(policy.interval)

    log.debug("wait_for: %s gave up after %d attempt(s)",
              getattr(func, "__name__", "func"), policy.attempts)
    return None


##
# Convenience functions for the command line interface and tests
##


def set_up_logging(log_dir="/tmp", log_prefix="fastslice", console_logs=None):
    """ Configure the fastslice logger to write out a log file.

        :keyword str log_dir: path to directory where log files are
        :keyword str log_prefix: prefix for log file names
        :keyword list console_logs: list of log names to output on the console
    """
    log.setLevel(logging.DEBUG)
    program_log.setLevel(logging.DEBUG)

    def make_handler(path, prefix, level):
        log_file = "%s/%s.log" % (path, prefix)
        log_file = os.path.realpath(log_file)
        handler = logging.FileHandler(log_file)
        handler.setLevel(level)
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        return handler

    handler = make_handler(log_dir, log_prefix, logging.DEBUG)
    log.addHandler(handler)
    program_log.addHandler(handler)

    # capture python warnings in our logs
    warning_log = logging.getLogger("py.warnings")
    warning_log.addHandler(handler)

    if console_logs:
        set_up_console_log(log_names=console_logs)

    log.info("sys.argv = %s", sys.argv)


def set_up_console_log(log_names=None, level=logging.INFO):
    log_names = log_names or []
    handler = logging.StreamHandler()
    console_log.setLevel(logging.DEBUG)
    handler.setLevel(level)
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    console_log.addHandler(handler)
    for name in log_names:
        logging.getLogger(name).addHandler(handler)
