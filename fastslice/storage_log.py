import inspect
import logging
import sys
import traceback

log = logging.getLogger("fastslice")
log.addHandler(logging.NullHandler())


def _caller_name():
    ignored = ("_caller_name", "log_method_call", "log_transition")
    for frame in inspect.stack()[1:]:
        if frame[3] not in ignored:
            return frame[3]
    return "unknown function?"


def log_method_call(d, *args, **kwargs):
    fmt = "%s.%s:"
    fmt_args = [d.__class__.__name__, _caller_name()]

    for arg in args:
        fmt += " %s ;"
        fmt_args.append(arg)

    for k, v in sorted(kwargs.items()):
        fmt += " %s: %s ;"
        fmt_args.extend([k, v])

    log.debug(fmt, *fmt_args)


def log_transition(d, old, new, **details):
    """ Log a state machine step of d from old to new. """
    fmt = "%s %s: %s -> %s"
    fmt_args = [d.__class__.__name__, getattr(d, "name", ""), old, new]
    for k, v in sorted(details.items()):
        fmt += " ; %s: %s"
        fmt_args.extend([k, v])
    log.info(fmt, *fmt_args)


def log_exception_info(log_func=log.debug, fmt_str=None, fmt_args=None):
    """Log detailed exception information.

       :param log_func: the desired logging function
       :param str fmt_str: a format string for any additional message
       :param fmt_args: arguments for the format string
       :type fmt_args: a list of str
    """
    fmt_args = fmt_args or []
    if fmt_str:
        log_func("Problem description: " + fmt_str, *fmt_args)
    log_func("Begin exception details.")
    tb = traceback.format_exception(*sys.exc_info())
    for line in (l.rstrip() for entry in tb for l in entry.split("\n") if l):
        log_func("    %s", line)
    log_func("End exception details.")
