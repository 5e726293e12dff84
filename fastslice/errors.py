# errors.py
# Exception and warning classes for fastslice.
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

import logging
log = logging.getLogger("fastslice")


class StorageError(Exception):

    def __init__(self, *args, **kwargs):
        self.hardware_fault = kwargs.pop("hardware_fault", False)
        super(StorageError, self).__init__(*args, **kwargs)

# preconditions


class PreconditionError(StorageError):

    """ Raised before any device is touched. Safe to retry. """


class SizingError(PreconditionError, ValueError):
    pass


class DependencyError(PreconditionError):
    """Raised when an external dependency is missing or not available"""

# external tools


class CommandError(StorageError):

    """ An external tool exited with a non-zero status. """

    def __init__(self, message, output=None):
        super(CommandError, self).__init__(message)
        self.output = output

    def __str__(self):
        msg = super(CommandError, self).__str__()
        if self.output:
            msg = "%s\n%s" % (msg, self.output.rstrip())
        return msg


class CreationError(CommandError):

    """ An external tool reported failure while changing a device. """


class TrackingError(StorageError):

    """ Hardware state changed but the result could not be located.

        The namespace or partition may already exist; it has to be found
        or cleaned up by hand before re-running.
    """
    manual_intervention = True

# parsing


class ParseError(StorageError, ValueError):

    def __init__(self, message, raw=None):
        super(ParseError, self).__init__(message)
        self.raw = raw

# plans


class PlanError(StorageError):
    pass

# non-fatal conditions, collected rather than raised


class ProvisioningWarning(UserWarning):

    def __init__(self, message, items=None):
        super(ProvisioningWarning, self).__init__(message)
        self.message = message
        self.items = list(items or [])

    def __str__(self):
        if self.items:
            return "%s: %s" % (self.message, ", ".join(str(i) for i in self.items))
        return self.message


class AttachWarning(ProvisioningWarning):
    pass


class NamingWarning(ProvisioningWarning):
    pass


class PlanMismatchWarning(ProvisioningWarning):
    pass


class CapacityWarning(ProvisioningWarning):
    pass


class Notices(object):

    """ Accumulator for non-fatal conditions met during one operation.

        Every notice is logged when it is added and kept for the final
        summary.
    """

    def __init__(self):
        self._notices = []

    def add(self, notice):
        log.warning("%s", notice)
        self._notices.append(notice)
        return notice

    def extend(self, notices):
        # already logged by the collector they came from
        self._notices.extend(notices)

    def of_type(self, notice_class):
        return [n for n in self._notices if isinstance(n, notice_class)]

    def __iter__(self):
        return iter(self._notices)

    def __len__(self):
        return len(self._notices)

    def __bool__(self):
        return bool(self._notices)
