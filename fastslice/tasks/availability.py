# availability.py
# Class for tracking availability of an external resource.
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

import abc
import shutil

from ..errors import DependencyError

import logging
log = logging.getLogger("fastslice")

CACHE_AVAILABILITY = True


class ExternalResource(object):

    """ An external resource. """

    def __init__(self, method, name, purpose=""):
        """ Initializes an instance of an external resource.

            :param method: A method object
            :type method: :class:`Method`
            :param str name: the name of the external resource
            :param str purpose: what the resource is needed for
        """
        self._method = method
        self.name = name
        self.purpose = purpose
        self._availability_errors = None

    def __str__(self):
        return self.name

    @property
    def availability_errors(self):
        """ Whether the resource has any availability errors.

            :returns: [] if the resource is available
            :rtype: list of str
        """
        if CACHE_AVAILABILITY and self._availability_errors is not None:
            return self._availability_errors[:]

        _errors = self._method.availability_errors(self)
        if CACHE_AVAILABILITY:
            self._availability_errors = _errors[:]

        return _errors

    @property
    def available(self):
        """ Whether the resource is available.

            :returns: True if the resource is available
            :rtype: bool
        """
        return self.availability_errors == []

    def reset(self):
        self._availability_errors = None


class Method(object, metaclass=abc.ABCMeta):

    """ Method for determining if external resource is available."""

    @abc.abstractmethod
    def availability_errors(self, resource):
        """ Returns [] if the resource is available.

            :param resource: any external resource
            :type resource: :class:`ExternalResource`

            :returns: [] if the external resource is available
            :rtype: list of str
        """
        raise NotImplementedError()


class Path(Method):

    """ Methods for when application is found in  PATH. """

    def availability_errors(self, resource):
        if not shutil.which(resource.name):
            return ["application %s is not in $PATH" % resource.name]
        else:
            return []


Path = Path()


def application(name, purpose=""):
    """ Construct an external resource that is an application.

        This application will be available if its name is in $PATH.

        :param str name: the name of the application
        :param str purpose: what it is used for, reported when it is missing
        :returns: a fresh external resource
        :rtype: :class:`ExternalResource`
    """
    return ExternalResource(Path, name, purpose)


def require(*resources):
    """ Raise DependencyError unless every resource is available.

        All missing resources are reported together.
    """
    missing = []
    for resource in resources:
        for err in resource.availability_errors:
            if resource.purpose:
                err = "%s (needed to %s)" % (err, resource.purpose)
            missing.append(err)

    if missing:
        raise DependencyError("missing required external tools: %s" % "; ".join(missing))


def first_available(*resources):
    """ Return the first available resource, or None. """
    for resource in resources:
        if resource.available:
            return resource
    return None


# applications
NVME_APP = application("nvme", "manage NVMe namespaces")
LSBLK_APP = application("lsblk", "inspect block devices")
SGDISK_APP = application("sgdisk", "create GPT partitions")
SFDISK_APP = application("sfdisk", "create partitions")
PARTPROBE_APP = application("partprobe", "re-read partition tables")
UDEVADM_APP = application("udevadm", "settle and reload udev")
MICROCEPH_APP = application("microceph", "list and add cluster disks")
