# udev.py
# Python module for querying the udev database for device information.
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
import pyudev

from . import util
from .tasks import availability

log = logging.getLogger("fastslice")

_global_udev = None


def global_udev():
    """ The shared udev context, created on first use. """
    global _global_udev  # pylint: disable=global-statement
    if _global_udev is None:
        _global_udev = pyudev.Context()
    return _global_udev


def device_to_dict(device):
    # Transform Device to dictionary; only the properties are used
    result = dict(device.properties)
    result["SYS_NAME"] = device.sys_name
    result["SYS_PATH"] = device.sys_path
    return result


def get_device(device_node=None, sysfs_path=None):
    """ Return the udev properties of a device as a dict, or None. """
    try:
        if sysfs_path is not None:
            device = pyudev.Devices.from_sys_path(global_udev(), sysfs_path)
        else:
            device = pyudev.Devices.from_device_file(global_udev(), device_node)
    except (pyudev.DeviceNotFoundError, ValueError, OSError) as e:
        log.error("udev lookup of %s failed: %s", device_node or sysfs_path, e)
        return None

    return device_to_dict(device)


def settle(timeout=300):
    """ Wait for the udev queue to settle.

        :keyword int timeout: seconds udevadm waits at most
    """
    if not availability.UDEVADM_APP.available:
        log.debug("udevadm not available, not waiting for udev")
        return
    util.run_program([availability.UDEVADM_APP.name, "settle", "--timeout=%d" % timeout])


def trigger(subsystem=None, action="change", name=None):
    argv = ["trigger", "--action=%s" % action]
    if subsystem:
        argv.append("--subsystem-match=%s" % subsystem)
    if name:
        argv.append("--sysname-match=%s" % name)

    util.run_program([availability.UDEVADM_APP.name] + argv)
    settle()


def reload_rules():
    rc = util.run_program([availability.UDEVADM_APP.name, "control", "--reload"])
    if rc:
        log.warning("reloading udev rules failed (%d)", rc)

# These are functions for retrieving specific pieces of information from
# udev database entries.


def device_get_devtype(udev_info):
    """ "disk" or "partition" """
    return udev_info.get("DEVTYPE")


def device_get_wwn(udev_info):
    """ Return the world wide name as reported by udev. """
    return udev_info.get("ID_WWN")


def device_get_part_name(udev_info):
    """ Return the GPT partition name. """
    return udev_info.get("ID_PART_ENTRY_NAME")


def device_get_part_number(udev_info):
    number = udev_info.get("ID_PART_ENTRY_NUMBER")
    if number is None:
        return None
    try:
        return int(number)
    except ValueError:
        return None


def device_get_symlinks(udev_info):
    """ Get the device's udev symlinks.

        :returns: list of symbolic links
    """
    return udev_info.get("DEVLINKS", "").split()
