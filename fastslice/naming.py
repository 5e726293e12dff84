# naming.py
# Persistent, label based names for provisioned slices.
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

"""
Every provisioned slice gets a symlink ``<link_root>/<label>`` for the
current boot and a udev rule recreating that symlink on later boots. The rule
is keyed on identifiers that survive re-enumeration:

  * partitions: the disk's world wide name plus the GPT partition name
  * whole devices (NVMe namespaces): the world wide name
  * otherwise: any ``/dev/disk/by-id`` alias found in DEVLINKS

A device without any of those only gets the symlink and a
:class:`~.errors.NamingWarning`.
"""

import os
import re

from .errors import NamingWarning, Notices
from .flags import flags
from .util import default_namedtuple
from . import udev
from . import util

import logging
log = logging.getLogger("fastslice")

re_concrete_node = re.compile(r'^/dev/(nvme\d+n\d+(p\d+)?|[sv]d[a-z]+\d*|xvd[a-z]+\d*)$')

NVME_ALIAS_PREFIXES = ("nvme-eui.", "nvme-ns-")

PersistentLink = default_namedtuple("PersistentLink", ["label", "link_path", "target", ("rule", None)],
                                    doc="""A label bound to a device.

                                           :param str label: the label, e.g. osd3-db
                                           :param str link_path: the symlink carrying the label
                                           :param str target: what the symlink points to
                                           :param rule: the udev rule line, None if not persisted
                                        """)


def is_concrete_node(path):
    return re_concrete_node.match(path or "") is not None


class LinkManager(object):

    """ Creates label symlinks and the udev rules that keep them. """

    def __init__(self, link_root=None, rule_file=None, by_id_root=None, notices=None):
        self.link_root = link_root or flags.link_root
        self.rule_file = rule_file or flags.udev_rule_file
        self.by_id_root = by_id_root or flags.by_id_root
        self.notices = notices if notices is not None else Notices()

    @property
    def symlink_dir(self):
        """ link_root relative to /dev, as udev's SYMLINK wants it. """
        if self.link_root.startswith("/dev/"):
            return self.link_root[len("/dev/"):].rstrip("/")
        return "disk/%s" % os.path.basename(self.link_root.rstrip("/"))

    def by_id_aliases(self, real):
        """ Names in by_id_root resolving to real, sorted. """
        if not os.path.isdir(self.by_id_root):
            return []

        aliases = []
        for name in sorted(os.listdir(self.by_id_root)):
            if util.resolve_path(os.path.join(self.by_id_root, name)) == real:
                aliases.append(name)
        return aliases

    def link_target_for(self, path):
        """ What the label symlink for path should point to.

            Concrete device nodes are used as they are; anything else is
            replaced by a by-id alias, NVMe namespace aliases first.
        """
        real = util.resolve_path(path)
        if is_concrete_node(real):
            return real

        aliases = self.by_id_aliases(real)
        for alias in aliases:
            if alias.startswith(NVME_ALIAS_PREFIXES):
                return os.path.join(self.by_id_root, alias)
        if aliases:
            return os.path.join(self.by_id_root, aliases[-1])
        return real

    def _stable_alias(self, info, real):
        by_id = self.by_id_root.rstrip("/") + "/"
        for link in udev.device_get_symlinks(info):
            if link.startswith(by_id):
                return os.path.basename(link)

        aliases = self.by_id_aliases(real)
        return aliases[0] if aliases else None

    def rule_for(self, label, info, alias=None):
        """ Return the udev rule binding label to the device described by info.

            :param str label: the label
            :param dict info: udev properties of the device
            :param alias: a by-id name to fall back to
            :returns: the rule line or None if nothing stable is known
        """
        symlink = 'SYMLINK+="%s/%s"' % (self.symlink_dir, label)
        devtype = udev.device_get_devtype(info)
        wwn = udev.device_get_wwn(info)
        part_name = udev.device_get_part_name(info)

        if devtype == "partition" and wwn and part_name:
            return ('SUBSYSTEM=="block", ENV{DEVTYPE}=="partition", ENV{ID_WWN}=="%s", '
                    'ENV{ID_PART_ENTRY_NAME}=="%s", %s' % (wwn, part_name, symlink))
        if devtype == "disk" and wwn:
            return 'SUBSYSTEM=="block", ENV{DEVTYPE}=="disk", ENV{ID_WWN}=="%s", %s' % (wwn, symlink)
        if alias:
            return 'SUBSYSTEM=="block", ENV{DEVLINKS}=="*%s*", %s' % (alias, symlink)
        return None

    def _rule_present(self, rule):
        if not os.path.exists(self.rule_file):
            return False
        with open(self.rule_file) as f:
            return any(line.strip() == rule for line in f)

    def ensure_rule(self, label, target):
        """ Persist label for target in the rule file.

            An identical rule already in the file is left alone.

            :returns: the rule, or None if the device has no stable identifier
        """
        real = util.resolve_path(target)
        info = udev.get_device(device_node=real)
        if info is None:
            self.notices.add(NamingWarning("no udev information for %s; %s will not persist across reboots" %
                                           (real, label)))
            return None

        rule = self.rule_for(label, info, alias=self._stable_alias(info, real))
        if rule is None:
            self.notices.add(NamingWarning("no stable identifier for %s; %s will not persist across reboots" %
                                           (real, label)))
            return None

        if self._rule_present(rule):
            log.debug("udev rule for %s already present", label)
            return rule

        util.makedirs(os.path.dirname(self.rule_file))
        with open(self.rule_file, "a") as f:
            f.write(rule + "\n")
        log.info("installed udev rule for label %s -> %s", label, real)

        udev.reload_rules()
        return rule

    def ensure_link(self, label, path):
        """ Point <link_root>/<label> at path and persist it.

            An existing link for label is replaced in place.

            :rtype: :class:`PersistentLink`
        """
        target = self.link_target_for(path)
        link_path = os.path.join(self.link_root, label)

        util.makedirs(self.link_root)
        tmp_path = "%s.tmp-%d" % (link_path, os.getpid())
        if os.path.lexists(tmp_path):
            os.unlink(tmp_path)
        os.symlink(target, tmp_path)
        os.replace(tmp_path, link_path)
        log.info("link %s -> %s", link_path, target)

        rule = self.ensure_rule(label, target)
        return PersistentLink(label=label, link_path=link_path, target=target, rule=rule)

    def links(self, pattern=None):
        """ label -> link path for every label symlink under link_root. """
        if not os.path.isdir(self.link_root):
            return {}

        found = {}
        for name in sorted(os.listdir(self.link_root)):
            path = os.path.join(self.link_root, name)
            if not os.path.islink(path):
                continue
            if pattern is not None and not pattern.match(name):
                continue
            found[name] = path
        return found
