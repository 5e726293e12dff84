#
# nvme.py
# nvme-cli wrappers and output parsers
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

import re

from ..errors import CommandError, CreationError, ParseError
from ..tasks import availability
from ..util import default_namedtuple
from .. import util

import logging
log = logging.getLogger("fastslice")

# "[   0]:0x1" as printed by list-ns and list-ctrl since nvme-cli 2.x
re_id_entry = re.compile(r'^\s*\[\s*\d+\s*\]\s*:\s*(\S+)\s*$')
re_created_nsid = re.compile(r'nsid[\s:=]+(0x[0-9a-fA-F]+|\d+)', re.IGNORECASE)
re_field = re.compile(r'^\s*(\w+)\s*:\s*(.*?)\s*$')
re_namespace_node = re.compile(r'^(/dev/nvme\d+)n\d+$')

PRIVATE_NAMESPACE_MSG = "namespace is private"

NamespaceDescriptors = default_namedtuple("NamespaceDescriptors", ["nguid", "eui64", "uuid"],
                                          doc="Unique identifiers reported by ns-descs.")


def _parse_number(value, raw=None):
    value = value.strip()
    try:
        if value.lower().startswith("0x"):
            return int(value, 16)
        return int(value)
    except ValueError:
        raise ParseError("invalid numeric value '%s'" % value, raw=raw)


def parse_id_list(raw):
    """ Parse the identifier list printed by ``nvme list-ns``/``list-ctrl``.

        :param str raw: the tool output
        :returns: identifiers in the order the tool printed them
        :rtype: list of int
        :raises ParseError: if an entry holds something other than a
                            hex or decimal number

        >>> parse_id_list("[   0]:0x1\\n[   1]:0x3\\n")
        [1, 3]
    """
    ids = []
    for line in raw.splitlines():
        match = re_id_entry.match(line)
        if not match:
            continue
        ids.append(_parse_number(match.group(1), raw=raw))
    return ids


def parse_created_nsid(raw):
    """ Return the nsid reported by ``nvme create-ns``, or None. """
    match = re_created_nsid.search(raw or "")
    if not match:
        return None
    return _parse_number(match.group(1), raw=raw)


def _parse_fields(raw):
    fields = {}
    for line in raw.splitlines():
        match = re_field.match(line)
        if match and match.group(1).lower() not in fields:
            fields[match.group(1).lower()] = match.group(2)
    return fields


def parse_tnvmcap(raw):
    """ Total NVM capacity in bytes from ``nvme id-ctrl -H`` output. """
    fields = _parse_fields(raw)
    if "tnvmcap" not in fields:
        raise ParseError("no tnvmcap field in id-ctrl output", raw=raw)

    # some nvme-cli versions group the digits with commas
    digits = re.sub(r'[^0-9]', '', fields["tnvmcap"])
    if not digits:
        raise ParseError("invalid tnvmcap value '%s'" % fields["tnvmcap"], raw=raw)
    return int(digits)


def parse_ncap(raw):
    """ Namespace capacity in logical blocks from ``nvme id-ns`` output. """
    fields = _parse_fields(raw)
    if "ncap" not in fields:
        raise ParseError("no ncap field in id-ns output", raw=raw)
    return _parse_number(fields["ncap"], raw=raw)


def parse_ns_descs(raw):
    """ Unique namespace identifiers from ``nvme ns-descs`` output.

        Identifiers that are absent or all zeros are reported as None.
    """
    fields = _parse_fields(raw)
    values = {}
    for name in NamespaceDescriptors._fields:
        value = fields.get(name)
        if value and value.strip("0-"):
            values[name] = value
    return NamespaceDescriptors(**values)


def controller_for(path):
    """ Return the controller node owning a namespace node.

        /dev/nvme0n3 -> /dev/nvme0; anything else is returned unchanged.
    """
    match = re_namespace_node.match(path)
    if match:
        return match.group(1)
    return path


def namespace_node(ctrl, nsid):
    return "%sn%d" % (ctrl, nsid)


def _nvme(args, stderr_to_stdout=True):
    return util.run_program_and_capture_output([availability.NVME_APP.name] + args,
                                               stderr_to_stdout=stderr_to_stdout)


def is_controller(path):
    """ Whether path answers an Identify Controller command. """
    if not availability.NVME_APP.available:
        return False
    return util.run_program([availability.NVME_APP.name, "id-ctrl", path]) == 0


def list_namespace_ids(ctrl):
    rc, out = _nvme(["list-ns", ctrl], stderr_to_stdout=False)
    if rc:
        raise CommandError("failed to list namespaces on %s" % ctrl, output=out)
    return parse_id_list(out)


def list_controller_ids(ctrl):
    """ Controller identities exposed by ctrl; [] if they cannot be listed. """
    rc, out = _nvme(["list-ctrl", ctrl], stderr_to_stdout=False)
    if rc:
        log.debug("list-ctrl failed on %s, assuming a single controller", ctrl)
        return []
    return parse_id_list(out)


def total_capacity(ctrl):
    """ Total NVM capacity of ctrl in bytes; 0 if unknown. """
    rc, out = _nvme(["id-ctrl", "-H", ctrl], stderr_to_stdout=False)
    if rc:
        return 0
    try:
        return parse_tnvmcap(out)
    except ParseError as e:
        log.warning("cannot read total capacity of %s: %s", ctrl, e)
        return 0


def namespace_blocks(ctrl, nsid):
    """ Allocated capacity of a namespace in logical blocks, or None. """
    rc, out = _nvme(["id-ns", namespace_node(ctrl, nsid)], stderr_to_stdout=False)
    if rc:
        return None
    try:
        return parse_ncap(out)
    except ParseError:
        return None


def create_namespace(ctrl, blocks, block_size, shared=False):
    """ Create a namespace and return its nsid if the tool reported one.

        :raises CreationError: if nvme create-ns fails
    """
    args = ["create-ns", ctrl, "--nsze=%d" % blocks, "--ncap=%d" % blocks,
            "--block-size=%d" % block_size]
    if shared:
        args.append("--nmic=1")

    rc, out = _nvme(args)
    if rc:
        raise CreationError("nvme create-ns on %s failed with status %d" % (ctrl, rc), output=out)
    return parse_created_nsid(out)


def attach_namespace(ctrl, nsid, controller_id=None):
    """ Attach nsid; returns (rc, output) so callers can judge failures. """
    args = ["attach-ns", ctrl, "-n", str(nsid)]
    if controller_id is not None:
        args.append("--controllers=%d" % controller_id)
    return _nvme(args)


def is_private_attach_error(output):
    return PRIVATE_NAMESPACE_MSG in (output or "").lower()


def detach_namespace(ctrl, nsid):
    return _nvme(["detach-ns", ctrl, "-n", str(nsid)])[0]


def delete_namespace(ctrl, nsid):
    rc, out = _nvme(["delete-ns", ctrl, "-n", str(nsid)])
    if rc:
        raise CommandError("nvme delete-ns %d on %s failed" % (nsid, ctrl), output=out)


def namespace_descriptors(ctrl, nsid):
    rc, out = _nvme(["ns-descs", ctrl, "-n", str(nsid)], stderr_to_stdout=False)
    if rc:
        return NamespaceDescriptors()
    return parse_ns_descs(out)
