# size.py
# Byte sizes and their human readable representation.
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

import bitmath

# all sizes are plain integers in bytes so that capacity arithmetic is exact
KiB = int(bitmath.KiB(1).to_Byte().value)
MiB = int(bitmath.MiB(1).to_Byte().value)
GiB = int(bitmath.GiB(1).to_Byte().value)
TiB = int(bitmath.TiB(1).to_Byte().value)

SECTOR_SIZE = 512


def gib_to_bytes(gib):
    """ Convert a whole number of GiB to bytes.

        :param gib: size in GiB
        :type gib: int or str
        :raises ValueError: if gib is not a non-negative integer
    """
    value = int(gib)
    if value < 0 or str(value) != str(gib).strip():
        raise ValueError("invalid GiB value: %s" % gib)
    return value * GiB


def bytes_to_gib_str(size):
    """ Format size in GiB the way the mapping artifact records it. """
    if size % GiB == 0:
        return str(size // GiB)
    return "%.2f" % (size / GiB)


def parse_size(value):
    """ Parse a size string such as "100GiB" or "6 GiB" into bytes.

        A bare number is taken to be GiB.
    """
    value = str(value).strip()
    try:
        return gib_to_bytes(value)
    except ValueError:
        pass
    try:
        parsed = bitmath.parse_string(value.replace(" ", ""))
    except ValueError:
        raise ValueError("invalid size: %s" % value)
    return int(parsed.to_Byte().value)


def human_readable(size, max_places=2):
    """ Return a string representation of size in binary units.

        Negative sizes (e.g. a projected shortfall) keep their sign.

        >>> human_readable(-3 * GiB)
        '-3.00 GiB'
    """
    sign = "-" if size < 0 else ""
    best = bitmath.Byte(abs(size)).best_prefix(system=bitmath.NIST)
    unit = "B" if best.unit == "Byte" else best.unit
    return "%s%.*f %s" % (sign, max_places, best.value, unit)
