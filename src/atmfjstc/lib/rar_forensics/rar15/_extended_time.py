"""
Decoder for the "extended time" structure of RAR 1.5 - 4.x file and service headers.

The base modification time of an entry is a DOS timestamp, with 2 second resolution. The extended time structure
refines it, and adds the creation, access and archival times. It starts with a 16-bit word holding one 4-bit field per
timestamp (modification, creation, access and archival time, from the highest nibble to the lowest). In each field:

- Bit 3 marks that the timestamp is present
- Bit 2 requests that one second be added to the base time
- Bits 0-1 give the number of bytes (0-3) of the sub-second increment that follows

For each present timestamp except the modification time, a 32-bit DOS base time follows, and then, for each present
timestamp, the sub-second increment, in units of 100ns, scaled so that it always has 3 bytes of precision.
"""

from typing import NamedTuple, Optional

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader

from ..timestamps import RarTimestamp, parse_dos_time, add_to_timestamp


class ExtendedTimes(NamedTuple):
    modification_time: RarTimestamp
    creation_time: Optional[RarTimestamp]
    access_time: Optional[RarTimestamp]
    archive_time: Optional[RarTimestamp]


EXT_TIME_PRESENT = 0x8
EXT_TIME_ADD_SECOND = 0x4
EXT_TIME_PRECISION_MASK = 0x3

MAX_INCREMENT_BYTES = 3


def read_extended_times(reader: BinaryReader, modification_time: RarTimestamp) -> ExtendedTimes:
    all_flags = reader.read_fixed_size_int(2, 'extended time flags')

    times = []

    for index in range(4):
        flags = (all_flags >> ((3 - index) * 4)) & 0xf

        if not (flags & EXT_TIME_PRESENT):
            times.append(modification_time if index == 0 else None)
            continue

        if index == 0:
            base_time = modification_time
        else:
            base_time = parse_dos_time(reader.read_fixed_size_int(4, 'extended base time'))

        # Consumed even if the base time is invalid, the following fields come after it
        hundred_nanos = read_time_increment(reader, flags & EXT_TIME_PRECISION_MASK)

        times.append(_apply_increment(base_time, bool(flags & EXT_TIME_ADD_SECOND), hundred_nanos))

    return ExtendedTimes(*times)


def extended_times_size(all_flags: int) -> int:
    """
    Computes the total size, in bytes, of an extended time structure starting with the given flags word.
    """

    size = 2

    for index in range(4):
        flags = (all_flags >> ((3 - index) * 4)) & 0xf

        if flags & EXT_TIME_PRESENT:
            size += (0 if index == 0 else 4) + (flags & EXT_TIME_PRECISION_MASK)

    return size


def read_time_increment(reader: BinaryReader, n_bytes: int) -> int:
    """
    Reads a sub-second time increment stored in `n_bytes` (0-3) bytes, returning it in units of 100ns.
    """
    raw_value = int.from_bytes(reader.read_amount(n_bytes, 'time increment'), byteorder='little')

    return raw_value << ((MAX_INCREMENT_BYTES - n_bytes) * 8)


def _apply_increment(base_time: RarTimestamp, add_second: bool, hundred_nanos: int) -> RarTimestamp:
    if not isinstance(base_time, str):
        return base_time

    try:
        return add_to_timestamp(base_time, seconds=1 if add_second else 0, nanos=hundred_nanos * 100)
    except OverflowError:
        return base_time
