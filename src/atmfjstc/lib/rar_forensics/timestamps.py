"""
Decoders for the timestamp formats found in RAR archives.

All decoders return an `ISOTimestamp` on success. If the raw value does not correspond to a representable calendar
time (e.g. a DOS time with month 13, or a FILETIME past the year 9999), the raw integer is returned instead, so the
caller can still inspect it. No decoder raises for bad values.

DOS timestamps are stored in the local time of the archiving machine, so they are returned as *naive* timestamps.
UNIX and Windows FILETIME timestamps are returned as *aware* timestamps referenced to UTC.
"""

from datetime import datetime, timedelta
from typing import Union

from atmfjstc.lib.iso_timestamp import ISOTimestamp, iso_from_datetime, iso_from_unix_time_nanos, \
    iso_timestamp_split


RarTimestamp = Union[ISOTimestamp, int]

WINDOWS_TO_UNIX_EPOCH_NANOS = 11644473600000000000


def parse_dos_time(raw_time: int) -> RarTimestamp:
    """
    Decodes a 32-bit MS-DOS date/time value (date in the high 16 bits, time in the low 16 bits, 2 second resolution).
    """

    date_part = raw_time >> 16
    time_part = raw_time & 0xffff

    try:
        return iso_from_datetime(datetime(
            ((date_part >> 9) & 0x7f) + 1980,
            (date_part >> 5) & 0x0f,
            date_part & 0x1f,
            time_part >> 11,
            (time_part >> 5) & 0x3f,
            (time_part & 0x1f) * 2,
        ))
    except ValueError:
        return raw_time


def parse_windows_filetime(raw_time: int) -> RarTimestamp:
    """
    Decodes a Windows FILETIME, i.e. the number of 100ns intervals since 1601-01-01 00:00:00 UTC.
    """
    try:
        return iso_from_unix_time_nanos(raw_time * 100 - WINDOWS_TO_UNIX_EPOCH_NANOS)
    except (OverflowError, ValueError):
        return raw_time


def parse_unix_time(raw_time: int) -> RarTimestamp:
    try:
        return iso_from_unix_time_nanos(raw_time * 1000000000)
    except (OverflowError, ValueError):
        return raw_time


def parse_unix_time_nanos(raw_time: int) -> RarTimestamp:
    try:
        return iso_from_unix_time_nanos(raw_time)
    except (OverflowError, ValueError):
        return raw_time


def add_to_timestamp(iso_time: ISOTimestamp, seconds: int = 0, nanos: int = 0) -> ISOTimestamp:
    """
    Adds an increment to an ISO timestamp, with nanosecond precision.

    The timestamp keeps its awareness (or lack thereof). The result is canonical.

    Raises:
        OverflowError: If the result would fall outside the range of representable dates.
    """

    base_ts, decimals, tz_part = iso_timestamp_split(iso_time)

    total_nanos = int(f"{decimals[1:10]:0<9}") if decimals != '' else 0
    total_nanos += nanos

    extra_seconds, total_nanos = divmod(total_nanos, 1000000000)

    new_base = datetime.fromisoformat(base_ts) + timedelta(seconds=seconds + extra_seconds)

    return ISOTimestamp(
        new_base.isoformat(sep=' ', timespec='seconds') + f".{total_nanos:09}".rstrip('0.') + tz_part
    )
