"""
Enums shared by the RAR format generations.

Decoders return the enum member when a value is recognized, and the raw int otherwise, so that no information is lost
for values introduced by later versions of the format.
"""

from enum import IntEnum, IntFlag
from typing import Set, Union, TypeVar, Type


class RarHostOS(IntEnum):
    """Host OS codes used by RAR 1.5 - 4.x archives"""
    DOS = 0
    OS2 = 1
    WINDOWS = 2
    UNIX = 3
    MACOS = 4
    BEOS = 5


class Rar50HostOS(IntEnum):
    """Host OS codes used by RAR 5.0 archives"""
    WINDOWS = 0
    UNIX = 1


WIN_COMPATIBLE_RAR_OSES: Set[RarHostOS] = {RarHostOS.DOS, RarHostOS.OS2, RarHostOS.WINDOWS}
"""Operating systems for which the RAR file attributes are in DOS/Windows-compatible format"""

POSIX_COMPATIBLE_RAR_OSES: Set[RarHostOS] = {RarHostOS.UNIX, RarHostOS.MACOS, RarHostOS.BEOS}
"""Operating systems for which the RAR file attributes are in POSIX-compatible format"""


def is_windows_compatible_rar_os(host_os: Union[RarHostOS, int]) -> bool:
    return host_os in WIN_COMPATIBLE_RAR_OSES


def is_posix_compatible_rar_os(host_os: Union[RarHostOS, int]) -> bool:
    return host_os in POSIX_COMPATIBLE_RAR_OSES


class RarCompressionMethod(IntEnum):
    """Compression methods as stored by RAR 1.5 - 4.x headers"""
    STORE = 48
    M1 = 49
    M2 = 50
    M3 = 51
    M4 = 52
    M5 = 53


class Rar50CompressionMethod(IntEnum):
    STORE = 0
    FASTEST = 1
    FAST = 2
    NORMAL = 3
    GOOD = 4
    BEST = 5


class Rar50CompressionAlgorithm(IntEnum):
    RAR5 = 0
    RAR7 = 1


class RarRedirType(IntEnum):
    UNIX_SYMLINK = 1
    WINDOWS_SYMLINK = 2
    WINDOWS_JUNCTION = 3
    HARDLINK = 4
    FILE_COPY = 5


class RarRedirFlags(IntFlag):
    TARGET_IS_DIRECTORY = 1 << 0


class RarFileVersionFlags(IntFlag):
    CLEAR = 0  # No flags are known to be defined


class RarHashType(IntEnum):
    BLAKE2SP = 0


class RarEncryptionVersion(IntEnum):
    AES256 = 0


T = TypeVar('T')


def as_enum(raw_value: int, enum: Type[T]) -> Union[T, int]:
    try:
        return enum(raw_value)
    except ValueError:
        return raw_value
