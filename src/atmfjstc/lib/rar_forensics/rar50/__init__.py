"""
Decoder for archives in the RAR 5.0 format (signature ``Rar!\\x1a\\x07\\x01\\x00``).

This format, introduced with RAR 5.0 in 2013, stores nearly all integers as variable-length "vints". Each block
header starts with a CRC32, a vint header size, a vint type and vint flags. Main, file and service headers may end with
an *extra area*: a sequence of self-delimiting, typed records that carry optional metadata (hashes, precise timestamps,
encryption parameters, owner info etc).

Records that are not recognized, or that repeat a type already seen in the same header, are not decoded. Only their
type is kept, in the `unknown_records` field of the block. Non-fatal oddities found while decoding a block are
reported as text in its `warnings` field.
"""

import typing

from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag
from typing import Optional, Tuple, Union, Any

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader
from atmfjstc.lib.ez_repr import EZRepr

from ..blocks import RarBlock, RarBlockIterator
from ..enums import Rar50HostOS, Rar50CompressionAlgorithm, Rar50CompressionMethod, RarRedirType, RarRedirFlags, \
    RarFileVersionFlags, RarHashType, RarEncryptionVersion, as_enum
from ..filenames import RarFilename
from ..timestamps import RarTimestamp


class Rar50BlockType(IntEnum):
    MAIN = 1
    FILE = 2
    SERVICE = 3
    CRYPT = 4
    END_ARCHIVE = 5


class Rar50BlockFlags(IntFlag):
    """Flags common to all block types"""
    EXTRA_AREA = 0x0001
    DATA_AREA = 0x0002
    SKIP_IF_UNKNOWN = 0x0004
    SPLIT_BEFORE = 0x0008
    SPLIT_AFTER = 0x0010
    CHILD = 0x0020
    INHERITED = 0x0040


class Rar50MainFlags(IntFlag):
    VOLUME = 0x0001
    VOLUME_NUMBER = 0x0002
    SOLID = 0x0004
    RECOVERY_RECORD = 0x0008
    LOCKED = 0x0010


class Rar50FileFlags(IntFlag):
    DIRECTORY = 0x0001
    MTIME = 0x0002
    CRC32 = 0x0004
    UNKNOWN_UNPACKED_SIZE = 0x0008


class Rar50EndArchiveFlags(IntFlag):
    NEXT_VOLUME = 0x0001


class Rar50CryptFlags(IntFlag):
    PASSWORD_CHECK = 0x0001


class Rar50FileEncryptionFlags(IntFlag):
    PASSWORD_CHECK = 0x0001
    TWEAKED_CHECKSUMS = 0x0002


class Rar50LocatorFlags(IntFlag):
    QUICK_OPEN = 0x0001
    RECOVERY_RECORD = 0x0002


class Rar50MetadataFlags(IntFlag):
    NAME = 0x0001
    TIME = 0x0002
    UNIX_TIME = 0x0004
    UNIX_TIME_NANOS = 0x0008


class Rar50TimeFlags(IntFlag):
    UNIX_TIME = 0x0001
    MTIME = 0x0002
    CTIME = 0x0004
    ATIME = 0x0008
    UNIX_TIME_NANOS = 0x0010


class Rar50UnixOwnerFlags(IntFlag):
    USER_NAME = 0x0001
    GROUP_NAME = 0x0002
    USER_ID = 0x0004
    GROUP_ID = 0x0008


class Rar50MainRecordType(IntEnum):
    LOCATOR = 1
    METADATA = 2


class Rar50FileRecordType(IntEnum):
    ENCRYPTION = 1
    HASH = 2
    TIME = 3
    VERSION = 4
    REDIRECTION = 5
    UNIX_OWNER = 6
    SERVICE_DATA = 7


class Rar50ServiceType(Enum):
    COMMENT = b'CMT'
    QUICK_OPEN = b'QO'
    NTFS_ACL = b'ACL'
    NTFS_STREAM = b'STM'
    RECOVERY_RECORD = b'RR'


@dataclass(frozen=True, repr=False)
class Rar50ExtraAreaRecord(EZRepr):
    """
    A raw record from the extra area of a block header.
    """
    record_type: int
    data: bytes


@dataclass(frozen=True, repr=False)
class Rar50UnknownRecord(EZRepr):
    record_type: int


@dataclass(frozen=True, repr=False)
class Rar50LocatorRecord(EZRepr):
    """
    Main header record giving the positions of the quick open and recovery record service blocks.

    The offsets are relative to the start of the main header.
    """

    flags: Rar50LocatorFlags
    quick_open_offset: Optional[int] = None
    recovery_record_offset: Optional[int] = None


@dataclass(frozen=True, repr=False)
class Rar50MetadataRecord(EZRepr):
    """
    Main header record holding the original archive name and creation time.
    """

    flags: Rar50MetadataFlags
    archive_name: Optional[RarFilename] = None
    creation_time: Optional[RarTimestamp] = None


@dataclass(frozen=True, repr=False)
class Rar50FileEncryptionRecord(EZRepr):
    """
    File header record describing the encryption of the file data.

    Attributes:
        version: The encryption algorithm, or the raw code if unknown
        flags: The record flags
        kdf_count: The binary logarithm of the number of PBKDF2 iterations
        salt: The 16-byte salt used for key derivation
        iv: The 16-byte AES initialization vector
        check_value: [Optional] The 12-byte value used for quickly verifying the password
    """

    version: Union[RarEncryptionVersion, int]
    flags: Rar50FileEncryptionFlags
    kdf_count: int
    salt: bytes
    iv: bytes
    check_value: Optional[bytes] = None

    @property
    def uses_tweaked_checksums(self) -> bool:
        """Whether checksums are converted to MACs that depend on the password"""
        return bool(self.flags & Rar50FileEncryptionFlags.TWEAKED_CHECKSUMS)


@dataclass(frozen=True, repr=False)
class Rar50HashRecord(EZRepr):
    hash_type: Union[RarHashType, int]
    hash_value: Optional[bytes] = None


@dataclass(frozen=True, repr=False)
class Rar50TimeRecord(EZRepr):
    """
    File header record holding high-precision timestamps.

    Times stored as UNIX timestamps or Windows FILETIMEs are always in UTC.
    """

    flags: Rar50TimeFlags
    modification_time: Optional[RarTimestamp] = None
    creation_time: Optional[RarTimestamp] = None
    access_time: Optional[RarTimestamp] = None


@dataclass(frozen=True, repr=False)
class Rar50VersionRecord(EZRepr):
    flags: RarFileVersionFlags
    version: int


@dataclass(frozen=True, repr=False)
class Rar50RedirectionRecord(EZRepr):
    """
    File header record for links and file copies.
    """

    redirection_type: Union[RarRedirType, int]
    flags: RarRedirFlags
    target: RarFilename


@dataclass(frozen=True, repr=False)
class Rar50UnixOwnerRecord(EZRepr):
    flags: Rar50UnixOwnerFlags
    user_name: Optional[RarFilename] = None
    group_name: Optional[RarFilename] = None
    user_id: Optional[int] = None
    group_id: Optional[int] = None


@dataclass(frozen=True, repr=False)
class Rar50RecoveryRecordInfo(EZRepr):
    """
    The service data of a recovery record service block.

    Attributes:
        percentage: The size of the recovery record, as a percentage of the archive size
        extra_data: The remaining bytes, whose meaning is not documented
    """

    percentage: int
    extra_data: bytes = b''


MIN_DICTIONARY_SIZE = 0x20000
MAX_DICTIONARY_SIZE = 0x1000000000


@dataclass(frozen=True, repr=False)
class Rar50CompressionInfo(EZRepr):
    """
    Wrapper around the compression information field of file and service headers.
    """

    raw: int

    @property
    def algorithm_version(self) -> Union[Rar50CompressionAlgorithm, int]:
        return as_enum(self.raw & 0x3f, Rar50CompressionAlgorithm)

    @property
    def algorithm(self) -> Union[Rar50CompressionAlgorithm, int]:
        """
        The algorithm actually used for compression. Files marked as RAR7 may still use the RAR5 algorithm.
        """
        version = self.algorithm_version

        if (version == Rar50CompressionAlgorithm.RAR7) and (self.raw & 0x100000):
            return Rar50CompressionAlgorithm.RAR5

        return version

    @property
    def is_solid(self) -> bool:
        return bool(self.raw & 0x40)

    @property
    def method(self) -> Union[Rar50CompressionMethod, int]:
        return as_enum((self.raw & 0x380) >> 7, Rar50CompressionMethod)

    @property
    def min_dictionary_size(self) -> int:
        """
        The minimum dictionary size needed for extraction, in bytes.

        Sizes over `MAX_DICTIONARY_SIZE` are not supported by any extractor; they are returned as computed, and
        `has_valid_dictionary_size` will be False.
        """
        factor = (self.raw & 0x7c00) >> 10

        if self.algorithm_version == Rar50CompressionAlgorithm.RAR7:
            size = MIN_DICTIONARY_SIZE << (factor & 0x1f)
            return size + size // 32 * ((self.raw & 0xf8000) >> 15)

        return MIN_DICTIONARY_SIZE << (factor & 0x0f)

    @property
    def has_valid_dictionary_size(self) -> bool:
        return self.min_dictionary_size <= MAX_DICTIONARY_SIZE

    def _ez_repr_fields(self) -> typing.OrderedDict[str, Any]:
        return OrderedDict([
            ('algorithm', self.algorithm),
            ('is_solid', self.is_solid),
            ('method', self.method),
            ('min_dictionary_size', self.min_dictionary_size),
        ])


@dataclass(frozen=True, repr=False)
class Rar50Block(RarBlock):
    """
    Base class for RAR 5.0 blocks.

    Attributes:
        crc32: The CRC32 of the header. It is not verified.
        block_flags: The flags common to all block types
        extra_area_size: [Optional] The size of the extra area at the end of the header
        data_area_size: [Optional] The size of the data area following the header
    """

    crc32: int
    block_flags: Rar50BlockFlags
    extra_area_size: Optional[int]
    data_area_size: Optional[int]

    @property
    def data_size(self) -> int:
        return self.data_area_size or 0

    @property
    def skip_if_unknown(self) -> bool:
        return bool(self.block_flags & Rar50BlockFlags.SKIP_IF_UNKNOWN)

    @property
    def is_split_before(self) -> bool:
        return bool(self.block_flags & Rar50BlockFlags.SPLIT_BEFORE)

    @property
    def is_split_after(self) -> bool:
        return bool(self.block_flags & Rar50BlockFlags.SPLIT_AFTER)

    @property
    def is_child(self) -> bool:
        return bool(self.block_flags & Rar50BlockFlags.CHILD)

    @property
    def is_inherited(self) -> bool:
        return bool(self.block_flags & Rar50BlockFlags.INHERITED)


@dataclass(frozen=True, repr=False)
class Rar50MainBlock(Rar50Block):
    flags: Rar50MainFlags
    volume_number: Optional[int]
    locator: Optional[Rar50LocatorRecord]
    metadata: Optional[Rar50MetadataRecord]
    unknown_records: Tuple[Rar50UnknownRecord, ...]
    warnings: Tuple[str, ...]

    @property
    def is_volume(self) -> bool:
        return bool(self.flags & Rar50MainFlags.VOLUME)

    @property
    def is_solid(self) -> bool:
        return bool(self.flags & Rar50MainFlags.SOLID)

    @property
    def has_recovery_record(self) -> bool:
        return bool(self.flags & Rar50MainFlags.RECOVERY_RECORD)

    @property
    def is_locked(self) -> bool:
        return bool(self.flags & Rar50MainFlags.LOCKED)


@dataclass(frozen=True, repr=False)
class Rar50EntryBlock(Rar50Block):
    """
    Fields shared by file and service blocks.

    Attributes:
        flags: The file-specific flags
        unpacked_size: The size of the content after decompression, or None if it is not known
        attributes: The file attributes, in Windows or POSIX format depending on the `host_os`
        modification_time: [Optional] The modification time, with 1 second precision
        data_crc32: [Optional] The CRC32 of the uncompressed content
        compression_info: The compression parameters
        host_os: The OS on which the entry was archived, or the raw code if unknown
        encryption: [Optional] The encryption parameters
        hash: [Optional] A hash of the uncompressed content
        time: [Optional] High precision timestamps
        version: [Optional] The file version number
        redirection: [Optional] The target of a link or copy
        unix_owner: [Optional] The owner user and group
    """

    flags: Rar50FileFlags
    unpacked_size: Optional[int]
    attributes: int
    modification_time: Optional[RarTimestamp]
    data_crc32: Optional[int]
    compression_info: Rar50CompressionInfo
    host_os: Union[Rar50HostOS, int]
    encryption: Optional[Rar50FileEncryptionRecord]
    hash: Optional[Rar50HashRecord]
    time: Optional[Rar50TimeRecord]
    version: Optional[Rar50VersionRecord]
    redirection: Optional[Rar50RedirectionRecord]
    unix_owner: Optional[Rar50UnixOwnerRecord]
    unknown_records: Tuple[Rar50UnknownRecord, ...]
    warnings: Tuple[str, ...]

    @property
    def is_directory(self) -> bool:
        return bool(self.flags & Rar50FileFlags.DIRECTORY)

    @property
    def is_encrypted(self) -> bool:
        return self.encryption is not None

    @property
    def effective_modification_time(self) -> Optional[RarTimestamp]:
        """
        The most precise modification time available, from the time record if present, else from the header.
        """
        if (self.time is not None) and (self.time.modification_time is not None):
            return self.time.modification_time

        return self.modification_time


@dataclass(frozen=True, repr=False)
class Rar50FileBlock(Rar50EntryBlock):
    name: RarFilename


@dataclass(frozen=True, repr=False)
class Rar50ServiceBlock(Rar50EntryBlock):
    """
    A service block, holding extra data about the archive or the preceding file entry.

    Attributes:
        service_type: The type of service data, or the raw name if it is not recognized
        recovery_record: [Recovery record blocks only] The recovery record parameters
    """

    service_type: Union[Rar50ServiceType, bytes]
    recovery_record: Optional[Rar50RecoveryRecordInfo]


@dataclass(frozen=True, repr=False)
class Rar50CryptBlock(Rar50Block):
    """
    The archive encryption header, present when the headers themselves are encrypted.

    All blocks following this one are encrypted and cannot be decoded without the password.
    """

    version: Union[RarEncryptionVersion, int]
    flags: Rar50CryptFlags
    kdf_count: int
    salt: bytes
    check_value: Optional[bytes]


@dataclass(frozen=True, repr=False)
class Rar50EndArchiveBlock(Rar50Block):
    flags: Rar50EndArchiveFlags

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def has_next_volume(self) -> bool:
        return bool(self.flags & Rar50EndArchiveFlags.NEXT_VOLUME)


@dataclass(frozen=True, repr=False)
class Rar50UnknownBlock(Rar50Block):
    block_type: int


class Rar50BlockIterator(RarBlockIterator[Rar50Block]):
    """
    Iterates through the blocks of a RAR 5.0 archive.

    The iteration ends at the end of the file or right after a `Rar50EndArchiveBlock`, whichever comes first.
    """

    def _read_block(self, reader: BinaryReader) -> Rar50Block:
        from ._parse import read_rar50_block

        return read_rar50_block(reader, self._file_size)
