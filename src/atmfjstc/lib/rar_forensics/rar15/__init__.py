"""
Decoder for archives in the RAR 1.5 - 4.x format (signature ``Rar!\\x1a\\x07\\x00``).

This format was used from RAR 1.50 (1994) up to RAR 4.20 (2012). An archive is a sequence of tagged blocks, each
starting with a 7-byte prefix (header CRC16, type code, flags and header size). The type code determines the layout
of the rest of the header. Over the many revisions of the format, several block types have been introduced and later
deprecated (e.g. the old-style comment, authenticity and "sub" blocks were replaced by service blocks in RAR 3.0),
but all of them are decoded here.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, IntFlag
from typing import Optional, Union

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader
from atmfjstc.lib.ez_repr import EZRepr

from ..blocks import RarBlock, RarBlockIterator
from ..enums import RarHostOS, RarCompressionMethod, is_windows_compatible_rar_os, is_posix_compatible_rar_os
from ..filenames import RarFilename
from ..timestamps import RarTimestamp


class Rar15BlockType(IntEnum):
    MAIN = 0x73
    FILE = 0x74
    COMMENT = 0x75
    AUTHENTICITY = 0x76
    SUB = 0x77
    PROTECT = 0x78
    SIGN = 0x79
    SERVICE = 0x7a
    END_ARCHIVE = 0x7b


class Rar15BlockFlags(IntFlag):
    """Flags common to all block types"""
    SKIP_IF_UNKNOWN = 0x4000
    LONG_BLOCK = 0x8000


class Rar15MainFlags(IntFlag):
    VOLUME = 0x0001
    COMMENT = 0x0002
    LOCKED = 0x0004
    SOLID = 0x0008
    NEW_NUMBERING = 0x0010
    AUTHENTICITY = 0x0020
    RECOVERY_RECORD = 0x0040
    PASSWORD = 0x0080
    FIRST_VOLUME = 0x0100
    ENCRYPT_VERSION = 0x0200

    SKIP_IF_UNKNOWN = 0x4000
    LONG_BLOCK = 0x8000


class Rar15FileFlags(IntFlag):
    SPLIT_BEFORE = 0x0001
    SPLIT_AFTER = 0x0002
    ENCRYPTED = 0x0004
    COMMENT = 0x0008
    SOLID = 0x0010
    LARGE = 0x0100
    UNICODE = 0x0200
    SALT = 0x0400
    VERSION = 0x0800
    EXT_TIME = 0x1000
    EXT_FLAGS = 0x2000

    SKIP_IF_UNKNOWN = 0x4000
    LONG_BLOCK = 0x8000

    WINDOW_MASK = 0x00e0


class Rar15EndArchiveFlags(IntFlag):
    NEXT_VOLUME = 0x0001
    DATA_CRC = 0x0002
    REV_SPACE = 0x0004
    VOLUME_NUMBER = 0x0008

    SKIP_IF_UNKNOWN = 0x4000
    LONG_BLOCK = 0x8000


class Rar15ServiceFlags(IntFlag):
    """Flags stored in the attributes field of a service block"""
    COMMENT_UNICODE = 0x00000001
    INHERITED = 0x80000000


class Rar15ServiceType(Enum):
    COMMENT = b'CMT'
    NTFS_ACL = b'ACL'
    NTFS_STREAM = b'STM'
    UNIX_OWNER = b'UOW'
    AUTHENTICITY = b'AV'
    RECOVERY_RECORD = b'RR'
    OS2_EXTENDED_ATTRIBUTES = b'EA2'
    BEOS_EXTENDED_ATTRIBUTES = b'EABE'


class Rar15SubBlockType(IntEnum):
    OS2_EXTENDED_ATTRIBUTES = 0x100
    UNIX_OWNER = 0x101
    MACOS_INFO = 0x102
    BEOS_EXTENDED_ATTRIBUTES = 0x103
    NTFS_ACL = 0x104
    NTFS_STREAM = 0x105


DICTIONARY_DIRECTORY_VALUE = 7


@dataclass(frozen=True, repr=False)
class Rar15Block(RarBlock):
    """
    Base class for RAR 1.5 - 4.x blocks.

    Attributes:
        crc16: The (lower 16 bits of the) CRC32 of the header. It is not verified.
        flags: The block flags. Their meaning depends on the block type, except for the top two bits.
    """

    crc16: int
    flags: IntFlag

    @property
    def skip_if_unknown(self) -> bool:
        return bool(self.flags & Rar15BlockFlags.SKIP_IF_UNKNOWN)


@dataclass(frozen=True, repr=False)
class Rar15MainBlock(Rar15Block):
    """
    The main archive header. This should be the first block in the archive.

    Attributes:
        authenticity_offset: The position of the authenticity verification block, if any
        encrypt_version: The version of the encryption used for the archive, if recorded
    """

    flags: Rar15MainFlags
    authenticity_offset: Optional[int]
    encrypt_version: Optional[int]

    @property
    def is_volume(self) -> bool:
        return bool(self.flags & Rar15MainFlags.VOLUME)

    @property
    def has_comment(self) -> bool:
        return bool(self.flags & Rar15MainFlags.COMMENT)

    @property
    def is_locked(self) -> bool:
        return bool(self.flags & Rar15MainFlags.LOCKED)

    @property
    def is_solid(self) -> bool:
        return bool(self.flags & Rar15MainFlags.SOLID)

    @property
    def uses_new_numbering(self) -> bool:
        """Whether volumes are named ``name.partN.rar`` rather than ``name.rNN``"""
        return bool(self.flags & Rar15MainFlags.NEW_NUMBERING)

    @property
    def has_authenticity_info(self) -> bool:
        return bool(self.flags & Rar15MainFlags.AUTHENTICITY)

    @property
    def has_recovery_record(self) -> bool:
        return bool(self.flags & Rar15MainFlags.RECOVERY_RECORD)

    @property
    def has_encrypted_headers(self) -> bool:
        return bool(self.flags & Rar15MainFlags.PASSWORD)

    @property
    def is_first_volume(self) -> bool:
        return bool(self.flags & Rar15MainFlags.FIRST_VOLUME)


@dataclass(frozen=True, repr=False)
class Rar15EntryBlock(Rar15Block):
    """
    Fields shared by file and service blocks.

    Attributes:
        packed_size: The size of the data area (compressed content) following the header
        unpacked_size: The size of the content after decompression
        host_os: The OS on which the entry was archived, or the raw code if unknown
        crc32: The CRC32 of the uncompressed content
        modification_time: The modification time as a naive timestamp (or the raw DOS time, if invalid). If extended
            time information is present, it is already applied.
        creation_time: [Optional] The creation time, from the extended time information
        access_time: [Optional] The last access time, from the extended time information
        archive_time: [Optional] The time of archival, from the extended time information
        unpack_version: The format version needed for extraction, e.g. 29 for RAR 2.9
        method: The compression method, or the raw code if unknown
        salt: [Optional] The 8-byte encryption salt
    """

    flags: Rar15FileFlags
    packed_size: int
    unpacked_size: int
    host_os: Union[RarHostOS, int]
    crc32: int
    modification_time: RarTimestamp
    creation_time: Optional[RarTimestamp]
    access_time: Optional[RarTimestamp]
    archive_time: Optional[RarTimestamp]
    unpack_version: int
    method: Union[RarCompressionMethod, int]
    salt: Optional[bytes]

    @property
    def data_size(self) -> int:
        return self.packed_size

    @property
    def is_split_before(self) -> bool:
        return bool(self.flags & Rar15FileFlags.SPLIT_BEFORE)

    @property
    def is_split_after(self) -> bool:
        return bool(self.flags & Rar15FileFlags.SPLIT_AFTER)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & Rar15FileFlags.ENCRYPTED)

    @property
    def is_solid(self) -> bool:
        return bool(self.flags & Rar15FileFlags.SOLID)

    @property
    def is_directory(self) -> bool:
        return (self.flags & Rar15FileFlags.WINDOW_MASK) >> 5 == DICTIONARY_DIRECTORY_VALUE

    @property
    def dictionary_size(self) -> Optional[int]:
        """
        The size of the compression dictionary, in bytes, or None for directories.
        """
        if self.is_directory:
            return None

        return 0x10000 << ((self.flags & Rar15FileFlags.WINDOW_MASK) >> 5)

    @property
    def has_large_size(self) -> bool:
        return bool(self.flags & Rar15FileFlags.LARGE)

    @property
    def has_unicode_name(self) -> bool:
        return bool(self.flags & Rar15FileFlags.UNICODE)

    @property
    def has_extended_time(self) -> bool:
        return bool(self.flags & Rar15FileFlags.EXT_TIME)


@dataclass(frozen=True, repr=False)
class Rar15FileBlock(Rar15EntryBlock):
    """
    A file (or directory) entry.

    Attributes:
        attributes: The file attributes, in DOS or POSIX format depending on the `host_os`
        name: The decoded filename, or the raw bytes if it could not be decoded. Names without the UNICODE flag are
            stored in the OEM code page of the archiving machine, so only ASCII ones are decoded.
    """

    attributes: int
    name: RarFilename

    @property
    def has_comment(self) -> bool:
        return bool(self.flags & Rar15FileFlags.COMMENT)

    @property
    def has_windows_attributes(self) -> bool:
        return is_windows_compatible_rar_os(self.host_os)

    @property
    def has_posix_attributes(self) -> bool:
        return is_posix_compatible_rar_os(self.host_os)


@dataclass(frozen=True, repr=False)
class Rar15ServiceBlock(Rar15EntryBlock):
    """
    A service block (RAR 3.0+), holding extra data about the archive or the preceding file entry.

    Attributes:
        service_flags: The service-specific flags, stored where file blocks store attributes
        service_type: The type of service data, or the raw name if it is not recognized
        sub_data: [Optional] Extra service parameters, stored in the header between the name and the salt
    """

    service_flags: Rar15ServiceFlags
    service_type: Union[Rar15ServiceType, bytes]
    sub_data: Optional[bytes]

    @property
    def is_inherited(self) -> bool:
        return bool(self.service_flags & Rar15ServiceFlags.INHERITED)


@dataclass(frozen=True, repr=False)
class Rar15CommentBlock(Rar15Block):
    """
    An old-style (pre-RAR 3.0) comment block, embedded in the main header or a file header.

    Attributes:
        unpacked_size: The size of the comment after decompression
        unpack_version: The format version needed for decompression
        method: The compression method, or the raw code if unknown
        comment_crc16: The CRC16 of the uncompressed comment
        packed_comment: The compressed comment data
    """

    unpacked_size: int
    unpack_version: int
    method: Union[RarCompressionMethod, int]
    comment_crc16: int
    packed_comment: bytes


@dataclass(frozen=True, repr=False)
class Rar15AuthenticityBlock(Rar15Block):
    unpack_version: int
    method: Union[RarCompressionMethod, int]
    av_version: int
    av_info_crc32: int


@dataclass(frozen=True, repr=False)
class Rar15UnixOwnerInfo(EZRepr):
    user: bytes
    group: bytes


@dataclass(frozen=True, repr=False)
class Rar15MacOSInfo(EZRepr):
    file_type: int
    file_creator: int


@dataclass(frozen=True, repr=False)
class Rar15ExtendedAttributesInfo(EZRepr):
    unpacked_size: int
    unpack_version: int
    method: Union[RarCompressionMethod, int]
    crc32: int


@dataclass(frozen=True, repr=False)
class Rar15NTFSStreamInfo(EZRepr):
    unpacked_size: int
    unpack_version: int
    method: Union[RarCompressionMethod, int]
    crc32: int
    stream_name: bytes


Rar15SubBlockInfo = Union[Rar15UnixOwnerInfo, Rar15MacOSInfo, Rar15ExtendedAttributesInfo, Rar15NTFSStreamInfo]


@dataclass(frozen=True, repr=False)
class Rar15SubBlock(Rar15Block):
    """
    An old-style (RAR 2.x) sub-block, holding extra data about the preceding file entry.

    Attributes:
        data_area_size: The size of the data area following the header
        sub_type: The sub-block type, or the raw code if unknown
        level: The sub-block level
        info: [Optional] The decoded sub-block header. Not present for unknown types.
    """

    data_area_size: int
    sub_type: Union[Rar15SubBlockType, int]
    level: int
    info: Optional[Rar15SubBlockInfo]

    @property
    def data_size(self) -> int:
        return self.data_area_size


@dataclass(frozen=True, repr=False)
class Rar15ProtectBlock(Rar15Block):
    """
    An old-style recovery record.
    """

    data_area_size: int
    version: int
    recovery_sectors: int
    total_blocks: int
    mark: bytes

    @property
    def data_size(self) -> int:
        return self.data_area_size


@dataclass(frozen=True, repr=False)
class Rar15SignBlock(Rar15Block):
    creation_time: RarTimestamp
    archive_name_size: int
    user_name_size: int


@dataclass(frozen=True, repr=False)
class Rar15EndArchiveBlock(Rar15Block):
    """
    The end of archive marker (RAR 2.0+). Iteration stops after this block.

    Attributes:
        data_crc32: [Optional] The CRC32 of the archive data
        volume_number: [Optional] The number of this volume in a multi-volume archive
    """

    flags: Rar15EndArchiveFlags
    data_crc32: Optional[int]
    volume_number: Optional[int]

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def has_next_volume(self) -> bool:
        return bool(self.flags & Rar15EndArchiveFlags.NEXT_VOLUME)


@dataclass(frozen=True, repr=False)
class Rar15UnknownBlock(Rar15Block):
    """
    A block of a type this decoder does not know about. Its data area (if any) is skipped.
    """

    block_type: int
    data_area_size: Optional[int]

    @property
    def data_size(self) -> int:
        return self.data_area_size or 0


class Rar15BlockIterator(RarBlockIterator[Rar15Block]):
    """
    Iterates through the blocks of a RAR 1.5 - 4.x archive.

    The iteration ends at the end of the file or right after a `Rar15EndArchiveBlock`, whichever comes first.
    """

    def _read_block(self, reader: BinaryReader) -> Rar15Block:
        from ._parse import read_rar15_block

        return read_rar15_block(reader, self._file_size)
