"""
Decoder for archives in the RAR 1.4 format (signature ``RE~^``).

This early format has a flat structure: a single main header, immediately following the signature, and then one file
header per entry until the end of the file. There are no block type codes and no end-of-archive marker.
"""

from dataclasses import dataclass
from enum import IntFlag
from typing import BinaryIO, Optional

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader
from atmfjstc.lib.ez_repr import EZRepr

from ..blocks import RarBlock, RarBlockIterator
from ..filenames import RarFilename
from ..timestamps import RarTimestamp


class Rar14MainFlags(IntFlag):
    VOLUME = 0x01
    COMMENT = 0x02
    LOCKED = 0x04
    SOLID = 0x08
    PACKED_COMMENT = 0x10


class Rar14FileFlags(IntFlag):
    SPLIT_BEFORE = 0x01
    SPLIT_AFTER = 0x02
    ENCRYPTED = 0x04
    COMMENT = 0x08


@dataclass(frozen=True, repr=False)
class Rar14Block(RarBlock):
    pass


@dataclass(frozen=True, repr=False)
class Rar14Comment(EZRepr):
    """
    The archive comment stored in a RAR 1.4 main header.

    Attributes:
        data: The comment bytes. If `is_packed` is set, these are still compressed.
        is_packed: Whether the comment is compressed
        unpacked_size: [Packed comments only] The size of the comment after decompression
    """

    data: bytes
    is_packed: bool = False
    unpacked_size: Optional[int] = None


@dataclass(frozen=True, repr=False)
class Rar14MainBlock(Rar14Block):
    flags: Rar14MainFlags

    @property
    def is_volume(self) -> bool:
        return bool(self.flags & Rar14MainFlags.VOLUME)

    @property
    def has_comment(self) -> bool:
        return bool(self.flags & Rar14MainFlags.COMMENT)

    @property
    def is_locked(self) -> bool:
        return bool(self.flags & Rar14MainFlags.LOCKED)

    @property
    def is_solid(self) -> bool:
        return bool(self.flags & Rar14MainFlags.SOLID)

    @property
    def is_comment_packed(self) -> bool:
        return bool(self.flags & Rar14MainFlags.PACKED_COMMENT)

    def read_comment(self, fileobj: BinaryIO) -> Optional[Rar14Comment]:
        """
        Reads the archive comment, if one is present.

        The comment is not read along with the rest of the main header, as it is rarely needed. Note that this
        repositions the file object. Block iterators always seek before reading, so they are not affected.

        Raises:
            RarUnexpectedEOFError: If the comment extends past the end of the file.
        """
        from ._parse import read_rar14_comment

        if not self.has_comment:
            return None

        return read_rar14_comment(BinaryReader(fileobj, big_endian=False), self)


@dataclass(frozen=True, repr=False)
class Rar14FileBlock(Rar14Block):
    """
    A RAR 1.4 file entry.

    Attributes:
        flags: The file flags
        packed_size: The size of the (compressed) file data following the header
        unpacked_size: The size of the file after decompression
        crc16: The CRC16 checksum of the file data
        modification_time: The file modification time, as a naive timestamp (local time on the archiving machine),
            or the raw DOS time value if it is invalid
        attributes: The DOS attributes of the file
        unpack_version: The version of the format needed for extraction (10 or 13)
        method: The compression method code
        name: The filename, if it is ASCII, or the raw bytes otherwise (RAR 1.4 stores names in the OEM code page of
            the archiving machine)
    """

    flags: Rar14FileFlags
    packed_size: int
    unpacked_size: int
    crc16: int
    modification_time: RarTimestamp
    attributes: int
    unpack_version: int
    method: int
    name: RarFilename

    @property
    def data_size(self) -> int:
        return self.packed_size

    @property
    def is_split_before(self) -> bool:
        return bool(self.flags & Rar14FileFlags.SPLIT_BEFORE)

    @property
    def is_split_after(self) -> bool:
        return bool(self.flags & Rar14FileFlags.SPLIT_AFTER)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & Rar14FileFlags.ENCRYPTED)


class Rar14BlockIterator(RarBlockIterator[Rar14Block]):
    """
    Iterates through the blocks of a RAR 1.4 archive.

    The first block is always a `Rar14MainBlock`, all others are `Rar14FileBlock`'s. The iteration ends at the end of
    the file.
    """

    def _read_block(self, reader: BinaryReader) -> Rar14Block:
        from ._parse import read_rar14_main_block, read_rar14_file_block

        if self._blocks_read == 0:
            return read_rar14_main_block(reader, self._file_size)

        return read_rar14_file_block(reader, self._file_size)
