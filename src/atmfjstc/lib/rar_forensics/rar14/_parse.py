import os

from typing import Optional

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError

from ..blocks import read_header_bytes
from ..errors import RarCorruptHeaderError, RarUnexpectedEOFError
from ..filenames import decode_oem_filename
from ..signature import RarFormat
from ..timestamps import parse_dos_time

from . import Rar14MainBlock, Rar14FileBlock, Rar14MainFlags, Rar14FileFlags, Rar14Comment


MAIN_HEADER_FIELDS_SIZE = 3


def read_rar14_main_block(reader: BinaryReader, file_size: int) -> Rar14MainBlock:
    position = reader.tell()

    # The stored size also counts the signature, which precedes the header
    raw_header_size = reader.read_fixed_size_int(2, 'main header size')
    header_size = raw_header_size - RarFormat.RAR14.signature_size

    header = read_header_bytes(reader, position, header_size, file_size)

    try:
        _, flags = header.read_struct('HB', 'main header')
    except BinaryReaderFormatError as e:
        raise RarCorruptHeaderError("Main header is too short for its fields", position) from e

    return Rar14MainBlock(
        position=position,
        header_size=header_size,
        flags=Rar14MainFlags(flags),
    )


def read_rar14_file_block(reader: BinaryReader, file_size: int) -> Rar14FileBlock:
    position = reader.tell()

    _, _, _, header_size = reader.read_struct('IIHH', 'file header prefix')

    header = read_header_bytes(reader, position, header_size, file_size)

    try:
        packed_size, unpacked_size, crc16, _, mtime, attributes, flags, version, name_size, method = \
            header.read_struct('IIHHIBBBBB', 'file header')

        raw_name = header.read_amount(name_size, 'file name')
    except BinaryReaderFormatError as e:
        raise RarCorruptHeaderError("File header is too short for its fields", position) from e

    return Rar14FileBlock(
        position=position,
        header_size=header_size,
        flags=Rar14FileFlags(flags),
        packed_size=packed_size,
        unpacked_size=unpacked_size,
        crc16=crc16,
        modification_time=parse_dos_time(mtime),
        attributes=attributes,
        unpack_version=13 if version == 2 else 10,
        method=method,
        name=decode_oem_filename(raw_name),
    )


def read_rar14_comment(reader: BinaryReader, main_block: Rar14MainBlock) -> Optional[Rar14Comment]:
    try:
        reader.seek(main_block.position + MAIN_HEADER_FIELDS_SIZE, os.SEEK_SET)

        size = reader.read_fixed_size_int(2, 'comment size')

        if not main_block.is_comment_packed:
            if size == 0:
                return None

            return Rar14Comment(data=reader.read_amount(size, 'comment'))

        if size < 2:
            return None

        unpacked_size = reader.read_fixed_size_int(2, 'unpacked comment size')

        return Rar14Comment(
            data=reader.read_amount(size - 2, 'packed comment'),
            is_packed=True,
            unpacked_size=unpacked_size,
        )
    except BinaryReaderFormatError as e:
        raise RarUnexpectedEOFError("Data ends in the middle of the archive comment") from e
