import os

from typing import Optional, Union

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError

from ..blocks import read_header_bytes
from ..enums import RarHostOS, RarCompressionMethod, as_enum
from ..errors import RarCorruptHeaderError, RarUnexpectedEOFError
from ..filenames import decode_legacy_filename, decode_oem_filename
from ..timestamps import RarTimestamp, parse_dos_time

from ._extended_time import read_extended_times, extended_times_size, ExtendedTimes
from . import Rar15Block, Rar15BlockType, Rar15BlockFlags, Rar15MainBlock, Rar15MainFlags, Rar15FileBlock, \
    Rar15FileFlags, Rar15ServiceBlock, Rar15ServiceFlags, Rar15ServiceType, Rar15CommentBlock, \
    Rar15AuthenticityBlock, Rar15SubBlock, Rar15SubBlockType, Rar15SubBlockInfo, Rar15UnixOwnerInfo, \
    Rar15MacOSInfo, Rar15ExtendedAttributesInfo, Rar15NTFSStreamInfo, Rar15ProtectBlock, Rar15SignBlock, \
    Rar15EndArchiveBlock, Rar15EndArchiveFlags, Rar15UnknownBlock


PREFIX_SIZE = 7
SALT_SIZE = 8
PROTECT_MARK_SIZE = 8

MAX_NAME_SIZE = 999


def read_rar15_block(reader: BinaryReader, file_size: int) -> Rar15Block:
    position = reader.tell()

    crc16, block_type, flags, header_size = reader.read_struct('HBHH', 'block header prefix')

    if header_size < PREFIX_SIZE:
        raise RarCorruptHeaderError(f"Block declares an invalid header size of {header_size}", position)

    header = read_header_bytes(reader, position, header_size, file_size)
    header.seek(PREFIX_SIZE, os.SEEK_SET)

    parser = _PARSERS_BY_TYPE.get(block_type, _parse_unknown_block)
    common = dict(position=position, header_size=header_size, crc16=crc16)

    try:
        return parser(header, common, flags, block_type)
    except (BinaryReaderFormatError, RarUnexpectedEOFError) as e:
        raise RarCorruptHeaderError(
            f"Header of block type 0x{block_type:02x} is too short for its fields", position
        ) from e


def _parse_main_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15MainBlock:
    flags = Rar15MainFlags(flags)

    high_av_position, low_av_position = header.read_struct('HI', 'main header')
    av_position = (high_av_position << 32) | low_av_position

    encrypt_version = None
    if flags & Rar15MainFlags.ENCRYPT_VERSION:
        encrypt_version = header.read_fixed_size_int(1, 'encryption version')

    return Rar15MainBlock(
        **common,
        flags=flags,
        authenticity_offset=av_position if av_position != 0 else None,
        encrypt_version=encrypt_version,
    )


def _read_entry_fields(header: BinaryReader, flags: Rar15FileFlags) -> dict:
    low_packed_size, low_unpacked_size, host_os, crc32, mtime, unpack_version, method, name_size, attributes = \
        header.read_struct('IIBIIBBHI', 'file header')

    high_packed_size, high_unpacked_size = 0, 0
    if flags & Rar15FileFlags.LARGE:
        high_packed_size, high_unpacked_size = header.read_struct('II', 'high size fields')

    return dict(
        packed_size=(high_packed_size << 32) | low_packed_size,
        unpacked_size=(high_unpacked_size << 32) | low_unpacked_size,
        host_os=as_enum(host_os, RarHostOS),
        crc32=crc32,
        modification_time=parse_dos_time(mtime),
        unpack_version=unpack_version,
        method=as_enum(method, RarCompressionMethod),
        attributes=attributes,
        raw_name=header.read_amount(name_size, 'file name'),
    )


def _read_times(header: BinaryReader, has_extended_time: bool, modification_time: RarTimestamp) -> dict:
    if has_extended_time:
        times = read_extended_times(header, modification_time)
    else:
        times = ExtendedTimes(modification_time, None, None, None)

    return times._asdict()


def _parse_file_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15FileBlock:
    flags = Rar15FileFlags(flags)

    fields = _read_entry_fields(header, flags)
    raw_name = fields.pop('raw_name')

    salt = header.read_amount(SALT_SIZE, 'salt') if flags & Rar15FileFlags.SALT else None
    fields.update(_read_times(header, bool(flags & Rar15FileFlags.EXT_TIME), fields['modification_time']))

    return Rar15FileBlock(
        **common,
        **fields,
        flags=flags,
        salt=salt,
        name=decode_legacy_filename(raw_name) if flags & Rar15FileFlags.UNICODE else decode_oem_filename(raw_name),
    )


def _parse_service_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15ServiceBlock:
    flags = Rar15FileFlags(flags)

    fields = _read_entry_fields(header, flags)
    raw_name = fields.pop('raw_name')
    service_flags = fields.pop('attributes')

    # Service parameters take up the space between the name and the salt
    salt_size = SALT_SIZE if flags & Rar15FileFlags.SALT else 0
    sub_data_size = header.bytes_remaining() - salt_size

    has_extended_time = False
    if flags & Rar15FileFlags.EXT_TIME:
        ext_time_sub_data_size = _locate_extended_time(header, salt_size)
        if ext_time_sub_data_size is not None:
            sub_data_size = ext_time_sub_data_size
            has_extended_time = True

    sub_data = header.read_amount(sub_data_size, 'service data') if sub_data_size > 0 else None

    salt = header.read_amount(SALT_SIZE, 'salt') if flags & Rar15FileFlags.SALT else None

    fields.update(_read_times(header, has_extended_time, fields['modification_time']))

    return Rar15ServiceBlock(
        **common,
        **fields,
        flags=flags,
        salt=salt,
        service_flags=Rar15ServiceFlags(service_flags),
        service_type=_as_service_type(raw_name),
        sub_data=sub_data,
    )


def _locate_extended_time(header: BinaryReader, salt_size: int) -> Optional[int]:
    """
    Finds the size of the service data in a header whose tail holds, in order, the service data, the salt and the
    extended time. The extended time must end exactly at the end of the header.

    Returns:
        The size of the service data (the shortest that fits), or None if no extended time structure fits.
    """

    position = header.tell()
    tail = header.read_at_most(header.bytes_remaining())
    header.seek(position, os.SEEK_SET)

    for sub_data_size in range(len(tail) - salt_size - 1):
        start = sub_data_size + salt_size
        all_flags = int.from_bytes(tail[start:start + 2], byteorder='little')

        if start + extended_times_size(all_flags) == len(tail):
            return sub_data_size

    return None


def _as_service_type(raw_name: bytes) -> Union[Rar15ServiceType, bytes]:
    try:
        return Rar15ServiceType(raw_name)
    except ValueError:
        return raw_name


def _parse_comment_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15CommentBlock:
    unpacked_size, unpack_version, method, comment_crc16 = header.read_struct('HBBH', 'comment header')

    return Rar15CommentBlock(
        **common,
        flags=Rar15BlockFlags(flags),
        unpacked_size=unpacked_size,
        unpack_version=unpack_version,
        method=as_enum(method, RarCompressionMethod),
        comment_crc16=comment_crc16,
        packed_comment=header.read_at_most(header.bytes_remaining()),
    )


def _parse_authenticity_block(
    header: BinaryReader, common: dict, flags: int, _block_type: int
) -> Rar15AuthenticityBlock:
    unpack_version, method, av_version, av_info_crc32 = header.read_struct('BBBI', 'authenticity header')

    return Rar15AuthenticityBlock(
        **common,
        flags=Rar15BlockFlags(flags),
        unpack_version=unpack_version,
        method=as_enum(method, RarCompressionMethod),
        av_version=av_version,
        av_info_crc32=av_info_crc32,
    )


def _parse_sub_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15SubBlock:
    data_area_size, sub_type, level = header.read_struct('IHB', 'sub-block header')

    sub_type = as_enum(sub_type, Rar15SubBlockType)

    return Rar15SubBlock(
        **common,
        flags=Rar15BlockFlags(flags),
        data_area_size=data_area_size,
        sub_type=sub_type,
        level=level,
        info=_read_sub_block_info(header, sub_type),
    )


def _read_sub_block_info(
    header: BinaryReader, sub_type: Union[Rar15SubBlockType, int]
) -> Optional[Rar15SubBlockInfo]:
    if sub_type == Rar15SubBlockType.UNIX_OWNER:
        user_size, group_size = header.read_struct('HH', 'owner name sizes')

        return Rar15UnixOwnerInfo(
            user=header.read_amount(min(user_size, MAX_NAME_SIZE), 'user name'),
            group=header.read_amount(min(group_size, MAX_NAME_SIZE), 'group name'),
        )

    if sub_type == Rar15SubBlockType.MACOS_INFO:
        return Rar15MacOSInfo(*header.read_struct('HH', 'MacOS info'))

    if sub_type in (
        Rar15SubBlockType.OS2_EXTENDED_ATTRIBUTES, Rar15SubBlockType.BEOS_EXTENDED_ATTRIBUTES,
        Rar15SubBlockType.NTFS_ACL
    ):
        unpacked_size, unpack_version, method, crc32 = header.read_struct('IBBI', 'extended attributes header')

        return Rar15ExtendedAttributesInfo(
            unpacked_size=unpacked_size,
            unpack_version=unpack_version,
            method=as_enum(method, RarCompressionMethod),
            crc32=crc32,
        )

    if sub_type == Rar15SubBlockType.NTFS_STREAM:
        unpacked_size, unpack_version, method, crc32, name_size = header.read_struct('IBBIH', 'stream header')

        return Rar15NTFSStreamInfo(
            unpacked_size=unpacked_size,
            unpack_version=unpack_version,
            method=as_enum(method, RarCompressionMethod),
            crc32=crc32,
            stream_name=header.read_amount(min(name_size, MAX_NAME_SIZE), 'stream name'),
        )

    return None


def _parse_protect_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15ProtectBlock:
    data_area_size, version, recovery_sectors, total_blocks = header.read_struct('IBHI', 'protect header')

    return Rar15ProtectBlock(
        **common,
        flags=Rar15BlockFlags(flags),
        data_area_size=data_area_size,
        version=version,
        recovery_sectors=recovery_sectors,
        total_blocks=total_blocks,
        mark=header.read_amount(PROTECT_MARK_SIZE, 'protect mark'),
    )


def _parse_sign_block(header: BinaryReader, common: dict, flags: int, _block_type: int) -> Rar15SignBlock:
    creation_time, archive_name_size, user_name_size = header.read_struct('IHH', 'sign header')

    return Rar15SignBlock(
        **common,
        flags=Rar15BlockFlags(flags),
        creation_time=parse_dos_time(creation_time),
        archive_name_size=archive_name_size,
        user_name_size=user_name_size,
    )


def _parse_end_archive_block(
    header: BinaryReader, common: dict, flags: int, _block_type: int
) -> Rar15EndArchiveBlock:
    flags = Rar15EndArchiveFlags(flags)

    data_crc32 = None
    if flags & Rar15EndArchiveFlags.DATA_CRC:
        data_crc32 = header.read_fixed_size_int(4, 'archive data CRC')

    volume_number = None
    if flags & Rar15EndArchiveFlags.VOLUME_NUMBER:
        volume_number = header.read_fixed_size_int(2, 'volume number')

    return Rar15EndArchiveBlock(
        **common,
        flags=flags,
        data_crc32=data_crc32,
        volume_number=volume_number,
    )


def _parse_unknown_block(header: BinaryReader, common: dict, flags: int, block_type: int) -> Rar15UnknownBlock:
    flags = Rar15BlockFlags(flags)

    data_area_size = None
    if flags & Rar15BlockFlags.LONG_BLOCK:
        data_area_size = header.read_fixed_size_int(4, 'data size')

    return Rar15UnknownBlock(
        **common,
        flags=flags,
        block_type=block_type,
        data_area_size=data_area_size,
    )


_PARSERS_BY_TYPE = {
    Rar15BlockType.MAIN: _parse_main_block,
    Rar15BlockType.FILE: _parse_file_block,
    Rar15BlockType.COMMENT: _parse_comment_block,
    Rar15BlockType.AUTHENTICITY: _parse_authenticity_block,
    Rar15BlockType.SUB: _parse_sub_block,
    Rar15BlockType.PROTECT: _parse_protect_block,
    Rar15BlockType.SIGN: _parse_sign_block,
    Rar15BlockType.SERVICE: _parse_service_block,
    Rar15BlockType.END_ARCHIVE: _parse_end_archive_block,
}
