import os

from typing import List, Optional, Union

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError

from ..blocks import read_header_bytes
from ..enums import Rar50HostOS, RarRedirType, RarRedirFlags, RarFileVersionFlags, RarHashType, \
    RarEncryptionVersion, as_enum
from ..errors import RarCorruptHeaderError, RarUnexpectedEOFError
from ..filenames import RarFilename, decode_modern_filename
from ..timestamps import RarTimestamp, parse_unix_time, parse_unix_time_nanos, parse_windows_filetime, \
    add_to_timestamp
from ..vint import read_vint

from ._records import parse_extra_area
from . import Rar50Block, Rar50BlockType, Rar50BlockFlags, Rar50MainBlock, Rar50MainFlags, Rar50FileBlock, \
    Rar50FileFlags, Rar50ServiceBlock, Rar50ServiceType, Rar50CryptBlock, Rar50CryptFlags, Rar50EndArchiveBlock, \
    Rar50EndArchiveFlags, Rar50UnknownBlock, Rar50CompressionInfo, Rar50LocatorRecord, Rar50LocatorFlags, \
    Rar50MetadataRecord, Rar50MetadataFlags, Rar50FileEncryptionRecord, Rar50FileEncryptionFlags, Rar50HashRecord, \
    Rar50TimeRecord, Rar50TimeFlags, Rar50VersionRecord, Rar50RedirectionRecord, Rar50UnixOwnerRecord, \
    Rar50UnixOwnerFlags, Rar50RecoveryRecordInfo, Rar50MainRecordType, Rar50FileRecordType


CRC_SIZE = 4
SALT_SIZE = 16
IV_SIZE = 16
CHECK_VALUE_SIZE = 12
BLAKE2SP_SIZE = 32

MAX_NAME_SIZE = 0x10000


def read_rar50_block(reader: BinaryReader, file_size: int) -> Rar50Block:
    position = reader.tell()

    crc32 = reader.read_fixed_size_int(CRC_SIZE, 'header CRC')
    raw_header_size, size_len = read_vint(reader, 'header size')

    if raw_header_size == 0:
        raise RarCorruptHeaderError("Block declares a header size of 0", position)

    header_size = CRC_SIZE + size_len + raw_header_size

    header = read_header_bytes(reader, position, header_size, file_size)
    header.seek(CRC_SIZE + size_len, os.SEEK_SET)

    try:
        block_type, _ = read_vint(header, 'block type')
        raw_flags, _ = read_vint(header, 'block flags')
        block_flags = Rar50BlockFlags(raw_flags)

        extra_area_size = read_vint(header, 'extra area size')[0] if block_flags & Rar50BlockFlags.EXTRA_AREA else None
        data_area_size = read_vint(header, 'data area size')[0] if block_flags & Rar50BlockFlags.DATA_AREA else None
    except RarUnexpectedEOFError as e:
        raise RarCorruptHeaderError("Header is too short for the common block fields", position) from e

    body_size = header.bytes_remaining() - (extra_area_size or 0)
    if body_size < 0:
        raise RarCorruptHeaderError(
            f"Extra area of size {extra_area_size} is larger than the rest of the header", position
        )

    body = BinaryReader(header.read_amount(body_size, 'header body'), big_endian=False)
    extra_area = header.read_at_most(header.bytes_remaining())

    common = dict(
        position=position,
        header_size=header_size,
        crc32=crc32,
        block_flags=block_flags,
        extra_area_size=extra_area_size,
        data_area_size=data_area_size,
    )

    parser = _PARSERS_BY_TYPE.get(block_type)

    try:
        if parser is None:
            return Rar50UnknownBlock(**common, block_type=block_type)

        return parser(body, extra_area, common)
    except (BinaryReaderFormatError, RarUnexpectedEOFError) as e:
        raise RarCorruptHeaderError(f"Header of block type {block_type} is too short for its fields", position) from e


def _check_body_consumed(body: BinaryReader, mut_warnings: List[str]):
    if body.bytes_remaining() > 0:
        mut_warnings.append(f"Header body was not fully consumed ({body.bytes_remaining()} bytes left)")


def _read_name(reader: BinaryReader, meaning: str) -> bytes:
    name_size, _ = read_vint(reader, f'{meaning} size')

    return reader.read_amount(min(name_size, MAX_NAME_SIZE), meaning)


def _parse_main_block(body: BinaryReader, extra_area: bytes, common: dict) -> Rar50MainBlock:
    warnings = []

    flags = Rar50MainFlags(read_vint(body, 'archive flags')[0])

    volume_number = None
    if flags & Rar50MainFlags.VOLUME_NUMBER:
        volume_number = read_vint(body, 'volume number')[0]

        if not (flags & Rar50MainFlags.VOLUME):
            warnings.append("Volume number present, but archive is not marked as a volume")

    _check_body_consumed(body, warnings)

    records, unknown_records = parse_extra_area(extra_area, _MAIN_RECORD_PARSERS, warnings, common['position'])

    return Rar50MainBlock(
        **common,
        flags=flags,
        volume_number=volume_number,
        locator=records.get('locator'),
        metadata=records.get('metadata'),
        unknown_records=unknown_records,
        warnings=tuple(warnings),
    )


def _parse_locator_record(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50LocatorRecord:
    flags = Rar50LocatorFlags(read_vint(reader, 'locator flags')[0])

    quick_open_offset = None
    if flags & Rar50LocatorFlags.QUICK_OPEN:
        quick_open_offset = read_vint(reader, 'quick open offset')[0] or None

    recovery_record_offset = None
    if flags & Rar50LocatorFlags.RECOVERY_RECORD:
        recovery_record_offset = read_vint(reader, 'recovery record offset')[0] or None

    return Rar50LocatorRecord(
        flags=flags,
        quick_open_offset=quick_open_offset,
        recovery_record_offset=recovery_record_offset,
    )


def _parse_metadata_record(reader: BinaryReader, mut_warnings: List[str]) -> Rar50MetadataRecord:
    flags = Rar50MetadataFlags(read_vint(reader, 'metadata flags')[0])

    archive_name = None
    if flags & Rar50MetadataFlags.NAME:
        raw_name = _read_name(reader, 'archive name').split(b'\x00', 1)[0]
        archive_name = decode_modern_filename(raw_name) if len(raw_name) > 0 else None

    creation_time = None
    if flags & Rar50MetadataFlags.TIME:
        if flags & Rar50MetadataFlags.UNIX_TIME:
            if flags & Rar50MetadataFlags.UNIX_TIME_NANOS:
                creation_time = parse_unix_time_nanos(reader.read_fixed_size_int(8, 'creation time'))
            else:
                creation_time = parse_unix_time(reader.read_fixed_size_int(4, 'creation time'))
        else:
            if flags & Rar50MetadataFlags.UNIX_TIME_NANOS:
                mut_warnings.append("Nanosecond flag set for a creation time not in UNIX format")

            creation_time = parse_windows_filetime(reader.read_fixed_size_int(8, 'creation time'))
    elif flags & (Rar50MetadataFlags.UNIX_TIME | Rar50MetadataFlags.UNIX_TIME_NANOS):
        mut_warnings.append("Time format flags set, but no creation time is present")

    return Rar50MetadataRecord(
        flags=flags,
        archive_name=archive_name,
        creation_time=creation_time,
    )


def _read_entry_fields(body: BinaryReader, mut_warnings: List[str]) -> dict:
    flags = Rar50FileFlags(read_vint(body, 'file flags')[0])

    unpacked_size, _ = read_vint(body, 'unpacked size')
    attributes, _ = read_vint(body, 'attributes')

    modification_time = None
    if flags & Rar50FileFlags.MTIME:
        modification_time = parse_unix_time(body.read_fixed_size_int(4, 'modification time'))

    data_crc32 = body.read_fixed_size_int(4, 'data CRC') if flags & Rar50FileFlags.CRC32 else None

    compression_info = Rar50CompressionInfo(read_vint(body, 'compression info')[0])

    if not compression_info.has_valid_dictionary_size:
        mut_warnings.append(f"Dictionary size of {compression_info.min_dictionary_size} bytes is not supported")

    host_os = as_enum(read_vint(body, 'host OS')[0], Rar50HostOS)
    raw_name = _read_name(body, 'name')

    return dict(
        flags=flags,
        unpacked_size=None if flags & Rar50FileFlags.UNKNOWN_UNPACKED_SIZE else unpacked_size,
        attributes=attributes,
        modification_time=modification_time,
        data_crc32=data_crc32,
        compression_info=compression_info,
        host_os=host_os,
        raw_name=raw_name,
    )


def _entry_records(records: dict) -> dict:
    return dict(
        encryption=records.get('encryption'),
        hash=records.get('hash'),
        time=records.get('time'),
        version=records.get('version'),
        redirection=records.get('redirection'),
        unix_owner=records.get('unix_owner'),
    )


def _parse_file_block(body: BinaryReader, extra_area: bytes, common: dict) -> Rar50FileBlock:
    warnings = []

    fields = _read_entry_fields(body, warnings)
    raw_name = fields.pop('raw_name')

    _check_body_consumed(body, warnings)

    records, unknown_records = parse_extra_area(extra_area, _FILE_RECORD_PARSERS, warnings, common['position'])

    return Rar50FileBlock(
        **common,
        **fields,
        **_entry_records(records),
        unknown_records=unknown_records,
        warnings=tuple(warnings),
        name=decode_modern_filename(raw_name),
    )


def _parse_service_block(body: BinaryReader, extra_area: bytes, common: dict) -> Rar50ServiceBlock:
    warnings = []

    fields = _read_entry_fields(body, warnings)
    raw_name = fields.pop('raw_name')

    if fields['attributes'] != 0:
        warnings.append(f"Service block has non-zero attributes (0x{fields['attributes']:x})")

    _check_body_consumed(body, warnings)

    service_type = _as_service_type(raw_name)

    parsers = _FILE_RECORD_PARSERS
    if service_type == Rar50ServiceType.RECOVERY_RECORD:
        parsers = {**parsers, Rar50FileRecordType.SERVICE_DATA: ('recovery_record', _parse_recovery_record_info)}

    records, unknown_records = parse_extra_area(extra_area, parsers, warnings, common['position'])

    return Rar50ServiceBlock(
        **common,
        **fields,
        **_entry_records(records),
        unknown_records=unknown_records,
        warnings=tuple(warnings),
        service_type=service_type,
        recovery_record=records.get('recovery_record'),
    )


def _as_service_type(raw_name: bytes) -> Union[Rar50ServiceType, bytes]:
    try:
        return Rar50ServiceType(raw_name)
    except ValueError:
        return raw_name


def _parse_file_encryption_record(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50FileEncryptionRecord:
    version = as_enum(read_vint(reader, 'encryption version')[0], RarEncryptionVersion)
    flags = Rar50FileEncryptionFlags(read_vint(reader, 'encryption flags')[0])
    kdf_count = reader.read_fixed_size_int(1, 'KDF count')
    salt = reader.read_amount(SALT_SIZE, 'salt')
    iv = reader.read_amount(IV_SIZE, 'IV')

    check_value = None
    if flags & Rar50FileEncryptionFlags.PASSWORD_CHECK:
        check_value = reader.read_amount(CHECK_VALUE_SIZE, 'check value')

    return Rar50FileEncryptionRecord(
        version=version,
        flags=flags,
        kdf_count=kdf_count,
        salt=salt,
        iv=iv,
        check_value=check_value,
    )


def _parse_hash_record(reader: BinaryReader, mut_warnings: List[str]) -> Rar50HashRecord:
    hash_type = as_enum(read_vint(reader, 'hash type')[0], RarHashType)

    if hash_type == RarHashType.BLAKE2SP:
        return Rar50HashRecord(hash_type=hash_type, hash_value=reader.read_amount(BLAKE2SP_SIZE, 'hash'))

    mut_warnings.append(f"Unsupported hash type {hash_type}")

    return Rar50HashRecord(hash_type=hash_type)


def _parse_time_record(reader: BinaryReader, mut_warnings: List[str]) -> Rar50TimeRecord:
    flags = Rar50TimeFlags(read_vint(reader, 'time flags')[0])

    present = [
        flags & Rar50TimeFlags.MTIME,
        flags & Rar50TimeFlags.CTIME,
        flags & Rar50TimeFlags.ATIME,
    ]

    times: List[Optional[RarTimestamp]] = [None, None, None]

    if flags & Rar50TimeFlags.UNIX_TIME:
        for index, is_present in enumerate(present):
            if is_present:
                times[index] = parse_unix_time(reader.read_fixed_size_int(4, 'UNIX time'))

        if flags & Rar50TimeFlags.UNIX_TIME_NANOS:
            for index, is_present in enumerate(present):
                if is_present:
                    times[index] = _add_nanos(times[index], reader.read_fixed_size_int(4, 'nanoseconds'))
    else:
        if flags & Rar50TimeFlags.UNIX_TIME_NANOS:
            mut_warnings.append("Nanosecond flag set for times not in UNIX format")

        for index, is_present in enumerate(present):
            if is_present:
                times[index] = parse_windows_filetime(reader.read_fixed_size_int(8, 'FILETIME'))

    return Rar50TimeRecord(flags, *times)


def _add_nanos(timestamp: RarTimestamp, nanos: int) -> RarTimestamp:
    if not isinstance(timestamp, str):
        return timestamp

    try:
        return add_to_timestamp(timestamp, nanos=nanos)
    except OverflowError:
        return timestamp


def _parse_version_record(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50VersionRecord:
    flags = RarFileVersionFlags(read_vint(reader, 'version flags')[0])
    version, _ = read_vint(reader, 'version number')

    return Rar50VersionRecord(flags=flags, version=version)


def _parse_redirection_record(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50RedirectionRecord:
    redirection_type = as_enum(read_vint(reader, 'redirection type')[0], RarRedirType)
    flags = RarRedirFlags(read_vint(reader, 'redirection flags')[0])

    return Rar50RedirectionRecord(
        redirection_type=redirection_type,
        flags=flags,
        target=decode_modern_filename(_read_name(reader, 'redirection target')),
    )


def _parse_unix_owner_record(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50UnixOwnerRecord:
    flags = Rar50UnixOwnerFlags(read_vint(reader, 'owner flags')[0])

    user_name: Optional[RarFilename] = None
    if flags & Rar50UnixOwnerFlags.USER_NAME:
        user_name = decode_modern_filename(_read_name(reader, 'user name'))

    group_name: Optional[RarFilename] = None
    if flags & Rar50UnixOwnerFlags.GROUP_NAME:
        group_name = decode_modern_filename(_read_name(reader, 'group name'))

    user_id = read_vint(reader, 'user ID')[0] if flags & Rar50UnixOwnerFlags.USER_ID else None
    group_id = read_vint(reader, 'group ID')[0] if flags & Rar50UnixOwnerFlags.GROUP_ID else None

    return Rar50UnixOwnerRecord(
        flags=flags,
        user_name=user_name,
        group_name=group_name,
        user_id=user_id,
        group_id=group_id,
    )


def _parse_recovery_record_info(reader: BinaryReader, _mut_warnings: List[str]) -> Rar50RecoveryRecordInfo:
    percentage = reader.read_fixed_size_int(1, 'recovery percentage')

    return Rar50RecoveryRecordInfo(
        percentage=percentage,
        extra_data=reader.read_at_most(reader.bytes_remaining()),
    )


def _parse_crypt_block(body: BinaryReader, _extra_area: bytes, common: dict) -> Rar50CryptBlock:
    version = as_enum(read_vint(body, 'encryption version')[0], RarEncryptionVersion)
    flags = Rar50CryptFlags(read_vint(body, 'encryption flags')[0])
    kdf_count = body.read_fixed_size_int(1, 'KDF count')
    salt = body.read_amount(SALT_SIZE, 'salt')

    check_value = None
    if flags & Rar50CryptFlags.PASSWORD_CHECK:
        check_value = body.read_amount(CHECK_VALUE_SIZE, 'check value')

    return Rar50CryptBlock(
        **common,
        version=version,
        flags=flags,
        kdf_count=kdf_count,
        salt=salt,
        check_value=check_value,
    )


def _parse_end_archive_block(body: BinaryReader, _extra_area: bytes, common: dict) -> Rar50EndArchiveBlock:
    return Rar50EndArchiveBlock(
        **common,
        flags=Rar50EndArchiveFlags(read_vint(body, 'end of archive flags')[0]),
    )


_MAIN_RECORD_PARSERS = {
    Rar50MainRecordType.LOCATOR: ('locator', _parse_locator_record),
    Rar50MainRecordType.METADATA: ('metadata', _parse_metadata_record),
}

_FILE_RECORD_PARSERS = {
    Rar50FileRecordType.ENCRYPTION: ('encryption', _parse_file_encryption_record),
    Rar50FileRecordType.HASH: ('hash', _parse_hash_record),
    Rar50FileRecordType.TIME: ('time', _parse_time_record),
    Rar50FileRecordType.VERSION: ('version', _parse_version_record),
    Rar50FileRecordType.REDIRECTION: ('redirection', _parse_redirection_record),
    Rar50FileRecordType.UNIX_OWNER: ('unix_owner', _parse_unix_owner_record),
}

_PARSERS_BY_TYPE = {
    Rar50BlockType.MAIN: _parse_main_block,
    Rar50BlockType.FILE: _parse_file_block,
    Rar50BlockType.SERVICE: _parse_service_block,
    Rar50BlockType.CRYPT: _parse_crypt_block,
    Rar50BlockType.END_ARCHIVE: _parse_end_archive_block,
}
