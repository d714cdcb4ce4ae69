"""
Parsing of the typed records in the extra area of RAR 5.0 block headers.

Each record is encoded as a vint size, a vint type and a payload. The size counts the type field and the payload, but
not itself.
"""

from typing import Iterator, Optional, List, Dict, Tuple, Callable, Any

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader

from ..errors import RarCorruptHeaderError
from ..vint import decode_vint

from . import Rar50ExtraAreaRecord, Rar50UnknownRecord


RecordParser = Callable[[BinaryReader, List[str]], Any]


def iter_extra_area_records(data: bytes, base_position: Optional[int] = None) -> Iterator[Rar50ExtraAreaRecord]:
    """
    Splits an extra area into its raw records.

    Args:
        data: The contents of the extra area
        base_position: [Optional] The absolute position of the block, for error reporting

    Raises:
        RarCorruptHeaderError: If a record declares a size too small for its type field, or extending past the end of
            the area. Records preceding the corrupt one will already have been yielded.
        RarUnexpectedEOFError: If the area ends in the middle of the size or type field.
    """

    offset = 0

    while offset < len(data):
        record_size, size_len = decode_vint(data, offset)
        record_type, type_len = decode_vint(data, offset + size_len)

        if record_size < type_len:
            raise RarCorruptHeaderError(
                f"Extra area record at offset {offset} declares a size of {record_size}, too small for its type field",
                base_position
            )

        end = offset + size_len + record_size
        if end > len(data):
            raise RarCorruptHeaderError(
                f"Extra area record at offset {offset} of size {record_size} extends past the end of the area "
                f"({len(data)})",
                base_position
            )

        yield Rar50ExtraAreaRecord(record_type=record_type, data=bytes(data[offset + size_len + type_len:end]))

        offset = end


def parse_extra_area(
    data: bytes, parsers: Dict[int, Tuple[str, RecordParser]], mut_warnings: List[str],
    base_position: Optional[int] = None
) -> Tuple[Dict[str, Any], Tuple[Rar50UnknownRecord, ...]]:
    """
    Decodes the records of an extra area.

    Args:
        data: The contents of the extra area
        parsers: Maps each recognized record type to the name of the block field that receives it, and the function
            that decodes its payload
        mut_warnings: A list to which any non-fatal anomalies will be added
        base_position: [Optional] The absolute position of the block, for error reporting

    Returns:
        A ``(fields, unknown_records)`` tuple. `fields` maps field names to decoded records. Only the first record of
        each recognized type is decoded; repeats are listed in `unknown_records` together with unrecognized types.
    """

    fields = dict()
    unknown = []

    for record in iter_extra_area_records(data, base_position):
        field, parser = parsers.get(record.record_type, (None, None))

        if parser is None:
            unknown.append(Rar50UnknownRecord(record.record_type))
            continue

        if field in fields:
            mut_warnings.append(f"Ignored duplicate extra area record of type {record.record_type}")
            unknown.append(Rar50UnknownRecord(record.record_type))
            continue

        reader = BinaryReader(record.data, big_endian=False)

        fields[field] = parser(reader, mut_warnings)

        if reader.bytes_remaining() > 0:
            mut_warnings.append(
                f"Extra area record of type {record.record_type} was not fully consumed "
                f"({reader.bytes_remaining()} bytes left)"
            )

    return fields, tuple(unknown)
