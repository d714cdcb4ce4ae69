"""
Codec for the variable-length integers ("vints") used throughout RAR 5.0 headers.

A vint is stored as a sequence of bytes, least significant group first, each contributing its lower 7 bits to the
value. The high bit of each byte signals that another byte follows. At most 10 bytes (enough for 64 bits) are
considered. A vint whose 10th byte still has the continuation bit set is accepted as-is, with the accumulated value
truncated to 64 bits; no more bytes are consumed past that point.
"""

from typing import Tuple

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError

from .errors import RarUnexpectedEOFError


MAX_VINT_SIZE = 10

_MASK_64 = (1 << 64) - 1


def decode_vint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decodes a vint from a bytes buffer.

    Args:
        data: The buffer
        offset: The position in the buffer at which the vint starts

    Returns:
        A ``(value, size)`` tuple, where `size` is the number of bytes the vint occupies.

    Raises:
        RarUnexpectedEOFError: If the buffer ends before the final byte of the vint.
    """

    value = 0

    for index in range(MAX_VINT_SIZE):
        if offset + index >= len(data):
            raise RarUnexpectedEOFError(f"At offset {offset + index}, the data ends in the middle of a vint")

        byte = data[offset + index]
        value |= (byte & 0x7f) << (7 * index)

        if (byte & 0x80) == 0:
            return value & _MASK_64, index + 1

    return value & _MASK_64, MAX_VINT_SIZE


def read_vint(reader: BinaryReader, meaning: str = 'vint') -> Tuple[int, int]:
    """
    Like `decode_vint`, but reads the vint from the current position of a `BinaryReader`, advancing it.
    """

    value = 0

    for index in range(MAX_VINT_SIZE):
        try:
            byte = reader.read_amount(1, meaning)[0]
        except BinaryReaderFormatError as e:
            raise RarUnexpectedEOFError(f"The data ends in the middle of a vint ({meaning})") from e

        value |= (byte & 0x7f) << (7 * index)

        if (byte & 0x80) == 0:
            return value & _MASK_64, index + 1

    return value & _MASK_64, MAX_VINT_SIZE


def encode_vint(value: int) -> bytes:
    """
    Encodes a non-negative integer of at most 64 bits as a (minimal length) vint.
    """

    if (value < 0) or (value > _MASK_64):
        raise ValueError(f"Value {value} cannot be represented as a vint")

    result = bytearray()

    while True:
        byte = value & 0x7f
        value >>= 7

        if value == 0:
            result.append(byte)
            return bytes(result)

        result.append(byte | 0x80)
