"""
Utilities for locating the signature ("magic number") of a RAR archive in a file.

The signature normally sits at the very start of a ``.rar`` file, but self-extracting archives (SFX) carry an
executable stub of up to `MAX_SFX_SIZE` bytes before it, so a search is generally needed.
"""

import re

from enum import Enum
from typing import BinaryIO, Optional, Tuple


class RarFormat(Enum):
    """
    The generations of the RAR format, identified by their signatures.
    """
    RAR14 = b'RE\x7e\x5e'
    RAR15 = b'Rar!\x1a\x07\x00'
    RAR50 = b'Rar!\x1a\x07\x01\x00'

    @property
    def signature(self) -> bytes:
        return self.value

    @property
    def signature_size(self) -> int:
        return len(self.value)


MAX_SFX_SIZE = 0x200000
"""The maximum size of the SFX stub that may precede the archive, including the signature itself"""

SEARCH_CHUNK_SIZE = 0x10000

_MAX_SIGNATURE_SIZE = max(rar_format.signature_size for rar_format in RarFormat)

_SIGNATURE_PATTERN = re.compile(b'|'.join(
    re.escape(rar_format.signature)
    for rar_format in sorted(RarFormat, key=lambda f: f.signature_size, reverse=True)
))


def detect_rar_signature(data: bytes) -> Optional[RarFormat]:
    """
    Checks whether some data starts with a RAR signature, and returns the corresponding format if so.
    """
    for rar_format in RarFormat:
        if data.startswith(rar_format.signature):
            return rar_format

    return None


def search_rar_signature(fileobj: BinaryIO) -> Optional[Tuple[RarFormat, int]]:
    """
    Searches for the earliest RAR signature in a file object, starting from its current position.

    Only the first `MAX_SFX_SIZE` bytes are examined, and a signature must fit entirely within them.

    Args:
        fileobj: A binary file object. It will be read from its current position. The position is NOT restored
            afterwards.

    Returns:
        A ``(format, offset)`` tuple, where `offset` is the absolute position of the signature in the file object, or
        None if no signature was found. The first block of the archive starts at ``offset + format.signature_size``.
    """

    start_position = fileobj.tell() if fileobj.seekable() else 0

    buffer = b''
    buffer_offset = 0
    total_read = 0

    while total_read < MAX_SFX_SIZE:
        chunk = fileobj.read(min(SEARCH_CHUNK_SIZE, MAX_SFX_SIZE - total_read))
        if len(chunk) == 0:
            break

        total_read += len(chunk)
        buffer += chunk

        match = _SIGNATURE_PATTERN.search(buffer)
        if match is not None:
            return detect_rar_signature(match.group(0)), start_position + buffer_offset + match.start()

        keep = _MAX_SIGNATURE_SIZE - 1
        if len(buffer) > keep:
            buffer_offset += len(buffer) - keep
            buffer = buffer[-keep:]

    return None
