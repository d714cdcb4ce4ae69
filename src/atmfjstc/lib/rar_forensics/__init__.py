"""
Forensic decoder for the header structure of RAR archives.

This package locates the signature of a RAR archive inside a file (possibly behind an SFX stub) and walks through the
headers of its blocks, decoding archive-level and per-entry metadata (names, sizes, timestamps, attributes, hashes,
encryption parameters etc). The compressed content of the entries is never decompressed nor decrypted.

All three generations of the format are supported, each in its own subpackage:

- `rar14`: RAR 1.4 (signature ``RE~^``)
- `rar15`: RAR 1.5 - 4.x (signature ``Rar!\\x1a\\x07\\x00``)
- `rar50`: RAR 5.0 and later (signature ``Rar!\\x1a\\x07\\x01\\x00``)

Typical usage::

    with open('archive.rar', 'rb') as f:
        for block in iter_rar_blocks(f):
            print(block)
"""

import os

from typing import BinaryIO

from .blocks import RarBlock, RarBlockIterator
from .errors import RarFormatError, RarUnexpectedEOFError, RarCorruptHeaderError, NotARarArchiveError
from .signature import RarFormat, search_rar_signature, detect_rar_signature


__version__ = '0.1.0'


def make_block_iterator(rar_format: RarFormat, fileobj: BinaryIO, signature_offset: int) -> RarBlockIterator:
    """
    Creates an iterator over the blocks of an archive whose signature has already been located.

    Args:
        rar_format: The format of the archive, as indicated by the signature
        fileobj: A seekable binary file object containing the archive
        signature_offset: The absolute position of the signature in the file

    Returns:
        A `Rar14BlockIterator`, `Rar15BlockIterator` or `Rar50BlockIterator` as appropriate.
    """

    offset = signature_offset + rar_format.signature_size

    if rar_format == RarFormat.RAR14:
        from .rar14 import Rar14BlockIterator
        return Rar14BlockIterator(fileobj, offset)
    if rar_format == RarFormat.RAR15:
        from .rar15 import Rar15BlockIterator
        return Rar15BlockIterator(fileobj, offset)
    if rar_format == RarFormat.RAR50:
        from .rar50 import Rar50BlockIterator
        return Rar50BlockIterator(fileobj, offset)

    raise ValueError(f"Unsupported RAR format: {rar_format}")


def iter_rar_blocks(fileobj: BinaryIO) -> RarBlockIterator:
    """
    Locates the RAR signature in a file object (starting from its current position) and iterates through the blocks
    of the archive that follows.

    Raises:
        NotARarArchiveError: If no signature could be found within the first `MAX_SFX_SIZE` bytes.
    """

    result = search_rar_signature(fileobj)
    if result is None:
        raise NotARarArchiveError(getattr(fileobj, 'name', None))

    rar_format, signature_offset = result

    fileobj.seek(signature_offset + rar_format.signature_size, os.SEEK_SET)

    return make_block_iterator(rar_format, fileobj, signature_offset)
