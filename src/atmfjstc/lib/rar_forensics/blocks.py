"""
Base classes shared by the block decoders of all RAR format generations.

A RAR archive is a sequence of *blocks*. Each block consists of a header, which is decoded by this package, optionally
followed by a data area (e.g. the compressed content of a file), which is only skipped over. Blocks are obtained
through a format-specific iterator (`Rar14BlockIterator`, `Rar15BlockIterator` or `Rar50BlockIterator`) that walks the
archive lazily, one header at a time.
"""

import os

from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, TypeVar

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError
from atmfjstc.lib.ez_repr import EZRepr

from .errors import RarUnexpectedEOFError, RarCorruptHeaderError


@dataclass(frozen=True, repr=False)
class RarBlock(EZRepr):
    """
    Base class for all RAR blocks.

    Attributes:
        position: The absolute offset of the block in the file
        header_size: The size of the block header, in bytes
    """

    position: int
    header_size: int

    @property
    def data_size(self) -> int:
        """
        The size of the data area following the header, in bytes.
        """
        return 0

    @property
    def full_size(self) -> int:
        return self.header_size + self.data_size

    @property
    def is_terminal(self) -> bool:
        """
        Whether this block marks the end of the archive.
        """
        return False


B = TypeVar('B', bound=RarBlock)


class RarBlockIterator(Iterator[B]):
    """
    Base class for the lazy, single-pass iterators over the blocks of a RAR archive.

    Iteration stops when the end of the file is reached exactly, or after an end-of-archive block is produced. Any
    error raised while reading a block (`RarUnexpectedEOFError`, `RarCorruptHeaderError` or an `OSError` from the
    file object) ends the iteration: subsequent calls to `next()` will raise `StopIteration`.

    The iterator needs exclusive access to the file object for its whole lifetime, as it repositions it at each step.
    """

    _reader: BinaryReader
    _file_size: int
    _next_position: int
    _done: bool = False
    _blocks_read: int = 0

    def __init__(self, fileobj: BinaryIO, offset: int):
        """
        Args:
            fileobj: A seekable binary file object containing the archive.
            offset: The position in the file right after the archive signature.
        """

        if not fileobj.seekable():
            raise ValueError("File object must be seekable")

        self._reader = BinaryReader(fileobj, big_endian=False)
        self._file_size = self._reader.total_size()
        self._next_position = offset

    @property
    def file_size(self) -> int:
        return self._file_size

    @property
    def next_position(self) -> int:
        return self._next_position

    @property
    def done(self) -> bool:
        return self._done

    def __iter__(self) -> 'RarBlockIterator[B]':
        return self

    def __next__(self) -> B:
        if self._done or (self._next_position == self._file_size):
            self._done = True
            raise StopIteration

        try:
            self._reader.seek(self._next_position, os.SEEK_SET)

            block = self._read_block(self._reader)

            check_block_bounds(block.position, block.header_size, block.full_size, self._file_size)
        except BinaryReaderFormatError as e:
            self._done = True
            raise RarUnexpectedEOFError(f"Data ends in the middle of a block at position {self._next_position}") \
                from e
        except Exception:
            self._done = True
            raise

        self._blocks_read += 1
        self._next_position = block.position + block.full_size

        if block.is_terminal:
            self._done = True

        return block

    def _read_block(self, reader: BinaryReader) -> B:
        raise NotImplementedError


def check_block_bounds(position: int, header_size: int, full_size: Optional[int], file_size: int):
    """
    Validates that a block header (and, if its full size is known, its data area) lies within the file.

    Raises:
        RarCorruptHeaderError: If the declared sizes are zero or extend past the end of the file.
    """

    if header_size <= 0:
        raise RarCorruptHeaderError(f"Block declares an invalid header size of {header_size}", position)
    if position + header_size > file_size:
        raise RarCorruptHeaderError(
            f"Block header of size {header_size} extends past the end of the file ({file_size})", position
        )
    if (full_size is not None) and (position + full_size > file_size):
        raise RarCorruptHeaderError(
            f"Block of total size {full_size} extends past the end of the file ({file_size})", position
        )


def read_header_bytes(reader: BinaryReader, position: int, header_size: int, file_size: int) -> BinaryReader:
    """
    Reads the entire header of a block into memory, after checking that it fits in the file.

    Returns:
        A `BinaryReader` over the header bytes only, so that no field can be read from outside the header.
    """

    check_block_bounds(position, header_size, None, file_size)

    reader.seek(position, os.SEEK_SET)

    return BinaryReader(reader.read_amount(header_size, 'block header'), big_endian=False)
