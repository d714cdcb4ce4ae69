"""
Exceptions raised while decoding RAR archive structures.

Only structural problems are reported as exceptions. Values that merely fail to be interpreted (timestamps out of
range, undecodable filenames, unknown enum values) are returned in raw form instead. I/O errors from the underlying
file object propagate unchanged.
"""

from typing import Optional


class RarFormatError(Exception):
    """
    Base class for all errors signaling that the data does not match the structure of a RAR archive.
    """


class RarUnexpectedEOFError(RarFormatError):
    """
    Raised when a field could not be read completely because the data ended.
    """


class RarCorruptHeaderError(RarFormatError):
    position: Optional[int]

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position

        super().__init__(message if position is None else f"At position {position}: {message}")


class NotARarArchiveError(RarFormatError):
    def __init__(self, name: Optional[str] = None):
        super().__init__(
            "No RAR signature found" + (f" in '{name}'" if name is not None else '')
        )
