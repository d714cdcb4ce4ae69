"""
Decoders for the filename encodings used in RAR archives.

None of the functions here raise on bad input. When a name cannot be decoded, the original bytes are returned instead
of a string, so callers should be prepared to handle ``Union[str, bytes]`` values.
"""

from typing import Union


RarFilename = Union[str, bytes]

HIGH_ASCII_SENTINEL = '\ufffe'
HIGH_ASCII_MAP_START = 0xe080
HIGH_ASCII_MAP_END = 0xe0ff
HIGH_ASCII_MAP_OFFSET = 0xe000


def decode_legacy_filename(raw_name: bytes) -> RarFilename:
    """
    Decodes a filename stored in a RAR 1.5 - 4.x header with the UNICODE flag set.

    Such a field contains the name in the OEM (narrow) encoding, followed by a NUL byte, followed by a compact "program"
    that rebuilds the wide name using the narrow one as a reference. If there is no NUL byte, or nothing after it, the
    name is plain UTF-8 text.

    Returns:
        The decoded name as a string, or the original bytes if the data is malformed.
    """

    split_index = raw_name.find(b'\x00')

    if (split_index == -1) or (split_index == len(raw_name) - 1):
        return _decode_utf8_or_raw(raw_name if split_index == -1 else raw_name[:split_index], raw_name)

    name = raw_name[:split_index]
    program = raw_name[split_index + 1:]

    try:
        return _run_name_program(name, program)
    except (IndexError, ValueError):
        return raw_name


def _run_name_program(name: bytes, program: bytes) -> str:
    out_chars = []

    high_byte = program[0]
    pos = 1
    flags = 0
    counter = 0

    while pos < len(program):
        if counter % 4 == 0:
            flags = program[pos]
            pos += 1

        if pos >= len(program):
            break

        opcode = (flags >> ((3 - (counter % 4)) * 2)) & 0x03

        if opcode == 0:
            out_chars.append(_checked_chr(program[pos]))
            pos += 1
        elif opcode == 1:
            out_chars.append(_checked_chr(program[pos] + (high_byte << 8)))
            pos += 1
        elif opcode == 2:
            if pos + 1 < len(program):
                out_chars.append(_checked_chr(program[pos] + (program[pos + 1] << 8)))
                pos += 2
        else:
            length = program[pos]
            pos += 1

            if length & 0x80:
                if pos < len(program):
                    correction = program[pos]
                    pos += 1

                    for _ in range((length & 0x7f) + 2):
                        if len(out_chars) >= len(name):
                            break

                        narrow_char = name[len(out_chars)]
                        out_chars.append(_checked_chr(((narrow_char + correction) & 0xff) + (high_byte << 8)))
            else:
                for _ in range(length + 2):
                    if len(out_chars) >= len(name):
                        break

                    out_chars.append(chr(name[len(out_chars)]))

        counter += 1

    return ''.join(out_chars)


def _checked_chr(code_point: int) -> str:
    if 0xd800 <= code_point <= 0xdfff:
        raise ValueError(f"Code point U+{code_point:04X} is a surrogate")

    return chr(code_point)


def _decode_utf8_or_raw(data: bytes, raw_name: bytes) -> RarFilename:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return raw_name


def unmap_high_ascii(name: str) -> str:
    """
    Reverses the mapping RAR 5.0 applies to filename bytes that were not valid UTF-8 on the originating system.

    Such bytes (0x80-0xFF) are stored as the private-use code points U+E080-U+E0FF, and the name is marked by the
    presence of the U+FFFE code point. Names without the marker are returned unchanged.
    """

    if HIGH_ASCII_SENTINEL not in name:
        return name

    return ''.join(
        chr(ord(char) - HIGH_ASCII_MAP_OFFSET) if HIGH_ASCII_MAP_START <= ord(char) <= HIGH_ASCII_MAP_END else char
        for char in name
        if char != HIGH_ASCII_SENTINEL
    )


def decode_modern_filename(raw_name: bytes) -> RarFilename:
    """
    Decodes a filename stored in a RAR 5.0 header (UTF-8, with high-ASCII mapping).
    """

    name = _decode_utf8_or_raw(raw_name, raw_name)

    return unmap_high_ascii(name) if isinstance(name, str) else name


def decode_oem_filename(raw_name: bytes) -> RarFilename:
    """
    Decodes a filename stored in the OEM code page of the archiving machine.

    As the code page is not recorded anywhere, only pure ASCII names can be decoded reliably. Anything else is returned
    as the original bytes.
    """

    try:
        return raw_name.decode('ascii')
    except UnicodeDecodeError:
        return raw_name
