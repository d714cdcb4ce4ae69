"""
Command-line utility that dumps the block structure of RAR archives.

Usage::

    rar-block-dump [--max-width N] FILE [FILE ...]

For each file, the detected format and signature position are printed, followed by every block decoded from the
archive. Errors are reported per file; processing always continues with the next one.
"""

import os

from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

from atmfjstc.lib.cli_utils.console import console
from atmfjstc.lib.cli_utils.errors import pretty_unhandled, short_format_exception
from atmfjstc.lib.ez_repr import ez_render_value
from atmfjstc.lib.py_lang_utils.iteration import iter_with_first

from . import make_block_iterator
from .errors import RarFormatError
from .signature import search_rar_signature


DEFAULT_MAX_WIDTH = 120


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    parser = ArgumentParser(prog='rar-block-dump', description="Dumps the block headers of RAR archives")
    parser.add_argument('files', metavar='FILE', nargs='+', help="RAR archive (or SFX executable) to examine")
    parser.add_argument(
        '--max-width', type=int, default=DEFAULT_MAX_WIDTH,
        help=f"Try to fit the rendering of each block within this many columns (default: {DEFAULT_MAX_WIDTH})"
    )

    return parser.parse_args(argv)


@pretty_unhandled()
def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    for filename, is_first in iter_with_first(args.files):
        if not is_first:
            console.print_info('')

        dump_file(filename, args.max_width)

    return 0


def dump_file(filename: str, max_width: Optional[int] = DEFAULT_MAX_WIDTH) -> bool:
    """
    Prints all the blocks in a file. Returns False if an error occurred, after reporting it.
    """

    console.print_info(f"File: {filename}", major=True)

    try:
        with open(filename, 'rb') as f:
            result = search_rar_signature(f)
            if result is None:
                console.print_error("No RAR signature found")
                return False

            rar_format, signature_offset = result

            console.print_info(f"Format: {rar_format.name}, signature at offset {signature_offset}")

            f.seek(signature_offset + rar_format.signature_size, os.SEEK_SET)

            for block in make_block_iterator(rar_format, f, signature_offset):
                console.print_info(ez_render_value(block, max_width=max_width))
    except (RarFormatError, OSError) as e:
        console.print_error(short_format_exception(e))
        return False

    return True
