import os
import unittest

from tempfile import TemporaryDirectory
from unittest.mock import patch

from atmfjstc.lib.rar_forensics.cli import main, dump_file, parse_args, DEFAULT_MAX_WIDTH
from atmfjstc.lib.rar_forensics.signature import RarFormat

from rar_builders import rar15_main, rar15_entry, rar15_end, rar50_main, rar50_entry, rar50_end


class CLITest(unittest.TestCase):
    def setUp(self):
        self._temp_dir = TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)

        patcher = patch('atmfjstc.lib.rar_forensics.cli.console')
        self.console = patcher.start()
        self.addCleanup(patcher.stop)

    def _write(self, name: str, *parts: bytes) -> str:
        path = os.path.join(self._temp_dir.name, name)

        with open(path, 'wb') as f:
            f.write(b''.join(parts))

        return path

    def _infos(self):
        return [call[0][0] for call in self.console.print_info.call_args_list]

    def _errors(self):
        return [call[0][0] for call in self.console.print_error.call_args_list]

    def test_parse_args(self):
        args = parse_args(['a.rar', 'b.rar'])

        self.assertEqual(args.files, ['a.rar', 'b.rar'])
        self.assertEqual(args.max_width, DEFAULT_MAX_WIDTH)
        self.assertEqual(parse_args(['--max-width', '80', 'a.rar']).max_width, 80)

    def test_no_arguments(self):
        with patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                main([])

        self.assertNotEqual(ctx.exception.code, 0)

    def test_dump_rar15(self):
        path = self._write('test.rar', RarFormat.RAR15.signature, rar15_main(), rar15_entry(b'hello.txt'), rar15_end())

        self.assertTrue(dump_file(path))

        infos = self._infos()

        self.assertEqual(infos[0], f"File: {path}")
        self.assertEqual(infos[1], "Format: RAR15, signature at offset 0")
        self.assertEqual(len(infos), 2 + 3)
        self.assertIn('Rar15MainBlock', infos[2])
        self.assertIn('hello.txt', infos[3])
        self.assertIn('Rar15EndArchiveBlock', infos[4])
        self.assertEqual(self._errors(), [])

    def test_dump_rar50_sfx(self):
        path = self._write(
            'test.exe', b'MZ' + b'\x00' * 998, RarFormat.RAR50.signature, rar50_main(), rar50_entry(), rar50_end()
        )

        self.assertTrue(dump_file(path))
        self.assertEqual(self._infos()[1], "Format: RAR50, signature at offset 1000")

    def test_not_a_rar(self):
        path = self._write('test.zip', b'PK\x03\x04' + b'\x00' * 100)

        self.assertFalse(dump_file(path))
        self.assertEqual(self._errors(), ["No RAR signature found"])

    def test_corrupt_archive(self):
        path = self._write('bad.rar', RarFormat.RAR15.signature, rar15_main(), b'\x00\x00\x74')

        self.assertFalse(dump_file(path))
        self.assertIn('Rar15MainBlock', self._infos()[2])
        self.assertEqual(len(self._errors()), 1)
        self.assertIn('RarUnexpectedEOFError', self._errors()[0])

    def test_missing_file(self):
        self.assertFalse(dump_file(os.path.join(self._temp_dir.name, 'missing.rar')))
        self.assertEqual(len(self._errors()), 1)

    def test_main_continues_after_errors(self):
        good = self._write('good.rar', RarFormat.RAR15.signature, rar15_main(), rar15_end())
        bad = self._write('bad.bin', b'nothing to see here')

        self.assertEqual(main([bad, os.path.join(self._temp_dir.name, 'missing.rar'), good]), 0)

        infos = self._infos()

        self.assertEqual(len(self._errors()), 2)
        self.assertIn(f"File: {good}", infos)
        self.assertIn("Format: RAR15, signature at offset 0", infos)
        self.assertEqual(infos.count(''), 2)


if __name__ == '__main__':
    unittest.main()
