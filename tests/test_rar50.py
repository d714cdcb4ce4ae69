import struct
import unittest

from atmfjstc.lib.rar_forensics.enums import Rar50HostOS, Rar50CompressionAlgorithm, Rar50CompressionMethod, \
    RarRedirType, RarHashType, RarEncryptionVersion
from atmfjstc.lib.rar_forensics.errors import RarCorruptHeaderError, RarUnexpectedEOFError
from atmfjstc.lib.rar_forensics.rar50 import Rar50BlockIterator, Rar50MainBlock, Rar50FileBlock, Rar50ServiceBlock, \
    Rar50CryptBlock, Rar50EndArchiveBlock, Rar50UnknownBlock, Rar50ServiceType, Rar50CompressionInfo, \
    Rar50ExtraAreaRecord, Rar50UnknownRecord, Rar50UnixOwnerRecord, Rar50RecoveryRecordInfo, Rar50MainFlags, \
    Rar50FileFlags, Rar50BlockFlags
from atmfjstc.lib.rar_forensics.rar50._records import iter_extra_area_records
from atmfjstc.lib.rar_forensics.signature import RarFormat
from atmfjstc.lib.rar_forensics.vint import encode_vint

from rar_builders import as_file, rar50_block, rar50_record, rar50_name, rar50_main, rar50_entry, rar50_end


SIGNATURE = RarFormat.RAR50.signature
OFFSET = RarFormat.RAR50.signature_size


def _blocks(*parts: bytes) -> list:
    return list(Rar50BlockIterator(as_file(SIGNATURE, *parts), OFFSET))


def _file(**kwargs) -> Rar50FileBlock:
    _, file = _blocks(rar50_main(), rar50_entry(**kwargs))

    return file


class Rar50BlocksTest(unittest.TestCase):
    def test_typical_archive(self):
        blocks = _blocks(
            rar50_main(flags=Rar50MainFlags.SOLID),
            rar50_entry(b'docs/readme.txt', b'hello world', mtime=1000000000, data_crc32=0x0d4a1185),
            rar50_entry(b'docs', flags=Rar50FileFlags.DIRECTORY, attributes=0o40755),
            rar50_end(),
        )

        main, file, directory, end = blocks

        self.assertIsInstance(main, Rar50MainBlock)
        self.assertEqual(main.position, 8)
        self.assertTrue(main.is_solid)
        self.assertFalse(main.is_volume)
        self.assertIsNone(main.volume_number)
        self.assertIsNone(main.extra_area_size)
        self.assertEqual(main.unknown_records, ())
        self.assertEqual(main.warnings, ())

        self.assertIsInstance(file, Rar50FileBlock)
        self.assertEqual(file.name, 'docs/readme.txt')
        self.assertEqual(file.data_size, 11)
        self.assertEqual(file.full_size, file.header_size + 11)
        self.assertEqual(file.unpacked_size, 11)
        self.assertEqual(file.modification_time, '2001-09-09 01:46:40+00:00')
        self.assertEqual(file.data_crc32, 0x0d4a1185)
        self.assertEqual(file.host_os, Rar50HostOS.UNIX)
        self.assertEqual(file.attributes, 0o100644)
        self.assertFalse(file.is_directory)
        self.assertFalse(file.is_encrypted)
        self.assertIsNone(file.time)
        self.assertEqual(file.warnings, ())

        self.assertTrue(directory.is_directory)
        self.assertEqual(directory.data_size, 0)
        self.assertIsNone(directory.data_area_size)
        self.assertIsNone(directory.modification_time)
        self.assertIsNone(directory.data_crc32)

        self.assertIsInstance(end, Rar50EndArchiveBlock)
        self.assertFalse(end.has_next_volume)

        for block, next_block in zip(blocks, blocks[1:]):
            self.assertEqual(block.position + block.full_size, next_block.position)

    def test_header_size(self):
        main, = _blocks(rar50_main())

        # CRC32, header size vint, then type, flags and archive flags
        self.assertEqual(main.header_size, 4 + 1 + 3)

    def test_stops_after_end_of_archive(self):
        blocks = _blocks(rar50_main(), rar50_end(flags=1), b'\x00' * 20)

        self.assertEqual(len(blocks), 2)
        self.assertTrue(blocks[-1].has_next_volume)

    def test_volume_number(self):
        main, = _blocks(rar50_main(flags=Rar50MainFlags.VOLUME, volume_number=4))

        self.assertTrue(main.is_volume)
        self.assertEqual(main.volume_number, 4)
        self.assertEqual(main.warnings, ())

    def test_volume_number_without_volume_flag(self):
        main, = _blocks(rar50_main(volume_number=4))

        self.assertEqual(main.volume_number, 4)
        self.assertEqual(len(main.warnings), 1)

    def test_unknown_unpacked_size(self):
        self.assertIsNone(_file(flags=Rar50FileFlags.UNKNOWN_UNPACKED_SIZE).unpacked_size)

    def test_common_flags(self):
        file = _file(block_flags=Rar50BlockFlags.SPLIT_AFTER | Rar50BlockFlags.SKIP_IF_UNKNOWN)

        self.assertTrue(file.is_split_after)
        self.assertFalse(file.is_split_before)
        self.assertTrue(file.skip_if_unknown)

    def test_high_ascii_name(self):
        self.assertEqual(_file(name='\ue0c3\ue086\ufffe'.encode('utf-8')).name, '\u00c3\u0086')

    def test_invalid_utf8_name(self):
        self.assertEqual(_file(name=b'bad\xffname').name, b'bad\xffname')

    def test_unknown_host_os(self):
        self.assertEqual(_file(host_os=7).host_os, 7)

    def test_leftover_body_warning(self):
        body = encode_vint(0) + encode_vint(0) + encode_vint(0) + encode_vint(0) + encode_vint(1) \
            + rar50_name(b'x') + b'junk'

        _, file = _blocks(rar50_main(), rar50_block(2, body))

        self.assertEqual(file.name, 'x')
        self.assertEqual(len(file.warnings), 1)

    def test_crypt_block(self):
        body = encode_vint(0) + encode_vint(1) + bytes([15]) + b'S' * 16 + b'C' * 12

        _, crypt = _blocks(rar50_main(), rar50_block(4, body))

        self.assertIsInstance(crypt, Rar50CryptBlock)
        self.assertEqual(crypt.version, RarEncryptionVersion.AES256)
        self.assertEqual(crypt.kdf_count, 15)
        self.assertEqual(crypt.salt, b'S' * 16)
        self.assertEqual(crypt.check_value, b'C' * 12)

    def test_unknown_block(self):
        blocks = _blocks(rar50_main(), rar50_block(9, b'whatever', data=b'payload'), rar50_end())

        _, unknown, _ = blocks

        self.assertIsInstance(unknown, Rar50UnknownBlock)
        self.assertEqual(unknown.block_type, 9)
        self.assertEqual(unknown.data_size, 7)


class Rar50ServiceBlockTest(unittest.TestCase):
    def test_comment(self):
        _, service = _blocks(rar50_main(), rar50_entry(b'CMT', b'packed comment', attributes=0, block_type=3))

        self.assertIsInstance(service, Rar50ServiceBlock)
        self.assertEqual(service.service_type, Rar50ServiceType.COMMENT)
        self.assertIsNone(service.recovery_record)
        self.assertEqual(service.warnings, ())

    def test_recovery_record(self):
        extra = rar50_record(7, bytes([3]) + b'\x01\x02')

        _, service = _blocks(rar50_main(), rar50_entry(b'RR', attributes=0, extra=extra, block_type=3))

        self.assertEqual(service.service_type, Rar50ServiceType.RECOVERY_RECORD)
        self.assertEqual(service.recovery_record, Rar50RecoveryRecordInfo(percentage=3, extra_data=b'\x01\x02'))
        self.assertEqual(service.unknown_records, ())

    def test_service_data_not_interpreted_for_other_types(self):
        extra = rar50_record(7, b'\x05')

        _, service = _blocks(rar50_main(), rar50_entry(b'QO', attributes=0, extra=extra, block_type=3))

        self.assertIsNone(service.recovery_record)
        self.assertEqual(service.unknown_records, (Rar50UnknownRecord(7),))

    def test_nonzero_attributes_warning(self):
        _, service = _blocks(rar50_main(), rar50_entry(b'ACL', attributes=0x10, block_type=3))

        self.assertEqual(service.service_type, Rar50ServiceType.NTFS_ACL)
        self.assertEqual(len(service.warnings), 1)


class Rar50MainRecordsTest(unittest.TestCase):
    def test_locator(self):
        extra = rar50_record(1, encode_vint(3) + encode_vint(1000) + encode_vint(0))

        main, = _blocks(rar50_main(extra=extra))

        self.assertEqual(main.locator.quick_open_offset, 1000)
        self.assertIsNone(main.locator.recovery_record_offset)
        self.assertTrue(main.block_flags & Rar50BlockFlags.EXTRA_AREA)
        self.assertEqual(main.extra_area_size, len(extra))

    def test_metadata_unix_nanos(self):
        payload = encode_vint(0x0f) + rar50_name(b'backup.rar\x00\x00') + struct.pack('<Q', 1000000000123456789)

        main, = _blocks(rar50_main(extra=rar50_record(2, payload)))

        self.assertEqual(main.metadata.archive_name, 'backup.rar')
        self.assertEqual(main.metadata.creation_time, '2001-09-09 01:46:40.123456789+00:00')
        self.assertEqual(main.warnings, ())

    def test_metadata_filetime(self):
        payload = encode_vint(0x02) + struct.pack('<Q', 128166372003061629)

        main, = _blocks(rar50_main(extra=rar50_record(2, payload)))

        self.assertIsNone(main.metadata.archive_name)
        self.assertEqual(main.metadata.creation_time, '2007-02-22 17:00:00.3061629+00:00')

    def test_metadata_nanos_flag_without_unix_time(self):
        payload = encode_vint(0x0a) + struct.pack('<Q', 0)

        main, = _blocks(rar50_main(extra=rar50_record(2, payload)))

        self.assertEqual(main.metadata.creation_time, '1601-01-01 00:00:00+00:00')
        self.assertEqual(len(main.warnings), 1)


class Rar50FileRecordsTest(unittest.TestCase):
    def test_encryption(self):
        payload = encode_vint(0) + encode_vint(3) + bytes([16]) + b's' * 16 + b'i' * 16 + b'c' * 12

        file = _file(extra=rar50_record(1, payload))

        self.assertTrue(file.is_encrypted)
        self.assertEqual(file.encryption.version, RarEncryptionVersion.AES256)
        self.assertEqual(file.encryption.kdf_count, 16)
        self.assertEqual(file.encryption.iv, b'i' * 16)
        self.assertEqual(file.encryption.check_value, b'c' * 12)
        self.assertTrue(file.encryption.uses_tweaked_checksums)

    def test_hash(self):
        file = _file(extra=rar50_record(2, encode_vint(0) + b'\xab' * 32))

        self.assertEqual(file.hash.hash_type, RarHashType.BLAKE2SP)
        self.assertEqual(file.hash.hash_value, b'\xab' * 32)

    def test_unsupported_hash(self):
        file = _file(extra=rar50_record(2, encode_vint(5) + b'\xab' * 4))

        self.assertEqual(file.hash.hash_type, 5)
        self.assertIsNone(file.hash.hash_value)
        self.assertEqual(len(file.warnings), 2)

    def test_unix_times_with_nanos(self):
        payload = encode_vint(0x1b) + struct.pack('<II', 1000000000, 1000000001) + struct.pack('<II', 500, 7)

        file = _file(mtime=1000000000, extra=rar50_record(3, payload))

        self.assertEqual(file.time.modification_time, '2001-09-09 01:46:40.0000005+00:00')
        self.assertIsNone(file.time.creation_time)
        self.assertEqual(file.time.access_time, '2001-09-09 01:46:41.000000007+00:00')
        self.assertEqual(file.effective_modification_time, '2001-09-09 01:46:40.0000005+00:00')

    def test_filetimes(self):
        payload = encode_vint(0x06) + struct.pack('<QQ', 128166372003061629, 0)

        file = _file(mtime=1000000000, extra=rar50_record(3, payload))

        self.assertEqual(file.time.modification_time, '2007-02-22 17:00:00.3061629+00:00')
        self.assertEqual(file.time.creation_time, '1601-01-01 00:00:00+00:00')

    def test_effective_modification_time_falls_back(self):
        file = _file(mtime=1000000000, extra=rar50_record(3, encode_vint(0x04) + struct.pack('<Q', 0)))

        self.assertEqual(file.effective_modification_time, '2001-09-09 01:46:40+00:00')

    def test_version(self):
        file = _file(extra=rar50_record(4, encode_vint(0) + encode_vint(12)))

        self.assertEqual(file.version.version, 12)

    def test_redirection(self):
        file = _file(extra=rar50_record(5, encode_vint(1) + encode_vint(1) + rar50_name(b'../target')))

        self.assertEqual(file.redirection.redirection_type, RarRedirType.UNIX_SYMLINK)
        self.assertTrue(file.redirection.flags & 1)
        self.assertEqual(file.redirection.target, '../target')

    def test_unix_owner(self):
        payload = encode_vint(0x0d) + rar50_name(b'alice') + encode_vint(1000) + encode_vint(100)

        file = _file(extra=rar50_record(6, payload))

        self.assertEqual(
            file.unix_owner,
            Rar50UnixOwnerRecord(flags=0x0d, user_name='alice', user_id=1000, group_id=100)
        )

    def test_unknown_record(self):
        file = _file(extra=rar50_record(0x55, b'???') + rar50_record(4, encode_vint(0) + encode_vint(1)))

        self.assertEqual(file.unknown_records, (Rar50UnknownRecord(0x55),))
        self.assertEqual(file.version.version, 1)

    def test_first_record_wins(self):
        extra = rar50_record(4, encode_vint(0) + encode_vint(1)) + rar50_record(4, encode_vint(0) + encode_vint(2))

        file = _file(extra=extra)

        self.assertEqual(file.version.version, 1)
        self.assertEqual(file.unknown_records, (Rar50UnknownRecord(4),))
        self.assertEqual(len(file.warnings), 1)

    def test_record_not_fully_consumed(self):
        file = _file(extra=rar50_record(4, encode_vint(0) + encode_vint(1) + b'xx'))

        self.assertEqual(file.version.version, 1)
        self.assertEqual(len(file.warnings), 1)

    def test_record_too_short_for_fields(self):
        with self.assertRaises(RarCorruptHeaderError):
            _file(extra=rar50_record(1, encode_vint(0) + encode_vint(0) + b'\x0f' + b's' * 10))


class CompressionInfoTest(unittest.TestCase):
    def test_rar5(self):
        info = Rar50CompressionInfo(0x40 | (3 << 7) | (2 << 10))

        self.assertEqual(info.algorithm, Rar50CompressionAlgorithm.RAR5)
        self.assertTrue(info.is_solid)
        self.assertEqual(info.method, Rar50CompressionMethod.NORMAL)
        self.assertEqual(info.min_dictionary_size, 0x80000)
        self.assertTrue(info.has_valid_dictionary_size)

    def test_rar7_fractional_dictionary(self):
        info = Rar50CompressionInfo(1 | (1 << 10) | (4 << 15))

        self.assertEqual(info.algorithm, Rar50CompressionAlgorithm.RAR7)
        self.assertEqual(info.min_dictionary_size, 0x40000 + 0x40000 // 32 * 4)

    def test_rar7_using_rar5_algorithm(self):
        info = Rar50CompressionInfo(1 | 0x100000)

        self.assertEqual(info.algorithm_version, Rar50CompressionAlgorithm.RAR7)
        self.assertEqual(info.algorithm, Rar50CompressionAlgorithm.RAR5)

    def test_oversized_dictionary(self):
        info = Rar50CompressionInfo(1 | (20 << 10))

        self.assertEqual(info.min_dictionary_size, 0x20000 << 20)
        self.assertFalse(info.has_valid_dictionary_size)

    def test_oversized_dictionary_warning(self):
        self.assertEqual(len(_file(compression_info=1 | (20 << 10)).warnings), 1)


class ExtraAreaRecordsTest(unittest.TestCase):
    def test_split(self):
        data = rar50_record(1, b'abc') + rar50_record(300, b'') + rar50_record(2, b'x' * 200)

        self.assertEqual(list(iter_extra_area_records(data)), [
            Rar50ExtraAreaRecord(1, b'abc'),
            Rar50ExtraAreaRecord(300, b''),
            Rar50ExtraAreaRecord(2, b'x' * 200),
        ])

    def test_empty(self):
        self.assertEqual(list(iter_extra_area_records(b'')), [])

    def test_size_smaller_than_type(self):
        with self.assertRaises(RarCorruptHeaderError):
            list(iter_extra_area_records(b'\x01\x80\x02'))

    def test_record_past_area(self):
        records = iter_extra_area_records(rar50_record(1, b'ok') + b'\x09\x02abc')

        self.assertEqual(next(records), Rar50ExtraAreaRecord(1, b'ok'))

        with self.assertRaises(RarCorruptHeaderError):
            next(records)

    def test_truncated_size_field(self):
        with self.assertRaises(RarUnexpectedEOFError):
            list(iter_extra_area_records(b'\x80'))


class Rar50CorruptHeaderTest(unittest.TestCase):
    def _assert_single_corrupt_error(self, *parts: bytes):
        iterator = Rar50BlockIterator(as_file(SIGNATURE, *parts), OFFSET)

        errors = 0
        with self.assertRaises(StopIteration):
            while True:
                try:
                    next(iterator)
                except RarCorruptHeaderError:
                    errors += 1

        self.assertEqual(errors, 1)

    def test_zero_header_size(self):
        self._assert_single_corrupt_error(rar50_main(), b'\x00\x00\x00\x00\x00', rar50_end())

    def test_header_past_eof(self):
        self._assert_single_corrupt_error(rar50_main(), b'\x00\x00\x00\x00\x7f\x02\x00')

    def test_data_past_eof(self):
        self._assert_single_corrupt_error(rar50_main(), rar50_entry(data=b'0123456789')[:-1])

    def test_extra_area_larger_than_header(self):
        fields = encode_vint(2) + encode_vint(Rar50BlockFlags.EXTRA_AREA) + encode_vint(100) + b'\x00' * 5

        self._assert_single_corrupt_error(rar50_main(), b'\x00' * 4 + encode_vint(len(fields)) + fields)

    def test_corrupt_extra_record(self):
        self._assert_single_corrupt_error(rar50_main(), rar50_entry(extra=b'\x05\x01ab'), rar50_end())

    def test_truncated_common_fields(self):
        # Block type vint continues past the end of the header
        self._assert_single_corrupt_error(rar50_main(), b'\x00' * 4 + b'\x01\x82', rar50_end())


if __name__ == '__main__':
    unittest.main()
