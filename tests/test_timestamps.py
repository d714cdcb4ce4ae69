import unittest

from atmfjstc.lib.rar_forensics.timestamps import parse_dos_time, parse_windows_filetime, parse_unix_time, \
    parse_unix_time_nanos, add_to_timestamp

from rar_builders import dos_time


class ParseDosTimeTest(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(parse_dos_time(dos_time(2007, 2, 22, 17, 30, 58)), '2007-02-22 17:30:58')

    def test_epoch(self):
        self.assertEqual(parse_dos_time(dos_time(1980, 1, 1)), '1980-01-01 00:00:00')

    def test_invalid_returns_raw(self):
        raw = dos_time(2007, 13, 1)

        self.assertEqual(parse_dos_time(raw), raw)

    def test_zero_returns_raw(self):
        self.assertEqual(parse_dos_time(0), 0)


class ParseWindowsFiletimeTest(unittest.TestCase):
    def test_zero(self):
        self.assertEqual(parse_windows_filetime(0), '1601-01-01 00:00:00+00:00')

    def test_with_decimals(self):
        self.assertEqual(parse_windows_filetime(128166372003061629), '2007-02-22 17:00:00.3061629+00:00')

    def test_unix_epoch(self):
        self.assertEqual(parse_windows_filetime(116444736000000000), '1970-01-01 00:00:00+00:00')

    def test_out_of_range_returns_raw(self):
        self.assertEqual(parse_windows_filetime(0xffffffffffffffff), 0xffffffffffffffff)


class ParseUnixTimeTest(unittest.TestCase):
    def test_seconds(self):
        self.assertEqual(parse_unix_time(1000000000), '2001-09-09 01:46:40+00:00')

    def test_nanos(self):
        self.assertEqual(parse_unix_time_nanos(1000000000123456789), '2001-09-09 01:46:40.123456789+00:00')

    def test_nanos_out_of_range_returns_raw(self):
        self.assertEqual(parse_unix_time_nanos(0xffffffffffffffff * 1000), 0xffffffffffffffff * 1000)


class AddToTimestampTest(unittest.TestCase):
    def test_naive(self):
        self.assertEqual(add_to_timestamp('2007-02-22 17:30:58', seconds=1, nanos=500), '2007-02-22 17:30:59.0000005')

    def test_aware_with_carry(self):
        self.assertEqual(
            add_to_timestamp('2007-02-22 23:59:59.9+00:00', nanos=200000000),
            '2007-02-23 00:00:00.1+00:00'
        )

    def test_canonical_result(self):
        self.assertEqual(add_to_timestamp('2007-02-22 17:30:58.5', nanos=500000000), '2007-02-22 17:30:59')

    def test_overflow(self):
        with self.assertRaises(OverflowError):
            add_to_timestamp('9999-12-31 23:59:59', seconds=1)


if __name__ == '__main__':
    unittest.main()
