# Copyright Red Hat
#
# tests/scan/test_formatter.py - Canonical record formatting tests.
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
from dataclasses import replace
import unittest

from treesum import (
    TreesumEncodingError,
    TreesumListingError,
    TreesumStatError,
)
from treesum.scan.formatter import (
    CanonicalFormatter,
    MOUNTPOINT_MARKER,
    escape_bytes,
    format_mtime,
    is_utf8,
)
from treesum.scan.options import ScanOptions

from ._util import make_entry

SHA_HI = "8f434346648f6b96df89dda901c5176b10a6d83961dd3c1ac88b59b2dc327aa4"


class TestEscapeBytes(unittest.TestCase):
    def test_plain_ascii(self):
        self.assertEqual(escape_bytes(b"dir/file.txt"), "dir/file.txt")

    def test_utf8_kept(self):
        self.assertEqual(escape_bytes("caf\u00e9".encode("utf8")), "caf\u00e9")

    def test_separators_escaped(self):
        self.assertEqual(escape_bytes(b"a\tb\nc\rd"), "a\\tb\\nc\\rd")

    def test_backslash_escaped(self):
        self.assertEqual(escape_bytes(b"a\\b"), "a\\\\b")

    def test_control_characters_escaped(self):
        self.assertEqual(escape_bytes(b"a\x01b\x7f"), "a\\x01b\\x7f")

    def test_invalid_utf8_bytes(self):
        self.assertEqual(escape_bytes(b"bad\xff\xfename"), "bad\\xff\\xfename")

    def test_invalid_then_valid(self):
        value = b"\xe9t\xc3\xa9"
        self.assertEqual(escape_bytes(value), "\\xe9t\u00e9")

    def test_distinct_names_stay_distinct(self):
        # A literal backslash-x sequence must not collide with an escaped byte.
        self.assertNotEqual(escape_bytes(b"\\xff"), escape_bytes(b"\xff"))

    def test_empty(self):
        self.assertEqual(escape_bytes(b""), "")

    def test_is_utf8(self):
        self.assertTrue(is_utf8(b"plain"))
        self.assertTrue(is_utf8("\u00e9".encode("utf8")))
        self.assertFalse(is_utf8(b"\xff"))


class TestFormatMtime(unittest.TestCase):
    def test_seconds(self):
        self.assertEqual(format_mtime(1600000000 * 10**9), "2020-09-13T12:26:40Z")

    def test_seconds_truncates_fraction(self):
        self.assertEqual(
            format_mtime(1600000000 * 10**9 + 999999999), "2020-09-13T12:26:40Z"
        )

    def test_nanoseconds(self):
        self.assertEqual(
            format_mtime(1600000000 * 10**9 + 5, "nanoseconds"),
            "2020-09-13T12:26:40.000000005Z",
        )

    def test_epoch(self):
        self.assertEqual(format_mtime(0), "1970-01-01T00:00:00Z")

    def test_before_epoch(self):
        self.assertEqual(format_mtime(-1), "1969-12-31T23:59:59Z")
        self.assertEqual(
            format_mtime(-1, "nanoseconds"), "1969-12-31T23:59:59.999999999Z"
        )

    def test_out_of_range(self):
        huge = 10**12 * 10**9
        self.assertEqual(format_mtime(huge), f"@{10**12}")


class TestCanonicalFormatter(unittest.TestCase):
    def test_format_file(self):
        fmt = CanonicalFormatter()
        entry = make_entry("a.txt", size=2, content_hash=SHA_HI)
        self.assertEqual(
            fmt.format_entry(entry),
            f"file\t1000:1000\t0644\t2020-09-13T12:26:40Z\t2\t{SHA_HI}\ta.txt\t-\n",
        )

    def test_format_dir(self):
        fmt = CanonicalFormatter()
        entry = make_entry(".", kind="dir", mode=0o755)
        self.assertEqual(
            fmt.format_entry(entry),
            "dir\t1000:1000\t0755\t2020-09-13T12:26:40Z\t-\t-\t.\t-\n",
        )

    def test_format_mountpoint(self):
        fmt = CanonicalFormatter()
        entry = replace(make_entry("mnt", kind="dir", mode=0o755), mountpoint=True)
        self.assertEqual(
            fmt.format_entry(entry),
            "dir\t1000:1000\t0755\t2020-09-13T12:26:40Z\t-\t-\tmnt\t(mountpoint)\n",
        )
        empty = make_entry("mnt", kind="dir", mode=0o755)
        self.assertNotEqual(fmt.format_entry(entry), fmt.format_entry(empty))
        self.assertEqual(MOUNTPOINT_MARKER, "(mountpoint)")

    def test_format_symlink(self):
        fmt = CanonicalFormatter()
        entry = make_entry("l", kind="link", mode=0o777, target=b"../x\ty")
        self.assertEqual(
            fmt.format_entry(entry),
            "link\t1000:1000\t0777\t2020-09-13T12:26:40Z\t-\t-\tl\t../x\\ty\n",
        )

    def test_format_other(self):
        fmt = CanonicalFormatter()
        entry = make_entry("fifo", kind="other", mode=0o600)
        self.assertTrue(fmt.format_entry(entry).startswith("other\t1000:1000\t0600\t"))

    def test_every_record_has_eight_fields(self):
        fmt = CanonicalFormatter()
        for kind in ("file", "dir", "link", "other"):
            with self.subTest(kind=kind):
                record = fmt.format_entry(make_entry("x\ny", kind=kind))
                self.assertTrue(record.endswith("\n"))
                self.assertEqual(record.count("\n"), 1)
                self.assertEqual(len(record.rstrip("\n").split("\t")), 8)

    def test_hash_skipped_marker(self):
        fmt = CanonicalFormatter()
        entry = make_entry("big", size=10**9, content_hash=None)
        self.assertEqual(fmt.format_entry(entry).split("\t")[5], "*")

    def test_hash_length(self):
        fmt = CanonicalFormatter(ScanOptions(hash_length=8))
        entry = make_entry("a", content_hash=SHA_HI)
        self.assertEqual(fmt.format_entry(entry).split("\t")[5], SHA_HI[:8])

    def test_ignore_fields(self):
        opts = ScanOptions(
            ignore_timestamps=True, ignore_permissions=True, ignore_ownership=True
        )
        fmt = CanonicalFormatter(opts)
        entry = make_entry("a", size=2, content_hash=SHA_HI)
        self.assertEqual(
            fmt.format_entry(entry), f"file\t-\t-\t-\t2\t{SHA_HI}\ta\t-\n"
        )

    def test_nanosecond_precision(self):
        fmt = CanonicalFormatter(ScanOptions(timestamp_precision="nanoseconds"))
        entry = make_entry("a", mtime_ns=1600000000 * 10**9 + 123)
        self.assertEqual(
            fmt.format_entry(entry).split("\t")[3], "2020-09-13T12:26:40.000000123Z"
        )

    def test_format_error(self):
        fmt = CanonicalFormatter()
        err = TreesumListingError(b"b/locked", err_no=13)
        self.assertEqual(fmt.format_error(err), "error\tlisting\tEACCES\tb/locked\n")

    def test_format_error_unknown_errno(self):
        fmt = CanonicalFormatter()
        err = TreesumStatError(b"x")
        self.assertEqual(fmt.format_error(err), "error\tstat\tEUNKNOWN\tx\n")

    def test_format_encoding_error(self):
        fmt = CanonicalFormatter()
        err = TreesumEncodingError(b"bad\xff")
        self.assertEqual(
            fmt.format_error(err), "error\tencoding\tEUNKNOWN\tbad\\xff\n"
        )
