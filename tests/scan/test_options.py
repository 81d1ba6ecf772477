# Copyright Red Hat
#
# tests/scan/test_options.py - Scan options tests.
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import os

from treesum import TreesumArgumentError, TreesumConfigError
from treesum.scan.options import ScanOptions, parse_error_override

from tests import MockArgs


class TestScanOptions(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write_config(self, text):
        path = os.path.join(self.tmpdir.name, "treesum.conf")
        with open(path, "w", encoding="utf8") as f:
            f.write(text)
        return path

    def test_ScanOptions_defaults(self):
        opts = ScanOptions()
        opts.validate()
        self.assertEqual(opts.hash_algorithm, "sha256")
        self.assertEqual(opts.error_policy, "record")
        self.assertFalse(opts.follow_symlinks)
        self.assertTrue(opts.include_root)
        self.assertEqual(opts.jobs, 1)

    def test_ScanOptions__str__(self):
        opts = ScanOptions(
            error_overrides=(("read", "skip"),), exclude_patterns=("*.o", "tmp/*")
        )
        text = str(opts)
        self.assertIn("hash_algorithm=sha256", text)
        self.assertIn("error_overrides=read=skip", text)
        self.assertIn("exclude_patterns=*.o tmp/*", text)

    def test_validate_rejects_bad_values(self):
        bad = [
            {"hash_algorithm": "crc32"},
            {"error_policy": "ignore"},
            {"error_overrides": (("network", "skip"),)},
            {"error_overrides": (("read", "retry"),)},
            {"follow_symlinks": True},
            {"timestamp_precision": "minutes"},
            {"hash_length": -1},
            {"max_hash_size": -1},
            {"jobs": 0},
            {"chunk_size": 0},
        ]
        for kwargs in bad:
            with self.subTest(**{k: str(v) for k, v in kwargs.items()}):
                with self.assertRaises(TreesumArgumentError):
                    ScanOptions(**kwargs).validate()

    def test_parse_error_override(self):
        self.assertEqual(parse_error_override("Listing=Skip"), ("listing", "skip"))
        self.assertEqual(parse_error_override(" read = abort "), ("read", "abort"))
        for value in ("listing", "disk=skip", "read=retry"):
            with self.subTest(value=value):
                with self.assertRaises(TreesumArgumentError):
                    parse_error_override(value)

    def test_from_file_missing(self):
        base = ScanOptions(jobs=3)
        opts = ScanOptions.from_file("/no/such/treesum.conf", base=base)
        self.assertIs(opts, base)

    def test_from_file(self):
        path = self._write_config(
            "[Scan]\n"
            "HashAlgorithm = SHA512\n"
            "ErrorPolicy = skip\n"
            "IncludeRoot = no\n"
            "OneFileSystem = yes\n"
            "TimestampPrecision = nanoseconds\n"
            "HashLength = 16\n"
            "MaxHashSize = 1MiB\n"
            "Exclude = *.o, tmp/*\n"
            "IgnoreTimestamps = true\n"
            "Jobs = 4\n"
            "\n"
            "[ErrorPolicy]\n"
            "Read = abort\n"
        )
        opts = ScanOptions.from_file(path)
        self.assertEqual(opts.hash_algorithm, "sha512")
        self.assertEqual(opts.error_policy, "skip")
        self.assertFalse(opts.include_root)
        self.assertTrue(opts.one_file_system)
        self.assertEqual(opts.timestamp_precision, "nanoseconds")
        self.assertEqual(opts.hash_length, 16)
        self.assertEqual(opts.max_hash_size, 2**20)
        self.assertEqual(opts.exclude_patterns, ("*.o", "tmp/*"))
        self.assertTrue(opts.ignore_timestamps)
        self.assertFalse(opts.ignore_permissions)
        self.assertEqual(opts.jobs, 4)
        self.assertEqual(opts.error_overrides, (("read", "abort"),))
        opts.validate()

    def test_from_file_unknown_key(self):
        path = self._write_config("[Scan]\nHashAlgo = md5\n")
        with self.assertRaises(TreesumConfigError):
            ScanOptions.from_file(path)

    def test_from_file_bad_value(self):
        for text in (
            "[Scan]\nJobs = many\n",
            "[Scan]\nIncludeRoot = perhaps\n",
            "[Scan]\nMaxHashSize = 12 parsecs\n",
            "[ErrorPolicy]\nDisk = skip\n",
        ):
            with self.subTest(text=text):
                path = self._write_config(text)
                with self.assertRaises(TreesumConfigError):
                    ScanOptions.from_file(path)

    def test_from_file_malformed(self):
        path = self._write_config("HashAlgorithm = md5\n")
        with self.assertRaises(TreesumConfigError):
            ScanOptions.from_file(path)

    def test_from_cmd_args_defaults(self):
        self.assertEqual(ScanOptions.from_cmd_args(MockArgs()), ScanOptions())

    def test_from_cmd_args_overrides_base(self):
        args = MockArgs()
        args.hash_algorithm = "md5"
        args.include_root = False
        args.error_overrides = ["listing=skip"]
        args.exclude_patterns = ["*.tmp"]
        base = ScanOptions(
            jobs=2,
            error_overrides=(("read", "abort"),),
            exclude_patterns=("*.o",),
        )
        opts = ScanOptions.from_cmd_args(args, base=base)
        self.assertEqual(opts.hash_algorithm, "md5")
        self.assertFalse(opts.include_root)
        # Values not given on the command line come from the base options.
        self.assertEqual(opts.jobs, 2)
        self.assertEqual(opts.error_overrides, (("listing", "skip"), ("read", "abort")))
        self.assertEqual(opts.exclude_patterns, ("*.o", "*.tmp"))

    def test_from_cmd_args_bad_override(self):
        args = MockArgs()
        args.error_overrides = ["listing"]
        with self.assertRaises(TreesumArgumentError):
            ScanOptions.from_cmd_args(args)
