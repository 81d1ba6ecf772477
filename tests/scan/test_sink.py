# Copyright Red Hat
#
# tests/scan/test_sink.py - Output sink tests.
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import lzma
import io
import os

import zstandard as zstd

from treesum import TreesumOutputError
from treesum.scan.sink import OutputSink, compression_for

RECORDS = [
    "dir\t0:0\t0755\t2020-09-13T12:26:40Z\t-\t-\t.\t-\n",
    "file\t0:0\t0644\t2020-09-13T12:26:40Z\t2\tabcd\tcafé\t-\n",
]


class TestOutputSink(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def _path(self, name):
        return os.path.join(self.tmpdir.name, name)

    def test_compression_for(self):
        self.assertEqual(compression_for("out.zst"), "zstd")
        self.assertEqual(compression_for("out.XZ"), "lzma")
        self.assertIsNone(compression_for("out.txt"))
        self.assertIsNone(compression_for("out"))

    def test_write_stream(self):
        stream = io.BytesIO()
        sink = OutputSink(stream=stream)
        for record in RECORDS:
            sink.write(record)
        sink.close()
        self.assertEqual(stream.getvalue(), "".join(RECORDS).encode("utf8"))
        self.assertEqual(sink.count, 2)

    def test_write_plain_file(self):
        path = self._path("out.txt")
        with OutputSink(path) as sink:
            for record in RECORDS:
                sink.write(record)
        with open(path, "rb") as f:
            self.assertEqual(f.read(), "".join(RECORDS).encode("utf8"))

    def test_write_zstd_file(self):
        path = self._path("out.zst")
        with OutputSink(path) as sink:
            for record in RECORDS:
                sink.write(record)
        with open(path, "rb") as f:
            reader = zstd.ZstdDecompressor().stream_reader(f)
            self.assertEqual(reader.read(), "".join(RECORDS).encode("utf8"))

    def test_write_xz_file(self):
        path = self._path("out.xz")
        with OutputSink(path) as sink:
            for record in RECORDS:
                sink.write(record)
        with lzma.open(path, "rb") as f:
            self.assertEqual(f.read(), "".join(RECORDS).encode("utf8"))

    def test_empty_output_file_created(self):
        path = self._path("empty.txt")
        with OutputSink(path):
            pass
        self.assertTrue(os.path.exists(path))
        self.assertEqual(os.path.getsize(path), 0)

    def test_discard_on_error(self):
        path = self._path("partial.zst")
        with self.assertRaises(RuntimeError):
            with OutputSink(path) as sink:
                sink.write(RECORDS[0])
                raise RuntimeError("scan failed")
        self.assertFalse(os.path.exists(path))

    def test_discard_before_open_leaves_nothing(self):
        path = self._path("never.txt")
        with self.assertRaises(RuntimeError):
            with OutputSink(path):
                raise RuntimeError("scan failed")
        self.assertFalse(os.path.exists(path))

    def test_open_failure(self):
        sink = OutputSink(self._path("no/such/dir/out.txt"))
        with self.assertRaises(TreesumOutputError):
            sink.write(RECORDS[0])
