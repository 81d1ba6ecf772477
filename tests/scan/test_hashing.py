# Copyright Red Hat
#
# tests/scan/test_hashing.py - Content hashing tests.
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import tempfile
import hashlib
import os

from treesum import TreesumArgumentError, TreesumReadError
from treesum.scan.hashing import ContentHasher
from treesum.scan.options import HASH_ALGORITHMS


class TestContentHasher(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = os.fsencode(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def _write(self, name, data):
        path = os.path.join(self.root, name)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def test_ContentHasher_defaults(self):
        hasher = ContentHasher()
        self.assertEqual(hasher.hash_algorithm, "sha256")

    def test_ContentHasher_bad_algorithm(self):
        with self.assertRaises(TreesumArgumentError):
            ContentHasher("crc32")

    def test_ContentHasher_bad_chunk_size(self):
        with self.assertRaises(TreesumArgumentError):
            ContentHasher(chunk_size=0)

    def test_empty_digest(self):
        hasher = ContentHasher("sha256")
        self.assertEqual(
            hasher.empty_digest(),
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855",
        )

    def test_hash_file_empty(self):
        path = self._write(b"empty", b"")
        for algorithm in HASH_ALGORITHMS:
            with self.subTest(algorithm=algorithm):
                hasher = ContentHasher(algorithm)
                self.assertEqual(
                    hasher.hash_file(path, b"empty"), hasher.empty_digest()
                )

    def test_hash_file_matches_hashlib(self):
        data = os.urandom(200000)
        path = self._write(b"data", data)
        for algorithm in HASH_ALGORITHMS:
            with self.subTest(algorithm=algorithm):
                expected = hashlib.new(algorithm, data).hexdigest()
                self.assertEqual(
                    ContentHasher(algorithm).hash_file(path, b"data"), expected
                )

    def test_hash_independent_of_chunk_size(self):
        path = self._write(b"data", b"0123456789" * 1000)
        digests = {
            ContentHasher(chunk_size=size).hash_file(path, b"data")
            for size in (1, 7, 4096, 2**20)
        }
        self.assertEqual(len(digests), 1)

    def test_hash_file_expected_size(self):
        path = self._write(b"data", b"hi")
        self.assertEqual(
            ContentHasher().hash_file(path, b"data", expected_size=2),
            hashlib.sha256(b"hi").hexdigest(),
        )

    def test_hash_file_size_changed(self):
        path = self._write(b"data", b"hi there, grown")
        with self.assertRaises(TreesumReadError) as cm:
            ContentHasher().hash_file(path, b"data", expected_size=2)
        self.assertEqual(cm.exception.path, b"data")
        self.assertIn("changed size", str(cm.exception))

    def test_sparse_file_hashes_as_zeros(self):
        path = os.path.join(self.root, b"sparse")
        with open(path, "wb") as f:
            f.truncate(65536)
        expected = hashlib.sha256(b"\0" * 65536).hexdigest()
        self.assertEqual(ContentHasher().hash_file(path, b"sparse"), expected)

    def test_hash_missing_file(self):
        path = os.path.join(self.root, b"missing")
        with self.assertRaises(TreesumReadError) as cm:
            ContentHasher().hash_file(path, b"missing")
        self.assertEqual(cm.exception.errno_name, "ENOENT")
        self.assertEqual(cm.exception.path, b"missing")

    def test_hash_symlink_not_followed(self):
        target = self._write(b"target", b"data")
        link = os.path.join(self.root, b"link")
        os.symlink(target, link)
        with self.assertRaises(TreesumReadError) as cm:
            ContentHasher().hash_file(link, b"link")
        self.assertEqual(cm.exception.errno_name, "ELOOP")

    def test_hash_fifo_rejected(self):
        fifo = os.path.join(self.root, b"fifo")
        os.mkfifo(fifo)
        with self.assertRaises(TreesumReadError):
            ContentHasher().hash_file(fifo, b"fifo")

    def test_hash_directory_rejected(self):
        with self.assertRaises(TreesumReadError):
            ContentHasher().hash_file(self.root, b".")
