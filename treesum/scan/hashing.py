# Copyright Red Hat
#
# treesum/scan/hashing.py - Tree summary content hashing
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content hashing for regular files.
"""
from hashlib import blake2b, md5, sha1, sha256, sha512
from typing import Optional
import logging
import stat
import os

from treesum import (
    TREESUM_SUBSYSTEM_HASH,
    TreesumArgumentError,
    TreesumReadError,
)

from .options import DEFAULT_CHUNK_SIZE

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_hash(msg, *args, **kwargs):
    """A wrapper for hash subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREESUM_SUBSYSTEM_HASH}, **kwargs)


_HASH_TYPES = {
    "md5": md5,
    "sha1": sha1,
    "sha256": sha256,
    "sha512": sha512,
    "blake2b": blake2b,
}


class ContentHasher:
    """
    Compute fixed length digests of regular file content.

    The digest depends only on the bytes of the file: it is independent of
    the read size, block size, sparse layout and extended attributes.
    Read failures are reported, never retried.
    """

    def __init__(self, hash_algorithm: str = "sha256", chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialise a new ``ContentHasher``.

        :param hash_algorithm: The name of the digest function to use.
        :type hash_algorithm: ``str``
        :param chunk_size: The read size used to stream file content.
        :type chunk_size: ``int``
        :raises TreesumArgumentError: If the algorithm is unknown or the
                                      chunk size is not positive.
        """
        if hash_algorithm not in _HASH_TYPES:
            raise TreesumArgumentError(f"Unknown hash algorithm: {hash_algorithm}")
        if chunk_size < 1:
            raise TreesumArgumentError(f"Invalid chunk size: {chunk_size}")
        self.hash_algorithm: str = hash_algorithm
        self.chunk_size: int = chunk_size
        self.hasher = _HASH_TYPES[hash_algorithm]

    def empty_digest(self) -> str:
        """
        Return the digest of zero bytes of input for this algorithm.

        :rtype: ``str``
        """
        return self.hasher().hexdigest()

    def hash_file(
        self, full_path: bytes, rel_path: bytes, expected_size: Optional[int] = None
    ) -> str:
        """
        Calculate the content hash of the regular file at ``full_path``.

        :param full_path: The host path of the file to hash.
        :type full_path: ``bytes``
        :param rel_path: The root-relative path used for error reporting.
        :type rel_path: ``bytes``
        :param expected_size: The size recorded for the file, if known. A
                              file that yields a different number of bytes
                              changed while it was read.
        :type expected_size: ``Optional[int]``
        :returns: A lower case hexadecimal digest string.
        :rtype: ``str``
        :raises TreesumReadError: If the file cannot be opened or read, or
                                  is no longer a regular file, or
                                  does not match ``expected_size``.
        """
        hasher = self.hasher()
        nr_bytes = 0
        flags = os.O_RDONLY | getattr(os, "O_NOFOLLOW", 0) | getattr(os, "O_NONBLOCK", 0)
        try:
            fd = os.open(full_path, flags)
        except OSError as err:
            raise TreesumReadError.from_os_error(rel_path, err) from err
        try:
            is_regular = stat.S_ISREG(os.fstat(fd).st_mode)
        except OSError as err:
            os.close(fd)
            raise TreesumReadError.from_os_error(rel_path, err) from err
        if not is_regular:
            os.close(fd)
            raise TreesumReadError(
                rel_path, detail="file was replaced by a non-regular file"
            )
        try:
            with os.fdopen(fd, "rb", buffering=0) as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    hasher.update(chunk)
                    nr_bytes += len(chunk)
        except OSError as err:
            raise TreesumReadError.from_os_error(rel_path, err) from err

        if expected_size is not None and nr_bytes != expected_size:
            raise TreesumReadError(
                rel_path,
                detail=f"file changed size during read ({expected_size} -> {nr_bytes})",
            )

        digest = hasher.hexdigest()
        _log_debug_hash(
            "Hashed %d bytes from '%s' (%s=%s)",
            nr_bytes,
            rel_path,
            self.hash_algorithm,
            digest,
        )
        return digest


__all__ = [
    "ContentHasher",
]
