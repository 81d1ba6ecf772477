# Copyright Red Hat
#
# treesum/scan/sink.py - Tree summary output sink
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Output sink for canonical records.

Records are encoded as UTF-8 regardless of the locale and written once, in
the order they are received. A destination file name ending in ``.zst`` is
compressed with zstandard and one ending in ``.xz`` with lzma.
"""
from typing import BinaryIO, Optional
import logging
import lzma
import sys
import os

import zstandard as zstd

from treesum import TreesumOutputError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Destination name meaning standard output
STDOUT_DEST = "-"

#: Compression types by file name extension
_COMPRESSION_EXTENSIONS = {
    ".zst": "zstd",
    ".xz": "lzma",
}

#: Record encoding
_ENCODING = "utf-8"


def compression_for(destination: str) -> Optional[str]:
    """
    Return the compression type implied by ``destination``'s extension.

    :param destination: An output file name.
    :type destination: ``str``
    :returns: "zstd", "lzma" or ``None`` for uncompressed output.
    :rtype: ``Optional[str]``
    """
    _, ext = os.path.splitext(destination)
    return _COMPRESSION_EXTENSIONS.get(ext.lower())


class OutputSink:
    """
    Write canonical records to a stream or a file.

    The destination file is created on the first write, so that a scan
    that fails before producing any record leaves no output file behind.
    """

    def __init__(
        self,
        destination: str = STDOUT_DEST,
        stream: Optional[BinaryIO] = None,
    ):
        """
        Initialise a new ``OutputSink``.

        :param destination: A file path, or "-" for standard output.
        :type destination: ``str``
        :param stream: An optional binary stream to write to instead of
                       ``destination``.
        :type stream: ``Optional[BinaryIO]``
        """
        self.destination: str = destination
        self.compression: Optional[str] = None
        self.count: int = 0
        self._stream: Optional[BinaryIO] = stream
        self._raw: Optional[BinaryIO] = None
        self._owns_stream: bool = False
        self._created: bool = False
        if stream is None and destination != STDOUT_DEST:
            self.compression = compression_for(destination)

    def __enter__(self) -> "OutputSink":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()
        else:
            self.discard()

    def _open(self):
        """
        Open the destination for writing.
        """
        if self._stream is not None:
            return
        if self.destination == STDOUT_DEST:
            self._stream = sys.stdout.buffer
            return
        try:
            self._raw = open(self.destination, "wb")  # pylint: disable=consider-using-with
            self._created = True
            if self.compression == "zstd":
                cctx = zstd.ZstdCompressor()
                self._stream = cctx.stream_writer(self._raw)
            elif self.compression == "lzma":
                self._stream = lzma.LZMAFile(self._raw, mode="wb")
            else:
                self._stream = self._raw
        except OSError as err:
            raise TreesumOutputError(
                f"Cannot open output file '{self.destination}': {err}"
            ) from err
        self._owns_stream = True
        _log_debug(
            "Opened output file '%s' (compression=%s)",
            self.destination,
            self.compression,
        )

    def write(self, record: str):
        """
        Write one canonical record.

        :param record: A newline terminated record.
        :type record: ``str``
        :raises TreesumOutputError: If the record cannot be written.
        """
        self._open()
        try:
            self._stream.write(record.encode(_ENCODING))
        except BrokenPipeError:
            self._silence_stdout()
            raise
        except (OSError, zstd.ZstdError, lzma.LZMAError) as err:
            raise TreesumOutputError(
                f"Error writing to '{self.destination}': {err}"
            ) from err
        self.count += 1

    def _silence_stdout(self):
        """
        Point standard output at /dev/null after a broken pipe so that the
        interpreter's final flush does not fail again.
        """
        if self._stream is not sys.stdout.buffer:
            return
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            os.dup2(devnull, sys.stdout.fileno())
        finally:
            os.close(devnull)

    def close(self):
        """
        Flush all buffered records and close the destination.

        :raises TreesumOutputError: If flushing or closing fails.
        """
        self._open()
        try:
            if self._owns_stream:
                self._stream.close()
                if self._raw is not None and self._raw is not self._stream:
                    self._raw.close()
            else:
                self._stream.flush()
        except BrokenPipeError:
            self._silence_stdout()
            raise
        except (OSError, zstd.ZstdError, lzma.LZMAError) as err:
            raise TreesumOutputError(
                f"Error closing '{self.destination}': {err}"
            ) from err
        _log_debug("Wrote %d records to '%s'", self.count, self.destination)

    def discard(self):
        """
        Close the destination and remove any partially written file.
        """
        if not self._owns_stream:
            return
        for stream in (self._stream, self._raw):
            if stream is None:
                continue
            try:
                stream.close()
            except (OSError, zstd.ZstdError, lzma.LZMAError) as err:
                _log_debug("Error closing '%s': %s", self.destination, err)
        if self._created:
            try:
                os.unlink(self.destination)
            except OSError as err:
                _log_warn("Could not remove '%s': %s", self.destination, err)
            else:
                _log_info("Removed incomplete output file '%s'", self.destination)


__all__ = [
    "OutputSink",
    "STDOUT_DEST",
    "compression_for",
]
