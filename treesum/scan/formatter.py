# Copyright Red Hat
#
# treesum/scan/formatter.py - Tree summary canonical record formatting
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Canonical record formatting.

Every entry renders to exactly one TAB separated, newline terminated line:

    kind  uid:gid  mode  mtime  size  hash  path  target

and every recorded error renders to:

    error  type  errno-name  path

No field depends on the locale, the environment or the current time.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from treesum import TreesumScanError

from .entries import DirectoryEntry, FileEntry, ScanEntry, SymlinkEntry
from .options import ScanOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Field separator
FIELD_SEP = "\t"

#: Record terminator
RECORD_END = "\n"

#: Placeholder for fields that do not apply to an entry
PLACEHOLDER = "-"

#: Hash field value for files above the hash size limit
HASH_SKIPPED = "*"

#: Target field value for directories on another file system whose
#: contents were not scanned
MOUNTPOINT_MARKER = "(mountpoint)"

#: Kind field value for error records
KIND_ERROR = "error"

#: Path recorded for the scan root
ROOT_PATH = b"."

_NSECS_PER_SEC = 10**9

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ESCAPES = {
    0x5C: "\\\\",
    0x09: "\\t",
    0x0A: "\\n",
    0x0D: "\\r",
}


def _escape_text(text: str) -> str:
    """
    Escape separators, backslashes and control characters in ``text``.
    """
    out = []
    for char in text:
        code = ord(char)
        if code in _ESCAPES:
            out.append(_ESCAPES[code])
        elif code < 0x20 or code == 0x7F:
            out.append(f"\\x{code:02x}")
        else:
            out.append(char)
    return "".join(out)


def escape_bytes(value: bytes) -> str:
    """
    Render a raw path or link target as escaped UTF-8 text.

    Valid UTF-8 sequences are kept as text; every byte that is not part of
    a valid UTF-8 sequence is rendered as ``\\xHH``. Backslash, TAB, CR, LF
    and other control characters are always escaped, so the result never
    contains the field separator or record terminator.

    :param value: The raw bytes to render.
    :type value: ``bytes``
    :returns: The escaped string.
    :rtype: ``str``
    """
    out = []
    pos = 0
    while pos < len(value):
        try:
            out.append(_escape_text(value[pos:].decode("utf-8")))
            break
        except UnicodeDecodeError as err:
            out.append(_escape_text(value[pos : pos + err.start].decode("utf-8")))
            bad = value[pos + err.start : pos + err.end]
            out.append("".join(f"\\x{byte:02x}" for byte in bad))
            pos += err.end
    return "".join(out)


def is_utf8(value: bytes) -> bool:
    """
    Return ``True`` if ``value`` is valid UTF-8.

    :param value: The bytes to check.
    :type value: ``bytes``
    :rtype: ``bool``
    """
    try:
        value.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def format_mtime(mtime_ns: int, precision: str = "seconds") -> str:
    """
    Format a nanosecond timestamp as a fixed precision UTC string.

    Sub-second precision is truncated towards negative infinity so that
    timestamps before the epoch are handled consistently.

    :param mtime_ns: Integer nanoseconds since the epoch.
    :type mtime_ns: ``int``
    :param precision: Either "seconds" or "nanoseconds".
    :type precision: ``str``
    :returns: A string like ``2024-01-31T12:00:00Z``.
    :rtype: ``str``
    """
    secs, nsecs = divmod(mtime_ns, _NSECS_PER_SEC)
    try:
        when = _EPOCH + timedelta(seconds=secs)
    except OverflowError:
        # Outside the years 1-9999: fall back to raw epoch seconds.
        stamp = f"@{secs}"
        if precision == "nanoseconds":
            stamp += f".{nsecs:09d}"
        return stamp
    stamp = (
        f"{when.year:04d}-{when.month:02d}-{when.day:02d}"
        f"T{when.hour:02d}:{when.minute:02d}:{when.second:02d}"
    )
    if precision == "nanoseconds":
        stamp += f".{nsecs:09d}"
    return stamp + "Z"


class CanonicalFormatter:
    """
    Render scan entries and scan errors as canonical text records.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        """
        Initialise a new ``CanonicalFormatter``.

        :param options: The scan options controlling field rendering.
        :type options: ``Optional[ScanOptions]``
        """
        options = options or ScanOptions()
        self.timestamp_precision: str = options.timestamp_precision
        self.hash_length: int = options.hash_length
        self.ignore_timestamps: bool = options.ignore_timestamps
        self.ignore_permissions: bool = options.ignore_permissions
        self.ignore_ownership: bool = options.ignore_ownership

    def _owner(self, entry: ScanEntry) -> str:
        if self.ignore_ownership:
            return PLACEHOLDER
        return f"{entry.uid}:{entry.gid}"

    def _mode(self, entry: ScanEntry) -> str:
        if self.ignore_permissions:
            return PLACEHOLDER
        return f"{entry.permissions:04o}"

    def _mtime(self, entry: ScanEntry) -> str:
        if self.ignore_timestamps:
            return PLACEHOLDER
        return format_mtime(entry.mtime_ns, self.timestamp_precision)

    def _hash(self, entry: ScanEntry) -> str:
        if not isinstance(entry, FileEntry):
            return PLACEHOLDER
        if entry.content_hash is None:
            return HASH_SKIPPED
        if self.hash_length:
            return entry.content_hash[: self.hash_length]
        return entry.content_hash

    def format_entry(self, entry: ScanEntry) -> str:
        """
        Render ``entry`` as a canonical record.

        :param entry: The entry to render.
        :type entry: ``ScanEntry``
        :returns: One newline terminated record.
        :rtype: ``str``
        """
        size = str(entry.size) if isinstance(entry, FileEntry) else PLACEHOLDER
        if isinstance(entry, SymlinkEntry):
            target = escape_bytes(entry.target)
        elif isinstance(entry, DirectoryEntry) and entry.mountpoint:
            target = MOUNTPOINT_MARKER
        else:
            target = PLACEHOLDER
        fields = (
            entry.kind,
            self._owner(entry),
            self._mode(entry),
            self._mtime(entry),
            size,
            self._hash(entry),
            escape_bytes(entry.path),
            target,
        )
        return FIELD_SEP.join(fields) + RECORD_END

    def format_error(self, error: TreesumScanError) -> str:
        """
        Render ``error`` as a canonical error record.

        :param error: The scan error to render.
        :type error: ``TreesumScanError``
        :returns: One newline terminated record.
        :rtype: ``str``
        """
        fields = (
            KIND_ERROR,
            error.error_type.value,
            error.errno_name,
            escape_bytes(error.path),
        )
        return FIELD_SEP.join(fields) + RECORD_END


__all__ = [
    "CanonicalFormatter",
    "FIELD_SEP",
    "HASH_SKIPPED",
    "KIND_ERROR",
    "MOUNTPOINT_MARKER",
    "PLACEHOLDER",
    "RECORD_END",
    "ROOT_PATH",
    "escape_bytes",
    "format_mtime",
    "is_utf8",
]
