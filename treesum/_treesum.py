# Copyright Red Hat
#
# treesum/_treesum.py - Tree summary global definitions
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level treesum package.
"""
from typing import Optional, TextIO, Union, TYPE_CHECKING
from enum import Enum
import logging
import weakref
import errno as _errno
import math
import sys
import re
import os

if TYPE_CHECKING:
    from .progress import StatusBase

_log = logging.getLogger("treesum")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Treesum debugging subsystem mask
TREESUM_DEBUG_WALK = 1
TREESUM_DEBUG_HASH = 2
TREESUM_DEBUG_COMMAND = 4
TREESUM_DEBUG_ALL = TREESUM_DEBUG_WALK | TREESUM_DEBUG_HASH | TREESUM_DEBUG_COMMAND

# Treesum debugging subsystem names
TREESUM_SUBSYSTEM_WALK = "treesum.walk"
TREESUM_SUBSYSTEM_HASH = "treesum.hash"
TREESUM_SUBSYSTEM_COMMAND = "treesum.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    TREESUM_DEBUG_WALK: TREESUM_SUBSYSTEM_WALK,
    TREESUM_DEBUG_HASH: TREESUM_SUBSYSTEM_HASH,
    TREESUM_DEBUG_COMMAND: TREESUM_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

# Registry of active status indicators: uses a WeakSet so we don't prevent
# garbage collection.
_active_status: weakref.WeakSet = weakref.WeakSet()

_SIZE_RE = re.compile(r"^(?P<size>[0-9]+)(?P<units>([KMGTPEZkmgtpez]i{,1})?[Bb]{,1})$")

#: All suffixes are expressed in powers of two.
_SIZE_SUFFIXES = {
    "B": 1,
    "K": 2**10,
    "M": 2**20,
    "G": 2**30,
    "T": 2**40,
    "P": 2**50,
    "E": 2**60,
    "Z": 2**70,
}


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True

        if not hasattr(record, "subsystem"):
            return True

        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``treesum`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    treesum_log = logging.getLogger("treesum")

    for handler in treesum_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``treesum`` package.

    :param mask: the logical OR of the ``TREESUM_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > TREESUM_DEBUG_ALL:
        raise ValueError(f"Invalid treesum debug mask: {mask}")

    enabled_subsystems = [
        subsystem_name
        for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    ]

    treesum_log = logging.getLogger("treesum")
    for handler in treesum_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def register_status(status: "StatusBase"):
    """Register a status indicator for log coordination."""
    _active_status.add(status)
    status.registered = True


def unregister_status(status: "StatusBase"):
    """Unregister a status indicator."""
    _active_status.discard(status)
    status.registered = False


def notify_log_output(stream: TextIO):
    """
    Notify status indicators that log output occurred on stream.

    Called by ProgressAwareHandler after emitting a record.

    :param stream: The stream that received output.
    :type stream: ``TextIO``
    """
    if stream not in (sys.stdout, sys.stderr):
        return
    for status in list(_active_status):
        if hasattr(status, "reset_position"):
            status.reset_position()


class ProgressAwareHandler(logging.StreamHandler):
    """
    A logging handler that coordinates with active status indicators.

    Log output defaults to ``sys.stderr``: ``sys.stdout`` is reserved for
    the scan summary.
    """

    def __init__(self, stream: Optional[TextIO] = None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
            notify_log_output(self.stream)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


class ScanErrorType(Enum):
    """
    Enum for the classes of per-entry scan failure.
    """

    LISTING = "listing"
    STAT = "stat"
    READ = "read"
    ENCODING = "encoding"


#
# Treesum exception types
#


class TreesumError(Exception):
    """
    Base class for tree summary errors.
    """


class TreesumArgumentError(TreesumError):
    """
    An invalid argument was passed to a treesum API call.
    """


class TreesumConfigError(TreesumError):
    """
    The configuration file could not be parsed or contains invalid values.
    """


class TreesumParseError(TreesumError):
    """
    An error parsing user input.
    """


class TreesumOutputError(TreesumError):
    """
    The scan summary could not be written to its destination.
    """


class TreesumRootError(TreesumError):
    """
    The scan root could not be opened. There is no partial summary for an
    unavailable root.
    """

    def __init__(self, root: str, reason: str):
        """
        Initialise a new ``TreesumRootError`` exception.

        :param root: The root path that was requested.
        :param reason: A description of the failure.
        """
        self.root, self.reason = root, reason
        super().__init__(f"Cannot scan '{root}': {reason}")


class TreesumScanError(TreesumError):
    """
    A failure to process one entry of the scanned tree.

    Raised by the entry classifier and content hasher and handled by the
    tree walker according to the configured ``ErrorPolicy``.
    """

    #: The class of failure represented by this exception type.
    error_type: ScanErrorType = ScanErrorType.STAT

    def __init__(self, path: bytes, err_no: Optional[int] = None, detail: str = ""):
        """
        Initialise a new ``TreesumScanError`` exception.

        :param path: The root-relative path of the failing entry.
        :type path: ``bytes``
        :param err_no: The operating system error number, if known.
        :type err_no: ``Optional[int]``
        :param detail: A human readable description for logging.
        :type detail: ``str``
        """
        self.path = path
        self.errno = err_no
        self.detail = detail
        name = os.fsdecode(path)
        msg = f"{self.error_type.value} failed for '{name}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @classmethod
    def from_os_error(cls, path: bytes, err: OSError) -> "TreesumScanError":
        """
        Construct a scan error of this type from an ``OSError``.

        :param path: The root-relative path of the failing entry.
        :type path: ``bytes``
        :param err: The originating ``OSError``.
        :type err: ``OSError``
        :returns: A new exception instance.
        """
        return cls(path, err_no=err.errno, detail=err.strerror or str(err))

    @property
    def errno_name(self) -> str:
        """
        The symbolic name of ``self.errno``, or "EUNKNOWN".

        :rtype: ``str``
        """
        if self.errno is None:
            return "EUNKNOWN"
        return _errno.errorcode.get(self.errno, "EUNKNOWN")


class TreesumListingError(TreesumScanError):
    """
    A directory could not be listed.
    """

    error_type = ScanErrorType.LISTING


class TreesumStatError(TreesumScanError):
    """
    An entry's metadata could not be read.
    """

    error_type = ScanErrorType.STAT


class TreesumReadError(TreesumScanError):
    """
    A file's content or a symbolic link's target could not be read.
    """

    error_type = ScanErrorType.READ


class TreesumEncodingError(TreesumScanError):
    """
    A path or link target cannot be represented as UTF-8 text.
    """

    error_type = ScanErrorType.ENCODING


class TreesumAbortError(TreesumError):
    """
    The error policy aborted the scan.
    """

    def __init__(self, cause: TreesumScanError):
        """
        Initialise a new ``TreesumAbortError``.

        :param cause: The scan error that triggered the abort.
        :type cause: ``TreesumScanError``
        """
        self.cause = cause
        super().__init__(f"Scan aborted: {cause}")


def size_fmt(value):
    """
    Format a size in bytes as a human readable string.

    :param value: The integer value to format.
    :returns: A human readable string reflecting value.
    """
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB"]
    if value == 0:
        return "0B"
    magnitude = math.floor(math.log(abs(value), 1024))
    val = value / math.pow(1024, magnitude)
    if magnitude > 7:
        return f"{val:.1f}YiB"
    return f"{val:3.1f}{suffixes[magnitude]}"


def parse_size_with_units(value: Union[str, int]) -> int:
    """
    Parse a size string with optional unit suffix and return a value in bytes.

    :param value: The size string to parse.
    :returns: an integer size in bytes.
    :raises: ``TreesumParseError`` if the string could not be parsed as a
             valid size value.
    """
    if isinstance(value, int):
        return value
    match = _SIZE_RE.search(value.strip())
    if match is None:
        raise TreesumParseError(f"Malformed size expression: '{value}'")
    (size, unit) = (match.group("size"), match.group("units").upper())
    return int(size) * _SIZE_SUFFIXES[unit[0] if unit else "B"]


__all__ = [
    "TREESUM_DEBUG_WALK",
    "TREESUM_DEBUG_HASH",
    "TREESUM_DEBUG_COMMAND",
    "TREESUM_DEBUG_ALL",
    "TREESUM_SUBSYSTEM_WALK",
    "TREESUM_SUBSYSTEM_HASH",
    "TREESUM_SUBSYSTEM_COMMAND",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "register_status",
    "unregister_status",
    "notify_log_output",
    "ProgressAwareHandler",
    "ScanErrorType",
    "TreesumError",
    "TreesumArgumentError",
    "TreesumConfigError",
    "TreesumParseError",
    "TreesumOutputError",
    "TreesumRootError",
    "TreesumScanError",
    "TreesumListingError",
    "TreesumStatError",
    "TreesumReadError",
    "TreesumEncodingError",
    "TreesumAbortError",
    "size_fmt",
    "parse_size_with_units",
]
