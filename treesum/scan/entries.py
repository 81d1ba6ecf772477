# Copyright Red Hat
#
# treesum/scan/entries.py - Tree summary entry classification
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Scan entry types and the entry classifier.

Each visited file system node is represented by exactly one of the
``ScanEntry`` variants below. Only the fields meaningful to a kind are
carried by its variant: only ``FileEntry`` has a size and content hash and
only ``SymlinkEntry`` has a link target.
"""
from dataclasses import dataclass
from typing import ClassVar, Optional, Union
import logging
import stat
import os

from treesum import (
    TREESUM_SUBSYSTEM_WALK,
    TreesumReadError,
    TreesumStatError,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_walk(msg, *args, **kwargs):
    """A wrapper for walk subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREESUM_SUBSYSTEM_WALK}, **kwargs)


#: Kind string for regular files
KIND_FILE = "file"
#: Kind string for directories
KIND_DIR = "dir"
#: Kind string for symbolic links
KIND_LINK = "link"
#: Kind string for everything else
KIND_OTHER = "other"


@dataclass(frozen=True)
class ScanEntry:
    """
    Fields common to all scanned file system entries.
    """

    kind: ClassVar[str] = KIND_OTHER

    #: Root-relative path using ``b"/"`` separators; the root is ``b"."``
    path: bytes
    #: Numeric owner
    uid: int
    #: Numeric group
    gid: int
    #: Full ``st_mode`` value
    mode: int
    #: Modification time in integer nanoseconds since the epoch
    mtime_ns: int

    @property
    def permissions(self) -> int:
        """
        The portable permission bits of this entry (``S_IMODE``).

        :rtype: ``int``
        """
        return stat.S_IMODE(self.mode)


@dataclass(frozen=True)
class FileEntry(ScanEntry):
    """
    A regular file.
    """

    kind: ClassVar[str] = KIND_FILE

    #: File size in bytes
    size: int = 0
    #: Hex digest of the content, or ``None`` until hashed or if skipped
    content_hash: Optional[str] = None


@dataclass(frozen=True)
class DirectoryEntry(ScanEntry):
    """
    A directory.
    """

    kind: ClassVar[str] = KIND_DIR

    #: Device number; used for one-file-system checks, never rendered
    dev: int = 0
    #: On another file system and not descended into
    mountpoint: bool = False


@dataclass(frozen=True)
class SymlinkEntry(ScanEntry):
    """
    A symbolic link. Links are never followed.
    """

    kind: ClassVar[str] = KIND_LINK

    #: The raw, unresolved link target
    target: bytes = b""


@dataclass(frozen=True)
class OtherEntry(ScanEntry):
    """
    A device node, socket, FIFO or anything else.
    """

    kind: ClassVar[str] = KIND_OTHER

    #: A description of the entry type, for logging only
    type_desc: str = "other"


AnyEntry = Union[FileEntry, DirectoryEntry, SymlinkEntry, OtherEntry]


def _other_type_desc(mode: int) -> str:
    """
    Return a string description of a special file type.

    :param mode: The ``st_mode`` value to describe.
    :type mode: ``int``
    :rtype: ``str``
    """
    desc = "other"
    if stat.S_ISBLK(mode):
        desc = "block device"
    elif stat.S_ISCHR(mode):
        desc = "char device"
    elif stat.S_ISSOCK(mode):
        desc = "socket"
    elif stat.S_ISFIFO(mode):
        desc = "FIFO"
    return desc


def entry_from_stat(
    rel_path: bytes, st: os.stat_result, target: bytes = b""
) -> AnyEntry:
    """
    Build the ``ScanEntry`` variant matching the file type in ``st``.

    :param rel_path: The root-relative path of the entry.
    :type rel_path: ``bytes``
    :param st: The ``os.lstat()`` result for the entry.
    :type st: ``os.stat_result``
    :param target: The link target for symbolic links.
    :type target: ``bytes``
    :returns: A new entry object.
    """
    common = {
        "path": rel_path,
        "uid": st.st_uid,
        "gid": st.st_gid,
        "mode": st.st_mode,
        "mtime_ns": st.st_mtime_ns,
    }
    if stat.S_ISREG(st.st_mode):
        return FileEntry(size=st.st_size, **common)
    if stat.S_ISDIR(st.st_mode):
        return DirectoryEntry(dev=st.st_dev, **common)
    if stat.S_ISLNK(st.st_mode):
        return SymlinkEntry(target=target, **common)
    return OtherEntry(type_desc=_other_type_desc(st.st_mode), **common)


def classify(full_path: bytes, rel_path: bytes) -> AnyEntry:
    """
    Inspect the entry at ``full_path`` without following symbolic links.

    Returns a populated entry with no content hash. Failures are raised to
    the caller and never handled here.

    :param full_path: The host path of the entry.
    :type full_path: ``bytes``
    :param rel_path: The root-relative path to record.
    :type rel_path: ``bytes``
    :returns: The entry variant for the file type found.
    :raises TreesumStatError: If the entry cannot be inspected.
    :raises TreesumReadError: If a symbolic link target cannot be read.
    """
    try:
        st = os.lstat(full_path)
    except OSError as err:
        raise TreesumStatError.from_os_error(rel_path, err) from err

    target = b""
    if stat.S_ISLNK(st.st_mode):
        try:
            target = os.readlink(full_path)
        except OSError as err:
            raise TreesumReadError.from_os_error(rel_path, err) from err
        _log_debug_walk("Found symbolic link '%s' -> '%s'", rel_path, target)

    return entry_from_stat(rel_path, st, target=target)


__all__ = [
    "AnyEntry",
    "DirectoryEntry",
    "FileEntry",
    "KIND_DIR",
    "KIND_FILE",
    "KIND_LINK",
    "KIND_OTHER",
    "OtherEntry",
    "ScanEntry",
    "SymlinkEntry",
    "classify",
    "entry_from_stat",
]
