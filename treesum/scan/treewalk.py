# Copyright Red Hat
#
# treesum/scan/treewalk.py - Tree summary tree walk
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Deterministic tree walking.

The walk is depth-first and pre-order: a directory's record precedes the
records of its children, and the children of each directory are visited in
byte-wise sorted name order with files and subdirectories interleaved.
Symbolic links are recorded and never followed.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Iterator, List, Optional, Tuple, Union
from dataclasses import replace
from fnmatch import fnmatchcase
from datetime import datetime
import logging
import stat
import os

from treesum import (
    TREESUM_SUBSYSTEM_WALK,
    TreesumAbortError,
    TreesumEncodingError,
    TreesumListingError,
    TreesumRootError,
    TreesumScanError,
    size_fmt,
)

from treesum.progress import StatusBase, StatusFactory

from .entries import (
    AnyEntry,
    DirectoryEntry,
    FileEntry,
    OtherEntry,
    SymlinkEntry,
    classify,
    entry_from_stat,
)
from .formatter import CanonicalFormatter, ROOT_PATH, escape_bytes, is_utf8
from .hashing import ContentHasher
from .options import ScanOptions
from .policy import ErrorAction, ErrorPolicy
from .sink import OutputSink

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_walk(msg, *args, **kwargs):
    """A wrapper for walk subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREESUM_SUBSYSTEM_WALK}, **kwargs)


#: Canonical separator for root-relative paths
_SEP = b"/"

#: An item produced while visiting one directory: the entry or error to
#: emit, and the subdirectory to descend into next, if any.
_Visit = Tuple[
    Union[AnyEntry, TreesumScanError], Optional[Tuple[bytes, bytes, List[bytes]]]
]


class ScanStats:
    """
    Counters describing one completed or in-progress scan.
    """

    def __init__(self):
        self.entries: int = 0
        self.files: int = 0
        self.directories: int = 0
        self.symlinks: int = 0
        self.others: int = 0
        self.errors: int = 0
        self.bytes_hashed: int = 0
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def __str__(self):
        elapsed = ""
        if self.start_time and self.end_time:
            elapsed = f" in {self.end_time - self.start_time}"
        return (
            f"{self.entries} entries ({self.files} files, "
            f"{self.directories} directories, {self.symlinks} symlinks, "
            f"{self.others} other), {self.errors} errors, "
            f"{size_fmt(self.bytes_hashed)} hashed{elapsed}"
        )

    def count(self, item: Union[AnyEntry, TreesumScanError]):
        """
        Account for one emitted record.

        :param item: The entry or error that was emitted.
        """
        if isinstance(item, TreesumScanError):
            self.errors += 1
            return
        self.entries += 1
        if isinstance(item, FileEntry):
            self.files += 1
            if item.content_hash is not None:
                self.bytes_hashed += item.size
        elif isinstance(item, DirectoryEntry):
            self.directories += 1
        elif isinstance(item, SymlinkEntry):
            self.symlinks += 1
        elif isinstance(item, OtherEntry):
            self.others += 1


class TreeWalker:
    """
    Deterministic file system tree walker.

    All configuration is passed in at construction. A ``TreeWalker``
    performs one scan at a time; independent instances may scan
    concurrently.
    """

    def __init__(self, options: Optional[ScanOptions] = None):
        """
        Initialise a new ``TreeWalker`` object.

        :param options: Options to control this ``TreeWalker`` instance.
        :type options: ``Optional[ScanOptions]``
        :raises TreesumArgumentError: If ``options`` is invalid.
        """
        options = options or ScanOptions()
        options.validate()

        self.options: ScanOptions = options
        self.hasher: ContentHasher = ContentHasher(
            options.hash_algorithm, chunk_size=options.chunk_size
        )
        self.formatter: CanonicalFormatter = CanonicalFormatter(options)
        self.policy: ErrorPolicy = ErrorPolicy.from_options(options)
        self.stats: ScanStats = ScanStats()
        self.exclude_patterns: Tuple[bytes, ...] = tuple(
            os.fsencode(pat) for pat in options.exclude_patterns
        )
        self._executor: Optional[ThreadPoolExecutor] = None

    def _excluded(self, rel_path: bytes) -> bool:
        return any(fnmatchcase(rel_path, pat) for pat in self.exclude_patterns)

    @staticmethod
    def _list_dir(full_path: bytes) -> List[bytes]:
        """
        Return the names in directory ``full_path`` in byte-wise order.

        :param full_path: The host path of the directory.
        :type full_path: ``bytes``
        :returns: A sorted list of entry names.
        :rtype: ``List[bytes]``
        :raises OSError: If the directory cannot be listed.
        """
        with os.scandir(full_path) as it:
            return sorted(dirent.name for dirent in it)

    def _hash_entry(self, full_path: bytes, entry: FileEntry) -> FileEntry:
        """
        Return ``entry`` with its content hash set, or unchanged if the
        file exceeds the configured hash size limit.

        :raises TreesumReadError: If the file content cannot be read.
        """
        max_size = self.options.max_hash_size
        if max_size and entry.size > max_size:
            _log_debug_walk(
                "Not hashing '%s': size %d exceeds limit %d",
                entry.path,
                entry.size,
                max_size,
            )
            return entry
        digest = self.hasher.hash_file(full_path, entry.path, expected_size=entry.size)
        return replace(entry, content_hash=digest)

    def _visit_dir(
        self, full_dir: bytes, rel_dir: bytes, names: List[bytes], root_dev: int
    ) -> Iterator[_Visit]:
        """
        Visit the children of one directory in sorted order.

        Children are classified first. With more than one job, hashing of
        every regular file child is then submitted to the worker pool and
        the results are gathered back in child order.

        :param full_dir: The host path of the directory.
        :param rel_dir: The root-relative path of the directory, or ``b""``
                        for the root.
        :param names: The sorted child names.
        :param root_dev: The device number of the scan root.
        """
        children: List[Tuple[bytes, Union[AnyEntry, TreesumScanError]]] = []
        for name in names:
            full_path = os.path.join(full_dir, name)
            rel_path = rel_dir + _SEP + name if rel_dir else name
            if self._excluded(rel_path):
                _log_debug_walk("Excluding '%s'", rel_path)
                continue
            try:
                children.append((full_path, classify(full_path, rel_path)))
            except TreesumScanError as err:
                children.append((full_path, err))

        futures: Dict[bytes, Future] = {}
        if self._executor is not None:
            for full_path, item in children:
                if isinstance(item, FileEntry):
                    futures[item.path] = self._executor.submit(
                        self._hash_entry, full_path, item
                    )

        try:
            for full_path, item in children:
                if isinstance(item, TreesumScanError):
                    yield item, None
                    continue

                if isinstance(item, FileEntry):
                    try:
                        if item.path in futures:
                            item = futures.pop(item.path).result()
                        else:
                            item = self._hash_entry(full_path, item)
                    except TreesumScanError as err:
                        yield err, None
                        continue
                    yield item, None
                elif isinstance(item, DirectoryEntry):
                    if self.options.one_file_system and item.dev != root_dev:
                        _log_info(
                            "Not descending into '%s': different file system",
                            escape_bytes(item.path),
                        )
                        yield replace(item, mountpoint=True), None
                        continue
                    try:
                        sub_names = self._list_dir(full_path)
                    except OSError as err:
                        yield TreesumListingError.from_os_error(item.path, err), None
                        continue
                    yield item, (full_path, item.path, sub_names)
                else:
                    yield item, None
        finally:
            for future in futures.values():
                future.cancel()

    def _check_encoding(self, entry: AnyEntry) -> Optional[TreesumEncodingError]:
        """
        Return an encoding error if ``entry``'s path or link target is not
        valid UTF-8, or ``None``.
        """
        if not is_utf8(entry.path):
            return TreesumEncodingError(entry.path, detail="path is not valid UTF-8")
        if isinstance(entry, SymlinkEntry) and not is_utf8(entry.target):
            return TreesumEncodingError(
                entry.path, detail="symbolic link target is not valid UTF-8"
            )
        return None

    def _open_root(self, root: str) -> Tuple[bytes, DirectoryEntry, List[bytes]]:
        """
        Stat and list the scan root.

        The root path itself is followed if it is a symbolic link.

        :raises TreesumRootError: If the root is unavailable.
        """
        root_path = os.fsencode(root)
        try:
            st = os.stat(root_path)
        except OSError as err:
            raise TreesumRootError(root, err.strerror or str(err)) from err
        if not stat.S_ISDIR(st.st_mode):
            raise TreesumRootError(root, "not a directory")
        try:
            names = self._list_dir(root_path)
        except OSError as err:
            raise TreesumRootError(root, err.strerror or str(err)) from err
        return (root_path, entry_from_stat(ROOT_PATH, st), names)

    def entries(self, root: str) -> Iterator[Union[AnyEntry, TreesumScanError]]:
        """
        Walk the tree at ``root`` and generate entries and recorded errors
        in canonical order.

        The sequence is lazy and not restartable. Errors handled with
        ``ErrorAction.SKIP`` are omitted; ``ErrorAction.ABORT`` raises.

        :param root: The directory to scan.
        :type root: ``str``
        :returns: An iterator over ``ScanEntry`` variants and
                  ``TreesumScanError`` objects.
        :raises TreesumRootError: If ``root`` is unavailable.
        :raises TreesumAbortError: If the error policy aborts the scan.
        """
        self.policy = ErrorPolicy.from_options(self.options)
        self.stats = ScanStats()
        self.stats.start_time = datetime.now()

        _log_info(
            "Scanning '%s' (hash=%s, errors=%s)",
            root,
            self.hasher.hash_algorithm,
            self.policy,
        )
        root_path, root_entry, names = self._open_root(root)

        if self.options.include_root:
            self.stats.count(root_entry)
            yield root_entry

        if self.options.jobs > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.options.jobs, thread_name_prefix="treesum-hash"
            )

        stack = [self._visit_dir(root_path, b"", names, root_entry.dev)]
        try:
            while stack:
                try:
                    item, subdir = next(stack[-1])
                except StopIteration:
                    stack.pop()
                    continue

                if isinstance(item, TreesumScanError):
                    action = self.policy.decide(item)
                    if action == ErrorAction.ABORT:
                        raise TreesumAbortError(item)
                    if action == ErrorAction.RECORD:
                        self.stats.count(item)
                        yield item
                    continue

                encoding_error = self._check_encoding(item)
                if encoding_error is not None:
                    action = self.policy.decide(encoding_error)
                    if action == ErrorAction.ABORT:
                        raise TreesumAbortError(encoding_error)
                    if action == ErrorAction.SKIP:
                        continue
                    self.stats.errors += 1

                self.stats.count(item)
                yield item
                if subdir is not None:
                    stack.append(self._visit_dir(*subdir, root_entry.dev))
        finally:
            for visit in reversed(stack):
                visit.close()
            if self._executor is not None:
                self._executor.shutdown(wait=True, cancel_futures=True)
                self._executor = None
            self.stats.end_time = datetime.now()

    def walk(self, root: str) -> Iterator[str]:
        """
        Walk the tree at ``root`` and generate canonical records.

        :param root: The directory to scan.
        :type root: ``str``
        :returns: An iterator over newline terminated record strings.
        :raises TreesumRootError: If ``root`` is unavailable.
        :raises TreesumAbortError: If the error policy aborts the scan.
        """
        for item in self.entries(root):
            if isinstance(item, TreesumScanError):
                yield self.formatter.format_error(item)
            else:
                yield self.formatter.format_entry(item)

    def scan(
        self,
        root: str,
        sink: OutputSink,
        status: Optional[StatusBase] = None,
    ) -> ScanStats:
        """
        Scan the tree at ``root`` and write every record to ``sink``.

        The sink is not closed: the caller flushes and closes it once the
        scan has succeeded.

        :param root: The directory to scan.
        :type root: ``str``
        :param sink: The output sink to write records to.
        :type sink: ``OutputSink``
        :param status: An optional status indicator.
        :type status: ``Optional[StatusBase]``
        :returns: The statistics for the completed scan.
        :rtype: ``ScanStats``
        :raises TreesumRootError: If ``root`` is unavailable.
        :raises TreesumAbortError: If the error policy aborts the scan.
        """
        status = status or StatusFactory.get_status(
            f"Scanning {root}", quiet=self.options.quiet
        )
        status.start()
        count = 0
        try:
            for item in self.entries(root):
                if isinstance(item, TreesumScanError):
                    sink.write(self.formatter.format_error(item))
                else:
                    sink.write(self.formatter.format_entry(item))
                count += 1
                status.update(count, escape_bytes(item.path))
        except (KeyboardInterrupt, SystemExit):
            status.cancel("Quit!")
            raise
        except Exception:
            status.cancel("Failed.")
            raise

        status.end(f"{count} records")
        _log_info("Scanned %s: %s", root, self.stats)
        if self.policy.total:
            _log_info(
                "Errors by type: %s",
                ", ".join(
                    f"{etype.value}={num}"
                    for etype, num in self.policy.counts.items()
                    if num
                ),
            )
        return self.stats


__all__ = [
    "ScanStats",
    "TreeWalker",
]
