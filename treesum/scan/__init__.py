# Copyright Red Hat
#
# treesum/scan/__init__.py - Tree summary scan package
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree scan package.

Provides deterministic traversal, content hashing, canonical record
formatting and error policy handling for directory tree summaries. The main
entry points are ``TreeWalker`` and ``ScanOptions``.
"""
from .options import (
    ERROR_ACTIONS,
    ERROR_TYPES,
    HASH_ALGORITHMS,
    TIMESTAMP_PRECISIONS,
    TREESUM_CFG_PATH,
    ScanOptions,
)
from .entries import (
    AnyEntry,
    DirectoryEntry,
    FileEntry,
    OtherEntry,
    ScanEntry,
    SymlinkEntry,
    classify,
)
from .hashing import ContentHasher
from .formatter import CanonicalFormatter, escape_bytes
from .policy import ErrorAction, ErrorPolicy
from .sink import OutputSink
from .treewalk import ScanStats, TreeWalker

__all__ = [
    "AnyEntry",
    "CanonicalFormatter",
    "ContentHasher",
    "DirectoryEntry",
    "ERROR_ACTIONS",
    "ERROR_TYPES",
    "ErrorAction",
    "ErrorPolicy",
    "FileEntry",
    "HASH_ALGORITHMS",
    "OtherEntry",
    "OutputSink",
    "ScanEntry",
    "ScanOptions",
    "ScanStats",
    "SymlinkEntry",
    "TIMESTAMP_PRECISIONS",
    "TREESUM_CFG_PATH",
    "TreeWalker",
    "classify",
    "escape_bytes",
]
