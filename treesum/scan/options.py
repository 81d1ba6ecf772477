# Copyright Red Hat
#
# treesum/scan/options.py - Tree summary scan options
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Tree scan options and configuration file support.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple
from configparser import ConfigParser, Error as ConfigParserError
from argparse import Namespace
from os.path import exists
import logging

from treesum import (
    TreesumArgumentError,
    TreesumConfigError,
    TreesumParseError,
    parse_size_with_units,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Default configuration file path
TREESUM_CFG_PATH = "/etc/treesum/treesum.conf"

#: Scan configuration section
_CFG_SCAN = "Scan"

#: Per error type policy override section
_CFG_ERROR_POLICY = "ErrorPolicy"

#: Supported hash algorithms
HASH_ALGORITHMS = ("md5", "sha1", "sha256", "sha512", "blake2b")

#: Supported error policy actions
ERROR_ACTIONS = ("record", "skip", "abort")

#: Supported error types for policy overrides
ERROR_TYPES = ("listing", "stat", "read", "encoding")

#: Supported modification time precisions
TIMESTAMP_PRECISIONS = ("seconds", "nanoseconds")

#: Default content hash read size
DEFAULT_CHUNK_SIZE = 2**16

# Map of [Scan] configuration keys to (option name, value type)
_SCAN_KEYS = {
    "HashAlgorithm": ("hash_algorithm", str),
    "ErrorPolicy": ("error_policy", str),
    "FollowSymlinks": ("follow_symlinks", bool),
    "IncludeRoot": ("include_root", bool),
    "OneFileSystem": ("one_file_system", bool),
    "TimestampPrecision": ("timestamp_precision", str),
    "HashLength": ("hash_length", int),
    "MaxHashSize": ("max_hash_size", "size"),
    "Exclude": ("exclude_patterns", tuple),
    "IgnoreTimestamps": ("ignore_timestamps", bool),
    "IgnorePermissions": ("ignore_permissions", bool),
    "IgnoreOwnership": ("ignore_ownership", bool),
    "Jobs": ("jobs", int),
}


def parse_error_override(value: str) -> Tuple[str, str]:
    """
    Parse an error policy override of the form ``TYPE=ACTION``.

    :param value: The override expression.
    :type value: ``str``
    :returns: A ``(type, action)`` tuple.
    :rtype: ``Tuple[str, str]``
    :raises TreesumArgumentError: If the expression is malformed.
    """
    if "=" not in value:
        raise TreesumArgumentError(
            f"Malformed error policy override (expected TYPE=ACTION): '{value}'"
        )
    error_type, action = (part.strip().lower() for part in value.split("=", 1))
    if error_type not in ERROR_TYPES:
        raise TreesumArgumentError(f"Unknown error type: {error_type}")
    if action not in ERROR_ACTIONS:
        raise TreesumArgumentError(f"Unknown error policy: {action}")
    return (error_type, action)


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True)
class ScanOptions:
    """
    Tree scan options.
    """

    #: Content hash algorithm
    hash_algorithm: str = "sha256"
    #: Default error policy action: record, skip or abort
    error_policy: str = "record"
    #: Per error type policy overrides as ``(type, action)`` pairs
    error_overrides: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    #: Follow symlinks when walking file system trees (unsupported)
    follow_symlinks: bool = False
    #: Emit a record for the scan root itself
    include_root: bool = True
    #: Do not descend into directories on other file systems
    one_file_system: bool = False
    #: Modification time precision: seconds or nanoseconds
    timestamp_precision: str = "seconds"
    #: Truncate hex digests to this many characters (0 for full digests)
    hash_length: int = 0
    #: Maximum file size for generating content hashes (0 for no limit)
    max_hash_size: int = 0
    #: Path patterns to exclude (glob notation)
    exclude_patterns: Tuple[str, ...] = field(default_factory=tuple)
    #: Render modification times as a placeholder
    ignore_timestamps: bool = False
    #: Render permissions as a placeholder
    ignore_permissions: bool = False
    #: Render ownership as a placeholder
    ignore_ownership: bool = False
    #: Number of parallel content hashing workers
    jobs: int = 1
    #: Read size used when hashing file content
    chunk_size: int = DEFAULT_CHUNK_SIZE
    #: Do not output progress or status updates
    quiet: bool = False

    def __str__(self):
        """
        Return a human readable string representation of this
        ``ScanOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """

        def _join_tuple(val: Tuple[Any, ...]) -> str:
            """
            Convert tuples into space separated strings.
            """
            return " ".join(
                "=".join(item) if isinstance(item, tuple) else item for item in val
            )

        items = [
            (key, val) if not isinstance(val, tuple) else (key, _join_tuple(val))
            for key, val in self.__dict__.items()
        ]
        return "\n".join(f"{key}={val}" for key, val in items)

    def validate(self):
        """
        Check that this ``ScanOptions`` instance describes a valid scan.

        :raises TreesumArgumentError: If any option value is invalid.
        """
        if self.hash_algorithm not in HASH_ALGORITHMS:
            raise TreesumArgumentError(
                f"Unknown hash algorithm: {self.hash_algorithm}"
            )
        if self.error_policy not in ERROR_ACTIONS:
            raise TreesumArgumentError(f"Unknown error policy: {self.error_policy}")
        for error_type, action in self.error_overrides:
            if error_type not in ERROR_TYPES:
                raise TreesumArgumentError(f"Unknown error type: {error_type}")
            if action not in ERROR_ACTIONS:
                raise TreesumArgumentError(f"Unknown error policy: {action}")
        if self.follow_symlinks:
            raise TreesumArgumentError(
                "Following symbolic links is not supported: "
                "symbolic links are always recorded as links"
            )
        if self.timestamp_precision not in TIMESTAMP_PRECISIONS:
            raise TreesumArgumentError(
                f"Unknown timestamp precision: {self.timestamp_precision}"
            )
        if self.hash_length < 0:
            raise TreesumArgumentError(
                f"Invalid hash length: {self.hash_length} (must be >= 0)"
            )
        if self.max_hash_size < 0:
            raise TreesumArgumentError(
                f"Invalid maximum hash size: {self.max_hash_size} (must be >= 0)"
            )
        if self.jobs < 1:
            raise TreesumArgumentError(f"Invalid job count: {self.jobs} (must be >= 1)")
        if self.chunk_size < 1:
            raise TreesumArgumentError(
                f"Invalid chunk size: {self.chunk_size} (must be >= 1)"
            )

    @classmethod
    def from_file(
        cls, config_file: str, base: Optional["ScanOptions"] = None
    ) -> "ScanOptions":
        """
        Load ``ScanOptions`` from an INI-style configuration file located at
        ``config_file``.

        Values that are not present in the file are taken from ``base``,
        or from the built-in defaults if ``base`` is ``None``. A missing
        file yields the base options unchanged.

        :param config_file: path to treesum.conf
        :type config_file: ``str``.
        :param base: Options to use for values not set in the file.
        :type base: ``Optional[ScanOptions]``
        :returns: A ``ScanOptions`` instance initialised from ``config_file``.
        :rtype: ``ScanOptions``
        :raises TreesumConfigError: If the file cannot be parsed or contains
                                    an invalid value.
        """
        base = base or cls()

        if not exists(config_file):
            return base

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        # Preserve key case for error messages.
        cfg.optionxform = str
        try:
            cfg.read([config_file], encoding="utf8")
        except (ConfigParserError, UnicodeDecodeError) as err:
            raise TreesumConfigError(
                f"Error parsing configuration file '{config_file}': {err}"
            ) from err

        kwargs: Dict[str, Any] = {}
        if cfg.has_section(_CFG_SCAN):
            section = cfg[_CFG_SCAN]
            for key in section:
                if key not in _SCAN_KEYS:
                    raise TreesumConfigError(
                        f"Unknown key '{key}' in section [{_CFG_SCAN}] "
                        f"of '{config_file}'"
                    )
                name, value_type = _SCAN_KEYS[key]
                try:
                    if value_type is bool:
                        kwargs[name] = section.getboolean(key)
                    elif value_type is int:
                        kwargs[name] = section.getint(key)
                    elif value_type == "size":
                        kwargs[name] = parse_size_with_units(section[key])
                    elif value_type is tuple:
                        kwargs[name] = tuple(
                            pat.strip() for pat in section[key].split(",") if pat.strip()
                        )
                    else:
                        kwargs[name] = section[key].strip().lower()
                except (ValueError, TreesumParseError) as err:
                    raise TreesumConfigError(
                        f"Invalid value for {key} in '{config_file}': {err}"
                    ) from err

        if cfg.has_section(_CFG_ERROR_POLICY):
            overrides = dict(base.error_overrides)
            for key, value in cfg[_CFG_ERROR_POLICY].items():
                try:
                    error_type, action = parse_error_override(f"{key}={value}")
                except TreesumArgumentError as err:
                    raise TreesumConfigError(
                        f"Invalid [{_CFG_ERROR_POLICY}] entry in '{config_file}': {err}"
                    ) from err
                overrides[error_type] = action
            kwargs["error_overrides"] = tuple(sorted(overrides.items()))

        options = replace(base, **kwargs)
        _log_debug("Initialised ScanOptions from '%s': %s", config_file, repr(options))
        return options

    @classmethod
    def from_cmd_args(
        cls, cmd_args: Namespace, base: Optional["ScanOptions"] = None
    ) -> "ScanOptions":
        """
        Initialise ScanOptions from command line arguments.

        Construct a new ``ScanOptions`` object from the command line
        arguments in ``cmd_args``. Arguments that are absent or ``None``
        keep the value from ``base`` (or the built-in default).

        :param cmd_args: The command line arguments.
        :type cmd_args: ``Namespace``
        :param base: Options to use for values not set on the command line.
        :type base: ``Optional[ScanOptions]``
        :returns: A new ``ScanOptions`` instance
        :rtype: ``ScanOptions``
        """
        base = base or cls()

        def get_value(name: str) -> Any:
            """
            Get a value from ``cmd_args``, converting lists to tuples.
            """
            attr = getattr(cmd_args, name)
            if isinstance(attr, list):
                return tuple(attr)
            return attr

        field_names = {f.name for f in fields(cls)}
        kwargs = {
            name: get_value(name)
            for name in field_names
            if getattr(cmd_args, name, None) is not None
        }

        if "error_overrides" in kwargs:
            overrides = dict(base.error_overrides)
            for override in kwargs["error_overrides"]:
                error_type, action = (
                    override
                    if isinstance(override, tuple)
                    else parse_error_override(override)
                )
                overrides[error_type] = action
            kwargs["error_overrides"] = tuple(sorted(overrides.items()))

        if "exclude_patterns" in kwargs:
            kwargs["exclude_patterns"] = base.exclude_patterns + tuple(
                pat for pat in kwargs["exclude_patterns"] if pat not in base.exclude_patterns
            )

        options = replace(base, **kwargs)
        _log_debug("Initialised ScanOptions from arguments: %s", repr(options))
        return options


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ERROR_ACTIONS",
    "ERROR_TYPES",
    "HASH_ALGORITHMS",
    "ScanOptions",
    "TIMESTAMP_PRECISIONS",
    "TREESUM_CFG_PATH",
    "parse_error_override",
]
