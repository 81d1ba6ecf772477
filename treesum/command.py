# Copyright Red Hat
#
# treesum/command.py - Tree summary command interface
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``treesum.command`` module provides both the treesum command line
interface infrastructure, and a simple procedural interface to the
``treesum`` library modules.

The procedural interface is used by the ``treesum`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the treesum object API.
"""
from argparse import ArgumentParser, ArgumentTypeError
from typing import List, Optional
from os.path import basename
import logging
import sys

from treesum import (
    TREESUM_DEBUG_WALK,
    TREESUM_DEBUG_HASH,
    TREESUM_DEBUG_COMMAND,
    TREESUM_DEBUG_ALL,
    TREESUM_SUBSYSTEM_COMMAND,
    SubsystemFilter,
    set_debug_mask,
    ProgressAwareHandler,
    TreesumError,
    TreesumAbortError,
    TreesumOutputError,
    TreesumParseError,
    TreesumRootError,
    parse_size_with_units,
    __version__,
)
from .scan import (
    ERROR_ACTIONS,
    HASH_ALGORITHMS,
    TIMESTAMP_PRECISIONS,
    TREESUM_CFG_PATH,
    OutputSink,
    ScanOptions,
    ScanStats,
    TreeWalker,
)
from .scan.sink import STDOUT_DEST

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREESUM_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.WARNING
_CONSOLE_HANDLER = None


def scan_tree(
    root: str,
    options: Optional[ScanOptions] = None,
    output: str = STDOUT_DEST,
) -> ScanStats:
    """
    Scan the tree at ``root`` and write its canonical summary to ``output``.

    The output is flushed and closed only if the scan completes. If the
    scan fails, a partially written output file is removed.

    :param root: The directory to scan.
    :type root: ``str``
    :param options: Scan options, or ``None`` for the defaults.
    :type options: ``Optional[ScanOptions]``
    :param output: An output file path or "-" for standard output.
    :type output: ``str``
    :returns: Statistics for the completed scan.
    :rtype: ``ScanStats``
    :raises TreesumRootError: If ``root`` is unavailable.
    :raises TreesumAbortError: If the error policy aborted the scan.
    :raises TreesumOutputError: If the summary cannot be written.
    """
    walker = TreeWalker(options)
    with OutputSink(output) as sink:
        stats = walker.scan(root, sink)
    return stats


def _scan_cmd(cmd_args):
    """
    Scan command handler.

    Build the scan options from the configuration file and command line
    and scan the requested root.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config_file = cmd_args.config or TREESUM_CFG_PATH
    try:
        options = ScanOptions.from_file(config_file)
        options = ScanOptions.from_cmd_args(cmd_args, base=options)
        options.validate()
    except TreesumError as err:
        _log_error("Invalid options: %s", err)
        return 1

    _log_debug_command("Scan options:\n%s", options)

    try:
        stats = scan_tree(cmd_args.root, options, output=cmd_args.output)
    except TreesumRootError as err:
        _log_error("%s", err)
        return 1
    except TreesumAbortError as err:
        _log_error("%s", err)
        return 1
    except TreesumOutputError as err:
        _log_error("%s", err)
        return 1
    except BrokenPipeError:
        _log_debug_command("Output pipe closed")
        return 1

    if stats.errors:
        _log_warn("Scan completed with %d recorded errors", stats.errors)
    return 0


def setup_logging(cmd_args):
    """
    Set up treesum logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose and cmd_args.verbose > 1:
        level = logging.DEBUG
    elif cmd_args.verbose and cmd_args.verbose > 0:
        level = logging.INFO

    treesum_log = logging.getLogger("treesum")
    formatter = logging.Formatter("%(levelname)s - %(message)s")
    treesum_log.setLevel(level)
    if treesum_log.hasHandlers():
        treesum_log.handlers.clear()

    # Subsystem log filtering
    _treesum_subsystem_filter = SubsystemFilter("treesum")

    # Main console handler: always stderr
    _CONSOLE_HANDLER = ProgressAwareHandler()

    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.setFormatter(formatter)
    _CONSOLE_HANDLER.addFilter(_treesum_subsystem_filter)

    treesum_log.addHandler(_CONSOLE_HANDLER)


def shutdown_logging():
    """
    Shut down treesum logging.
    """
    logging.shutdown()


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "walk": TREESUM_DEBUG_WALK,
        "hash": TREESUM_DEBUG_HASH,
        "command": TREESUM_DEBUG_COMMAND,
        "all": TREESUM_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _size_arg(value):
    """
    Argument type for sizes with optional units.
    """
    try:
        return parse_size_with_units(value)
    except TreesumParseError as err:
        raise ArgumentTypeError(str(err)) from err


def _add_scan_args(parser):
    """
    Add scan option arguments to ``parser``.

    Every option defaults to ``None`` so that values from the configuration
    file are only overridden by options given on the command line.

    :param parser: The parser to add arguments to.
    """
    parser.add_argument(
        "root",
        metavar="ROOT",
        type=str,
        nargs="?",
        default=".",
        help="The directory tree to scan (default: current directory)",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        help=f"Configuration file to read (default: {TREESUM_CFG_PATH})",
    )
    parser.add_argument(
        "-o",
        "--output",
        metavar="OUTPUT",
        type=str,
        default=STDOUT_DEST,
        help="Write the summary to OUTPUT ('-' for stdout; "
        "'.zst' and '.xz' names are compressed)",
    )
    parser.add_argument(
        "-a",
        "--hash-algorithm",
        type=str,
        choices=HASH_ALGORITHMS,
        help="Content hash algorithm (default: sha256)",
    )
    parser.add_argument(
        "-e",
        "--error-policy",
        type=str,
        choices=ERROR_ACTIONS,
        help="Action for per-entry errors (default: record)",
    )
    parser.add_argument(
        "--on-error",
        metavar="TYPE=ACTION",
        dest="error_overrides",
        action="append",
        help="Override the error policy for one error type "
        "(listing, stat, read, encoding)",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        help="Number of parallel content hashing workers (default: 1)",
    )
    parser.add_argument(
        "--no-root",
        dest="include_root",
        action="store_false",
        default=None,
        help="Do not emit a record for the scan root",
    )
    parser.add_argument(
        "-x",
        "--one-file-system",
        action="store_true",
        default=None,
        help="Do not descend into directories on other file systems",
    )
    parser.add_argument(
        "--timestamp-precision",
        type=str,
        choices=TIMESTAMP_PRECISIONS,
        help="Modification time precision (default: seconds)",
    )
    parser.add_argument(
        "--hash-length",
        type=int,
        metavar="N",
        help="Truncate content hashes to N hex digits (default: full)",
    )
    parser.add_argument(
        "--max-hash-size",
        type=_size_arg,
        metavar="SIZE",
        help="Do not hash files larger than SIZE (default: no limit)",
    )
    parser.add_argument(
        "--exclude",
        metavar="PATTERN",
        dest="exclude_patterns",
        action="append",
        help="Exclude paths matching the glob PATTERN (may be repeated)",
    )
    parser.add_argument(
        "--ignore-timestamps",
        action="store_true",
        default=None,
        help="Do not record modification times",
    )
    parser.add_argument(
        "--ignore-permissions",
        action="store_true",
        default=None,
        help="Do not record permissions",
    )
    parser.add_argument(
        "--ignore-ownership",
        action="store_true",
        default=None,
        help="Do not record ownership",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=None,
        help="Do not display scan status",
    )


def main(args: List[str]):
    """
    Main entry point for treesum.
    """
    parser = ArgumentParser(
        description="Deterministic file system tree summaries",
        prog=basename(args[0]),
    )

    # Global arguments
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable (walk, hash, command, all)",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of treesum",
        version=__version__,
    )
    _add_scan_args(parser)
    parser.set_defaults(func=_scan_cmd)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err, file=sys.stderr)
        parser.print_help(file=sys.stderr)
        return status

    setup_logging(cmd_args)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if cmd_args.debug:
        status = cmd_args.func(cmd_args)
    else:
        try:
            status = cmd_args.func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
