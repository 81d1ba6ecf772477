# Copyright Red Hat
#
# treesum/progress.py - Tree summary terminal status indicator
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and scan status indicator.

The total number of entries in a tree is not known in advance, so the scan
status reports a running count of entries and the most recently visited
path. Status output is written to ``sys.stderr`` by default: ``sys.stdout``
carries the scan summary.
"""
from typing import List, Optional, TextIO
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import curses
import sys
import os

from treesum import register_status, unregister_status

#: Default number of columns if not detected from terminal.
DEFAULT_COLUMNS = 80

#: Default updates-per-second for status indicators
DEFAULT_FPS = 10

#: Number of entries between ``SimpleStatus`` report lines
SIMPLE_STATUS_INTERVAL = 10000

#: Spinner frames for capable terminals
_FRAMES = "⣾⣽⣻⢿⡿⣟⣯⣷"

#: Spinner frames for terminals without Unicode support
_ASCII_FRAMES = r"-\|/"

#: Microseconds per second
_USECS_PER_SEC = 1000000


class TermControl:
    """
    A class for portable terminal control and output.

    Uses the curses package to look up the control sequences needed to
    redraw a single status line on the current terminal. If the stream is
    not a terminal, or the terminal cannot be set up, all control
    attributes are empty strings and ``columns`` is ``None``.

    Inspired by and adapted from:

      https://code.activestate.com/recipes/475116-using-terminfo-for-portable-color-output-cursor-co/

      Copyright Edward Loper and released under the PSF license.
    """

    BOL: str = ""  #: Move the cursor to the beginning of the line
    CLEAR_EOL: str = ""  #: Clear to the end of the line.
    HIDE_CURSOR: str = ""  #: Make the cursor invisible
    SHOW_CURSOR: str = ""  #: Make the cursor visible
    NORMAL: str = ""  #: Turn off all modes
    GREEN: str = ""  #: Green foreground color

    columns: Optional[int] = None  #: Terminal width

    _STRING_CAPABILITIES: List[str] = (
        "BOL:cr CLEAR_EOL:el HIDE_CURSOR:civis SHOW_CURSOR:cnorm NORMAL:sgr0".split()
    )

    #: Index of green in the ANSI color table
    _ANSI_GREEN = 2

    def __init__(self, term_stream: Optional[TextIO] = None):
        """
        Initialize terminal capabilities and size information.

        :param term_stream: Output stream to query for capabilities.
        :type term_stream: ``Optional[TextIO]``
        """
        if term_stream is None:
            term_stream = sys.stderr

        self.term_stream = term_stream

        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return

        try:
            curses.setupterm(fd=term_stream.fileno())
        # curses.error cannot be caught by name before setupterm() succeeds
        # on all platforms: catch broadly but preserve interruption.
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            return

        cols = curses.tigetnum("cols")
        self.columns = cols if cols > 0 else None

        for capability in self._STRING_CAPABILITIES:
            (attr, cap_name) = capability.split(":")
            setattr(self, attr, self._tigetstr(cap_name) or "")

        set_fg_ansi = self._tigetstr("setaf")
        if set_fg_ansi:
            self.GREEN = (
                curses.tparm(set_fg_ansi.encode("utf8"), self._ANSI_GREEN).decode(
                    "utf8"
                )
                or ""
            )

    def _tigetstr(self, cap_name):
        # String capabilities can include "delays" of the form "$<2>":
        # strip them out.
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class StatusBase(ABC):
    """
    An abstract scan status indicator.
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialize base status state.

        :param header: The status header, for example "Scanning /srv".
        :type header: ``str``
        :param register: Register this status for log callbacks.
        :type register: ``bool``
        """
        self.header: str = header
        self.stream: Optional[TextIO] = None
        self.started: bool = False
        self.first_update: bool = True
        self.count: int = 0
        self.registered: bool = False
        self.register: bool = register
        self._interval_us: int = round((1.0 / DEFAULT_FPS) * _USECS_PER_SEC)
        self._last: Optional[datetime] = None

    def reset_position(self):
        """Mark status as displaced by external output."""
        self.first_update = True

    def _check_started(self, step: str):
        """
        Validate that the status indicator is active.

        :param step: The method name that is active.
        :type step: ``str``
        :raises ``ValueError``: If the status has not been started.
        """
        if not self.started:
            raise ValueError(f"{self.__class__.__name__}.{step}() called before start()")

    def start(self):
        """
        Begin a status run.
        """
        self.started = True
        self.count = 0
        self._last = datetime.now() - timedelta(microseconds=self._interval_us)
        if self.register:
            register_status(self)
        self._do_start()

    def _do_start(self):
        """
        Hook invoked when the status run begins.
        """

    def update(self, count: int, message: Optional[str] = None):
        """
        Report that ``count`` entries have been visited.

        :param count: The number of entries visited so far.
        :type count: ``int``
        :param message: An optional status message, such as the current path.
        :type message: ``Optional[str]``
        """
        self._check_started("update")
        self.count = count
        self._do_update(count, message=message)

    @abstractmethod
    def _do_update(self, count: int, message: Optional[str] = None):
        """
        Hook for subclasses to update the status display.
        """

    def _due(self) -> bool:
        """
        Return ``True`` if the display refresh interval has elapsed.
        """
        now = datetime.now()
        if (now - self._last).total_seconds() * _USECS_PER_SEC >= self._interval_us:
            self._last = now
            return True
        return False

    def end(self, message: Optional[str] = None):
        """
        End the status run and finalize the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_started("end")
        self._do_end(message=message)
        _flush_with_broken_pipe_guard(self.stream)
        self._finish()

    def cancel(self, message: Optional[str] = None):
        """
        Cancel the status run.

        :param message: An optional cancellation message.
        :type message: ``Optional[str]``
        """
        self._check_started("cancel")
        self._do_end(message=message)
        _flush_with_broken_pipe_guard(self.stream)
        self._finish()

    def _finish(self):
        self.started = False
        self._last = None
        if self.registered:
            unregister_status(self)

    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-run handling.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        if message:
            print(f"{self.header}: {message}", file=self.stream)


class Status(StatusBase):
    """
    A one line status indicator for capable terminals, redrawn in place.
    """

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        tc: Optional[TermControl] = None,
    ):
        """
        Initialise a new one line status indicator.

        :param header: The header string to print.
        :type header: ``str``
        :param register: Register this ``Status`` for log callbacks.
        :type register: ``bool``
        :param term_stream: The terminal stream to write to.
        :type term_stream: ``Optional[TextIO]``
        :param tc: An optional ``TermControl`` already initialised for
                   ``term_stream``. Overrides ``term_stream`` if set.
        :type tc: ``Optional[TermControl]``
        :raises ValueError: If the terminal cannot redraw a line.
        """
        super().__init__(header, register=register)
        if tc is not None:
            term_stream = tc.term_stream
        self.term: TermControl = tc or TermControl(term_stream=term_stream)
        self.stream = term_stream or sys.stderr

        if not self.term.BOL or not self.term.CLEAR_EOL:
            raise ValueError("Terminal does not support required control sequences")

        self.columns: int = self.term.columns or DEFAULT_COLUMNS
        self.frames: str = _ASCII_FRAMES
        encoding = getattr(self.stream, "encoding", None)
        if encoding:
            try:
                _FRAMES.encode(encoding)
                self.frames = _FRAMES
            except (UnicodeEncodeError, LookupError):
                pass
        self._frame_index: int = 0

    def _do_start(self):
        print(self.term.HIDE_CURSOR, end="", file=self.stream)

    def _render(self, count: int, message: Optional[str] = None) -> str:
        frame = self.frames[self._frame_index]
        line = f"{self.header}: {count} entries"
        if message:
            line += f" {message}"
        budget = self.columns - 3
        if len(line) > budget:
            line = line[: budget - 3] + "..."
        return f"{self.term.GREEN}{frame}{self.term.NORMAL} {line}"

    def _do_update(self, count: int, message: Optional[str] = None):
        if not self._due() and not self.first_update:
            return
        print(
            self.term.BOL + self.term.CLEAR_EOL + self._render(count, message),
            end="",
            file=self.stream,
        )
        _flush_with_broken_pipe_guard(self.stream)
        self._frame_index = (self._frame_index + 1) % len(self.frames)
        self.first_update = False

    def _do_end(self, message: Optional[str] = None):
        print(self.term.BOL + self.term.CLEAR_EOL, end="", file=self.stream)
        print(self.term.SHOW_CURSOR, end="", file=self.stream)
        super()._do_end(message=message)


class SimpleStatus(StatusBase):
    """
    A status indicator that does not rely on terminal capabilities: writes
    one line every ``interval`` entries.
    """

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        interval: int = SIMPLE_STATUS_INTERVAL,
    ):
        """
        Initialise a simple status indicator.

        :param header: The status header.
        :type header: ``str``
        :param register: Register this ``SimpleStatus`` for log callbacks.
        :type register: ``bool``
        :param term_stream: The stream to write to.
        :type term_stream: ``Optional[TextIO]``
        :param interval: Number of entries between report lines.
        :type interval: ``int``
        """
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stderr
        self.interval: int = max(1, interval)
        self._next: int = self.interval

    def _do_start(self):
        self._next = self.interval

    def _do_update(self, count: int, message: Optional[str] = None):
        if count < self._next:
            return
        print(f"{self.header}: {count} entries", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)
        self._next = (count // self.interval + 1) * self.interval


class NullStatus(StatusBase):
    """
    A status indicator that produces no output.
    """

    def _do_update(self, count: int, message: Optional[str] = None):
        """No-op update for NullStatus."""

    def _do_end(self, message: Optional[str] = None):
        """No-op end for NullStatus."""


class StatusFactory:
    """
    A factory for constructing status indicator objects.
    """

    @staticmethod
    def get_status(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        register: bool = True,
    ) -> StatusBase:
        """
        Return an appropriate ``StatusBase`` implementation.

        :param header: The status header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stderr`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object to use.
        :type term_control: ``Optional[TermControl]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate status implementation.
        :rtype: ``StatusBase``
        """
        if term_control:
            term_stream = term_control.term_stream

        term_stream = term_stream or sys.stderr
        if quiet:
            return NullStatus(header, register=register)
        if not hasattr(term_stream, "isatty") or not term_stream.isatty():
            return SimpleStatus(header, register=register, term_stream=term_stream)
        try:
            return Status(
                header,
                register=register,
                term_stream=term_stream,
                tc=term_control,
            )
        except ValueError:
            return SimpleStatus(header, register=register, term_stream=term_stream)


__all__ = [
    "DEFAULT_FPS",
    "NullStatus",
    "SimpleStatus",
    "Status",
    "StatusBase",
    "StatusFactory",
    "TermControl",
]
