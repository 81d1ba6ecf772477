# Copyright Red Hat
#
# treesum/scan/policy.py - Tree summary error policy
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Error policy: decide how per-entry scan failures affect the scan.
"""
from typing import Dict, Iterable, Optional, Tuple
from enum import Enum
import logging

from treesum import ScanErrorType, TreesumArgumentError, TreesumScanError

from .options import ScanOptions

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class ErrorAction(Enum):
    """
    Enum for the actions an ``ErrorPolicy`` may take.
    """

    RECORD = "record"  # Emit an error record and continue
    SKIP = "skip"  # Omit the entry and continue
    ABORT = "abort"  # Terminate the scan


class ErrorPolicy:
    """
    Map scan errors to ``ErrorAction`` values.

    A default action applies to every error type unless an override is
    configured for that type. The policy also counts the errors it has
    seen, by type.
    """

    def __init__(
        self,
        default: ErrorAction = ErrorAction.RECORD,
        overrides: Optional[Iterable[Tuple[str, str]]] = None,
    ):
        """
        Initialise a new ``ErrorPolicy``.

        :param default: The action for error types with no override.
        :type default: ``ErrorAction``
        :param overrides: ``(type, action)`` string pairs, for example
                          ``("listing", "skip")``.
        :type overrides: ``Optional[Iterable[Tuple[str, str]]]``
        :raises TreesumArgumentError: If an override names an unknown error
                                      type or action.
        """
        self.default: ErrorAction = default
        self.overrides: Dict[ScanErrorType, ErrorAction] = {}
        for error_type, action in overrides or ():
            try:
                self.overrides[ScanErrorType(error_type)] = ErrorAction(action)
            except ValueError as err:
                raise TreesumArgumentError(
                    f"Invalid error policy override '{error_type}={action}'"
                ) from err
        self.counts: Dict[ScanErrorType, int] = {etype: 0 for etype in ScanErrorType}

    @classmethod
    def from_options(cls, options: ScanOptions) -> "ErrorPolicy":
        """
        Construct an ``ErrorPolicy`` from ``ScanOptions``.

        :param options: The scan options.
        :type options: ``ScanOptions``
        :returns: A new ``ErrorPolicy``.
        :rtype: ``ErrorPolicy``
        """
        try:
            default = ErrorAction(options.error_policy)
        except ValueError as err:
            raise TreesumArgumentError(
                f"Unknown error policy: {options.error_policy}"
            ) from err
        return cls(default=default, overrides=options.error_overrides)

    def __str__(self):
        overrides = ", ".join(
            f"{etype.value}={action.value}" for etype, action in self.overrides.items()
        )
        return f"{self.default.value}" + (f" ({overrides})" if overrides else "")

    def action_for(self, error_type: ScanErrorType) -> ErrorAction:
        """
        Return the configured action for ``error_type``.

        :param error_type: The class of error.
        :type error_type: ``ScanErrorType``
        :rtype: ``ErrorAction``
        """
        return self.overrides.get(error_type, self.default)

    def decide(self, error: TreesumScanError) -> ErrorAction:
        """
        Decide how to handle ``error`` and account for it.

        :param error: The scan error to handle.
        :type error: ``TreesumScanError``
        :returns: The action to take.
        :rtype: ``ErrorAction``
        """
        self.counts[error.error_type] += 1
        action = self.action_for(error.error_type)
        if action == ErrorAction.ABORT:
            _log_error("%s", error)
        elif action == ErrorAction.RECORD:
            _log_warn("%s", error)
        else:
            _log_info("Skipping: %s", error)
        return action

    @property
    def total(self) -> int:
        """
        The total number of errors seen by this policy.

        :rtype: ``int``
        """
        return sum(self.counts.values())


__all__ = [
    "ErrorAction",
    "ErrorPolicy",
]
