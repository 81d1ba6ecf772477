# Copyright Red Hat
#
# treesum/__init__.py - Tree summary package initialisation
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Treesum top-level package.
"""
from ._treesum import *  # noqa: F401, F403
from ._treesum import __all__  # noqa: F401

__version__ = "0.1.0"
