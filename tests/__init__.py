# Copyright Red Hat
#
# tests/__init__.py - Tree summary test package
#
# This file is part of the treesum project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    root = "."
    config = None
    output = "-"
    debug = None
    verbose = 0
    hash_algorithm = None
    error_policy = None
    error_overrides = None
    jobs = None
    include_root = None
    one_file_system = None
    timestamp_precision = None
    hash_length = None
    max_hash_size = None
    exclude_patterns = None
    ignore_timestamps = None
    ignore_permissions = None
    ignore_ownership = None
    quiet = None


def have_root():
    """Return ``True`` if the test suite is running as the root user,
    and ``False`` otherwise.
    """
    return os.geteuid() == 0 and os.getegid() == 0
