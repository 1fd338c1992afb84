"""Test-run hardening for a workspace checkout.

Third-party pytest plugins registered through the ``pytest11`` entry point
group are loaded automatically by pytest. Unrelated plugins in a developer
environment can slow down or break the KrcahPy suite, so plugin autoload is
turned off when the current process looks like a pytest run. Setting
``PYTEST_DISABLE_PLUGIN_AUTOLOAD`` explicitly always wins.

Python's ``site`` module imports this file when the repository root is on
``sys.path``, which is the case for test runs started from the root.
"""

from __future__ import annotations

import os
import sys


def _is_pytest_run(argv: list[str]) -> bool:
    return any("pytest" in str(a).lower() for a in argv)


if "PYTEST_DISABLE_PLUGIN_AUTOLOAD" not in os.environ and _is_pytest_run(sys.argv):
    os.environ["PYTEST_DISABLE_PLUGIN_AUTOLOAD"] = "1"
