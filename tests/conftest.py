"""Pytest configuration and fixtures for relstage tests.

relstage keeps a little process-global state (the output module's verbose
flag and tee file, and the working directory switched during wheel builds).
The autouse fixture below puts all of it back after every test.
"""

import os
import sys

import pytest

from relstage import output


@pytest.fixture(autouse=True)
def _restore_process_state():  # noqa: PT004
    cwd = os.getcwd()
    yield
    os.chdir(cwd)
    output.set_verbose(False)
    output.set_output_file(None)
    output.init_timer(sys.stdout)
