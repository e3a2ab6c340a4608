"""Tests for output module - timestamped logging."""

import io
import re
import sys

import pytest

from relstage import output


@pytest.fixture
def stream():
    buf = io.StringIO()
    output.init_timer(buf)
    output.set_verbose(False)
    yield buf
    output.init_timer(sys.stdout)
    output.set_output_file(None)
    output.set_verbose(False)


def test_log_prefixes_timestamp(stream):
    output.log("hello")
    assert re.match(r"^\d\d:\d\d\.\d\d hello\n$", stream.getvalue())


def test_log_phase_and_detail(stream):
    output.log_phase(2, 7, "Configuring build environment...")
    output.log_detail("Target: x86_64-unknown-linux-gnu")
    lines = stream.getvalue().splitlines()
    assert lines[0].endswith("[2/7] Configuring build environment...")
    assert lines[1].endswith("      Target: x86_64-unknown-linux-gnu")


def test_verbose_only_messages_are_suppressed(stream):
    output.log("quiet", verbose_only=True)
    output.log_tool_output("Compiling cozo")
    assert stream.getvalue() == ""

    output.set_verbose(True)
    output.log_tool_output("Compiling cozo")
    assert "| Compiling cozo" in stream.getvalue()


def test_output_file_receives_copy(stream):
    tee = io.StringIO()
    output.set_output_file(tee)
    output.log_error("cargo build failed")
    assert "ERROR: cargo build failed" in tee.getvalue()
    assert "ERROR: cargo build failed" in stream.getvalue()


def test_timed_logger_reports_done_only_on_success(stream):
    with output.TimedLogger("Staging server", phase=(5, 7)):
        pass
    assert "[5/7] Staging server..." in stream.getvalue()
    assert "Done (" in stream.getvalue()

    stream.truncate(0)
    stream.seek(0)
    with pytest.raises(ValueError):
        with output.TimedLogger("Staging java"):
            raise ValueError("missing")
    assert "Staging java..." in stream.getvalue()
    assert "Done (" not in stream.getvalue()
