"""Shared test fixtures."""

from pathlib import Path

import pytest

RUN_TESTS = """\
#!/bin/sh
# Prints a pytest-style summary from tests.txt: one "pass" or "fail" per line.
passed=$(grep -c '^pass$' tests.txt)
failed=$(grep -c '^fail$' tests.txt)
if [ "$failed" -gt 0 ]; then
    echo "FAILED: $failed test(s)"
    echo "===== $failed failed, $passed passed in 0.01s ====="
    exit 1
fi
echo "===== $passed passed in 0.01s ====="
"""

BUILD = """\
#!/bin/sh
if [ -f broken ]; then
    echo "src/app.c:3:1: error: expected ';'"
    exit 1
fi
echo "build ok"
"""


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RALPH_* settings from the developer shell out of tests."""
    for name in ("RALPH_BUILD_COMMAND", "RALPH_TEST_COMMAND", "RALPH_TEST_MODE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sh_project(tmp_path: Path) -> Path:
    """A project whose build and tests are driven by files in its root."""
    (tmp_path / "build.sh").write_text(BUILD)
    (tmp_path / "run_tests.sh").write_text(RUN_TESTS)
    (tmp_path / "tests.txt").write_text("pass\npass\npass\n")
    return tmp_path
