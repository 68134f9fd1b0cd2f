"""Output classifiers for build and test commands.

Both parsers are heuristic and never raise: output with nothing recognisable
yields an empty list.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from ralph.build.models import BuildError, TestFailure

BUILD_ERROR_KEYWORDS = (
    "error:",
    "error[",
    "fatal:",
    "fatal error",
    "undefined:",
    "cannot find",
    "not found",
    "compilation failed",
    "build failed",
    "linker error",
    "undefined reference",
    "undefined symbol",
)

TEST_FAILURE_KEYWORDS = (
    "fail:",
    "failed:",
    "failure:",
    "error:",
    "assertion failed",
    "expected",
    "actual",
    "not equal",
    "timeout",
)

# Lines that mention a failure keyword but report success.
BENIGN_TEST_PHRASES = (
    "no test files",
    "build successful",
    "0 failures",
    "0 failed",
    "all tests passed",
    "tests passed",
)

GO_FAIL_HEADER = "--- FAIL:"
GO_PACKAGE_FAIL = "FAIL\t"
_GO_BLOCK_SCAN_LINES = 10


def parse_build_errors(output: str) -> list[BuildError]:
    """Extract diagnostics from build output.

    Each non-blank line is first tried as ``path[:line[:col]]: message``;
    otherwise it is kept whole if it contains a known error keyword.
    """
    errors: list[BuildError] = []
    for raw in output.split("\n"):
        line = raw.strip()
        if not line:
            continue
        located = parse_file_line_error(line)
        if located is not None:
            errors.append(located)
            continue
        if _contains_any(line.lower(), BUILD_ERROR_KEYWORDS):
            errors.append(BuildError(message=line))
    return errors


def parse_file_line_error(line: str) -> BuildError | None:
    """Parse ``file.go:10:5: message`` style lines, or return None."""
    colon = line.find(":")
    if colon <= 0:
        return None

    # Windows drive letter, e.g. C:\src\main.c:3: ...
    if colon == 1 and len(line) > 2 and line[2] == "\\":
        next_colon = line.find(":", 2)
        if next_colon < 0:
            return None
        colon = next_colon

    path = line[:colon]
    rest = line[colon + 1 :]
    if not looks_like_file_path(path):
        return None

    line_number: int | None = None
    column: int | None = None

    parts = rest.split(":", 1)
    if len(parts) == 2 and parts[0]:
        line_number = _to_int(parts[0])
        if line_number is not None:
            rest = parts[1]
            parts = rest.split(":", 1)
            if len(parts) == 2 and parts[0]:
                column = _to_int(parts[0])
                if column is not None:
                    rest = parts[1]

    message = rest.strip()
    if not message:
        return None
    return BuildError(file=path, line=line_number, column=column, message=message)


def looks_like_file_path(text: str) -> bool:
    """A path contains '.', '/' or '\\' and none of ``()[]{}``."""
    if "." not in text and "/" not in text and "\\" not in text:
        return False
    return not any(char in text for char in "()[]{}")


def parse_test_failures(output: str) -> list[TestFailure]:
    """Extract test failures from test output.

    Go-style ``--- FAIL:`` blocks are parsed structurally first; every line a
    block consumes is excluded from the generic keyword pass that follows.
    """
    lines = output.split("\n")
    failures: list[TestFailure] = []
    processed: set[int] = set()
    current_package = ""

    for index, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue

        block = _parse_go_failure_block(lines, index, current_package)
        if block is not None:
            failure, used = block
            failures.append(failure)
            processed.update(used)
            continue

        if index in processed:
            continue
        if line.startswith(GO_FAIL_HEADER) or line.startswith("=== RUN"):
            continue
        if line.startswith(GO_PACKAGE_FAIL):
            fields = line.split()
            if len(fields) >= 2:
                current_package = fields[1]
            continue

        lowered = line.lower()
        if _contains_any(lowered, TEST_FAILURE_KEYWORDS) and not _contains_any(
            lowered, BENIGN_TEST_PHRASES
        ):
            failures.append(TestFailure(message=line))

    return failures


def _parse_go_failure_block(
    lines: list[str], index: int, package: str
) -> tuple[TestFailure, list[int]] | None:
    line = lines[index].strip()
    if not line.startswith(GO_FAIL_HEADER):
        return None
    fields = line.split()
    if len(fields) < 3:
        return None

    test_name = fields[2]
    file: str | None = None
    line_number: int | None = None
    message = ""
    used = [index]

    for j in range(index + 1, min(len(lines), index + 1 + _GO_BLOCK_SCAN_LINES)):
        following = lines[j].strip()
        if not following or following.startswith("---") or following.startswith("==="):
            break
        used.append(j)
        location = _parse_go_test_location(following)
        if location is not None:
            file, line_number, message = location
            break
        if not message:
            message = following

    return (
        TestFailure(
            test_name=test_name,
            package=package or None,
            file=file,
            line=line_number,
            message=message,
        ),
        used,
    )


def _parse_go_test_location(line: str) -> tuple[str, int, str] | None:
    """Parse ``foo_test.go:42: message``."""
    if "_test.go:" not in line:
        return None
    parts = line.split(":", 2)
    if len(parts) < 3 or not parts[0] or not parts[1]:
        return None
    line_number = _to_int(parts[1])
    if line_number is None:
        return None
    return parts[0], line_number, parts[2].strip()


def _to_int(text: str) -> int | None:
    try:
        return int(text.strip())
    except ValueError:
        return None


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    return any(needle in text for needle in needles)


class TestCounts(NamedTuple):
    """Summary counts reported by a test runner."""

    __test__ = False

    total: int
    passed: int
    failed: int


_PYTEST_SUMMARY = re.compile(r"^=+ (?P<body>.*\b(?:passed|failed)\b.*) in [\d.]+s.*=+$")
_PYTEST_COUNT = re.compile(r"(\d+) (passed|failed|errors?)")
_JEST_SUMMARY = re.compile(
    r"^Tests:\s+(?:(?P<failed>\d+) failed, )?(?:\d+ skipped, )?"
    r"(?:\d+ todo, )?(?:(?P<passed>\d+) passed, )?(?P<total>\d+) total"
)
_CARGO_SUMMARY = re.compile(r"test result: \w+\. (?P<passed>\d+) passed; (?P<failed>\d+) failed")


def parse_test_counts(output: str) -> TestCounts | None:
    """Read pass/fail counts from pytest, go test, jest or cargo output.

    Returns None when no known summary format is present.
    """
    lines = [line.strip() for line in output.split("\n")]
    for parser in (_pytest_counts, _jest_counts, _cargo_counts, _go_counts):
        counts = parser(lines)
        if counts is not None:
            return counts
    return None


def _pytest_counts(lines: list[str]) -> TestCounts | None:
    for line in reversed(lines):
        match = _PYTEST_SUMMARY.match(line)
        if match is None:
            continue
        passed = failed = 0
        for number, label in _PYTEST_COUNT.findall(match.group("body")):
            if label == "passed":
                passed = int(number)
            else:
                failed += int(number)
        return TestCounts(total=passed + failed, passed=passed, failed=failed)
    return None


def _jest_counts(lines: list[str]) -> TestCounts | None:
    for line in reversed(lines):
        match = _JEST_SUMMARY.match(line)
        if match is not None:
            return TestCounts(
                total=int(match.group("total")),
                passed=int(match.group("passed") or 0),
                failed=int(match.group("failed") or 0),
            )
    return None


def _cargo_counts(lines: list[str]) -> TestCounts | None:
    passed = failed = 0
    found = False
    for line in lines:
        match = _CARGO_SUMMARY.search(line)
        if match is not None:
            found = True
            passed += int(match.group("passed"))
            failed += int(match.group("failed"))
    if not found:
        return None
    return TestCounts(total=passed + failed, passed=passed, failed=failed)


def _go_counts(lines: list[str]) -> TestCounts | None:
    passed = sum(1 for line in lines if line.startswith("--- PASS:"))
    failed = sum(1 for line in lines if line.startswith(GO_FAIL_HEADER))
    if passed == 0 and failed == 0:
        return None
    return TestCounts(total=passed + failed, passed=passed, failed=failed)
