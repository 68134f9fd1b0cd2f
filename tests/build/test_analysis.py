"""Tests for project analysis caching and parsing."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ralph.build.analysis import (
    CACHE_MAX_AGE,
    FALLBACK_REASON,
    AnalysisCache,
    extract_json,
    fallback_analysis,
    is_fresh,
    load_analysis_file,
    parse_analysis_output,
)
from ralph.build.models import BuildAnalysis, CachedAnalysis, ProjectAnalysis
from ralph.errors import AnalysisError

AGENT_OUTPUT = """\
Here is the analysis:

```json
{
  "project_type": "go",
  "languages": ["go"],
  "is_greenfield": false,
  "build": {"ready": true, "command": "go build ./...", "reason": "go.mod present"},
  "test": {"ready": true, "command": "go test ./...", "has_test_files": true},
  "project_context": "A CLI written in Go {with braces}"
}
```
"""


class TestExtractJson:
    """Test extract_json."""

    def test_plain_object(self) -> None:
        assert extract_json('{"a": 1}') == '{"a": 1}'

    def test_wrapped_in_prose(self) -> None:
        assert extract_json('before {"a": {"b": 2}} after {"c": 3}') == '{"a": {"b": 2}}'

    def test_braces_inside_strings(self) -> None:
        text = '{"msg": "a } b \\" {"}'
        assert extract_json(text) == text

    def test_no_object(self) -> None:
        assert extract_json("no json here") == ""
        assert extract_json('{"unterminated": 1') == ""


class TestParseAnalysisOutput:
    """Test parse_analysis_output."""

    def test_markdown_wrapped(self) -> None:
        analysis = parse_analysis_output(AGENT_OUTPUT)
        assert analysis.project_type == "go"
        assert analysis.build.command == "go build ./..."
        assert analysis.test.has_test_files
        assert analysis.project_context == "A CLI written in Go {with braces}"

    def test_defaults_filled(self) -> None:
        analysis = parse_analysis_output('{"project_type": "", "languages": null}')
        assert analysis.project_type == "unknown"
        assert analysis.languages == []

    def test_no_json(self) -> None:
        with pytest.raises(AnalysisError, match="no JSON"):
            parse_analysis_output("I could not analyse this project.")

    def test_invalid_shape(self) -> None:
        with pytest.raises(AnalysisError):
            parse_analysis_output('{"build": {"ready": "maybe"}}')


class TestFallbackAnalysis:
    """Test fallback_analysis."""

    def test_fallback_is_greenfield(self) -> None:
        analysis = fallback_analysis()
        assert analysis.is_greenfield
        assert not analysis.build.ready
        assert not analysis.test.ready
        assert analysis.build.reason == FALLBACK_REASON


class TestAnalysisCache:
    """Test AnalysisCache."""

    def test_empty_cache(self, tmp_path: Path) -> None:
        cache = AnalysisCache(tmp_path)
        assert cache.load() is None
        assert cache.load_fresh() is None

    def test_save_and_load(self, tmp_path: Path) -> None:
        cache = AnalysisCache(tmp_path)
        analysis = ProjectAnalysis(project_type="node", build=BuildAnalysis(ready=True))
        cache.save(analysis, agent_name="claude", agent_model="sonnet")

        assert cache.path == tmp_path / ".ralph" / "project_analysis.json"
        cached = cache.load()
        assert cached is not None
        assert cached.analysis == analysis
        assert cached.agent_name == "claude"
        assert cache.load_fresh() == analysis

    def test_stale_cache_ignored(self, tmp_path: Path) -> None:
        cache = AnalysisCache(tmp_path)
        cache.save(ProjectAnalysis())
        later = datetime.now(UTC) + CACHE_MAX_AGE + timedelta(minutes=1)
        assert cache.load_fresh(now=later) is None

    def test_corrupt_cache(self, tmp_path: Path) -> None:
        cache = AnalysisCache(tmp_path)
        cache.path.parent.mkdir(parents=True)
        cache.path.write_text("not json")
        with pytest.raises(AnalysisError):
            cache.load()

    def test_is_fresh(self) -> None:
        now = datetime.now(UTC)
        cached = CachedAnalysis(analysis=ProjectAnalysis(), cached_at=now - timedelta(hours=23))
        assert is_fresh(cached, now)
        assert not is_fresh(cached, now + timedelta(hours=2))


class TestLoadAnalysisFile:
    """Test load_analysis_file."""

    def test_bare_analysis(self, tmp_path: Path) -> None:
        path = tmp_path / "analysis.json"
        path.write_text(json.dumps({"project_type": "rust", "is_greenfield": True}))
        analysis = load_analysis_file(path)
        assert analysis.project_type == "rust"
        assert analysis.is_greenfield

    def test_cache_wrapped(self, tmp_path: Path) -> None:
        cache = AnalysisCache(tmp_path)
        cache.save(ProjectAnalysis(project_type="python"))
        assert load_analysis_file(cache.path).project_type == "python"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(AnalysisError):
            load_analysis_file(tmp_path / "missing.json")
