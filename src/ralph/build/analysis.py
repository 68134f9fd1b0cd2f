"""Project analysis documents — cache, agent output parsing, fallback.

The analysis itself is produced by an external agent run; this module only
turns its output into a ProjectAnalysis and keeps it on disk for reuse.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from ralph.build.models import (
    BuildAnalysis,
    CachedAnalysis,
    ProjectAnalysis,
    TestAnalysis,
)
from ralph.errors import AnalysisError

logger = logging.getLogger(__name__)

CACHE_FILE = ".ralph/project_analysis.json"
CACHE_MAX_AGE = timedelta(hours=24)
FALLBACK_REASON = "AI analysis unavailable, using fallback"


def is_fresh(cached: CachedAnalysis, now: datetime | None = None) -> bool:
    """True if the cached analysis is younger than CACHE_MAX_AGE."""
    now = now or datetime.now(UTC)
    return now - cached.cached_at < CACHE_MAX_AGE


class AnalysisCache:
    """Stores the latest ProjectAnalysis at .ralph/project_analysis.json."""

    def __init__(self, project_dir: Path, cache_file: str = CACHE_FILE) -> None:
        self.project_dir = project_dir
        self.path = project_dir / cache_file

    def load(self) -> CachedAnalysis | None:
        """Load the cached analysis, or None if nothing is cached.

        Raises:
            AnalysisError: If the cache file exists but cannot be parsed.
        """
        if not self.path.exists():
            return None
        try:
            return CachedAnalysis.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise AnalysisError(f"failed to read analysis cache {self.path}: {exc}") from exc

    def save(
        self,
        analysis: ProjectAnalysis,
        agent_name: str = "",
        agent_model: str = "",
    ) -> CachedAnalysis:
        """Write the analysis with a fresh timestamp and return the cache entry."""
        cached = CachedAnalysis(
            analysis=analysis,
            cached_at=datetime.now(UTC),
            agent_name=agent_name,
            agent_model=agent_model,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(cached.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Saved project analysis cache to %s", self.path)
        return cached

    def load_fresh(self, now: datetime | None = None) -> ProjectAnalysis | None:
        """Return the cached analysis only if it is still fresh."""
        cached = self.load()
        if cached is None or not is_fresh(cached, now):
            return None
        return cached.analysis


def load_analysis_file(path: Path) -> ProjectAnalysis:
    """Load a ProjectAnalysis from a JSON file (bare or cache-wrapped)."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise AnalysisError(f"failed to read analysis file {path}: {exc}") from exc
    if isinstance(data, dict) and "analysis" in data and "cached_at" in data:
        data = data["analysis"]
    try:
        return ProjectAnalysis.model_validate(data)
    except ValidationError as exc:
        raise AnalysisError(f"invalid analysis file {path}: {exc}") from exc


def parse_analysis_output(output: str) -> ProjectAnalysis:
    """Extract a ProjectAnalysis from free-form agent output.

    Args:
        output: Agent output; the first balanced JSON object is used, so the
            object may be wrapped in prose or a markdown code block.

    Returns:
        Parsed analysis with an empty project type normalised to "unknown".

    Raises:
        AnalysisError: If no JSON object is present or it is invalid.
    """
    text = extract_json(output)
    if not text:
        raise AnalysisError("no JSON found in agent output")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise AnalysisError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalysisError("analysis output is not a JSON object")
    if not data.get("project_type"):
        data["project_type"] = "unknown"
    if data.get("languages") is None:
        data["languages"] = []
    try:
        return ProjectAnalysis.model_validate(data)
    except ValidationError as exc:
        raise AnalysisError(f"invalid analysis: {exc}") from exc


def extract_json(text: str) -> str:
    """Return the first balanced ``{...}`` object in text, or ""."""
    start = -1
    depth = 0
    in_string = False
    escape = False

    for i, char in enumerate(text):
        if escape:
            escape = False
            continue
        if char == "\\" and in_string:
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            if start == -1:
                start = i
            depth += 1
        elif char == "}" and start != -1:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def fallback_analysis() -> ProjectAnalysis:
    """Minimal analysis used when the analysis agent is unavailable."""
    return ProjectAnalysis(
        project_type="unknown",
        is_greenfield=True,
        build=BuildAnalysis(ready=False, reason=FALLBACK_REASON),
        test=TestAnalysis(ready=False, has_test_files=False, reason=FALLBACK_REASON),
        project_context="Project analysis unavailable. Manual configuration may be required.",
    )
