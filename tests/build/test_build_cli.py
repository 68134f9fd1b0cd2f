"""Tests for verification gate CLI commands."""

import json
import time
from pathlib import Path

import pytest

from ralph.build.analysis import AnalysisCache
from ralph.build.cli import baseline_command, verify_command
from ralph.build.models import ProjectAnalysis
from ralph.config.models import GateConfig


def _config(**sections: dict[str, object]) -> GateConfig:
    return GateConfig.from_mapping(sections)


class TestVerifyCommand:
    """Test ralph verify command."""

    def test_passing_gate(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A passing gate exits 0 and reports success."""
        config = _config(build={"command": "true"}, test={"command": "true"})
        exit_code = verify_command(tmp_path, config)
        assert exit_code == 0
        assert "Gate passed" in capsys.readouterr().out

    def test_failing_build(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = _config(build={"command": "echo 'main.go:1:1: syntax error'; exit 1"})
        exit_code = verify_command(tmp_path, config)
        assert exit_code == 1
        out = capsys.readouterr().out
        assert "Gate failed" in out
        assert "main.go:1:1: syntax error" in out

    def test_json_output(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = _config(build={"command": "true"}, test={"command": "exit 1"})
        exit_code = verify_command(tmp_path, config, format="json")
        assert exit_code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "failed"
        assert data["test_result"]["exit_code"] == 1

    def test_task_override(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = _config(test={"command": "exit 1"})
        exit_code = verify_command(
            tmp_path, config, task_description="Tests: not required", format="json"
        )
        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["status"] == "skipped_by_task"

    def test_bootstrapping_project_skips(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A manual probe reporting bootstrap skips both stages."""
        config = _config(
            build={
                "command": "exit 1",
                "bootstrap_detection": "manual",
                "bootstrap_check": "exit 0",
            },
            test={"command": "exit 1"},
        )
        exit_code = verify_command(tmp_path, config, format="json")
        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "skipped"
        assert data["build_skipped"]
        assert data["test_skipped"]

    def test_hanging_bootstrap_check_is_cancelled(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """The manual probe runs under the same stuck budget as the gate."""
        config = _config(
            timeout={"stuck": 0.3},
            build={
                "command": "true",
                "bootstrap_detection": "manual",
                "bootstrap_check": "sleep 10",
            },
        )
        start = time.monotonic()
        exit_code = verify_command(tmp_path, config, format="json")
        assert exit_code == 1
        assert time.monotonic() - start < 5
        assert "bootstrap_check" in json.loads(capsys.readouterr().out)["error"]

    def test_cached_analysis_is_used(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        AnalysisCache(tmp_path).save(ProjectAnalysis(is_greenfield=True))
        config = _config(build={"command": "exit 1"}, test={"command": "exit 1"})
        exit_code = verify_command(tmp_path, config, format="json")
        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["status"] == "skipped"

    def test_analysis_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        analysis = tmp_path / "analysis.json"
        analysis.write_text(
            json.dumps(
                {
                    "build": {"ready": True, "command": "true"},
                    "test": {"ready": True, "command": "true", "has_test_files": True},
                }
            )
        )
        exit_code = verify_command(tmp_path, _config(), analysis_file=analysis, format="json")
        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["build_result"]["command"] == "true"

    def test_invalid_analysis_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        analysis = tmp_path / "analysis.json"
        analysis.write_text("{broken")
        exit_code = verify_command(tmp_path, _config(), analysis_file=analysis, format="json")
        assert exit_code == 1
        assert "error" in json.loads(capsys.readouterr().out)

    def test_missing_project_root(self, tmp_path: Path) -> None:
        assert verify_command(tmp_path / "missing", _config()) == 1

    def test_stuck_command_is_cancelled(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """A silent command is killed once the stuck budget passes."""
        config = _config(timeout={"stuck": 0.3}, test={"command": "sleep 10"})
        exit_code = verify_command(tmp_path, config, format="json")
        assert exit_code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["test_result"]["failures"][0]["message"] == "tests were canceled"


class TestBaselineCommand:
    """Test ralph baseline commands."""

    def test_show_missing(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert baseline_command(tmp_path, _config()) == 1
        assert "No baseline" in capsys.readouterr().out

    def test_show_and_clear(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = _config(test={"command": "true", "mode": "tdd"})
        assert verify_command(tmp_path, config) == 0
        capsys.readouterr()

        assert baseline_command(tmp_path, config, format="json") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["passing"] == ["_all_tests_passed_"]

        assert baseline_command(tmp_path, config, clear=True, format="json") == 0
        assert json.loads(capsys.readouterr().out) == {"removed": True}
        assert baseline_command(tmp_path, config) == 1

    def test_clear_failure(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """An unremovable baseline is reported, not raised."""
        (tmp_path / ".ralph" / "test_baseline.json").mkdir(parents=True)
        assert baseline_command(tmp_path, _config(), clear=True, format="json") == 1
        assert "failed to remove baseline" in json.loads(capsys.readouterr().out)["error"]
