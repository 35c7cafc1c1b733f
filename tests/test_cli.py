"""
Tests for the CLI interface.
"""
import os
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from query_cost_sync.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from query_cost_sync.core.errors import ArtifactSourceError
from query_cost_sync.core.pipeline import AnalysisResult
from query_cost_sync.core.reconcile import build_record
from query_cost_sync.storage.report import read_report, write_report

runner = CliRunner()

ARTIFACT = """<?php
class Sync
{
    public function getQueryCost(): int
    {
        return 68;
    }

    public function payload(): void
    {
        exit('{"query":"{ y }"}');
    }
}
"""


@pytest.fixture
def workspace():
    """Temporary directory with an artifact folder."""
    temp_dir = tempfile.mkdtemp()
    os.makedirs(os.path.join(temp_dir, "artifacts"))
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def mock_run_analysis():
    """Mock the run_analysis function."""
    with patch('query_cost_sync.cli.main.run_analysis') as mock:
        yield mock


def _sample_result():
    return AnalysisResult(records=[
        build_record("A.txt", 15, 15),
        build_record("B.txt", 68, 72),
        build_record("D.txt", 30, None),
    ])


class TestAnalyzeCommand:
    """Test the analyze command."""

    def test_writes_report(self, workspace, mock_run_analysis):
        mock_run_analysis.return_value = _sample_result()
        report = workspace / "report.csv"

        result = runner.invoke(app, [
            "analyze",
            "--dir", str(workspace / "artifacts"),
            "--report", str(report),
            "--base-url", "https://shop.example.com/admin/api",
            "--token", "secret",
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Query Cost Report" in result.output
        assert "Underestimated" in result.output
        assert "Total: 3" in result.output
        assert [r.file_name for r in read_report(report)] == ["A.txt", "B.txt", "D.txt"]

    def test_per_artifact_failures_exit_zero(self, workspace, mock_run_analysis):
        mock_run_analysis.return_value = AnalysisResult(records=[build_record("D.txt", 30, None)])
        result = runner.invoke(app, [
            "analyze", "--report", str(workspace / "r.csv"),
            "--base-url", "https://x.example.com", "--token", "t",
        ])
        assert result.exit_code == EXIT_CODE_PASS

    def test_missing_token_fails(self, workspace, mock_run_analysis, monkeypatch):
        monkeypatch.delenv("COST_SYNC_ACCESS_TOKEN", raising=False)
        result = runner.invoke(app, ["analyze", "--base-url", "https://x.example.com"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "no access token" in result.output
        mock_run_analysis.assert_not_called()

    def test_token_from_environment(self, workspace, mock_run_analysis, monkeypatch):
        monkeypatch.setenv("COST_SYNC_ACCESS_TOKEN", "env-token")
        mock_run_analysis.return_value = AnalysisResult()
        result = runner.invoke(app, [
            "analyze", "--report", str(workspace / "r.csv"),
            "--base-url", "https://x.example.com",
        ])
        assert result.exit_code == EXIT_CODE_PASS
        assert "No artifacts found" in result.output

    def test_missing_base_url_fails(self, mock_run_analysis):
        result = runner.invoke(app, ["analyze", "--token", "t"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "no cost service URL" in result.output

    def test_unreadable_directory_fails(self, workspace, mock_run_analysis):
        mock_run_analysis.side_effect = ArtifactSourceError("Artifact directory not found: nope")
        result = runner.invoke(app, [
            "analyze", "--dir", "nope",
            "--base-url", "https://x.example.com", "--token", "t",
        ])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Artifact directory not found" in result.output

    def test_unwritable_report_fails(self, workspace, mock_run_analysis):
        mock_run_analysis.return_value = _sample_result()
        (workspace / "blocker").write_text("not a directory", encoding="utf-8")
        result = runner.invoke(app, [
            "analyze", "--report", str(workspace / "blocker" / "r.csv"),
            "--base-url", "https://x.example.com", "--token", "t",
        ])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error writing report" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_bad_config_fails(self, workspace):
        result = runner.invoke(app, ["analyze", "--config", str(workspace / "missing.yaml")])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading configuration" in result.output


class TestCheckCommand:
    """Test the check command."""

    def test_drift_fails_when_requested(self, mock_run_analysis):
        mock_run_analysis.return_value = _sample_result()
        result = runner.invoke(app, [
            "check", "--fail-on-drift", "--base-url", "https://x.example.com", "--token", "t",
        ])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_drift_passes_by_default(self, mock_run_analysis):
        mock_run_analysis.return_value = _sample_result()
        result = runner.invoke(app, ["check", "--base-url", "https://x.example.com", "--token", "t"])
        assert result.exit_code == EXIT_CODE_PASS

    def test_no_drift(self, mock_run_analysis):
        mock_run_analysis.return_value = AnalysisResult(records=[build_record("A.txt", 15, 15)])
        result = runner.invoke(app, [
            "check", "--fail-on-drift", "--base-url", "https://x.example.com", "--token", "t",
        ])
        assert result.exit_code == EXIT_CODE_PASS


class TestPatchCommand:
    """Test the patch command."""

    def _setup_report(self, workspace: Path) -> Path:
        (workspace / "artifacts" / "B.txt").write_text(ARTIFACT, encoding="utf-8")
        report = workspace / "report.csv"
        write_report([build_record("B.txt", 68, 72)], report)
        return report

    def test_patches_artifacts(self, workspace):
        report = self._setup_report(workspace)

        result = runner.invoke(app, [
            "patch",
            "--report", str(report),
            "--dir", str(workspace / "artifacts"),
            "--backup-dir", str(workspace / "backups"),
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Patched" in result.output
        assert "return 72;" in (workspace / "artifacts" / "B.txt").read_text(encoding="utf-8")
        backups = list((workspace / "backups").rglob("B.txt"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == ARTIFACT

    def test_dry_run(self, workspace):
        report = self._setup_report(workspace)

        result = runner.invoke(app, [
            "patch", "--dry-run",
            "--report", str(report),
            "--dir", str(workspace / "artifacts"),
            "--backup-dir", str(workspace / "backups"),
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Would Patch" in result.output
        assert (workspace / "artifacts" / "B.txt").read_text(encoding="utf-8") == ARTIFACT
        assert not (workspace / "backups").exists()

    def test_malformed_report_fails(self, workspace):
        report = workspace / "report.csv"
        report.write_text("FileName,ExpectedCost\nB.txt,68\n", encoding="utf-8")
        result = runner.invoke(app, ["patch", "--report", str(report)])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error reading report" in result.output

    def test_missing_report_fails(self, workspace):
        result = runner.invoke(app, ["patch", "--report", str(workspace / "none.csv")])
        assert result.exit_code == EXIT_CODE_FAIL


class TestShowCommand:
    """Test the show command."""

    def test_shows_report(self, workspace):
        report = workspace / "report.csv"
        write_report(_sample_result().records, report)

        result = runner.invoke(app, ["show", "--report", str(report)])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Query Failed" in result.output
        assert "+4" in result.output
        assert "Match: 1" in result.output
