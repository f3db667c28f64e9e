"""Tests for the docrefresh CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from docrefresh.cli import main
from docrefresh.core.journal import JournalStore
from docrefresh.core.models import RunInput

DOC = """---
language: Go
language_version: '1.23'
last_checked: '2026-10-12'
---

# Go Best Practices

## Resources

- https://go.dev/doc/effective_go
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_KEY", "GITHUB_TOKEN"):
        monkeypatch.delenv(var, raising=False)


class TestInspect:

    def test_metadata_and_urls(self, runner: CliRunner, tmp_path: Path):
        doc = tmp_path / "go-best-practices.md"
        doc.write_text(DOC, encoding="utf-8")
        result = runner.invoke(main, ["inspect", str(doc)])
        assert result.exit_code == 0, result.output
        assert "1.23" in result.output
        assert "https://go.dev/doc/effective_go" in result.output

    def test_canonical(self, runner: CliRunner, tmp_path: Path):
        doc = tmp_path / "go-best-practices.md"
        doc.write_text(DOC, encoding="utf-8")
        result = runner.invoke(main, ["inspect", "--canonical", str(doc)])
        assert result.exit_code == 0
        assert result.output.startswith("---\n")
        assert "# Go Best Practices" in result.output


class TestRuns:

    def test_empty(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["runs", "--state-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No runs found" in result.output

    def test_lists_journals(self, runner: CliRunner, tmp_path: Path):
        JournalStore(tmp_path).open("abc123", RunInput())
        result = runner.invoke(main, ["runs", "--state-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "abc123" in result.output


class TestRun:

    def test_missing_reasoning_service(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, [
            "run", "--topics-dir", str(tmp_path), "--state-dir", str(tmp_path / "runs"),
        ])
        assert result.exit_code == 1
        assert "No reasoning service configured" in result.output

    def test_resume_unknown(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["resume", "nope", "--state-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No journal for run nope" in result.output

    def test_resume_accepts_retry_failed(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(main, ["resume", "nope", "--retry-failed", "--state-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No journal for run nope" in result.output

    def test_version(self, runner: CliRunner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "docrefresh" in result.output
