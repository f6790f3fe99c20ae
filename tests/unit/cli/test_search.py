"""Tests for kbcore search / threshold."""

from __future__ import annotations

from unittest.mock import patch

from kbcore.cli.main import app


def _ingest(project, runner):
    doc = project / "policy.txt"
    doc.write_text("Refunds are accepted within thirty days.", encoding="utf-8")
    result = runner.invoke(
        app, ["ingest", str(doc), "-l", "High", "-t", "refunds", "--source-id", "pol"]
    )
    assert result.exit_code == 0, result.output


def test_search_empty_corpus(project, runner, mock_embedding):
    result = runner.invoke(app, ["search", "refund window"])
    assert result.exit_code == 0
    assert "No relevant matches" in result.output
    mock_embedding.assert_not_called()


def test_search_finds_chunk(project, runner, mock_embedding):
    _ingest(project, runner)
    result = runner.invoke(app, ["search", "refund window"])
    assert result.exit_code == 0, result.output
    assert "Refunds are accepted within thirty days." in result.output
    assert "policy.txt #1" in result.output


def test_search_level_filter_excludes(project, runner, mock_embedding):
    _ingest(project, runner)
    result = runner.invoke(app, ["search", "refund", "--level", "Low"])
    assert result.exit_code == 0
    assert "No relevant matches" in result.output


def test_search_priority(project, runner, mock_embedding):
    _ingest(project, runner)
    result = runner.invoke(app, ["search", "refund", "--priority"])
    assert result.exit_code == 0
    assert "policy.txt" in result.output


def test_search_unavailable(project, runner, mock_embedding):
    _ingest(project, runner)
    with patch("kbcore.llm_client.litellm.embedding", side_effect=ConnectionError("down")):
        result = runner.invoke(app, ["search", "refund"])
    assert result.exit_code == 1
    assert "Search unavailable" in result.output


def test_search_diagnose(project, runner, mock_embedding):
    _ingest(project, runner)
    result = runner.invoke(app, ["search", "Refund  Window", "--diagnose"])
    assert result.exit_code == 0, result.output
    assert "'refund window'" in result.output
    assert "Candidates:  1" in result.output
    assert "768 dims" in result.output


def test_threshold_show_and_set(project, runner):
    result = runner.invoke(app, ["threshold"])
    assert result.exit_code == 0
    assert "0.7" in result.output

    result = runner.invoke(app, ["threshold", "0.4"])
    assert result.exit_code == 0
    assert "set to 0.4" in result.output

    result = runner.invoke(app, ["threshold"])
    assert "0.4" in result.output


def test_threshold_clamped(project, runner):
    result = runner.invoke(app, ["threshold", "3"])
    assert result.exit_code == 0
    assert "clamped" in result.output
    assert "set to 1.5" in result.output
