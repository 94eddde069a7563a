"""Tests for the completion-documentation checker."""

from __future__ import annotations

from pathlib import Path

from taskgate.pipeline.gates.doc_checker import check_document, check_file


def test_honest_document_passes() -> None:
    result = check_document(
        "LEVEL 3 - INTEGRATED\nTested against the local API; see interaction.log.\nFile: `src/api/quotes.py`\n"
    )
    assert result.passed
    assert result.level == 3
    assert result.warnings == []


def test_missing_level_is_error() -> None:
    result = check_document("Works. Verified in the browser. File: `a.py`")
    assert not result.passed
    assert result.errors[0].startswith("Missing completion level")


def test_level_name_must_match_number() -> None:
    result = check_document("LEVEL 5 - FUNCTIONAL\nverified\nFile: `a.py`")
    assert result.errors == ["Completion level mismatch: LEVEL 5 must be PRODUCTION, found FUNCTIONAL"]


def test_artifact_reference_counts_as_evidence() -> None:
    result = check_document("Level 2 - Interactive\nSee raw-responses/take_snapshot.json\n```\nclick\n```")
    assert result.passed


def test_no_evidence_is_error() -> None:
    result = check_document("LEVEL 1 - COSMETIC\nButton styles updated.\nFile: `ui.css`")
    assert any(e.startswith("No evidence cited") for e in result.errors)


def test_overclaim_with_admission_is_warning() -> None:
    result = check_document(
        "LEVEL 4 - FUNCTIONAL\nFully working and verified. Discount logic is still a placeholder.\nFile: `q.py`"
    )
    assert result.passed
    assert result.warnings == [
        "Possible misrepresentation: claims 'fully working' while mentioning 'placeholder'"
    ]


def test_missing_location_is_warning() -> None:
    result = check_document("LEVEL 4 - FUNCTIONAL\nverified via the quotes page")
    assert result.passed
    assert result.warnings[0].startswith("No file location given")


def test_missing_file_is_error(tmp_path: Path) -> None:
    result = check_file(tmp_path / "completion-status.md")
    assert not result.passed
    assert "Status document not found" in result.errors[0]
