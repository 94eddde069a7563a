"""Tests for requirement/evidence alignment."""

from __future__ import annotations

import pytest

from taskgate.pipeline.alignment import check_alignment, extract_signature


def test_extracts_http_signature() -> None:
    signature = extract_signature("Implement POST /api/quotes endpoint in src/api/quotes.py")
    assert signature is not None
    assert (signature.kind, signature.method, signature.resource) == ("http", "POST", "/api/quotes")
    assert signature.describe() == "POST /api/quotes"


def test_extracts_contract_and_browser_signatures() -> None:
    contract = extract_signature("Contract test PUT for quote updates")
    assert (contract.kind, contract.method) == ("contract", "PUT")

    ui = extract_signature("Quote list page\nBrowser test Create quote from dashboard")
    assert ui.kind == "ui"
    assert ui.action == "Create quote from dashboard"


def test_no_signature_is_aligned_with_warning() -> None:
    assert extract_signature("Refactor helpers") is None
    result = check_alignment(None, "anything")
    assert result.aligned
    assert result.warnings


def test_write_requirement_with_matching_evidence_is_aligned() -> None:
    signature = extract_signature("POST /api/quotes")
    log = "Purpose: create a quote\nRequest: POST /api/quotes {\"customer\": \"Acme\"}\nResult: 201\n"
    assert check_alignment(signature, log).aligned


def test_path_parameters_match_concrete_ids() -> None:
    signature = extract_signature("PUT /api/quotes/{id}")
    log = "Testing: PUT /api/quotes/q-123 with new line items\n"
    assert check_alignment(signature, log).aligned


def test_get_substitution_for_write_is_fraud() -> None:
    signature = extract_signature("Implement POST /api/quotes")
    log = (
        "Purpose: check the quote endpoint\n"
        "Request: GET /api/quotes\n"
        "Result: 200 OK with 3 quotes\n"
    )
    result = check_alignment(signature, log)
    assert not result.aligned
    assert [s.kind for s in result.signals] == ["keyword-substitution"]
    assert result.signals[0].blocking
    assert "only shows GET" in result.problem


def test_different_verb_without_required_one_is_misaligned() -> None:
    signature = extract_signature("DELETE /api/quotes/{id}")
    result = check_alignment(signature, "Request: PUT /api/quotes/q-1\n")
    assert not result.aligned
    assert result.signals == []
    assert "shows PUT testing instead" in result.problem


def test_no_evidence_at_all_is_misaligned() -> None:
    signature = extract_signature("POST /api/orders")
    result = check_alignment(signature, "Purpose: looked at the dashboard\n")
    assert not result.aligned
    assert result.actual == "nothing"


def test_fetch_phrasing_counts_for_write() -> None:
    signature = extract_signature("POST /api/quotes")
    log = "Command: fetch('/api/quotes', {method: 'POST', body})\n"
    assert check_alignment(signature, log).aligned


@pytest.mark.parametrize(
    ("requirement", "log"),
    [
        ("Implement POST /api/posts endpoint", "Method: GET /api/posts\nResult: 200 OK with 2 posts\n"),
        ("Implement PUT /api/inputs endpoint", "Method: GET /api/inputs\nResult: 200 OK, inputs listed\n"),
        ("PATCH /api/patches/{id}", "Request: GET /api/patches/p-1 (patches method check)\n"),
    ],
)
def test_verb_inside_resource_name_is_not_write_evidence(requirement: str, log: str) -> None:
    result = check_alignment(extract_signature(requirement), log)
    assert not result.aligned
    assert [s.kind for s in result.signals] == ["keyword-substitution"]


def test_fetch_url_containing_verb_is_not_write_evidence() -> None:
    signature = extract_signature("POST /api/post")
    result = check_alignment(signature, "Command: fetch('/api/post/1')\n")
    assert not result.aligned


def test_ui_action_matches_phrase_or_all_words() -> None:
    signature = extract_signature("Browser test Create quote")
    assert check_alignment(signature, "Clicked 'Create Quote' and submitted the form").aligned
    assert check_alignment(signature, "Step 3: create a new quote via the modal").aligned
    assert not check_alignment(signature, "Opened the settings page").aligned
