"""Requirement-evidence alignment.

Extracts the functional signature a task demands (``POST /api/quotes``,
``Contract test PUT`` or ``Browser test <action>``) and checks that the
interaction log exercised that signature rather than an adjacent, easier
one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from taskgate.pipeline.fraud.types import FraudSignal

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_METHODS = "|".join(HTTP_METHODS)
_HTTP_REQUIREMENT_RE = re.compile(rf"\b({_METHODS})\s+(/[^\s`'\"),;]+)")
_CONTRACT_REQUIREMENT_RE = re.compile(rf"\bContract test\s+({_METHODS})\b(?:\s+(/[^\s`'\"),;]+))?", re.IGNORECASE)
_BROWSER_REQUIREMENT_RE = re.compile(r"\bBrowser test\s+(.+)$", re.IGNORECASE | re.MULTILINE)

# Log lines that describe an operation that was actually exercised
_OPERATION_LINE_RE = re.compile(
    r"(purpose|testing|tested|command|request|result|analysis|method|fetch|curl)", re.IGNORECASE
)
_METHOD_IN_LINE_RE = re.compile(rf"\b({_METHODS})\b")
_PATH_PARAM_RE = re.compile(r"\{[^}/]+\}|:[A-Za-z_]\w*|<[^>/]+>")
_STOPWORDS = frozenset({"the", "and", "for", "with", "via", "test", "page", "that"})

SignatureKind = Literal["http", "contract", "ui"]


@dataclass(frozen=True)
class FunctionalSignature:
    """Normalized functional requirement extracted from task text."""

    kind: SignatureKind
    method: str | None = None
    resource: str | None = None
    action: str | None = None

    def describe(self) -> str:
        if self.kind == "ui":
            return f"Browser test {self.action}"
        if self.kind == "contract":
            suffix = f" {self.resource}" if self.resource else ""
            return f"Contract test {self.method}{suffix}"
        return f"{self.method} {self.resource}"


@dataclass
class AlignmentResult:
    """Outcome of one alignment check."""

    aligned: bool
    signature: FunctionalSignature | None
    actual: str
    problem: str | None = None
    warnings: list[str] = field(default_factory=list)
    signals: list[FraudSignal] = field(default_factory=list)


def extract_signature(requirement_text: str) -> FunctionalSignature | None:
    """Pull the literal functional requirement out of free text."""
    match = _HTTP_REQUIREMENT_RE.search(requirement_text)
    if match:
        return FunctionalSignature(kind="http", method=match.group(1), resource=_normalize_path(match.group(2)))

    match = _CONTRACT_REQUIREMENT_RE.search(requirement_text)
    if match:
        resource = _normalize_path(match.group(2)) if match.group(2) else None
        return FunctionalSignature(kind="contract", method=match.group(1).upper(), resource=resource)

    match = _BROWSER_REQUIREMENT_RE.search(requirement_text)
    if match:
        action = match.group(1).strip().rstrip(".")
        if action:
            return FunctionalSignature(kind="ui", action=action)
    return None


def check_alignment(signature: FunctionalSignature | None, log_text: str) -> AlignmentResult:
    """Decide whether the log exercises the required signature."""
    if signature is None:
        return AlignmentResult(
            aligned=True,
            signature=None,
            actual="unknown",
            warnings=["Could not extract a functional requirement from the task text; alignment not checked"],
        )
    if signature.kind == "ui":
        return _check_ui(signature, log_text)
    return _check_http(signature, log_text)


def _check_http(signature: FunctionalSignature, log_text: str) -> AlignmentResult:
    method = signature.method or ""
    resource_re = _resource_pattern(signature.resource)

    exercised: list[tuple[str, str]] = []
    for line in log_text.splitlines():
        if not _is_operation_line(line):
            continue
        if resource_re is not None and not resource_re.search(line):
            continue
        if resource_re is None and "/api/" not in line and "endpoint" not in line.lower():
            continue
        for found in _METHOD_IN_LINE_RE.findall(line):
            exercised.append((found, line.strip()))

    correct = any(found == method for found, _ in exercised)
    if not correct and method in WRITE_METHODS:
        correct = any(
            _client_method_used(method, line) and (resource_re is None or resource_re.search(line))
            for line in log_text.splitlines()
        )
    wrong = sorted({found for found, _ in exercised if found != method})

    if correct:
        return AlignmentResult(aligned=True, signature=signature, actual=signature.describe())

    target = signature.resource or "the API"
    if method in WRITE_METHODS and "GET" in wrong:
        problem = (
            f"Task requires {method} {target} but the interaction log only shows GET requests "
            f"against it; read-only evidence was substituted for the write operation"
        )
        signal = FraudSignal(
            kind="keyword-substitution",
            severity="blocking",
            message=problem,
            remediation=f"Exercise {method} {target} through the UI or API and record the request in interaction.log",
        )
        logger.info("alignment: GET substituted for %s %s", method, target)
        return AlignmentResult(
            aligned=False,
            signature=signature,
            actual=f"GET {target} (substitution for {method})",
            problem=problem,
            signals=[signal],
        )
    if wrong:
        return AlignmentResult(
            aligned=False,
            signature=signature,
            actual=f"{', '.join(wrong)} {target}",
            problem=f"Task requires {method} {target} but evidence shows {', '.join(wrong)} testing instead",
        )
    return AlignmentResult(
        aligned=False,
        signature=signature,
        actual="nothing",
        problem=f"No evidence of {method} {target} being exercised in the interaction log",
    )


def _check_ui(signature: FunctionalSignature, log_text: str) -> AlignmentResult:
    action = signature.action or ""
    lowered = " ".join(log_text.lower().split())
    if " ".join(action.lower().split()) in lowered:
        return AlignmentResult(aligned=True, signature=signature, actual=signature.describe())

    words = [w for w in re.findall(r"[a-z0-9]+", action.lower()) if len(w) > 2 and w not in _STOPWORDS]
    if words:
        for line in log_text.lower().splitlines():
            if all(word in line for word in words):
                return AlignmentResult(aligned=True, signature=signature, actual=signature.describe())
    return AlignmentResult(
        aligned=False,
        signature=signature,
        actual="nothing",
        problem=f"No evidence of browser action '{action}' in the interaction log",
    )


def _client_method_used(method: str, line: str) -> bool:
    """Client-side phrasing such as ``fetch(url, {method: "POST"})`` or ``POST request``.

    The verb must stand alone: ``/api/posts`` is not a POST.
    """
    option = re.compile(rf"\bmethod\s*[:=]\s*[\"']?{method}\b|\bfetch\([^)]*[\"']{method}[\"']", re.IGNORECASE)
    if option.search(line):
        return True
    return re.search(rf"\b{method}\b[^\n]*\brequest", line) is not None


def _is_operation_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    if _METHOD_IN_LINE_RE.match(stripped):
        return True
    return bool(_OPERATION_LINE_RE.search(stripped))


def _normalize_path(path: str) -> str:
    path = path.split("?", 1)[0].rstrip(".")
    return path.rstrip("/") or "/"


def _resource_pattern(resource: str | None) -> re.Pattern[str] | None:
    if not resource:
        return None
    parts = [
        r"[^/\s]+" if _PATH_PARAM_RE.fullmatch(segment) else re.escape(segment)
        for segment in resource.split("/")
    ]
    return re.compile("/".join(parts) + r"(?=$|[/?\s\"'`),;:])")
