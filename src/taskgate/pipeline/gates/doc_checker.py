"""Completion-documentation pattern checker.

Status documents must declare a completion level (``LEVEL n - NAME``), cite
evidence, and avoid claiming production quality while admitting to
placeholders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

COMPLETION_LEVELS = ("STUB", "COSMETIC", "INTERACTIVE", "INTEGRATED", "FUNCTIONAL", "PRODUCTION")

_LEVEL_RE = re.compile(r"LEVEL\s*([0-5])\s*-\s*([A-Za-z]+)", re.IGNORECASE)

EVIDENCE_KEYWORDS = (
    "evidence",
    "proof",
    "demonstrated",
    "working",
    "tested",
    "validated",
    "confirmed",
    "verified",
)
_ARTIFACT_REF_RE = re.compile(
    r"(raw-responses/|interaction\.log|test-results\.json|take_(?:snapshot|screenshot)\.json|\.png\b)",
    re.IGNORECASE,
)

OVERCLAIM_PHRASES = (
    "fully working",
    "completely functional",
    "production ready",
    "all features working",
    "comprehensive implementation",
)
ADMISSION_PHRASES = (
    "placeholder",
    "commented out",
    "not implemented",
    "missing",
    "todo",
    "fixme",
)

_LOCATION_RE = re.compile(r"(?:Location|File|Path):\s*`?[^`\n]+", re.IGNORECASE)
_FILE_REF_RE = re.compile(r"`[^`\s]+\.[A-Za-z0-9]{1,5}`|```")


@dataclass
class DocCheckResult:
    """Findings for one status document."""

    source: str
    level: int | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


def check_document(content: str, source: str = "<document>") -> DocCheckResult:
    result = DocCheckResult(source=source)

    matches = list(_LEVEL_RE.finditer(content))
    if not matches:
        result.errors.append(
            "Missing completion level: declare 'LEVEL n - NAME' "
            f"(0-5: {', '.join(COMPLETION_LEVELS)})"
        )
    for match in matches:
        number, name = int(match.group(1)), match.group(2).upper()
        expected = COMPLETION_LEVELS[number]
        if name != expected:
            result.errors.append(f"Completion level mismatch: LEVEL {number} must be {expected}, found {name}")
        elif result.level is None:
            result.level = number

    lowered = content.lower()
    if not any(keyword in lowered for keyword in EVIDENCE_KEYWORDS) and not _ARTIFACT_REF_RE.search(content):
        result.errors.append(
            "No evidence cited: reference the captured artifacts (raw-responses/, interaction.log) "
            "or describe what was tested"
        )

    overclaims = [phrase for phrase in OVERCLAIM_PHRASES if phrase in lowered]
    admissions = [phrase for phrase in ADMISSION_PHRASES if phrase in lowered]
    if overclaims and admissions:
        result.warnings.append(
            f"Possible misrepresentation: claims '{overclaims[0]}' while mentioning '{admissions[0]}'"
        )

    if not _LOCATION_RE.search(content) and not _FILE_REF_RE.search(content):
        result.warnings.append("No file location given; add 'File: <path>' for the implemented change")
    return result


def check_file(path: Path) -> DocCheckResult:
    """Check a status document on disk. A missing file is an error, not an exception."""
    if not path.is_file():
        result = DocCheckResult(source=str(path))
        result.errors.append(f"Status document not found: {path}")
        return result
    return check_document(path.read_text(encoding="utf-8", errors="replace"), source=str(path))
