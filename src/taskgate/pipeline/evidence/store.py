"""Evidence directory layout: one bundle per task under the evidence root."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from taskgate.errors import ParseError

INTERACTION_LOG_FILENAME = "interaction.log"
RAW_RESPONSES_DIRNAME = "raw-responses"
LEGACY_SCREENSHOTS_DIRNAME = "screenshots"
SNAPSHOT_FILENAME = "take_snapshot.json"
SCREENSHOT_FILENAME = "take_screenshot.json"
TEST_RESULTS_FILENAME = "test-results.json"
TECHNICAL_DEBT_FILENAME = "technical-debt.json"
COMPLETION_STATUS_FILENAME = "completion-status.md"
USER_WORKFLOWS_FILENAME = "user-workflows.json"
ERROR_STATE_TESTS_FILENAME = "error-state-tests.json"
VALIDATION_REPORT_FILENAME = "validation-report.json"
COMPLIANCE_CERTIFICATE_FILENAME = "compliance-certificate.json"

# Fixed-name raw responses and the operation each must record
REQUIRED_RAW_RESPONSES: dict[str, str] = {
    SNAPSHOT_FILENAME: "take_snapshot",
    SCREENSHOT_FILENAME: "take_screenshot",
}

GENERATED_FILENAMES = frozenset({VALIDATION_REPORT_FILENAME, COMPLIANCE_CERTIFICATE_FILENAME})


@dataclass(frozen=True)
class EvidenceBundle:
    """Paths and readers for one task's evidence directory."""

    task_id: str
    root: Path

    @property
    def interaction_log(self) -> Path:
        return self.root / INTERACTION_LOG_FILENAME

    @property
    def raw_responses_dir(self) -> Path:
        return self.root / RAW_RESPONSES_DIRNAME

    @property
    def legacy_screenshots_dir(self) -> Path:
        return self.root / LEGACY_SCREENSHOTS_DIRNAME

    @property
    def test_results(self) -> Path:
        return self.root / TEST_RESULTS_FILENAME

    @property
    def technical_debt(self) -> Path:
        return self.root / TECHNICAL_DEBT_FILENAME

    @property
    def completion_status(self) -> Path:
        return self.root / COMPLETION_STATUS_FILENAME

    @property
    def user_workflows(self) -> Path:
        return self.root / USER_WORKFLOWS_FILENAME

    @property
    def error_state_tests(self) -> Path:
        return self.root / ERROR_STATE_TESTS_FILENAME

    @property
    def validation_report(self) -> Path:
        return self.root / VALIDATION_REPORT_FILENAME

    @property
    def certificate(self) -> Path:
        return self.root / COMPLIANCE_CERTIFICATE_FILENAME

    def exists(self) -> bool:
        return self.root.is_dir()

    def raw_response_paths(self) -> dict[str, Path]:
        """Required raw-response filename -> expected path."""
        return {name: self.raw_responses_dir / name for name in REQUIRED_RAW_RESPONSES}

    def artifact_files(self) -> list[Path]:
        """Every hand-produced file in the bundle (generated reports excluded)."""
        if not self.exists():
            return []
        return sorted(
            path
            for path in self.root.rglob("*")
            if path.is_file() and path.name not in GENERATED_FILENAMES
        )

    def read_interaction_log(self) -> str:
        if not self.interaction_log.exists():
            return ""
        return self.interaction_log.read_text(encoding="utf-8", errors="replace")

    def load_json(self, path: Path) -> Any:
        """Load a structured evidence document.

        Raises:
            ParseError: If the document is unreadable, not UTF-8 or not valid JSON
        """
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(path, f"not valid UTF-8 (byte {e.start})") from e
        except OSError as e:
            raise ParseError(path, f"unreadable: {e.strerror or e}") from e
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(path, f"invalid JSON: {e.msg}", line=e.lineno) from e


class EvidenceStore:
    """Resolves evidence bundles under one evidence root."""

    def __init__(self, root: Path):
        self.root = root

    def bundle(self, task_id: str, evidence_dir: Path | None = None) -> EvidenceBundle:
        return EvidenceBundle(task_id=task_id, root=evidence_dir or self.root / task_id)

    def ensure(self, task_id: str, evidence_dir: Path | None = None) -> EvidenceBundle:
        """Create the bundle directory on first validation attempt."""
        bundle = self.bundle(task_id, evidence_dir)
        bundle.root.mkdir(parents=True, exist_ok=True)
        return bundle

    @property
    def audit_dir(self) -> Path:
        return self.root / "audits"
