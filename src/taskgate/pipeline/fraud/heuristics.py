"""Fraud heuristics over evidence files.

Each check takes paths (plus thresholds) and returns a list of
FraudSignal. Checks hold no state, so the auditor can re-run any of them
on an arbitrary bundle.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from taskgate.pipeline.evidence.store import REQUIRED_RAW_RESPONSES, EvidenceBundle
from taskgate.pipeline.fraud.types import FraudSignal
from taskgate.queue.types import TASK_ID_PATTERN

if TYPE_CHECKING:
    from taskgate.config import GateConfig

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("extractedContent", "response", "functionalProof", "content")
TIMESTAMP_FIELDS = ("timestamp", "testTimestamp", "capturedAt")
BINARY_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"})
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Truncated signature: text mentioning PNG but far too short to be an image
TRUNCATED_SIGNATURE_MAX_CHARS = 50

_PLACEHOLDER_VALUE_RE = re.compile(
    r"^\s*(placeholder|todo|tbd|fixme|lorem ipsum.*|fake.*|dummy.*|sample data|\.\.\.)\s*$",
    re.IGNORECASE | re.DOTALL,
)
_ROOT_TASK_FILE_RE = re.compile(rf"^{TASK_ID_PATTERN}$")


def check_size_floor(path: Path, floor: int) -> list[FraudSignal]:
    """Flag an artifact smaller than its type's byte floor."""
    if not path.is_file():
        return []
    size = path.stat().st_size
    if size >= floor:
        return []
    return [
        FraudSignal(
            kind="undersized-file",
            severity="blocking",
            message=f"{path.name} is {size} bytes (minimum {floor}); likely a placeholder",
            path=str(path),
            remediation=f"Delete {path.name} and re-capture it from a real run of the operation",
        )
    ]


def file_creation_time(path: Path) -> float:
    """Birth time where the platform records it, else modification time."""
    stat = path.stat()
    birth = getattr(stat, "st_birthtime", None)
    return float(birth) if birth else stat.st_mtime


def check_timestamp_clustering(paths: list[Path], window: float = 1.0) -> list[FraudSignal]:
    """Warn when two or more artifacts were created within ``window`` seconds."""
    stamped = sorted(
        ((file_creation_time(path), path) for path in paths if path.is_file()),
        key=lambda item: item[0],
    )
    clusters: list[list[Path]] = []
    group: list[Path] = []
    previous: float | None = None
    for created, path in stamped:
        if previous is not None and created - previous < window:
            group.append(path)
        else:
            if len(group) > 1:
                clusters.append(group)
            group = [path]
        previous = created
    if len(group) > 1:
        clusters.append(group)

    return [
        FraudSignal(
            kind="clustered-timestamps",
            severity="warning",
            message=(
                f"{len(cluster)} artifacts created within {window:g}s of each other "
                f"({', '.join(p.name for p in cluster)}); possible bulk copy"
            ),
            path=str(cluster[0].parent),
            remediation="Capture each artifact from its own browser interaction instead of copying files",
        )
        for cluster in clusters
    ]


def check_response_structure(path: Path, expected_operation: str | None = None) -> list[FraudSignal]:
    """Verify a raw response records the expected operation and real content."""
    expected = expected_operation or REQUIRED_RAW_RESPONSES.get(path.name) or path.stem
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        return [
            FraudSignal(
                kind="malformed-structure",
                severity="blocking",
                message=f"{path.name} is not a valid JSON response: {e}",
                path=str(path),
                remediation=f"Save the unmodified {expected} output as {path.name}",
            )
        ]
    if not isinstance(data, dict):
        return [
            FraudSignal(
                kind="malformed-structure",
                severity="blocking",
                message=f"{path.name} must be a JSON object, got {type(data).__name__}",
                path=str(path),
                remediation=f"Save the unmodified {expected} output as {path.name}",
            )
        ]

    signals: list[FraudSignal] = []
    recorded = [data.get(key) for key in ("command", "type") if data.get(key)]
    if not recorded:
        signals.append(
            FraudSignal(
                kind="malformed-structure",
                severity="blocking",
                message=f"{path.name} has no command/type field (expected '{expected}')",
                path=str(path),
                remediation=f"Use the raw {expected} response; it records the command that produced it",
            )
        )
    elif any(value != expected for value in recorded):
        signals.append(
            FraudSignal(
                kind="malformed-structure",
                severity="blocking",
                message=f"{path.name} records command {recorded[0]!r}, expected '{expected}'",
                path=str(path),
                remediation=f"Run {expected} and save its own output; do not rename other responses",
            )
        )

    if not any(_has_content(data.get(key)) for key in CONTENT_FIELDS):
        signals.append(
            FraudSignal(
                kind="malformed-structure",
                severity="blocking",
                message=f"{path.name} has no extracted content ({', '.join(CONTENT_FIELDS)})",
                path=str(path),
                remediation="Capture a response that contains the page content you exercised",
            )
        )
    return signals


def check_placeholder_content(path: Path) -> list[FraudSignal]:
    """Detect placeholder text in binary-typed files and raw responses."""
    if not path.is_file():
        return []
    raw = path.read_bytes()

    if path.suffix.lower() in BINARY_SUFFIXES:
        if raw.startswith(PNG_SIGNATURE):
            return []
        text = raw.decode("utf-8", errors="ignore")
        if "placeholder" in text.lower() or (
            "PNG" in text and len(text) < TRUNCATED_SIGNATURE_MAX_CHARS
        ):
            return [_placeholder_signal(path, "contains placeholder text instead of image data")]
        return []

    if path.suffix.lower() != ".json":
        return []
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        # Structure check reports unparsable responses
        return []
    if not isinstance(data, dict):
        return []
    for key in CONTENT_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and _PLACEHOLDER_VALUE_RE.match(value):
            return [_placeholder_signal(path, f"field '{key}' holds placeholder text {value.strip()!r}")]
    return []


def check_staleness(path: Path, now: datetime, max_age_days: int = 7) -> list[FraudSignal]:
    """Warn when an artifact's recorded timestamp is older than the window."""
    if not path.is_file() or path.suffix.lower() != ".json":
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return []
    if not isinstance(data, dict):
        return []

    for key in TIMESTAMP_FIELDS:
        recorded = parse_timestamp(data.get(key))
        if recorded is None:
            continue
        age = now - recorded
        if age > timedelta(days=max_age_days):
            return [
                FraudSignal(
                    kind="stale-evidence",
                    severity="warning",
                    message=f"{path.name} {key} is {age.days} days old (window {max_age_days} days)",
                    path=str(path),
                    remediation="Re-capture evidence for the current task run",
                )
            ]
        return []
    return []


def check_evidence_relocation(bundle: EvidenceBundle) -> list[FraudSignal]:
    """Block a populated legacy directory next to an empty canonical one."""
    legacy = bundle.legacy_screenshots_dir
    legacy_files = [p for p in legacy.iterdir() if p.is_file()] if legacy.is_dir() else []
    if not legacy_files:
        return []
    canonical = bundle.raw_responses_dir
    canonical_files = [p for p in canonical.iterdir() if p.is_file()] if canonical.is_dir() else []
    if canonical_files:
        return []
    return [
        FraudSignal(
            kind="evidence-relocation",
            severity="blocking",
            message=(
                f"{legacy.name}/ holds {len(legacy_files)} file(s) while {canonical.name}/ is empty; "
                "evidence appears relocated to dodge validation"
            ),
            path=str(legacy),
            remediation=f"Save raw responses in {canonical.name}/ with the required filenames",
        )
    ]


def check_root_gaming(repo_root: Path, task_id: str, evidence_docs: list[Path]) -> list[FraudSignal]:
    """Block task-named files at the work-tree root and copies of evidence there."""
    if not repo_root.is_dir():
        return []
    signals: list[FraudSignal] = []
    canonical = [(doc, doc.read_bytes()) for doc in evidence_docs if doc.is_file()]

    for entry in sorted(repo_root.iterdir()):
        if not entry.is_file():
            continue
        if _ROOT_TASK_FILE_RE.match(entry.name):
            detail = "named after task" if entry.name != task_id else f"named after this task ({task_id})"
            signals.append(
                FraudSignal(
                    kind="root-gaming",
                    severity="blocking",
                    message=f"file {entry.name} at repository root is {detail}, outside the evidence directory",
                    path=str(entry),
                    remediation=f"Remove {entry.name} from the repository root; evidence lives in the evidence directory",
                )
            )
            continue
        size = entry.stat().st_size
        for doc, content in canonical:
            if size == len(content) and size > 0 and entry.read_bytes() == content:
                signals.append(
                    FraudSignal(
                        kind="root-gaming",
                        severity="blocking",
                        message=f"{entry.name} at repository root is byte-identical to {doc.name}",
                        path=str(entry),
                        remediation=f"Remove the copy {entry.name} from the repository root",
                    )
                )
                break
    return signals


def run_all(
    bundle: EvidenceBundle,
    config: GateConfig,
    now: datetime | None = None,
    *,
    include_root_gaming: bool = True,
) -> list[FraudSignal]:
    """Run the full suite over one bundle.

    The evidence gate leaves root gaming to the compliance gate.
    """
    now = now or datetime.now(UTC)
    signals: list[FraudSignal] = []

    raw_paths = bundle.raw_response_paths()
    for name, path in raw_paths.items():
        if not path.is_file():
            continue
        signals.extend(check_size_floor(path, config.response_size_floor))
        signals.extend(check_response_structure(path, REQUIRED_RAW_RESPONSES[name]))
        signals.extend(check_placeholder_content(path))
        signals.extend(check_staleness(path, now, config.staleness_days))

    generic = [bundle.interaction_log, bundle.test_results]
    captured = [path for path in raw_paths.values() if path.is_file()]
    for path in bundle.artifact_files():
        if path.suffix.lower() in BINARY_SUFFIXES:
            generic.append(path)
            captured.append(path)
    for path in generic:
        signals.extend(check_size_floor(path, config.generic_size_floor))
        signals.extend(check_placeholder_content(path))
    signals.extend(check_staleness(bundle.test_results, now, config.staleness_days))

    signals.extend(check_timestamp_clustering(captured, config.cluster_window_seconds))
    signals.extend(check_evidence_relocation(bundle))
    if include_root_gaming:
        signals.extend(
            check_root_gaming(config.repo_root, bundle.task_id, [bundle.test_results, bundle.interaction_log])
        )

    for signal in signals:
        logger.debug("fraud signal %s (%s): %s", signal.kind, signal.severity, signal.message)
    return signals


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _has_content(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def _placeholder_signal(path: Path, detail: str) -> FraudSignal:
    return FraudSignal(
        kind="placeholder-content",
        severity="blocking",
        message=f"{path.name} {detail}",
        path=str(path),
        remediation=f"Delete {path.name} and capture the real artifact",
    )

