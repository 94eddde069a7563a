"""Work-queue types."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

TaskStatus = Literal["pending", "in-progress", "complete"]

STATUS_BY_MARKER: dict[str, TaskStatus] = {
    " ": "pending",
    "~": "in-progress",
    "-": "in-progress",
    "x": "complete",
    "X": "complete",
}
MARKER_BY_STATUS: dict[TaskStatus, str] = {
    "pending": " ",
    "in-progress": "~",
    "complete": "x",
}

# Canonical metadata keys; aliases are folded in by the parser
METADATA_ALIASES: dict[str, str] = {
    "mcp": "evidence",
    "evidence": "evidence",
    "depends": "depends",
    "depends-on": "depends",
    "dependencies": "depends",
    "dependency": "depends",
    "debt": "debt",
}

TASK_ID_PATTERN = r"[A-Z][A-Z]*-?\d+(?:\.\d+)*"
TASK_ID_RE = re.compile(rf"\b({TASK_ID_PATTERN})\b")
_INLINE_DEPENDS_RE = re.compile(r"\bdepends\s+on\s+([^)\n]+)", re.IGNORECASE)


@dataclass
class TaskBlock:
    """One task parsed out of the work-queue document.

    ``start``/``end`` are character offsets into the source text covering the
    header line and all of its metadata lines.
    """

    task_id: str
    status: TaskStatus
    title: str
    start: int
    end: int
    line: int
    text: str
    section: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def evidence_tag(self) -> str | None:
        return self.metadata.get("evidence")

    @property
    def dependencies(self) -> list[str]:
        """Dependency task ids from metadata or an inline ``depends on`` clause."""
        found: list[str] = []
        sources = [self.metadata.get("depends", "")]
        sources.extend(match.group(1) for match in _INLINE_DEPENDS_RE.finditer(self.title))
        for source in sources:
            for dep in TASK_ID_RE.findall(source):
                if dep != self.task_id and dep not in found:
                    found.append(dep)
        return found

    @property
    def requirement_text(self) -> str:
        """Free-text requirement: title plus any evidence requirement."""
        parts = [self.title]
        if self.evidence_tag:
            parts.append(self.evidence_tag)
        return "\n".join(parts)

    def evidence_not_applicable(self, sentinel: str) -> bool:
        tag = (self.evidence_tag or "").strip()
        return bool(tag) and tag.upper().startswith(sentinel.upper())


@dataclass
class QueueDocument:
    """Parsed work-queue document."""

    source: str
    text: str
    blocks: list[TaskBlock]
    sections: dict[str, tuple[int, int]] = field(default_factory=dict)

    def find(self, task_id: str) -> list[TaskBlock]:
        return [block for block in self.blocks if block.task_id == task_id]

    def get(self, task_id: str) -> TaskBlock | None:
        matches = self.find(task_id)
        return matches[0] if matches else None

    def completed(self) -> list[TaskBlock]:
        return [block for block in self.blocks if block.status == "complete"]

    def ids(self) -> list[str]:
        return [block.task_id for block in self.blocks]
