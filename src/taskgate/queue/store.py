"""Single-writer access to the shared work-queue document.

Every mutation is a whole-document read-modify-write performed under an
exclusive lock file and committed with an atomic replace, so concurrent
writers serialize instead of losing updates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from taskgate.artifacts.canonical_json import write_text_atomic
from taskgate.errors import ParseError
from taskgate.queue.parser import parse_queue, parse_queue_file
from taskgate.queue.types import MARKER_BY_STATUS, QueueDocument, TaskBlock, TaskStatus
from taskgate.utils.filelock import exclusive_lock

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"\[.\]")


@dataclass
class NewTask:
    """A task to append to the queue. The id is allocated under the lock."""

    title: str
    metadata: dict[str, str] = field(default_factory=dict)


class WorkQueue:
    """Locked, atomic access to one work-queue file."""

    def __init__(self, path: Path, *, lock_timeout: float = 30.0):
        self.path = path
        self.lock_timeout = lock_timeout

    def load(self) -> QueueDocument:
        return parse_queue_file(self.path)

    def set_status(self, task_id: str, status: TaskStatus) -> TaskBlock:
        """Flip one task's status marker.

        Raises:
            ParseError: If the task is missing or not unique
        """
        with exclusive_lock(self.path, timeout=self.lock_timeout):
            document = self.load()
            block = _require_unique(document, task_id)
            header_end = document.text.find("\n", block.start)
            header_end = len(document.text) if header_end == -1 else header_end
            header = document.text[block.start:header_end]
            new_header = _MARKER_RE.sub(f"[{MARKER_BY_STATUS[status]}]", header, count=1)
            updated = document.text[:block.start] + new_header + document.text[header_end:]
            write_text_atomic(self.path, updated)
            logger.info("task %s status -> %s", task_id, status)
            block.status = status
            return block

    def append_child_tasks(self, parent_id: str, section: str, tasks: list[NewTask]) -> list[str]:
        """Append tasks ``<parent>.<n>`` under ``## <section>``.

        Numbering continues from the highest existing child id. The section
        is created at the end of the document when missing.
        """
        return [task_id for task_id, _ in self._append(parent_id, section, tasks, unique_key=None)]

    def append_unique_child_tasks(
        self, parent_id: str, section: str, tasks: list[NewTask], *, key: str
    ) -> list[tuple[str, bool]]:
        """Like append_child_tasks, but skip tasks whose ``key`` metadata is already queued.

        Returns ``(task_id, created)`` per input task; a skipped task maps to
        the id already carrying that value. The lookup and the append share
        one lock, so concurrent writers cannot both add the same task.
        """
        return self._append(parent_id, section, tasks, unique_key=key)

    def _append(
        self, parent_id: str, section: str, tasks: list[NewTask], *, unique_key: str | None
    ) -> list[tuple[str, bool]]:
        if not tasks:
            return []
        with exclusive_lock(self.path, timeout=self.lock_timeout):
            document = self.load()
            existing: dict[str, str] = {}
            if unique_key is not None:
                block_key = unique_key.lower()
                existing = {
                    block.metadata[block_key]: block.task_id
                    for block in document.blocks
                    if block.metadata.get(block_key)
                }

            next_index = _next_child_index(document, parent_id)
            placed: list[tuple[str, bool]] = []
            fresh: list[tuple[str, NewTask]] = []
            for task in tasks:
                value = task.metadata.get(unique_key) if unique_key is not None else None
                if value and value in existing:
                    placed.append((existing[value], False))
                    continue
                task_id = f"{parent_id}.{next_index}"
                next_index += 1
                if value:
                    existing[value] = task_id
                placed.append((task_id, True))
                fresh.append((task_id, task))

            if fresh:
                rendered = "".join(render_task(task_id, task) for task_id, task in fresh)
                updated = _insert_into_section(document, section, rendered)
                # Re-parse before committing so a bad render never reaches disk
                parse_queue(updated, source=self.path)
                write_text_atomic(self.path, updated)
                logger.info(
                    "appended %d task(s) to %s: %s", len(fresh), self.path, ", ".join(t for t, _ in fresh)
                )
            return placed


def render_task(task_id: str, task: NewTask, status: TaskStatus = "pending") -> str:
    lines = [f"- [{MARKER_BY_STATUS[status]}] {task_id} {task.title}"]
    for key, value in task.metadata.items():
        lines.append(f"  - {key}: {value}")
    return "\n".join(lines) + "\n"


def _require_unique(document: QueueDocument, task_id: str) -> TaskBlock:
    matches = document.find(task_id)
    if not matches:
        raise ParseError(document.source, f"task {task_id} not found")
    if len(matches) > 1:
        lines = ", ".join(str(block.line) for block in matches)
        raise ParseError(document.source, f"task {task_id} appears {len(matches)} times (lines {lines})")
    return matches[0]


def _next_child_index(document: QueueDocument, parent_id: str) -> int:
    prefix = parent_id + "."
    highest = 0
    for task_id in document.ids():
        if task_id.startswith(prefix):
            head = task_id[len(prefix):].split(".", 1)[0]
            if head.isdigit():
                highest = max(highest, int(head))
    return highest + 1


def _insert_into_section(document: QueueDocument, section: str, rendered: str) -> str:
    text = document.text
    if section in document.sections:
        _, section_end = document.sections[section]
        in_section = [block for block in document.blocks if block.section == section]
        insert_at = in_section[-1].end if in_section else section_end
        before = text[:insert_at]
        if before and not before.endswith("\n"):
            before += "\n"
        if not in_section and not before.endswith("\n\n"):
            before += "\n"
        after = text[insert_at:]
        if after and not after.startswith("\n") and not in_section:
            rendered += "\n"
        return before + rendered + after

    if text and not text.endswith("\n"):
        text += "\n"
    spacer = "\n" if text else ""
    return f"{text}{spacer}## {section}\n\n{rendered}"
