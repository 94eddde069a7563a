"""Work-queue document parser.

Produces an explicit block list (header, offsets, metadata) from the
line-oriented checklist format::

    ## Phase 3: Core
    - [ ] T014 Implement POST /api/quotes endpoint
      - Evidence: Browser test POST /api/quotes
      - Depends: T012, T013

A block ends at the next task header, the next markdown heading, a
horizontal rule, or the end of the document.
"""

from __future__ import annotations

import re
from pathlib import Path

from taskgate.errors import ParseError
from taskgate.queue.types import (
    METADATA_ALIASES,
    STATUS_BY_MARKER,
    TASK_ID_PATTERN,
    QueueDocument,
    TaskBlock,
)

_HEADER_RE = re.compile(
    rf"^\s*[-*]\s+\[(?P<mark>.)\]\s+\*{{0,2}}(?P<id>{TASK_ID_PATTERN})\*{{0,2}}:?(?:\s+(?P<title>.*))?$"
)
_HEADING_RE = re.compile(r"^(?P<hashes>#{1,6})\s+(?P<title>.+?)\s*#*\s*$")
_RULE_RE = re.compile(r"^\s*(?:-{3,}|\*{3,}|_{3,})\s*$")
_METADATA_RE = re.compile(r"^\s+[-*]\s+(?:\*\*)?(?P<key>[A-Za-z][A-Za-z \-]*?)(?:\*\*)?:\s*(?P<value>.*)$")


def parse_queue(text: str, source: str | Path = "<queue>") -> QueueDocument:
    """Parse work-queue text into a QueueDocument.

    Raises:
        ParseError: If a task header carries an unknown status marker
    """
    blocks: list[TaskBlock] = []
    sections: dict[str, tuple[int, int]] = {}

    current: TaskBlock | None = None
    current_last_content_end = 0
    section_title: str | None = None
    section_start = 0

    offset = 0
    for line_no, raw_line in enumerate(text.splitlines(keepends=True), start=1):
        line = raw_line.rstrip("\r\n")
        line_start = offset
        offset += len(raw_line)

        header = _HEADER_RE.match(line)
        heading = _HEADING_RE.match(line)

        if header or heading or _RULE_RE.match(line):
            if current is not None:
                _close_block(current, text, current_last_content_end)
                blocks.append(current)
                current = None

        if heading:
            if section_title is not None:
                sections[section_title] = (section_start, line_start)
            section_title = heading.group("title").strip()
            section_start = line_start
            continue

        if header:
            mark = header.group("mark")
            if mark not in STATUS_BY_MARKER:
                raise ParseError(
                    source,
                    f"unknown status marker '[{mark}]' for task {header.group('id')} "
                    "(expected one of [ ], [~], [-], [x])",
                    line=line_no,
                )
            current = TaskBlock(
                task_id=header.group("id"),
                status=STATUS_BY_MARKER[mark],
                title=(header.group("title") or "").strip(),
                start=line_start,
                end=offset,
                line=line_no,
                text="",
                section=section_title,
            )
            current_last_content_end = offset
            continue

        if current is None:
            continue

        if not line.strip():
            # Blank lines stay inside the block only if more metadata follows
            continue

        if not line[:1].isspace():
            # Unindented prose closes the block
            _close_block(current, text, current_last_content_end)
            blocks.append(current)
            current = None
            continue

        meta = _METADATA_RE.match(line)
        if meta:
            key = meta.group("key").strip().lower().replace(" ", "-")
            key = METADATA_ALIASES.get(key, key)
            current.metadata.setdefault(key, meta.group("value").strip())
        current_last_content_end = offset

    if current is not None:
        _close_block(current, text, current_last_content_end)
        blocks.append(current)
    if section_title is not None:
        sections[section_title] = (section_start, len(text))

    return QueueDocument(source=str(source), text=text, blocks=blocks, sections=sections)


def parse_queue_file(path: Path) -> QueueDocument:
    """Read and parse a work-queue file.

    Raises:
        ParseError: If the file is missing or malformed
    """
    if not path.exists():
        raise ParseError(path, "work-queue document not found")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(path, f"work-queue document is not valid UTF-8 (byte {e.start})") from e
    return parse_queue(text, source=path)


def _close_block(block: TaskBlock, text: str, end: int) -> None:
    block.end = end
    block.text = text[block.start:end]
