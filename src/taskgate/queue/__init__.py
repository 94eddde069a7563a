"""Work-queue document parsing and locked mutation."""

from taskgate.queue.parser import parse_queue, parse_queue_file
from taskgate.queue.store import NewTask, WorkQueue
from taskgate.queue.types import QueueDocument, TaskBlock, TaskStatus

__all__ = [
    "NewTask",
    "QueueDocument",
    "TaskBlock",
    "TaskStatus",
    "WorkQueue",
    "parse_queue",
    "parse_queue_file",
]
