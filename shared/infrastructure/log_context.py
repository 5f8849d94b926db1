"""
Work Item Log Context.

Tags log records with the name of the work item currently executing on
the store work queue, so a dropped event or failed reconnect can be tied
back to the item that caused it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Context variable for the running work item (task-local under asyncio)
work_item_var: ContextVar[str] = ContextVar("work_item", default="")


def get_work_item() -> str:
    """Get the name of the work item currently executing."""
    return work_item_var.get()


@contextmanager
def work_item_context(name: str) -> Iterator[None]:
    """
    Bind a work item name for the duration of the block.

    Usage:
        with work_item_context("publish:StateChange"):
            await publisher.publish(event)
    """
    token = work_item_var.set(name)
    try:
        yield
    finally:
        work_item_var.reset(token)


class WorkItemFilter(logging.Filter):
    """
    Logging filter that adds work_item to log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(WorkItemFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.work_item = work_item_var.get() or "-"
        return True
