"""Sequential runner that syncs every configured task."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from shekelstream.core.tasks import SyncTask
from shekelstream.tools.sync.sync_tool import SyncSummary, SyncTool


@dataclass
class TaskOutcome:
    """Result of running one task."""

    task: SyncTask
    summary: SyncSummary | None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def run_sync_tasks(tasks: Sequence[SyncTask], sync_tool: SyncTool) -> list[TaskOutcome]:
    """Run the sync tool for each task in order.

    An exception escaping one task is logged with the task identity and
    recorded in its outcome; the remaining tasks still run.
    """
    outcomes: list[TaskOutcome] = []
    for task in tasks:
        try:
            summary = sync_tool.sync(task)
        except Exception as e:
            logger.bind(**task.key).opt(exception=e).error(
                "Sync failed for {} ({}): {}", task.user, task.company.value, e
            )
            outcomes.append(TaskOutcome(task=task, summary=None, error=str(e)))
            continue
        outcomes.append(TaskOutcome(task=task, summary=summary))
    return outcomes
