from __future__ import annotations

from shekelstream.core.tasks import CompanyType, SyncTask
from shekelstream.jobs.sync.runner import run_sync_tasks
from shekelstream.tools.sync.sync_tool import SyncStatus, SyncSummary


def create_task(user: str, company: CompanyType) -> SyncTask:
    return SyncTask(user=user, company=company, credentials={})


class MockSyncTool:
    """Sync tool that fails for configured companies."""

    def __init__(self, failing: set[CompanyType]) -> None:
        self._failing = failing
        self.synced: list[SyncTask] = []

    def sync(self, task: SyncTask) -> SyncSummary:
        self.synced.append(task)
        if task.company in self._failing:
            raise RuntimeError(f"{task.company.value} is down")
        return SyncSummary(status=SyncStatus.COMPLETED, new=1)


def test_run_sync_tasks_isolates_failures() -> None:
    # input
    tasks = [
        create_task("DANA", CompanyType.HAPOALIM),
        create_task("DANA", CompanyType.MAX),
        create_task("OMER", CompanyType.LEUMI),
    ]
    tool = MockSyncTool({CompanyType.MAX})

    # act
    outcomes = run_sync_tasks(tasks, tool)  # type: ignore[arg-type]

    # assert
    assert tool.synced == tasks
    assert [outcome.success for outcome in outcomes] == [True, False, True]
    assert outcomes[1].summary is None
    assert outcomes[1].error == "max is down"
    assert outcomes[2].summary == SyncSummary(status=SyncStatus.COMPLETED, new=1)


def test_run_sync_tasks_without_tasks() -> None:
    assert run_sync_tasks([], MockSyncTool(set())) == []  # type: ignore[arg-type]
