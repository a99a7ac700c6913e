"""
Background historical-snapshot job with a single pollable status cell.

Only one job may run at a time. The status survives until the next run and
is lost on restart; no status means nothing is running.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Optional

from wealthledger.exceptions import JobAlreadyRunningError
from wealthledger.models import JobState, SnapshotJobStatus
from wealthledger.snapshots import generate_historical_snapshots

logger = logging.getLogger(__name__)

__all__ = ["SnapshotJob", "snapshot_job"]


class SnapshotJob:
    """
    Runs generate_historical_snapshots in the background.

    `start` schedules the job on the running event loop; `run_in_thread`
    gives it a private loop on a daemon thread for synchronous callers.
    """

    def __init__(self, runner=generate_historical_snapshots):
        self._runner = runner
        self._status: Optional[SnapshotJobStatus] = None
        self._lock = threading.Lock()

    def status(self) -> Optional[SnapshotJobStatus]:
        return self._status

    @property
    def is_running(self) -> bool:
        status = self._status
        return status is not None and status.state is JobState.RUNNING

    def _claim(self, owner_id: int) -> SnapshotJobStatus:
        with self._lock:
            if self.is_running:
                raise JobAlreadyRunningError(
                    f"A snapshot generation job is already in progress (owner {self._status.owner_id})"
                )
            self._status = SnapshotJobStatus(
                state=JobState.RUNNING,
                owner_id=owner_id,
                started_at=datetime.now(),
            )
            return self._status

    def _mark_cancelled(self, status: SnapshotJobStatus):
        if status.state is not JobState.RUNNING:
            return
        logger.warning(f"Historical snapshots cancelled for owner {status.owner_id}")
        status.error = "cancelled"
        status.completed_at = datetime.now()
        status.state = JobState.FAILED

    async def _execute(self, status: SnapshotJobStatus, **kwargs) -> Optional[int]:
        def on_progress(done: int, total: int):
            status.months_processed = done

        try:
            months = await self._runner(status.owner_id, on_progress=on_progress, **kwargs)
        except asyncio.CancelledError:
            self._mark_cancelled(status)
            raise
        except Exception as e:
            logger.exception(f"Historical snapshots failed for owner {status.owner_id}")
            status.error = str(e) or e.__class__.__name__
            status.completed_at = datetime.now()
            status.state = JobState.FAILED
            return None

        status.months_processed = months
        status.completed_at = datetime.now()
        status.state = JobState.COMPLETED
        logger.info(f"Historical snapshots: {months} months processed for owner {status.owner_id}")
        return months

    def start(self, owner_id: int, **kwargs) -> "asyncio.Task":
        """
        Schedule a run on the current event loop and return its task.

        Raises JobAlreadyRunningError while another run is in progress. The
        task resolves to the months processed, or None if the run failed.
        """
        status = self._claim(owner_id)
        task = asyncio.get_running_loop().create_task(self._execute(status, **kwargs))
        # A task cancelled before its first step never enters _execute
        task.add_done_callback(lambda t: self._mark_cancelled(status) if t.cancelled() else None)
        return task

    def run_in_thread(self, owner_id: int, **kwargs) -> threading.Thread:
        """Start a run on a daemon thread with its own event loop."""
        status = self._claim(owner_id)
        thread = threading.Thread(
            target=lambda: asyncio.run(self._execute(status, **kwargs)),
            name=f"snapshot-job-{owner_id}",
            daemon=True,
        )
        thread.start()
        return thread


snapshot_job = SnapshotJob()
