"""Background worker: due auto-responses and reminder sweeps.

Runs as an asyncio task inside the API process (started from the FastAPI
lifespan) or standalone::

    python -m dealer_crm.worker
"""

import asyncio
from typing import Any, Callable, Optional

from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.database import async_session_maker, init_db
from dealer_crm.models.auto_response import AutoResponseJob, AutoResponseJobStatus
from dealer_crm.models.lead import Lead
from dealer_crm.services.auto_response import AutoResponseProcessor
from dealer_crm.services.email import NotificationSink
from dealer_crm.services.task_service import TaskService
from dealer_crm.services.test_drive_service import TestDriveService
from dealer_crm.utils.logging import get_logger, setup_logging
from dealer_crm.utils.time import Clock, utc_now

logger = get_logger("worker")


class AutoResponseWorker:
    def __init__(
        self,
        session_factory: Callable = async_session_maker,
        sink: Optional[NotificationSink] = None,
        clock: Clock = utc_now,
        poll_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
        reminder_lookahead_minutes: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.sink = sink
        self.clock = clock
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.worker_poll_seconds
        self.batch_size = batch_size or settings.worker_batch_size
        self.reminder_lookahead_minutes = (
            reminder_lookahead_minutes
            if reminder_lookahead_minutes is not None
            else settings.reminder_lookahead_minutes
        )
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self._task = asyncio.create_task(self.run_forever(), name="auto-response-worker")
        logger.info("worker_started", poll_seconds=self.poll_seconds)

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("worker_stopped")

    def wake(self, job: Optional[AutoResponseJob] = None) -> None:
        """Cut the current sleep short."""
        self._wake.set()

    def wake_on_commit(self, db: AsyncSession) -> Callable[[AutoResponseJob], None]:
        """``on_enqueue`` hook: wake once ``db`` commits and the new job is visible."""
        def on_enqueue(job: AutoResponseJob) -> None:
            event.listen(db.sync_session, "after_commit", lambda session: self.wake(), once=True)
        return on_enqueue

    async def run_forever(self) -> None:
        while not self._stopping:
            # Wakes arriving during the pass skip the next sleep
            self._wake.clear()
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("worker_iteration_failed", error=str(exc))
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    async def run_once(self) -> int:
        processed = await self.process_due_jobs()
        await self._sweep("follow_up", lambda db: TaskService(db, clock=self.clock))
        await self._sweep("test_drive", lambda db: TestDriveService(db, clock=self.clock))
        return processed

    async def process_due_jobs(self) -> int:
        async with self.session_factory() as db:
            job_ids = await AutoResponseProcessor(db, clock=self.clock).due_job_ids(self.batch_size)

        processed = 0
        for job_id in job_ids:
            if await self._process_one(job_id) is not None:
                processed += 1
        return processed

    async def _process_one(self, job_id: int) -> Optional[str]:
        try:
            async with self.session_factory() as db:
                processor = AutoResponseProcessor(db, sink=self.sink, clock=self.clock)
                status = await processor.process(job_id)
                await db.commit()
                return status
        except Exception as exc:
            logger.error("auto_response_job_crashed", job_id=job_id, error=str(exc))
            await self._mark_failed(job_id, str(exc))
            return AutoResponseJobStatus.FAILED.value

    async def _mark_failed(self, job_id: int, error: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(AutoResponseJob)
                .where(
                    AutoResponseJob.id == job_id,
                    AutoResponseJob.status.in_(
                        [AutoResponseJobStatus.PENDING.value, AutoResponseJobStatus.PROCESSING.value]
                    ),
                )
                .values(
                    status=AutoResponseJobStatus.FAILED.value,
                    processed_at=self.clock(),
                    error=error[:1000],
                )
            )
            lead_id = (
                select(AutoResponseJob.lead_id)
                .where(AutoResponseJob.id == job_id)
                .scalar_subquery()
            )
            await db.execute(
                update(Lead)
                .where(Lead.id == lead_id, Lead.responded_at.is_(None))
                .values(responded_at=self.clock())
            )
            await db.commit()

    async def _sweep(self, name: str, make_service: Callable[[Any], Any]) -> int:
        try:
            async with self.session_factory() as db:
                service = make_service(db)
                sent = await service.send_due_reminders(self.reminder_lookahead_minutes)
                await db.commit()
                return sent
        except Exception as exc:
            logger.error("reminder_sweep_failed", sweep=name, error=str(exc))
            return 0


async def main() -> None:
    setup_logging(debug=settings.debug)
    await init_db()
    worker = AutoResponseWorker()
    logger.info("worker_standalone_started")
    try:
        await worker.run_forever()
    finally:
        logger.info("worker_standalone_stopped")


if __name__ == "__main__":
    asyncio.run(main())
