"""Background execution of ingestion passes.

:class:`IngestionWorker` hands ingestion off the caller's path: ``submit``
puts a job on an :class:`asyncio.Queue` and returns immediately; a fixed
number of worker tasks pull jobs and run
:meth:`IngestionService.ingest <docurag.services.ingestion.ingestion_service.IngestionService.ingest>`.

Delivery is at-least-once for the life of the process.  Submitting the same
document twice runs it twice, which is harmless because a pass is
idempotent.  Passes for the same document never overlap: each one holds a
per-document :class:`asyncio.Lock`, which deletions take as well.

Jobs are held in memory only.  ``stop()`` without draining marks every
document whose job never finished as FAILED, so no document is left
PENDING or PROCESSING by a clean shutdown.  While jobs are outstanding the
worker refreshes their heartbeat, which tells :func:`recover_interrupted`
in another process that they are still owned.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog

from docurag.interfaces.document_store import IDocumentStore
from docurag.models.document import DocumentStatus
from docurag.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)

INTERRUPTED_ERROR = "Ingestion interrupted before completion"

DEFAULT_LEASE = timedelta(minutes=5)


@dataclass(frozen=True)
class IngestionJob:
    document_id: str
    text: str


class IngestionWorker:
    """Asyncio worker pool for ingestion passes.

    Parameters
    ----------
    ingestion_service:
        Runs the actual pass.
    document_store:
        Used to mark interrupted documents FAILED.
    concurrency:
        Number of passes that may run at the same time.
    heartbeat_interval:
        Seconds between heartbeats for documents with unfinished jobs.  Keep
        it well below the lease that startup recovery uses.
    """

    def __init__(
        self,
        ingestion_service: IngestionService,
        document_store: IDocumentStore,
        concurrency: int = 2,
        heartbeat_interval: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        if heartbeat_interval <= 0:
            raise ValueError(f"heartbeat_interval must be positive, got {heartbeat_interval}")
        self._service = ingestion_service
        self._document_store = document_store
        self._concurrency = concurrency
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        # document_id -> number of submitted jobs that have not finished.
        self._outstanding: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def pending_documents(self) -> list[str]:
        """Return ids of documents with queued or running jobs."""
        return list(self._outstanding)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker tasks.  Calling it twice is a no-op."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run(i), name=f"ingestion-worker-{i}")
            for i in range(self._concurrency)
        ]
        self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="ingestion-heartbeat")
        logger.info("ingestion_worker_started", concurrency=self._concurrency)

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop the workers.

        With ``drain`` the queue is finished first.  Without it, running
        passes are cancelled and every unfinished document is marked FAILED.
        """
        if drain and self._tasks:
            await self.join()

        tasks = [*self._tasks, *([self._heartbeat_task] if self._heartbeat_task else [])]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._heartbeat_task = None

        abandoned = list(self._outstanding)
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._outstanding.clear()

        for document_id in abandoned:
            await mark_interrupted(self._document_store, document_id)
        logger.info("ingestion_worker_stopped", abandoned=len(abandoned))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, document_id: str, text: str) -> None:
        """Queue a pass for *document_id* and return immediately."""
        self._outstanding[document_id] = self._outstanding.get(document_id, 0) + 1
        self._queue.put_nowait(IngestionJob(document_id=document_id, text=text))
        logger.info(
            "ingestion_submitted",
            document_id=document_id,
            queue_size=self._queue.qsize(),
        )

    @asynccontextmanager
    async def document_lock(self, document_id: str) -> AsyncIterator[None]:
        """Hold the per-document lock shared by passes and deletions."""
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[document_id] -= 1
            if self._lock_users[document_id] == 0:
                del self._lock_users[document_id]
                self._locks.pop(document_id, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, worker_number: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                async with self.document_lock(job.document_id):
                    result = await self._service.ingest(job.document_id, job.text)
                logger.info(
                    "ingestion_job_done",
                    worker=worker_number,
                    document_id=job.document_id,
                    status=result.status.value if result.status else None,
                    chunks=result.chunks_created,
                )
            except asyncio.CancelledError:
                # stop() marks the document FAILED; keep it outstanding.
                self._queue.task_done()
                raise
            except Exception as exc:
                # ingest() records its own failures; this is a last resort.
                logger.error(
                    "ingestion_job_crashed",
                    document_id=job.document_id,
                    error=str(exc),
                )
                self._finish(job.document_id)
                self._queue.task_done()
            else:
                self._finish(job.document_id)
                self._queue.task_done()

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if not self._outstanding:
                continue
            try:
                await self._document_store.touch(list(self._outstanding))
            except Exception as exc:
                logger.warning("ingestion_heartbeat_failed", error=str(exc))

    def _finish(self, document_id: str) -> None:
        remaining = self._outstanding.get(document_id, 0) - 1
        if remaining > 0:
            self._outstanding[document_id] = remaining
        else:
            self._outstanding.pop(document_id, None)


async def mark_interrupted(document_store: IDocumentStore, document_id: str) -> None:
    """Mark a PENDING or PROCESSING document FAILED; leave other states alone."""
    try:
        document = await document_store.get_document(document_id)
        if document is None or document.status not in (
            DocumentStatus.PENDING,
            DocumentStatus.PROCESSING,
        ):
            return
        await document_store.fail_document(document_id, INTERRUPTED_ERROR)
    except Exception as exc:
        logger.error("ingestion_interrupt_record_failed", document_id=document_id, error=str(exc))


async def recover_interrupted(
    document_store: IDocumentStore,
    lease: timedelta = DEFAULT_LEASE,
) -> int:
    """Fail documents left PENDING or PROCESSING by a process that went away.

    Only documents whose heartbeat is older than *lease* are touched, so
    jobs that another live process is still running keep going.  Extracted
    text is not persisted, so stale jobs cannot be replayed.  Returns the
    number of documents marked FAILED.
    """
    stale = await document_store.list_by_status(
        [DocumentStatus.PENDING, DocumentStatus.PROCESSING],
        stale_before=datetime.now(timezone.utc) - lease,
    )
    for document in stale:
        await mark_interrupted(document_store, document.id)
    if stale:
        logger.warning("ingestion_recovered_interrupted", documents=len(stale))
    return len(stale)
