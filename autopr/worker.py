"""Worker - Job Queue 소비 루프 (단일 디스패처)

job을 하나씩 꺼내 Pipeline을 끝까지 실행한다. 같은 브랜치/PR을 동시에 건드리지
않도록 job 간 병렬 처리는 하지 않는다.

stop()은 루프 반복 경계에서만 반영된다: 큐 대기 중이면 바로 빠져나오고,
처리 중인 job은 끝까지(또는 자체 에러로 끝날 때까지) 진행된다.
"""

import asyncio
import logging
from typing import Protocol

from autopr.models.job import Job, JobStatus
from autopr.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class Pipeline(Protocol):
    async def run(self, job: Job) -> str | None: ...


class Worker:
    def __init__(self, queue: JobQueue, pipeline: Pipeline):
        self.queue = queue
        self.pipeline = pipeline
        self._stop = asyncio.Event()
        self.current_job_id: str | None = None  # WorkerManager가 상태 노출에 사용
        self.processed = 0
        self.failed = 0

    async def run(self) -> None:
        logger.info("Worker started (queue maxsize=%d)", self.queue.maxsize)
        while not self._stop.is_set():
            job = await self._next_job()
            if job is None:
                break
            await self._process(job)
        logger.info("Worker stopped")

    async def _next_job(self) -> Job | None:
        """다음 job 대기. stop()이 먼저 오면 None"""
        get_task = asyncio.ensure_future(self.queue.get())
        stop_task = asyncio.ensure_future(self._stop.wait())
        try:
            done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (get_task, stop_task):
                if not task.done():
                    task.cancel()

        if stop_task in done:
            if get_task in done and not get_task.cancelled():
                logger.warning("Worker stopping, discarding job for issue %s", get_task.result().issue_id)
            return None
        return get_task.result()

    async def _process(self, job: Job) -> None:
        self.current_job_id = job.id
        job.status = JobStatus.PROCESSING
        logger.info(
            "Processing job %s for issue %s (project: %s)",
            job.id, job.issue_id, job.parsed_error.project_slug,
        )

        try:
            pr_url = await self.pipeline.run(job)
        except Exception as e:
            # 한 job의 실패가 루프나 다음 job에 영향을 주지 않는다
            self.failed += 1
            job.status = JobStatus.FAILED
            job.error_log = str(e)
            logger.error("Pipeline failed for issue %s: %s", job.issue_id, e)
        else:
            self.processed += 1
            if pr_url:
                job.status = JobStatus.DONE
                job.pr_url = pr_url
                logger.info("Created PR for issue %s: %s", job.issue_id, pr_url)
            else:
                job.status = JobStatus.SKIPPED
        finally:
            self.current_job_id = None

    def stop(self) -> None:
        logger.info("Worker stopping...")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()
