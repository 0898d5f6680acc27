"""Worker 생명주기 관리 - FastAPI 내에서 백그라운드 태스크로 실행"""

import asyncio
import logging
from datetime import UTC, datetime

from autopr.worker import Worker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Worker asyncio 태스크 관리"""

    def __init__(self, worker: Worker):
        self._worker = worker
        self._task: asyncio.Task | None = None
        self.started_at: datetime | None = None
        self.stopped_at: datetime | None = None
        self.error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_job_id(self) -> str | None:
        return self._worker.current_job_id

    def status(self) -> dict:
        task_status = "stopped"
        if self._task:
            if self._task.done():
                task_status = "crashed" if self.error else "stopped"
            else:
                task_status = "stopping" if self._worker.stopping else "running"

        return {
            "status": task_status,
            "current_job_id": self.current_job_id,
            "processed": self._worker.processed,
            "failed": self._worker.failed,
            "queue": self._worker.queue.stats(),
            "started_at": self.started_at,
            "stopped_at": self.stopped_at,
            "error": self.error,
        }

    async def start(self) -> None:
        if self.is_running:
            raise RuntimeError("Worker is already running")

        self.error = None
        self.started_at = datetime.now(UTC)
        self.stopped_at = None
        self._task = asyncio.create_task(self._run_worker())
        logger.info("Worker task started")

    async def stop(self, timeout: float = 30.0) -> None:
        """stop 신호 후 최대 timeout초 대기. 처리 중 job이 안 끝나면 종료 시점이므로 취소"""
        if not self.is_running:
            raise RuntimeError("Worker is not running")

        self._worker.stop()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Worker did not stop within %.0fs (job %s in flight), cancelled",
                timeout, self.current_job_id,
            )
            self._task.cancel()

        self.stopped_at = datetime.now(UTC)
        logger.info("Worker task stopped")

    async def _run_worker(self) -> None:
        try:
            await self._worker.run()
        except Exception as e:
            self.error = str(e)
            self.stopped_at = datetime.now(UTC)
            logger.error("Worker crashed: %s", e)
