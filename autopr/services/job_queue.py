"""Job Queue - 고정 크기 in-memory 큐 (backpressure)

큐가 가득 차면 새 job은 버린다. 웹훅 호출자는 큐 상태와 관계없이 즉시 응답받아야
하므로 enqueue는 절대 블로킹하지 않는다. 영속화 없음: 재시작하면 큐 내용은 사라진다.
"""

import asyncio
import logging

from autopr.models.job import Job

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class JobQueue:
    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._queue: asyncio.Queue[Job] = asyncio.Queue(maxsize=maxsize)
        self.enqueued = 0
        self.dropped = 0

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, job: Job) -> bool:
        """non-blocking enqueue. 큐가 가득 차면 drop 후 False"""
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Job queue full (%d), dropping job for issue %s (dropped=%d)",
                self.maxsize, job.issue_id, self.dropped,
            )
            return False

        self.enqueued += 1
        logger.info(
            "Queued job %s for issue %s (project: %s)",
            job.id, job.issue_id, job.parsed_error.project_slug,
        )
        return True

    async def get(self) -> Job:
        """다음 job (FIFO). 비어 있으면 대기"""
        return await self._queue.get()

    def stats(self) -> dict:
        return {
            "size": self.qsize(),
            "maxsize": self.maxsize,
            "enqueued": self.enqueued,
            "dropped": self.dropped,
        }
