import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from autopr.api.webhook import router as webhook_router
from autopr.api.worker import router as worker_router
from autopr.core.config import Settings
from autopr.core.middleware import SignatureMiddleware
from autopr.core.signature import SignatureVerifier
from autopr.services.job_queue import JobQueue
from autopr.services.pipeline import PipelineService
from autopr.services.worker_manager import WorkerManager
from autopr.worker import Pipeline, Worker

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings,
    *,
    pipeline: Pipeline | None = None,
    start_worker: bool = True,
) -> FastAPI:
    job_queue = JobQueue(maxsize=settings.job_queue_size)
    worker = Worker(job_queue, pipeline or PipelineService(settings))
    worker_manager = WorkerManager(worker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """앱 시작/종료 시 실행"""
        logger.info("Configured %d repo mapping(s):", len(settings.mappings))
        for m in settings.mappings:
            logger.info("  %s -> %s", m.sentry_project, m.full_name)

        if start_worker:
            await worker_manager.start()
        yield
        # Shutdown: 새 job은 더 꺼내지 않고, 처리 중 job은 worker_stop_timeout까지 기다림
        if worker_manager.is_running:
            await worker_manager.stop(timeout=settings.worker_stop_timeout)

    app = FastAPI(
        title="sentry-autopr",
        description="Sentry webhook → Claude Code → GitHub auto PR",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.job_queue = job_queue
    app.state.worker_manager = worker_manager

    app.add_middleware(
        SignatureMiddleware,
        verifier=SignatureVerifier(settings.sentry_webhook_secret),
        paths=settings.protected_paths,
    )

    app.include_router(webhook_router, prefix="/webhook", tags=["webhook"])
    app.include_router(worker_router, prefix="/worker", tags=["worker"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
