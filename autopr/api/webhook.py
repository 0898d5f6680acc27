import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from autopr.models.error import ParsedError
from autopr.models.job import Job
from autopr.services.job_queue import JobQueue
from autopr.services.parsers import get_parser

logger = logging.getLogger(__name__)

router = APIRouter()


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def log_parsed_error(parsed: ParsedError) -> None:
    """파싱된 에러 정보 (debug)"""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug(
        "Parsed issue %s (%s) project=%s level=%s platform=%s: %s: %s",
        parsed.issue_id, parsed.short_id, parsed.project_slug, parsed.level,
        parsed.platform, parsed.error_type, parsed.error_message,
    )
    for i, frame in enumerate(parsed.frames):
        logger.debug(
            "  [%d] %s:%s in %s%s",
            i, frame.filename, frame.lineno, frame.function, " [in app]" if frame.in_app else "",
        )


@router.post("/sentry", status_code=202)
async def sentry_webhook(request: Request, queue: JobQueue = Depends(get_job_queue)) -> dict:
    """Sentry webhook endpoint → Job 큐잉 (서명은 SignatureMiddleware가 검증)

    Sentry는 빠른 응답을 요구하므로 큐 상태와 관계없이 즉시 202로 응답한다.
    """
    body = await request.body()
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError):
        logger.warning("Failed to parse webhook payload")
        raise HTTPException(status_code=400, detail="invalid payload")

    if not isinstance(payload, dict):
        logger.warning("Webhook payload is not a JSON object")
        raise HTTPException(status_code=400, detail="invalid payload")

    data = payload.get("data")
    issue = data.get("issue") if isinstance(data, dict) else None
    logger.info(
        "Received webhook: action=%s, issue_id=%s",
        payload.get("action"), issue.get("id") if isinstance(issue, dict) else None,
    )

    parser = get_parser("sentry")

    # created/triggered 외 action은 수락만 하고 무시 (webhook 재전송 대비)
    if not parser.should_process(payload):
        logger.info("Ignoring webhook action: %s", payload.get("action"))
        return {"status": "ignored"}

    parsed = parser.parse(payload)
    if parsed is None:
        logger.info("Webhook has no issue data, ignoring")
        return {"status": "ignored"}

    log_parsed_error(parsed)

    job = Job(webhook=payload, parsed_error=parsed)
    if not queue.offer(job):
        return {"status": "dropped", "issue_id": parsed.issue_id}

    return {"status": "queued", "job_id": job.id, "issue_id": parsed.issue_id}
