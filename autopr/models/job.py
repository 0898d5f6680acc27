import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from autopr.models.error import ParsedError


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    SKIPPED = "skipped"  # repo 매핑 없음
    FAILED = "failed"


class Job(BaseModel):
    """큐 작업 단위: 원본 webhook + 파싱 결과

    영속화/재시도 없음. 한 번 디스패치되면 끝.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    webhook: dict[str, Any] = {}
    parsed_error: ParsedError
    status: JobStatus = JobStatus.PENDING
    pr_url: str | None = None
    error_log: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def issue_id(self) -> str:
        return self.parsed_error.issue_id
