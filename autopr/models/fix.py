from pydantic import BaseModel

from autopr.models.error import ParsedError, StackFrame


class FixRequest(BaseModel):
    """fix 생성 도구 입력"""

    issue_id: str
    title: str
    error_type: str | None = None
    error_message: str | None = None
    level: str | None = None
    platform: str | None = None
    culprit: str | None = None
    permalink: str | None = None
    frames: list[StackFrame] = []

    repo_url: str
    token: str | None = None

    @classmethod
    def from_error(cls, error: ParsedError, repo_url: str, token: str | None = None) -> "FixRequest":
        return cls(
            issue_id=error.issue_id,
            title=error.title,
            error_type=error.error_type,
            error_message=error.error_message,
            level=error.level,
            platform=error.platform,
            culprit=error.culprit,
            permalink=error.permalink,
            frames=error.frames,
            repo_url=repo_url,
            token=token,
        )


class FixFile(BaseModel):
    path: str
    content: str


class FixResult(BaseModel):
    """fix 생성 도구 출력 (JSON)"""

    success: bool = False
    description: str = ""
    files: list[FixFile] = []
    error: str | None = None
