from pydantic import BaseModel


class StackFrame(BaseModel):
    """스택트레이스 프레임 (수신 순서 그대로: outer → inner)"""

    filename: str | None = None
    abs_path: str | None = None
    module: str | None = None
    package: str | None = None
    function: str | None = None
    lineno: int | None = None
    colno: int | None = None
    in_app: bool = False  # 사용자 코드 여부
    context_line: str | None = None
    pre_context: list[str] | None = None
    post_context: list[str] | None = None


class ParsedError(BaseModel):
    """정규화된 에러 정보 (파이프라인 공통 입력)

    issue_id, project_slug는 항상 채워져 있다. 둘 중 하나라도 없으면 파서가
    ParsedError를 만들지 않는다.
    """

    issue_id: str
    short_id: str | None = None
    project_slug: str  # repo 매핑 조회 키

    title: str = ""
    error_type: str | None = None  # NullPointerException, ZeroDivisionError 등
    error_message: str | None = None
    level: str | None = None
    platform: str | None = None
    culprit: str | None = None
    permalink: str | None = None

    frames: list[StackFrame] = []

    @property
    def in_app_frames(self) -> list[StackFrame]:
        return [f for f in self.frames if f.in_app]
