import math
from typing import Annotated, Any, TypeVar

from pydantic import AliasChoices, BaseModel, BeforeValidator, Field, ValidationError, WrapValidator

from autopr.models.error import ParsedError, StackFrame
from autopr.services.parsers.base import ErrorParser

T = TypeVar("T")

# 큐에 넣을 lifecycle action
PROCESS_ACTIONS = frozenset({"created", "triggered"})


# ── 관대한(lenient) 필드 타입 ──────────────────────────────────────
# Sentry payload 스키마는 보장되지 않으므로 타입이 안 맞는 값은 "없음"으로 취급한다.

def _absent_on_error(value: Any, handler) -> Any:
    try:
        return handler(value)
    except ValidationError:
        return None


def _stringify_id(value: Any) -> Any:
    # 숫자 ID(1234)도 문자열 ID로 받음
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _narrow_int(value: Any) -> Any:
    # JSON 숫자는 float로 올 수 있음 (42.0) → int
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    return value


def _objects_only(value: Any) -> list:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


Lenient = Annotated[T | None, WrapValidator(_absent_on_error)]
Identifier = Annotated[Lenient[str], BeforeValidator(_stringify_id)]
LineNumber = Annotated[Lenient[int], BeforeValidator(_narrow_int)]
ObjectList = Annotated[list[T], BeforeValidator(_objects_only)]


def _alias(*names: str) -> Any:
    return Field(None, validation_alias=AliasChoices(*names))


class _SentryModel(BaseModel):
    model_config = {"extra": "ignore"}


# ── Sentry 전용 Pydantic 모델 (파싱용) ─────────────────────────────

class SentryFrame(_SentryModel):
    filename: Lenient[str] = None
    abs_path: Lenient[str] = _alias("absPath", "abs_path")
    module: Lenient[str] = None
    package: Lenient[str] = None
    function: Lenient[str] = None
    lineno: LineNumber = _alias("lineNo", "lineno")
    colno: LineNumber = _alias("colNo", "colno")
    in_app: Lenient[bool] = _alias("inApp", "in_app")
    context_line: Lenient[str] = _alias("contextLine", "context_line")
    pre_context: Lenient[list[str]] = _alias("preContext", "pre_context")
    post_context: Lenient[list[str]] = _alias("postContext", "post_context")


class SentryStacktrace(_SentryModel):
    frames: ObjectList[SentryFrame] = []


class SentryExceptionValue(_SentryModel):
    """exception.values[] 항목"""
    type: Lenient[str] = None  # ZeroDivisionError
    value: Lenient[str] = None  # division by zero
    module: Lenient[str] = None
    stacktrace: Lenient[SentryStacktrace] = None


class SentryException(_SentryModel):
    values: ObjectList[SentryExceptionValue] = []


class SentryEntry(_SentryModel):
    """event.entries[] 항목 (exception, breadcrumbs, request 등)"""
    type: Lenient[str] = None
    data: Any = None


class SentryEvent(_SentryModel):
    event_id: Identifier = _alias("eventID", "event_id")
    title: Lenient[str] = None
    message: Lenient[str] = None
    platform: Lenient[str] = None
    entries: ObjectList[SentryEntry] = []
    exception: Lenient[SentryException] = None  # issue alert 형식


class SentryProject(_SentryModel):
    id: Identifier = None
    name: Lenient[str] = None
    slug: Lenient[str] = None
    platform: Lenient[str] = None


class SentryMetadata(_SentryModel):
    type: Lenient[str] = None
    value: Lenient[str] = None
    filename: Lenient[str] = None
    function: Lenient[str] = None


class SentryIssue(_SentryModel):
    id: Identifier = None
    short_id: Lenient[str] = _alias("shortId", "short_id")
    title: Lenient[str] = None
    culprit: Lenient[str] = None
    permalink: Lenient[str] = None
    level: Lenient[str] = None
    status: Lenient[str] = None
    platform: Lenient[str] = None
    project: Lenient[SentryProject] = None
    metadata: Lenient[SentryMetadata] = None


class SentryWebhookData(_SentryModel):
    issue: Lenient[SentryIssue] = None
    event: Lenient[SentryEvent] = None


class SentryActor(_SentryModel):
    type: Lenient[str] = None
    id: Identifier = None
    name: Lenient[str] = None


class SentryWebhook(_SentryModel):
    action: Lenient[str] = None
    data: Lenient[SentryWebhookData] = None
    actor: Lenient[SentryActor] = None


# ── 파서 ──────────────────────────────────────────────────────────

def _exception_values(event: SentryEvent | None) -> list[SentryExceptionValue]:
    """event의 exception entry에서 exception.values[] 추출

    entries[] 중 type == "exception"만 본다. entries에 없으면 alert 형식의
    event.exception을 사용한다.
    """
    if event is None:
        return []

    values: list[SentryExceptionValue] = []
    found = False
    for entry in event.entries:
        if entry.type != "exception" or not isinstance(entry.data, dict):
            continue
        found = True
        values.extend(SentryException.model_validate(entry.data).values)

    if not found and event.exception:
        values = event.exception.values
    return values


def _to_frame(f: SentryFrame) -> StackFrame:
    return StackFrame(
        filename=f.filename,
        abs_path=f.abs_path,
        module=f.module,
        package=f.package,
        function=f.function,
        lineno=f.lineno,
        colno=f.colno,
        in_app=bool(f.in_app),
        context_line=f.context_line,
        pre_context=f.pre_context,
        post_context=f.post_context,
    )


class SentryParser(ErrorParser):
    """Sentry webhook 파서"""

    @property
    def source(self) -> str:
        return "sentry"

    def load(self, payload: dict) -> SentryWebhook:
        return SentryWebhook.model_validate(payload if isinstance(payload, dict) else {})

    def should_process(self, payload: dict) -> bool:
        return self.load(payload).action in PROCESS_ACTIONS

    def parse(self, payload: dict) -> ParsedError | None:
        return self.parse_webhook(self.load(payload))

    def parse_webhook(self, webhook: SentryWebhook) -> ParsedError | None:
        data = webhook.data
        issue = data.issue if data else None
        if issue is None:
            return None

        project_slug = issue.project.slug if issue.project else None
        if not issue.id or not project_slug:
            return None

        exceptions = _exception_values(data.event)

        # 모든 exception value의 프레임을 순서 그대로 (chained exception 포함)
        frames = [
            _to_frame(f)
            for exc in exceptions
            if exc.stacktrace
            for f in exc.stacktrace.frames
        ]

        metadata = issue.metadata or SentryMetadata()
        error_type = metadata.type
        error_message = metadata.value
        if not error_type and exceptions:
            # metadata가 없으면 마지막 exception이 실제 에러
            error_type = exceptions[-1].type
            error_message = error_message or exceptions[-1].value

        title = issue.title
        if not title and error_type:
            title = f"{error_type}: {error_message}" if error_message else error_type

        return ParsedError(
            issue_id=issue.id,
            short_id=issue.short_id,
            project_slug=project_slug,
            title=title or "Unknown Error",
            error_type=error_type,
            error_message=error_message,
            level=issue.level,
            platform=issue.platform or (issue.project.platform if issue.project else None),
            culprit=issue.culprit,
            permalink=issue.permalink,
            frames=frames,
        )
