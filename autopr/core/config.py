from functools import cached_property
from pathlib import Path

from pydantic import BaseModel, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """필수 설정 누락/형식 오류 (시작 불가)"""


class RepoMapping(BaseModel):
    """Sentry 프로젝트 → GitHub 레포 매핑"""

    model_config = {"frozen": True}

    sentry_project: str
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}.git"


def parse_repo_mappings(value: str) -> list[RepoMapping]:
    """REPO_MAPPINGS 파싱

    형식: sentry-project1:owner1/repo1,sentry-project2:owner2/repo2
    """
    mappings: list[RepoMapping] = []

    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue

        project, sep, repo_path = pair.partition(":")
        if not sep:
            raise ValueError(
                f"invalid repo mapping format: {pair!r} (expected sentry-project:owner/repo)"
            )

        owner, sep, repo = repo_path.strip().partition("/")
        if not sep:
            raise ValueError(f"invalid repo path format: {repo_path.strip()!r} (expected owner/repo)")

        project, owner, repo = project.strip(), owner.strip(), repo.strip()
        if not project or not owner or not repo:
            raise ValueError(f"invalid repo mapping: {pair!r} (empty component)")

        mappings.append(RepoMapping(sentry_project=project, owner=owner, repo=repo))

    if not mappings:
        raise ValueError("REPO_MAPPINGS must contain at least one mapping")

    return mappings


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    shutdown_grace_period: int = 30  # seconds, HTTP 리스너 종료 유예
    worker_stop_timeout: float = 30.0  # seconds, 처리 중 job 대기
    log_level: str = "INFO"

    # Sentry
    sentry_webhook_secret: str
    protected_paths: list[str] = ["/webhook"]

    # GitHub
    github_token: str
    github_api_base: str = "https://api.github.com"
    github_timeout: float = 30.0
    pr_draft: bool = True
    pr_labels: str = "sentry,automated-fix"

    # project:owner/repo[,project:owner/repo...]
    repo_mappings: str

    # Job queue
    job_queue_size: int = 100

    # Fix generation (Claude Code CLI)
    anthropic_api_key: str | None = None
    claude_path: str = "claude"
    fix_timeout: float = 600.0  # seconds

    # Workspace
    workspace_dir: Path = Path("/tmp/sentry-autopr-workspaces")

    @field_validator("sentry_webhook_secret", "github_token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("repo_mappings")
    @classmethod
    def _valid_mappings(cls, value: str) -> str:
        parse_repo_mappings(value)
        return value

    @cached_property
    def mappings(self) -> list[RepoMapping]:
        return parse_repo_mappings(self.repo_mappings)

    @property
    def labels(self) -> list[str]:
        return [label.strip() for label in self.pr_labels.split(",") if label.strip()]

    def get_repo_mapping(self, sentry_project: str) -> RepoMapping | None:
        """Sentry 프로젝트 slug로 매핑 조회 (정확히 일치). 없으면 None"""
        for mapping in self.mappings:
            if mapping.sentry_project == sentry_project:
                return mapping
        return None


def load_settings(**overrides) -> Settings:
    """설정 로드 + 검증. 실패 시 ConfigError"""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
