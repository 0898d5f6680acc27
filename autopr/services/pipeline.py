"""Pipeline - job 하나를 PR로 만드는 전체 흐름

repo 매핑 조회 → clone + fix 생성 → 브랜치 생성 → 커밋 → PR

어느 단계든 실패하면 예외를 그대로 올린다. 재시도는 없다 (Worker가 로그만 남김).
브랜치 이름은 issue_id로 정해지므로 같은 이슈를 다시 처리하면 같은 브랜치에
이어서 커밋한다.
"""

import logging
import re
from collections.abc import Callable

from autopr.core.config import RepoMapping, Settings
from autopr.models.error import ParsedError
from autopr.models.fix import FixRequest, FixResult
from autopr.models.job import Job
from autopr.services.fix_generator import ClaudeCodeService
from autopr.services.gitprovider import FileChange, GitProvider, PRRequest, get_provider
from autopr.services.workspace import WorkspaceService

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "sentry-fix/"
MAX_TITLE_LENGTH = 200

ProviderFactory = Callable[[RepoMapping], GitProvider]


def branch_name(issue_id: str) -> str:
    """issue_id → 작업 브랜치 이름 (git ref에 쓸 수 없는 문자는 '-')"""
    safe = re.sub(r"[^A-Za-z0-9._-]+", "-", issue_id)
    safe = re.sub(r"\.{2,}", ".", safe).strip(".-")
    return f"{BRANCH_PREFIX}issue-{safe or 'unknown'}"


def _short_title(error: ParsedError) -> str:
    title = error.title or error.error_type or "Sentry error"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH - 3] + "..."
    return title


def commit_message(error: ParsedError, fix: FixResult) -> str:
    lines = [f"fix: {_short_title(error)}", ""]
    if fix.description:
        lines += [fix.description, ""]
    lines.append(f"Sentry issue: {error.short_id or error.issue_id}")
    if error.permalink:
        lines.append(error.permalink)
    return "\n".join(lines)


def pr_body(error: ParsedError, fix: FixResult) -> str:
    parts = [
        "## Summary",
        "",
        fix.description or "Automated fix for a Sentry error.",
        "",
        "## Error",
        "",
        f"- **Issue**: {error.short_id or error.issue_id}",
        f"- **Exception**: `{error.error_type or 'Unknown'}`",
        f"- **Message**: {error.error_message or '(no message)'}",
    ]
    if error.culprit:
        parts.append(f"- **Culprit**: `{error.culprit}`")
    if error.level:
        parts.append(f"- **Level**: {error.level}")
    if error.permalink:
        parts.append(f"- **Sentry**: {error.permalink}")

    parts += [
        "",
        "## Changed files",
        "",
        *(f"- `{f.path}`" for f in fix.files),
        "",
        "---",
        "_This pull request was generated automatically. Please review carefully before merging._",
    ]
    return "\n".join(parts)


class PipelineService:
    def __init__(
        self,
        settings: Settings,
        *,
        fix_generator: ClaudeCodeService | None = None,
        workspace: WorkspaceService | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.settings = settings
        self.fix_generator = fix_generator or ClaudeCodeService(settings)
        self.workspace = workspace or WorkspaceService(settings.workspace_dir)
        self.provider_factory = provider_factory or self._github_provider

    def _github_provider(self, mapping: RepoMapping) -> GitProvider:
        return get_provider(
            "github",
            self.settings.github_token,
            mapping.owner,
            mapping.repo,
            api_base=self.settings.github_api_base,
            timeout=self.settings.github_timeout,
        )

    async def run(self, job: Job) -> str | None:
        """job 처리 → 생성된 PR URL. repo 매핑이 없으면 None"""
        error = job.parsed_error

        # ── 1. repo 매핑 조회 ─────────────────────────────────────────
        mapping = self.settings.get_repo_mapping(error.project_slug)
        if mapping is None:
            logger.info("No repo mapping found for project %s, skipping issue %s", error.project_slug, error.issue_id)
            return None

        # ── 2. fix 생성 (clone → claude) ──────────────────────────────
        fix = await self._generate_fix(error, mapping)

        # ── 3. 브랜치 → 커밋 → PR ────────────────────────────────────
        async with self.provider_factory(mapping) as provider:
            return await self._open_pull_request(provider, error, fix)

    async def _generate_fix(self, error: ParsedError, mapping: RepoMapping) -> FixResult:
        repo_dir = await self.workspace.prepare(mapping.clone_url, self.settings.github_token)
        try:
            req = FixRequest.from_error(error, mapping.clone_url, self.settings.github_token)
            return await self.fix_generator.generate(req, repo_dir)
        finally:
            self.workspace.cleanup(repo_dir)

    async def _open_pull_request(self, provider: GitProvider, error: ParsedError, fix: FixResult) -> str:
        base_branch = await provider.get_default_branch()
        base_sha = await provider.get_latest_commit_sha(base_branch)

        work_branch = branch_name(error.issue_id)
        await provider.create_branch(work_branch, base_sha)
        logger.info("Branch ready: %s (base: %s@%s)", work_branch, base_branch, base_sha[:7])

        await provider.commit_files(
            work_branch,
            [FileChange(path=f.path.lstrip("/"), content=f.content) for f in fix.files],
            commit_message(error, fix),
        )

        pr = await provider.create_pull_request(
            PRRequest(
                title=f"fix: {_short_title(error)}",
                body=pr_body(error, fix),
                head=work_branch,
                base=base_branch,
                draft=self.settings.pr_draft,
                labels=self.settings.labels,
            )
        )
        return pr.html_url or pr.url
