"""GitHub REST API 기반 GitProvider

로컬 git push 없이 Git Data API(refs/commits/trees)로 커밋을 만든다.
토큰 하나(HTTPS)만 있으면 동작하고, 테스트에서는 httpx transport로 교체 가능하다.
"""

import base64
import binascii
import logging
from urllib.parse import quote

import httpx

from autopr.services.gitprovider.base import (
    DirEntry,
    FileChange,
    FileContent,
    GitProvider,
    GitProviderError,
    PRRequest,
    PRResponse,
    SearchMatch,
    SearchResult,
)

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.github.com"
SEARCH_PAGE_SIZE = 30
TEXT_MATCH_MEDIA_TYPE = "application/vnd.github.text-match+json"


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]


class GitHubProvider(GitProvider):
    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(owner, repo)
        self._client = httpx.AsyncClient(
            base_url=api_base.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            transport=transport,
        )

    def _path(self, suffix: str = "") -> str:
        return f"/repos/{self.owner}/{self.repo}{suffix}"

    @staticmethod
    def _ref(branch: str) -> str:
        return quote(branch, safe="/")

    async def _request(self, step: str, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GitProviderError(step, f"{method} {path} failed: {e}") from e

    async def _call(self, step: str, method: str, path: str, *, expect_object: bool = True, **kwargs):
        """요청 + 상태 코드 확인. 실패 시 GitProviderError"""
        response = await self._request(step, method, path, **kwargs)
        if response.is_error:
            raise GitProviderError(
                step,
                f"{method} {path} → {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise GitProviderError(step, f"{method} {path} returned invalid JSON") from e
        if expect_object and not isinstance(data, dict):
            raise GitProviderError(step, f"{method} {path} returned unexpected payload")
        return data

    async def aclose(self) -> None:
        await self._client.aclose()

    def _contents_path(self, path: str) -> str:
        suffix = quote(path.strip("/"), safe="/")
        return self._path(f"/contents/{suffix}" if suffix else "/contents")

    async def fetch_file(self, path: str, ref: str | None = None) -> FileContent:
        step = f"fetch file {path}" + (f"@{ref}" if ref else "")
        params = {"ref": ref} if ref else None
        data = await self._call(step, "GET", self._contents_path(path), params=params, expect_object=False)

        # 디렉토리면 목록(list)이 온다
        if not isinstance(data, dict):
            raise GitProviderError(step, f"{path} is a directory, not a file")
        if data.get("type", "file") != "file":
            raise GitProviderError(step, f"{path} is a {data.get('type')}, not a file")

        raw = data.get("content") or ""
        encoding = str(data.get("encoding") or "")
        if encoding == "base64":
            try:
                content = base64.b64decode(raw).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise GitProviderError(step, f"failed to decode content: {e}") from e
        else:
            content = str(raw)

        return FileContent(
            path=str(data.get("path") or path),
            content=content,
            sha=str(data.get("sha") or ""),
            size=int(data.get("size") or 0),
            encoding=encoding,
        )

    async def list_directory(self, path: str = "", ref: str | None = None) -> list[DirEntry]:
        step = f"list directory {path or '/'}" + (f"@{ref}" if ref else "")
        params = {"ref": ref} if ref else None
        data = await self._call(step, "GET", self._contents_path(path), params=params, expect_object=False)
        if not isinstance(data, list):
            raise GitProviderError(step, f"{path} is a file, not a directory")

        return [
            DirEntry(
                name=str(item.get("name") or ""),
                path=str(item.get("path") or ""),
                type=str(item.get("type") or ""),
                size=int(item.get("size") or 0),
                sha=str(item.get("sha") or ""),
            )
            for item in data
            if isinstance(item, dict)
        ]

    async def search_code(self, query: str) -> list[SearchResult]:
        # 검색 범위를 이 레포로 제한
        scoped = f"{query} repo:{self.full_name}"
        data = await self._call(
            f"search code {query!r}",
            "GET",
            "/search/code",
            params={"q": scoped, "per_page": SEARCH_PAGE_SIZE},
            headers={"Accept": TEXT_MATCH_MEDIA_TYPE},
        )

        results: list[SearchResult] = []
        for item in data.get("items") or []:
            if not isinstance(item, dict):
                continue
            matches = [
                SearchMatch(content=str(m.get("text") or ""))
                for text_match in item.get("text_matches") or []
                if isinstance(text_match, dict)
                for m in text_match.get("matches") or []
                if isinstance(m, dict)
            ]
            results.append(
                SearchResult(
                    path=str(item.get("path") or ""),
                    repository=str((item.get("repository") or {}).get("full_name") or ""),
                    matches=matches,
                )
            )
        return results

    async def get_default_branch(self) -> str:
        data = await self._call("get repository", "GET", self._path())
        branch = data.get("default_branch")
        if not branch:
            raise GitProviderError("get repository", f"{self.full_name} has no default branch")
        return str(branch)

    async def get_latest_commit_sha(self, branch: str) -> str:
        data = await self._call(
            f"get ref for branch {branch}", "GET", self._path(f"/git/ref/heads/{self._ref(branch)}")
        )
        sha = (data.get("object") or {}).get("sha")
        if not sha:
            raise GitProviderError(f"get ref for branch {branch}", "ref has no object sha")
        return str(sha)

    async def create_branch(self, name: str, base_sha: str) -> None:
        step = f"create branch {name}"
        path = self._path("/git/refs")
        response = await self._request(
            step, "POST", path, json={"ref": f"refs/heads/{name}", "sha": base_sha}
        )

        # 422 "Reference already exists" → 이전 실행이 이미 만든 브랜치
        if response.status_code == 422 and "already exists" in _error_message(response).lower():
            logger.info("Branch %s already exists in %s", name, self.full_name)
            return

        if response.is_error:
            raise GitProviderError(
                step,
                f"POST {path} → {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        logger.info("Created branch %s at %s in %s", name, base_sha[:7], self.full_name)

    async def commit_files(self, branch: str, files: list[FileChange], message: str) -> str:
        if not files:
            raise GitProviderError(f"commit to {branch}", "no file changes to commit")

        # 1. 브랜치 현재 커밋 (재실행 시에도 항상 최신 head 기준)
        parent_sha = await self.get_latest_commit_sha(branch)

        # 2. 부모 커밋의 tree
        commit = await self._call(
            f"get parent commit {parent_sha[:7]} of {branch}",
            "GET",
            self._path(f"/git/commits/{parent_sha}"),
        )
        base_tree_sha = (commit.get("tree") or {}).get("sha")
        if not base_tree_sha:
            raise GitProviderError(f"get parent commit {parent_sha[:7]} of {branch}", "commit has no tree")

        # 3. base tree 위에 변경 파일만 덮어쓴 새 tree
        tree = await self._call(
            f"create tree on {branch} ({', '.join(f.path for f in files)})",
            "POST",
            self._path("/git/trees"),
            json={
                "base_tree": base_tree_sha,
                "tree": [
                    {"path": f.path, "mode": f.mode, "type": "blob", "content": f.content}
                    for f in files
                ],
            },
        )

        if not tree.get("sha"):
            raise GitProviderError(f"create tree on {branch}", "response has no tree sha")

        # 4. 부모 하나짜리 새 커밋
        new_commit = await self._call(
            f"create commit on {branch}",
            "POST",
            self._path("/git/commits"),
            json={"message": message, "tree": tree["sha"], "parents": [parent_sha]},
        )
        if not new_commit.get("sha"):
            raise GitProviderError(f"create commit on {branch}", "response has no commit sha")
        new_sha = str(new_commit["sha"])

        # 5. 브랜치 ref 이동. 여기서 실패하면 새 커밋은 참조 없이 남을 뿐 (무해)
        await self._call(
            f"update ref for branch {branch}",
            "PATCH",
            self._path(f"/git/refs/heads/{self._ref(branch)}"),
            json={"sha": new_sha, "force": False},
        )

        logger.info("Committed %d file(s) to %s@%s: %s", len(files), self.full_name, branch, new_sha[:7])
        return new_sha

    async def create_pull_request(self, req: PRRequest) -> PRResponse:
        created = await self._call(
            f"create pull request {req.head} -> {req.base}",
            "POST",
            self._path("/pulls"),
            json={
                "title": req.title,
                "body": req.body,
                "head": req.head,
                "base": req.base,
                "draft": req.draft,
            },
        )
        number = created.get("number")
        if not isinstance(number, int) or isinstance(number, bool):
            raise GitProviderError(f"create pull request {req.head} -> {req.base}", "response has no PR number")
        pr = PRResponse(
            number=number,
            url=str(created.get("url") or ""),
            html_url=str(created.get("html_url") or ""),
        )

        # label/assignee는 실패해도 PR은 생성된 것으로 본다
        if req.labels:
            try:
                await self._call(
                    f"add labels to #{pr.number}",
                    "POST",
                    self._path(f"/issues/{pr.number}/labels"),
                    json={"labels": req.labels},
                    expect_object=False,
                )
            except GitProviderError as e:
                logger.warning("Failed to add labels to PR #%d: %s", pr.number, e)

        if req.assignees:
            try:
                await self._call(
                    f"add assignees to #{pr.number}",
                    "POST",
                    self._path(f"/issues/{pr.number}/assignees"),
                    json={"assignees": req.assignees},
                )
            except GitProviderError as e:
                logger.warning("Failed to add assignees to PR #%d: %s", pr.number, e)

        logger.info("Created PR #%d in %s: %s", pr.number, self.full_name, pr.html_url)
        return pr
