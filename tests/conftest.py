import base64
import hashlib
import hmac
import json
from collections.abc import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from autopr.core.config import Settings
from autopr.main import create_app
from autopr.models.job import Job

WEBHOOK_SECRET = "s3cret"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def sign() -> Callable[..., str]:
    """body 서명 헬퍼 (기본: 테스트 secret)"""

    def _sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
        return compute_signature(secret, body)

    return _sign


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        sentry_webhook_secret=WEBHOOK_SECRET,
        github_token="test-token",
        repo_mappings="test-project:owner/repo, other-project:acme/widgets",
        workspace_dir=tmp_path / "workspaces",
        job_queue_size=10,
    )


class RecordingPipeline:
    """처리한 job만 기록하는 가짜 Pipeline"""

    def __init__(self):
        self.jobs: list[Job] = []

    async def run(self, job: Job) -> str | None:
        self.jobs.append(job)
        return None


@pytest.fixture
def make_client(settings):
    """설정을 바꿔 TestClient 생성 (worker 미실행 → 큐 내용 직접 확인)"""
    clients: list[TestClient] = []

    def _make(**overrides) -> TestClient:
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        app = create_app(app_settings, pipeline=RecordingPipeline(), start_worker=False)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def sentry_payload() -> dict:
    """Sentry Issue webhook payload (integration platform, API 형식)"""
    return {
        "action": "created",
        "installation": {"uuid": "7672a8c7-6744-4406-8495-69d6d74c0d9a"},
        "data": {
            "issue": {
                "id": "12345",
                "shortId": "TEST-PROJECT-1",
                "title": "ZeroDivisionError: division by zero",
                "culprit": "app.main in trigger_error",
                "permalink": "https://sentry.io/organizations/test/issues/12345/",
                "logger": None,
                "level": "error",
                "status": "unresolved",
                "platform": "python",
                "project": {
                    "id": "2",
                    "name": "Test Project",
                    "slug": "test-project",
                    "platform": "python",
                },
                "metadata": {
                    "type": "ZeroDivisionError",
                    "value": "division by zero",
                    "filename": "app/main.py",
                    "function": "trigger_error",
                },
                "count": "3",
                "userCount": 1,
            },
            "event": {
                "eventID": "3c71983fe8bc4b45ae3e59fd08bbb4e2",
                "title": "ZeroDivisionError: division by zero",
                "platform": "python",
                "entries": [
                    {"type": "breadcrumbs", "data": {"values": [{"category": "query", "message": "SELECT 1"}]}},
                    {
                        "type": "exception",
                        "data": {
                            "values": [
                                {
                                    "type": "ZeroDivisionError",
                                    "value": "division by zero",
                                    "module": None,
                                    "stacktrace": {
                                        "frames": [
                                            {
                                                "filename": "starlette/routing.py",
                                                "absPath": "/venv/lib/starlette/routing.py",
                                                "module": "starlette.routing",
                                                "function": "app",
                                                "lineNo": 100.0,
                                                "colNo": 5.0,
                                                "inApp": False,  # 라이브러리 코드
                                            },
                                            {
                                                "filename": "app/utils.py",
                                                "absPath": "/app/app/utils.py",
                                                "module": "app.utils",
                                                "function": "helper",
                                                "lineNo": 50.0,
                                                "inApp": True,  # 사용자 코드
                                                "contextLine": "    result = process(data)",
                                                "preContext": ["def helper():", "    data = get_data()"],
                                                "postContext": ["    return result", ""],
                                            },
                                            {
                                                "filename": "app/main.py",
                                                "absPath": "/app/app/main.py",
                                                "module": "app.main",
                                                "function": "trigger_error",
                                                "lineNo": 42.0,
                                                "colNo": 9.0,
                                                "inApp": True,  # 사용자 코드
                                            },
                                        ]
                                    },
                                }
                            ]
                        },
                    },
                    {"type": "request", "data": {"url": "http://localhost/api/test", "method": "GET"}},
                ],
            },
        },
        "actor": {"type": "application", "id": "sentry", "name": "Sentry"},
    }


@pytest.fixture
def sentry_payload_minimal() -> dict:
    """issue만 있는 최소 payload (event/stacktrace 없음)"""
    return {
        "action": "triggered",
        "data": {
            "issue": {
                "id": "abc123",
                "title": "Minimal error",
                "level": "warning",
                "project": {"slug": "test-project"},
            },
        },
    }


class FakeGitHub:
    """GitHub Git Data / Pulls API 인메모리 서버 (httpx.MockTransport용)

    commits: sha → {"tree": tree_sha, "parents": [...], "message": ...}
    trees:   sha → {path: (mode, content)}
    refs:    branch → commit sha
    """

    def __init__(self, owner: str = "owner", repo: str = "repo"):
        self.prefix = f"/repos/{owner}/{repo}"
        self.default_branch = "main"
        self.trees: dict[str, dict[str, tuple[str, str]]] = {
            "tree0": {
                "README.md": ("100644", "# repo\n"),
                "app/main.py": ("100644", "def trigger_error():\n    return 1 / 0\n"),
            }
        }
        self.commits: dict[str, dict] = {"base0": {"tree": "tree0", "parents": [], "message": "init"}}
        self.refs: dict[str, str] = {"main": "base0"}
        self.pulls: list[dict] = []
        self.labels: dict[int, list[str]] = {}
        self.assignees: dict[int, list[str]] = {}
        self.fail_labels = False
        self.fail_assignees = False
        self.fail_ref_update = False
        self.requests: list[tuple[str, str]] = []
        self.search_queries: list[str] = []
        self._seq = 0

    def _next(self, kind: str) -> str:
        self._seq += 1
        return f"{kind}{self._seq}"

    def files_at(self, branch: str) -> dict[str, str]:
        tree = self.trees[self.commits[self.refs[branch]]["tree"]]
        return {path: content for path, (_, content) in tree.items()}

    def _tree_at(self, ref: str | None) -> dict[str, tuple[str, str]] | None:
        sha = self.refs.get(ref or self.default_branch, ref)
        commit = self.commits.get(sha)
        return self.trees[commit["tree"]] if commit else None

    def _contents(self, path: str, ref: str | None) -> httpx.Response:
        tree = self._tree_at(ref)
        if tree is None:
            return httpx.Response(404, json={"message": "No commit found for the ref"})

        if path in tree:
            mode, content = tree[path]
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "name": path.rsplit("/", 1)[-1],
                    "path": path,
                    "sha": f"blob-{path}",
                    "size": len(content.encode()),
                    "encoding": "base64",
                    "content": base64.encodebytes(content.encode()).decode(),
                },
            )

        prefix = f"{path}/" if path else ""
        entries: dict[str, dict] = {}
        for file_path, (_, content) in sorted(tree.items()):
            if not file_path.startswith(prefix):
                continue
            name, _, rest = file_path[len(prefix):].partition("/")
            if rest:
                entries.setdefault(name, {"type": "dir", "name": name, "path": prefix + name, "size": 0, "sha": ""})
            else:
                entries[name] = {
                    "type": "file",
                    "name": name,
                    "path": file_path,
                    "size": len(content.encode()),
                    "sha": f"blob-{file_path}",
                }
        if not entries:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=list(entries.values()))

    def _search(self, q: str) -> httpx.Response:
        self.search_queries.append(q)
        term = q.split(" repo:", 1)[0]
        items = []
        for path, (_, content) in sorted(self.trees[self.commits[self.refs[self.default_branch]]["tree"]].items()):
            lines = [line for line in content.splitlines() if term in line]
            if lines:
                items.append(
                    {
                        "path": path,
                        "repository": {"full_name": self.prefix.removeprefix("/repos/")},
                        "text_matches": [{"fragment": line, "matches": [{"text": term}]} for line in lines],
                    }
                )
        return httpx.Response(200, json={"total_count": len(items), "items": items})

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.requests.append((method, path))

        if method == "GET" and path == "/search/code":
            return self._search(request.url.params["q"])

        if not path.startswith(self.prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        path = path[len(self.prefix):]
        body = json.loads(request.content) if request.content else {}

        if method == "GET" and (path == "/contents" or path.startswith("/contents/")):
            return self._contents(path.removeprefix("/contents").strip("/"), request.url.params.get("ref"))

        if method == "GET" and path == "":
            return httpx.Response(200, json={"default_branch": self.default_branch})

        if method == "GET" and path.startswith("/git/ref/heads/"):
            branch = path[len("/git/ref/heads/"):]
            if branch not in self.refs:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"ref": f"refs/heads/{branch}", "object": {"sha": self.refs[branch]}})

        if method == "POST" and path == "/git/refs":
            branch = body["ref"].removeprefix("refs/heads/")
            if branch in self.refs:
                return httpx.Response(422, json={"message": "Reference already exists"})
            if body["sha"] not in self.commits:
                return httpx.Response(422, json={"message": "Object does not exist"})
            self.refs[branch] = body["sha"]
            return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})

        if method == "GET" and path.startswith("/git/commits/"):
            sha = path[len("/git/commits/"):]
            if sha not in self.commits:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"sha": sha, "tree": {"sha": self.commits[sha]["tree"]}})

        if method == "POST" and path == "/git/trees":
            tree = dict(self.trees[body["base_tree"]])
            for entry in body["tree"]:
                tree[entry["path"]] = (entry["mode"], entry["content"])
            sha = self._next("tree")
            self.trees[sha] = tree
            return httpx.Response(201, json={"sha": sha})

        if method == "POST" and path == "/git/commits":
            sha = self._next("commit")
            self.commits[sha] = {"tree": body["tree"], "parents": body["parents"], "message": body["message"]}
            return httpx.Response(201, json={"sha": sha})

        if method == "PATCH" and path.startswith("/git/refs/heads/"):
            branch = path[len("/git/refs/heads/"):]
            if self.fail_ref_update:
                return httpx.Response(500, json={"message": "Server Error"})
            new_sha = body["sha"]
            # force=false → fast-forward만 허용
            if not body.get("force") and self.refs.get(branch) not in self.commits[new_sha]["parents"]:
                return httpx.Response(422, json={"message": "Update is not a fast forward"})
            self.refs[branch] = new_sha
            return httpx.Response(200, json={"ref": f"refs/heads/{branch}", "object": {"sha": new_sha}})

        if method == "POST" and path == "/pulls":
            number = len(self.pulls) + 1
            self.pulls.append(body)
            return httpx.Response(
                201,
                json={
                    "number": number,
                    "url": f"https://api.github.com{self.prefix}/pulls/{number}",
                    "html_url": f"https://github.com{self.prefix.removeprefix('/repos')}/pull/{number}",
                },
            )

        if method == "POST" and path.endswith("/labels"):
            if self.fail_labels:
                return httpx.Response(403, json={"message": "Resource not accessible by integration"})
            number = int(path.split("/")[2])
            self.labels[number] = body["labels"]
            return httpx.Response(200, json=[{"name": name} for name in body["labels"]])

        if method == "POST" and path.endswith("/assignees"):
            if self.fail_assignees:
                return httpx.Response(500, json={"message": "Server Error"})
            number = int(path.split("/")[2])
            self.assignees[number] = body["assignees"]
            return httpx.Response(201, json={"number": number})

        return httpx.Response(404, json={"message": f"unhandled {method} {path}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()
