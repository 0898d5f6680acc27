from abc import ABC, abstractmethod

from pydantic import BaseModel

REGULAR_FILE_MODE = "100644"
EXECUTABLE_FILE_MODE = "100755"


class FileContent(BaseModel):
    """특정 ref의 파일 내용 (디코딩 완료)"""

    path: str
    content: str
    sha: str = ""
    size: int = 0
    encoding: str = ""


class DirEntry(BaseModel):
    name: str
    path: str
    type: str  # file, dir, symlink, submodule
    size: int = 0
    sha: str = ""


class SearchMatch(BaseModel):
    line_number: int | None = None
    content: str


class SearchResult(BaseModel):
    """코드 검색 결과 (파일 단위)"""

    path: str
    repository: str = ""
    matches: list[SearchMatch] = []


class FileChange(BaseModel):
    """커밋에 들어갈 파일 하나 (blob 전체 교체)"""

    path: str
    content: str
    mode: str = REGULAR_FILE_MODE


class PRRequest(BaseModel):
    title: str
    body: str = ""
    head: str  # source branch
    base: str  # target branch (e.g. "main")
    draft: bool = False
    labels: list[str] = []
    assignees: list[str] = []


class PRResponse(BaseModel):
    number: int
    url: str  # API URL
    html_url: str  # 웹 URL


class GitProviderError(Exception):
    """원격 레포 API 호출 실패 (어느 단계에서 실패했는지 포함)"""

    def __init__(self, step: str, message: str, status_code: int | None = None):
        self.step = step
        self.status_code = status_code
        super().__init__(f"{step}: {message}")


class GitProvider(ABC):
    """원격 git 호스팅 추상 클래스 (GitHub, GitLab 등)

    모든 쓰기 작업은 재실행해도 안전해야 한다. 원격 상태(브랜치, 커밋, PR)는 다른
    실행과 공유되므로 독점을 가정하지 않는다.
    """

    def __init__(self, owner: str, repo: str):
        self._owner = owner
        self._repo = repo

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def repo(self) -> str:
        return self._repo

    @property
    def full_name(self) -> str:
        return f"{self._owner}/{self._repo}"

    @abstractmethod
    async def fetch_file(self, path: str, ref: str | None = None) -> FileContent:
        """ref(브랜치, 태그, 커밋 SHA) 시점의 파일 내용. ref가 없으면 기본 브랜치"""
        pass

    @abstractmethod
    async def list_directory(self, path: str = "", ref: str | None = None) -> list[DirEntry]:
        """디렉토리 항목 목록"""
        pass

    @abstractmethod
    async def search_code(self, query: str) -> list[SearchResult]:
        """이 레포 범위로 코드 검색"""
        pass

    @abstractmethod
    async def get_default_branch(self) -> str:
        """레포 기본 브랜치 이름"""
        pass

    @abstractmethod
    async def get_latest_commit_sha(self, branch: str) -> str:
        """브랜치 끝(tip) 커밋 SHA"""
        pass

    @abstractmethod
    async def create_branch(self, name: str, base_sha: str) -> None:
        """base_sha에서 새 브랜치 생성. 이미 존재하면 성공으로 취급"""
        pass

    @abstractmethod
    async def commit_files(self, branch: str, files: list[FileChange], message: str) -> str:
        """
        브랜치 현재 head 위에 파일 변경을 하나의 커밋으로 올림

        Returns:
            새 커밋 SHA
        """
        pass

    @abstractmethod
    async def create_pull_request(self, req: PRRequest) -> PRResponse:
        """PR 생성. label/assignee 실패는 PR 생성 실패가 아니다"""
        pass

    async def aclose(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
