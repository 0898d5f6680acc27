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
from autopr.services.gitprovider.github import GitHubProvider

__all__ = [
    "DirEntry",
    "FileChange",
    "FileContent",
    "GitHubProvider",
    "GitProvider",
    "GitProviderError",
    "PRRequest",
    "PRResponse",
    "SearchMatch",
    "SearchResult",
    "get_provider",
]


def get_provider(kind: str, token: str, owner: str, repo: str, **kwargs) -> GitProvider:
    """provider 종류별 인스턴스 생성"""
    if kind == "github":
        return GitHubProvider(token, owner, repo, **kwargs)
    raise ValueError(f"Unknown git provider: {kind}")
