"""Issue context retrieval for workspace generation."""

from src.devspace.context.fetcher import (
    ContextFetcher,
    GitHubAPIError,
    GitHubAuthError,
    GitHubContextFetcher,
    GitHubNotFoundError,
    NullContextFetcher,
    extract_github_repo_info,
    extract_urls,
)
from src.devspace.context.models import GitHubRepoInfo, IssueComment, IssueRecord

__all__ = [
    "ContextFetcher",
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubContextFetcher",
    "GitHubNotFoundError",
    "GitHubRepoInfo",
    "IssueComment",
    "IssueRecord",
    "NullContextFetcher",
    "extract_github_repo_info",
    "extract_urls",
]
