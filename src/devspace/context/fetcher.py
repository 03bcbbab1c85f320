"""Issue context retrieval.

This module provides the context-fetch collaborator used by the
orchestrator's ``context`` operation:
- ContextFetcher: Abstract interface returning IssueRecord lists
- NullContextFetcher: Returns no records
- GitHubContextFetcher: Async GitHub REST client with retry and a TTL cache

Issues are fetched concurrently. A failure for one issue is logged and
skipped, except authentication failures and a missing issue when only
one was requested; those are raised so the operator sees them.
"""

import asyncio
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from src.devspace.context.models import GitHubRepoInfo, IssueComment, IssueRecord


logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300

_URL_PATTERN = re.compile(r"https?://[^\s)\]>\"']+")

_GITHUB_URL_PATTERN = re.compile(
    r"github\.com[/:](?P<org>[^/\s]+)/(?P<repo>[^/\s]+?)(?:\.git)?/?$"
)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.request_url = request_url
        super().__init__(message)


class GitHubAuthError(GitHubAPIError):
    """Raised for 401 responses and 403 responses that are not rate limits."""

    pass


class GitHubNotFoundError(GitHubAPIError):
    """Raised for 404 responses."""

    pass


def extract_urls(text: str) -> List[str]:
    """Return the distinct http(s) URLs in text, in order of appearance."""
    return list(dict.fromkeys(m.rstrip(".,;:") for m in _URL_PATTERN.findall(text or "")))


def extract_github_repo_info(repo_url: str) -> GitHubRepoInfo:
    """Parse organization and repository from an https or ssh URL.

    Example:
        >>> extract_github_repo_info("git@github.com:acme/widgets.git")
        GitHubRepoInfo(org='acme', repo='widgets', is_github=True)
    """
    url = repo_url.strip()
    match = _GITHUB_URL_PATTERN.search(url)
    if match:
        return GitHubRepoInfo(org=match.group("org"), repo=match.group("repo"), is_github=True)

    name = re.split(r"[/:]", url.rstrip("/"))[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return GitHubRepoInfo(org="unknown", repo=name or "unknown", is_github=False)


class ContextFetcher(ABC):
    """Fetches structured context for issue or pull request numbers."""

    @abstractmethod
    async def fetch(
        self,
        issue_ids: Sequence[int],
        org: str,
        repo: str,
    ) -> List[IssueRecord]:
        """Return records for the given issue numbers."""
        pass

    async def close(self) -> None:
        pass


class NullContextFetcher(ContextFetcher):
    """Context fetcher that returns no records."""

    async def fetch(
        self,
        issue_ids: Sequence[int],
        org: str,
        repo: str,
    ) -> List[IssueRecord]:
        return []


class GitHubContextFetcher(ContextFetcher):
    """Fetches issues and comments from the GitHub REST API.

    Attributes:
        token: Optional API token; unauthenticated requests are allowed.
        base_url: API base URL (supports GitHub Enterprise).
        max_retries: Retries for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.
        cache_ttl_seconds: How long fetched records are reused.
    """

    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.cache_ttl_seconds = cache_ttl_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._cache: Dict[Tuple[str, str, int], Tuple[float, IssueRecord]] = {}

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "devspace/0.1",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubContextFetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch(
        self,
        issue_ids: Sequence[int],
        org: str,
        repo: str,
    ) -> List[IssueRecord]:
        """Fetch issues concurrently.

        Args:
            issue_ids: Issue or pull request numbers.
            org: Repository owner.
            repo: Repository name.

        Returns:
            Records for the issues that could be fetched, in request order.

        Raises:
            GitHubAuthError: If the API rejects the credentials.
            GitHubNotFoundError: If the only requested issue does not exist.
        """
        if not issue_ids:
            return []

        single = len(issue_ids) == 1

        async def fetch_one(issue_id: int) -> Optional[IssueRecord]:
            try:
                return await self.fetch_issue(issue_id, org, repo)
            except GitHubAuthError:
                raise
            except GitHubNotFoundError:
                if single:
                    raise
                logger.warning(
                    "Issue #%d not found in %s/%s, skipping",
                    issue_id,
                    org,
                    repo,
                )
                return None
            except GitHubAPIError as e:
                logger.warning(
                    "Error fetching issue #%d: %s",
                    issue_id,
                    e.message,
                    extra={"org": org, "repo": repo, "status_code": e.status_code},
                )
                return None

        results = await asyncio.gather(*(fetch_one(i) for i in issue_ids))
        return [r for r in results if r is not None]

    async def fetch_issue(self, issue_id: int, org: str, repo: str) -> IssueRecord:
        """Fetch one issue with its comments, served from the cache when fresh."""
        cache_key = (org, repo, issue_id)
        cached = self._cache.get(cache_key)
        if cached is not None and time.monotonic() - cached[0] < self.cache_ttl_seconds:
            logger.debug("Using cached data for #%d", issue_id)
            return cached[1]

        response = await self._request("GET", f"/repos/{org}/{repo}/issues/{issue_id}")
        data = response.json()
        comments = await self._fetch_comments(issue_id, org, repo)
        record = self._build_record(data, comments)

        self._cache[cache_key] = (time.monotonic(), record)
        return record

    async def _fetch_comments(self, issue_id: int, org: str, repo: str) -> List[IssueComment]:
        try:
            response = await self._request(
                "GET", f"/repos/{org}/{repo}/issues/{issue_id}/comments"
            )
        except GitHubAPIError as e:
            logger.warning("Failed to fetch comments for #%d: %s", issue_id, e.message)
            return []
        return [
            IssueComment(
                author=(item.get("user") or {}).get("login", ""),
                body=item.get("body") or "",
                created_at=item.get("created_at"),
                links=extract_urls(item.get("body") or ""),
            )
            for item in response.json()
        ]

    @staticmethod
    def _build_record(data: Dict[str, Any], comments: List[IssueComment]) -> IssueRecord:
        body = data.get("body") or ""
        links = extract_urls(body)
        for comment in comments:
            links.extend(link for link in comment.links if link not in links)
        return IssueRecord(
            id=data["number"],
            title=data.get("title") or "",
            body=body,
            state=data.get("state") or "open",
            type="pull_request" if data.get("pull_request") else "issue",
            url=data.get("html_url") or "",
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            labels=[label.get("name", "") for label in data.get("labels") or []],
            assignees=[a.get("login", "") for a in data.get("assignees") or []],
            comments=comments,
            links=links,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    async def _request(self, method: str, path: str) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Raises:
            GitHubAuthError: For 401 and non-rate-limit 403 responses.
            GitHubNotFoundError: For 404 responses.
            GitHubAPIError: For other failures after all retries.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method=method, url=path)
            except httpx.RequestError as e:
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            status = response.status_code
            rate_limited = status == 429 or (
                status == 403 and response.headers.get("x-ratelimit-remaining") == "0"
            )

            if (status in self.RETRYABLE_STATUS_CODES or rate_limited) and attempt < self.max_retries:
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": status,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if status == 401 or (status == 403 and not rate_limited):
                raise GitHubAuthError(
                    "GitHub API authentication failed; check GITHUB_TOKEN permissions",
                    status_code=status,
                    request_url=str(response.url),
                )
            if status == 404:
                raise GitHubNotFoundError(
                    f"Not found: {path}",
                    status_code=status,
                    request_url=str(response.url),
                )
            if status >= 400:
                raise GitHubAPIError(
                    f"GitHub API error: {status}",
                    status_code=status,
                    request_url=str(response.url),
                )

            return response

        raise GitHubAPIError(
            f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=f"{self.base_url}{path}",
        )
