"""Issue and pull request context records.

These records are the structured input handed to template generation.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class IssueComment(BaseModel):
    """A comment on an issue or pull request."""

    author: str = Field(default="", description="Login of the comment author")
    body: str = Field(default="", description="Comment body in markdown")
    created_at: Optional[str] = Field(default=None, description="ISO timestamp")
    links: List[str] = Field(default_factory=list, description="URLs found in the body")


class IssueRecord(BaseModel):
    """Structured data for one GitHub issue or pull request.

    Attributes:
        id: Issue or pull request number.
        title: Title.
        body: Body in markdown.
        state: "open" or "closed".
        type: "issue" or "pull_request".
        url: HTML URL.
        created_at: ISO creation timestamp.
        updated_at: ISO update timestamp.
        labels: Label names.
        assignees: Assignee logins.
        comments: Comments, oldest first.
        links: URLs found in the body and comments.
    """

    id: int = Field(..., ge=1, description="Issue or pull request number")
    title: str = Field(default="", description="Title")
    body: str = Field(default="", description="Body in markdown")
    state: str = Field(default="open", description="open or closed")
    type: str = Field(default="issue", description="issue or pull_request")
    url: str = Field(default="", description="HTML URL")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    assignees: List[str] = Field(default_factory=list)
    comments: List[IssueComment] = Field(default_factory=list)
    links: List[str] = Field(default_factory=list)


class GitHubRepoInfo(BaseModel):
    """Organization and repository parsed from a repository URL."""

    org: str
    repo: str
    is_github: bool
