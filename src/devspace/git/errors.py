"""Classification of git failures.

classify_git_error() is the only place that inspects git's stderr text.
Everything else switches on the GitErrorKind it returns.
"""

import re
from enum import Enum
from typing import Tuple


class GitErrorKind(str, Enum):
    """Closed set of git failure classes.

    Attributes:
        BRANCH_EXISTS: The branch to create already exists.
        WORKTREE_IN_USE: The branch or path is held by another working tree.
        INVALID_REF: The base or target ref does not resolve.
        NOT_A_GIT_REPO: The repository path is not a git repository.
        NO_REMOTE: The remote does not exist.
        OTHER: Anything else; treated as fatal.
    """

    BRANCH_EXISTS = "branch_exists"
    WORKTREE_IN_USE = "worktree_in_use"
    INVALID_REF = "invalid_ref"
    NOT_A_GIT_REPO = "not_a_git_repo"
    NO_REMOTE = "no_remote"
    OTHER = "other"


# Order matters: "a branch named 'x' already exists" must be tested before
# the generic "already exists" reported for occupied working-tree paths
_PATTERNS: Tuple[Tuple[GitErrorKind, "re.Pattern[str]"], ...] = (
    (GitErrorKind.BRANCH_EXISTS, re.compile(r"branch named .* already exists", re.IGNORECASE)),
    (GitErrorKind.WORKTREE_IN_USE, re.compile(r"already used by worktree", re.IGNORECASE)),
    (GitErrorKind.WORKTREE_IN_USE, re.compile(r"already checked out", re.IGNORECASE)),
    (GitErrorKind.WORKTREE_IN_USE, re.compile(r"already registered", re.IGNORECASE)),
    (GitErrorKind.WORKTREE_IN_USE, re.compile(r"already exists", re.IGNORECASE)),
    (GitErrorKind.INVALID_REF, re.compile(r"invalid reference", re.IGNORECASE)),
    (GitErrorKind.INVALID_REF, re.compile(r"not a valid object name", re.IGNORECASE)),
    (GitErrorKind.INVALID_REF, re.compile(r"unknown revision", re.IGNORECASE)),
    (GitErrorKind.NOT_A_GIT_REPO, re.compile(r"does not appear to be a git repository", re.IGNORECASE)),
    (GitErrorKind.NOT_A_GIT_REPO, re.compile(r"not a git repository", re.IGNORECASE)),
    (GitErrorKind.NO_REMOTE, re.compile(r"No such remote", re.IGNORECASE)),
)

RECOVERABLE_KINDS = frozenset(
    {
        GitErrorKind.BRANCH_EXISTS,
        GitErrorKind.WORKTREE_IN_USE,
        GitErrorKind.INVALID_REF,
        GitErrorKind.NOT_A_GIT_REPO,
        GitErrorKind.NO_REMOTE,
    }
)

# Kinds where retrying another form of "worktree add" cannot help
UNREACHABLE_KINDS = frozenset({GitErrorKind.NOT_A_GIT_REPO, GitErrorKind.NO_REMOTE})


def classify_git_error(stderr: str) -> GitErrorKind:
    """Map raw git stderr to a GitErrorKind.

    Example:
        >>> classify_git_error("fatal: 'main' is already checked out at '/src/x'")
        <GitErrorKind.WORKTREE_IN_USE: 'worktree_in_use'>
    """
    for kind, pattern in _PATTERNS:
        if pattern.search(stderr or ""):
            return kind
    return GitErrorKind.OTHER


def is_recoverable(kind: GitErrorKind) -> bool:
    """Return True if the fallback chain may continue after this kind."""
    return kind in RECOVERABLE_KINDS
