"""
Platform models for MergeGuard.

Defines the normalized change descriptor produced by webhook validation and
the platform-specific payload shapes it is parsed from.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PlatformType(str, Enum):
    """Supported source-control platforms."""

    GITLAB = "gitlab"
    GITHUB = "github"


class ReviewStatus(str, Enum):
    """Lifecycle of a review job."""

    PENDING = "pending"  # Created, waiting in queue
    PROCESSING = "processing"  # Worker executing
    COMPLETED = "completed"  # Result persisted
    FAILED = "failed"  # Terminal failure recorded


class EventStatus(str, Enum):
    """Lifecycle of a recorded webhook delivery."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED = "ignored"


class ValidationOutcome(str, Enum):
    """Result kind of webhook validation."""

    IGNORED = "ignored"
    REJECTED = "rejected"
    ACCEPTED = "accepted"


class ChangeDescriptor(BaseModel):
    """
    Normalized change request extracted from a webhook payload.

    GitLab merge requests and GitHub pull requests are both reduced to this
    shape so the ingestion path never touches platform-specific fields.
    """

    model_config = ConfigDict(frozen=True)  # Immutable after creation

    platform: PlatformType = Field(..., description="Source platform identifier")
    repository_external_id: str = Field(..., min_length=1, description="Repository id on the platform")
    change_id: int = Field(..., ge=1, description="Platform-internal change id (MR/PR id)")
    change_number: int = Field(..., ge=1, description="Human-facing change number (MR iid / PR number)")
    action: str = Field(default="", description="Platform action verb (open, update, synchronize...)")
    state: str = Field(default="", description="Platform state of the change (opened, open, merged...)")
    title: str = Field(default="", description="Change title")
    author: str = Field(default="", description="Author username")
    source_branch: str = Field(default="", description="Branch being merged")
    target_branch: str = Field(default="", description="Branch merged into")
    web_url: str = Field(default="", description="Browser URL of the change")
    head_commit_id: str = Field(default="", description="Latest commit sha on the source branch")


# ============================================================================
# GitLab merge_request payload
# ============================================================================


class GitLabUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = ""
    name: str = ""


class GitLabProject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    path_with_namespace: str = ""
    web_url: str = ""


class GitLabCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""


class GitLabMergeRequestAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    iid: int
    title: str = ""
    state: str = ""
    action: str = ""
    source_branch: str = ""
    target_branch: str = ""
    url: str = ""
    last_commit: GitLabCommit | None = None


class GitLabMergeRequestEvent(BaseModel):
    """Subset of the GitLab ``Merge Request Hook`` body used for review."""

    model_config = ConfigDict(extra="ignore")

    object_kind: str
    user: GitLabUser = Field(default_factory=GitLabUser)
    project: GitLabProject
    object_attributes: GitLabMergeRequestAttributes


# ============================================================================
# GitHub pull_request payload
# ============================================================================


class GitHubUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str = ""


class GitHubRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str = ""
    sha: str = ""


class GitHubRepository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    full_name: str = ""


class GitHubPullRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    number: int
    title: str = ""
    state: str = ""
    html_url: str = ""
    user: GitHubUser = Field(default_factory=GitHubUser)
    head: GitHubRef = Field(default_factory=GitHubRef)
    base: GitHubRef = Field(default_factory=GitHubRef)


class GitHubPullRequestEvent(BaseModel):
    """Subset of the GitHub ``pull_request`` event body used for review."""

    model_config = ConfigDict(extra="ignore")

    action: str
    number: int | None = None
    pull_request: GitHubPullRequest
    repository: GitHubRepository
