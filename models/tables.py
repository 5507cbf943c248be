"""
SQLAlchemy tables for MergeGuard.

The review pipeline owns ``review_results``, ``fix_suggestions``,
``webhook_events`` and ``llm_usage_logs``. The remaining tables belong to the
configuration layer and are only read here.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# ============================================================================
# Configuration tables (read-only for the pipeline)
# ============================================================================


class GitPlatformConfig(Base, TimestampMixin):
    """Credentials for one source-control host."""

    __tablename__ = "git_platform_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int | None] = mapped_column(Integer, index=True)
    platform_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Allowed: gitlab, github
    base_url: Mapped[str] = mapped_column(String(500), nullable=False)
    access_token: Mapped[str] = mapped_column(String(500), nullable=False)
    webhook_secret: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class LLMProvider(Base, TimestampMixin):
    """An OpenAI-compatible chat-completion endpoint."""

    __tablename__ = "llm_providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int | None] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_type: Mapped[str] = mapped_column(String(50), default="openai")
    base_url: Mapped[str] = mapped_column(String(500), nullable=False)
    api_key: Mapped[str] = mapped_column(String(500), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Repository(Base, TimestampMixin):
    """A repository enrolled for automatic review."""

    __tablename__ = "repositories"
    __table_args__ = (UniqueConstraint("platform_id", "platform_repo_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int | None] = mapped_column(Integer, index=True)
    platform_id: Mapped[int] = mapped_column(ForeignKey("git_platform_configs.id"))
    platform_repo_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    full_path: Mapped[str] = mapped_column(String(500), default="")
    webhook_secret: Mapped[str | None] = mapped_column(String(255))
    llm_provider_id: Mapped[int | None] = mapped_column(ForeignKey("llm_providers.id"))
    custom_review_prompt: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    platform: Mapped[GitPlatformConfig] = relationship(lazy="joined")
    llm_provider: Mapped[LLMProvider | None] = relationship(lazy="joined")


class ProjectSetting(Base, TimestampMixin):
    """Project-scoped key/value settings such as ``review_prompt``."""

    __tablename__ = "project_settings"
    __table_args__ = (UniqueConstraint("project_id", "key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(Integer, nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, default="")


# ============================================================================
# Pipeline tables
# ============================================================================


class WebhookEvent(Base, TimestampMixin):
    """
    One accepted inbound delivery.

    Deduplicated by (repository, latest commit) so a redelivered payload for
    the same head commit does not create a second row.
    """

    __tablename__ = "webhook_events"
    __table_args__ = (UniqueConstraint("repository_id", "commit_sha"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id"), index=True)
    event_type: Mapped[str] = mapped_column(String(50), default="merge_request")
    action: Mapped[str] = mapped_column(String(50), default="")
    merge_request_id: Mapped[int] = mapped_column(Integer, default=0)
    commit_sha: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    # Allowed: pending, processing, completed, failed, ignored
    raw_payload: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(String(1000))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ReviewResult(Base, TimestampMixin):
    """The review job and, once completed, its result."""

    __tablename__ = "review_results"
    __table_args__ = (UniqueConstraint("repository_id", "merge_request_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id"), index=True)
    webhook_event_id: Mapped[int | None] = mapped_column(ForeignKey("webhook_events.id"))
    llm_provider_id: Mapped[int | None] = mapped_column(ForeignKey("llm_providers.id"))

    # Change info
    merge_request_id: Mapped[int] = mapped_column(Integer, nullable=False)
    merge_request_iid: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    author: Mapped[str] = mapped_column(String(255), default="")
    source_branch: Mapped[str] = mapped_column(String(255), default="")
    target_branch: Mapped[str] = mapped_column(String(255), default="")
    web_url: Mapped[str] = mapped_column(String(500), default="")
    head_commit_id: Mapped[str] = mapped_column(String(64), default="")

    # Status
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    # Allowed: pending, processing, completed, failed
    error_message: Mapped[str | None] = mapped_column(String(1000))
    task_id: Mapped[str | None] = mapped_column(String(64))

    # Result
    summary: Mapped[str | None] = mapped_column(Text)
    score: Mapped[int | None] = mapped_column(Integer)
    raw_result: Mapped[str | None] = mapped_column(Text)
    result_document: Mapped[str | None] = mapped_column(Text)
    parser_strategy: Mapped[str | None] = mapped_column(String(50))
    prompt_source: Mapped[str | None] = mapped_column(String(20))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Counters
    total_issues: Mapped[int] = mapped_column(Integer, default=0)
    critical_count: Mapped[int] = mapped_column(Integer, default=0)
    high_count: Mapped[int] = mapped_column(Integer, default=0)
    medium_count: Mapped[int] = mapped_column(Integer, default=0)
    low_count: Mapped[int] = mapped_column(Integer, default=0)
    security_count: Mapped[int] = mapped_column(Integer, default=0)
    performance_count: Mapped[int] = mapped_column(Integer, default=0)
    style_count: Mapped[int] = mapped_column(Integer, default=0)
    logic_count: Mapped[int] = mapped_column(Integer, default=0)
    documentation_count: Mapped[int] = mapped_column(Integer, default=0)
    other_count: Mapped[int] = mapped_column(Integer, default=0)

    # Usage
    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)
    llm_duration_ms: Mapped[int] = mapped_column(Integer, default=0)

    # Source-control integration
    comment_posted: Mapped[bool] = mapped_column(Boolean, default=False)

    repository: Mapped[Repository] = relationship()
    suggestions: Mapped[list["FixSuggestion"]] = relationship(
        back_populates="review", order_by="FixSuggestion.position"
    )


class FixSuggestion(Base):
    """One finding of a completed review; immutable once written."""

    __tablename__ = "fix_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    review_result_id: Mapped[int] = mapped_column(
        ForeignKey("review_results.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    file_path: Mapped[str] = mapped_column(String(500), default="unknown")
    line_start: Mapped[int] = mapped_column(Integer, default=0)
    line_end: Mapped[int] = mapped_column(Integer, default=0)
    severity: Mapped[str] = mapped_column(String(20), default="medium")
    category: Mapped[str] = mapped_column(String(20), default="other")
    description: Mapped[str] = mapped_column(Text, default="")
    suggestion: Mapped[str] = mapped_column(Text, default="")
    code_snippet: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    review: Mapped[ReviewResult] = relationship(back_populates="suggestions")


class LLMUsageLog(Base):
    """One row per LLM call, successful or not."""

    __tablename__ = "llm_usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    review_result_id: Mapped[int | None] = mapped_column(Integer, index=True)
    repository_id: Mapped[int | None] = mapped_column(Integer)
    project_id: Mapped[int | None] = mapped_column(Integer)
    llm_provider_id: Mapped[int | None] = mapped_column(Integer)
    model_name: Mapped[str] = mapped_column(String(100), default="")
    request_type: Mapped[str] = mapped_column(String(50), default="code_review")
    status: Mapped[str] = mapped_column(String(20), default="success")
    # Allowed: success, failed, timeout
    error_message: Mapped[str | None] = mapped_column(String(1000))
    prompt_tokens: Mapped[int] = mapped_column(Integer, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, default=0)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    request_size: Mapped[int] = mapped_column(Integer, default=0)
    response_size: Mapped[int] = mapped_column(Integer, default=0)
    temperature: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
