"""
MergeGuard - Review job store.

Owns the lifecycle of ``review_results`` rows:

    pending -> processing -> completed | failed

Every transition is a conditional UPDATE, so a redelivered or concurrent job
can never move a completed review backwards.
"""

from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from models.output import ReviewStatistics
from models.platform import ChangeDescriptor, ReviewStatus
from models.review import NormalizedReview, ReviewSuggestion
from models.tables import FixSuggestion, ReviewResult
from repositories.database import Database

MAX_ERROR_LENGTH = 1000
SUGGESTION_BATCH_SIZE = 100

# States a worker may (re)enter processing from
_STARTABLE = (ReviewStatus.PENDING.value, ReviewStatus.PROCESSING.value, ReviewStatus.FAILED.value)


class UpsertResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    review_id: int
    created: bool
    status: ReviewStatus
    webhook_event_id: int | None = None


class ReviewJob(BaseModel):
    """Snapshot of a review row as read by the worker at dequeue time."""

    model_config = ConfigDict(frozen=True)

    id: int
    repository_id: int
    webhook_event_id: int | None
    llm_provider_id: int | None
    status: ReviewStatus
    comment_posted: bool
    merge_request_id: int
    merge_request_iid: int
    title: str
    author: str
    source_branch: str
    target_branch: str
    web_url: str
    head_commit_id: str


class ReviewOutcome(BaseModel):
    """Everything written when a review completes."""

    review: NormalizedReview
    statistics: ReviewStatistics
    raw_result: str
    result_document: str
    prompt_source: str = "default"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    llm_duration_ms: int = 0


def _truncate(message: str) -> str:
    return message if len(message) <= MAX_ERROR_LENGTH else message[: MAX_ERROR_LENGTH - 3] + "..."


def _job_from_row(row: ReviewResult) -> ReviewJob:
    return ReviewJob(
        id=row.id,
        repository_id=row.repository_id,
        webhook_event_id=row.webhook_event_id,
        llm_provider_id=row.llm_provider_id,
        status=ReviewStatus(row.status),
        comment_posted=row.comment_posted,
        merge_request_id=row.merge_request_id,
        merge_request_iid=row.merge_request_iid,
        title=row.title,
        author=row.author,
        source_branch=row.source_branch,
        target_branch=row.target_branch,
        web_url=row.web_url,
        head_commit_id=row.head_commit_id,
    )


class ReviewRepository:
    """
    Repository for review jobs and their suggestions.

    Handles:
    - Idempotent job creation keyed by (repository, change)
    - Guarded status transitions
    - Transactional persistence of a completed review
    """

    def __init__(self, database: Database) -> None:
        """
        Initialize review repository.

        Args:
            database: Database holding the pipeline tables
        """
        self.db = database

    # =========================================================================
    # Ingestion
    # =========================================================================

    def upsert_review(
        self,
        repository_id: int,
        change: ChangeDescriptor,
        llm_provider_id: int | None = None,
    ) -> UpsertResult:
        """
        Create the review for a change, or refresh an existing one.

        A new row starts as pending. An existing row only gets its descriptive
        fields refreshed; its status is left untouched.

        Args:
            repository_id: Internal repository id
            change: Normalized change descriptor from the webhook
            llm_provider_id: Provider configured for the repository

        Returns:
            UpsertResult with the review id, whether it was inserted and its status
        """
        try:
            return self._upsert(repository_id, change, llm_provider_id)
        except IntegrityError:
            # Lost an insert race against a concurrent delivery; the row exists now
            logger.info(
                f"Concurrent insert for repository {repository_id} change "
                f"{change.change_id}, refreshing existing review"
            )
            return self._upsert(repository_id, change, llm_provider_id)

    def _upsert(
        self, repository_id: int, change: ChangeDescriptor, llm_provider_id: int | None
    ) -> UpsertResult:
        descriptive = {
            "merge_request_iid": change.change_number,
            "title": change.title,
            "author": change.author,
            "source_branch": change.source_branch,
            "target_branch": change.target_branch,
            "web_url": change.web_url,
            "head_commit_id": change.head_commit_id,
        }
        with self.db.session() as session:
            row = session.scalars(
                select(ReviewResult).where(
                    ReviewResult.repository_id == repository_id,
                    ReviewResult.merge_request_id == change.change_id,
                )
            ).first()

            if row is not None:
                for key, value in descriptive.items():
                    setattr(row, key, value)
                session.flush()
                return UpsertResult(
                    review_id=row.id,
                    created=False,
                    status=ReviewStatus(row.status),
                    webhook_event_id=row.webhook_event_id,
                )

            row = ReviewResult(
                repository_id=repository_id,
                merge_request_id=change.change_id,
                llm_provider_id=llm_provider_id,
                status=ReviewStatus.PENDING.value,
                **descriptive,
            )
            session.add(row)
            session.flush()
            logger.bind(review_id=row.id).info(
                f"Created review for change {change.change_number} in repository {repository_id}"
            )
            return UpsertResult(review_id=row.id, created=True, status=ReviewStatus.PENDING)

    def attach_webhook_event(self, review_id: int, webhook_event_id: int) -> None:
        with self.db.session() as session:
            session.execute(
                update(ReviewResult)
                .where(ReviewResult.id == review_id)
                .values(webhook_event_id=webhook_event_id)
            )

    def set_task_id(self, review_id: int, task_id: str) -> None:
        with self.db.session() as session:
            session.execute(
                update(ReviewResult).where(ReviewResult.id == review_id).values(task_id=task_id)
            )

    def requeue_failed(self, review_id: int) -> bool:
        """
        Move a failed review back to pending so it can be enqueued again.

        Returns:
            False if the review is not failed (or missing)
        """
        with self.db.session() as session:
            result = session.execute(
                update(ReviewResult)
                .where(ReviewResult.id == review_id, ReviewResult.status == ReviewStatus.FAILED.value)
                .values(status=ReviewStatus.PENDING.value, error_message=None)
            )
            return result.rowcount > 0

    # =========================================================================
    # Worker transitions
    # =========================================================================

    def load_job(self, review_id: int) -> ReviewJob | None:
        with self.db.session() as session:
            row = session.get(ReviewResult, review_id)
            return _job_from_row(row) if row else None

    def mark_processing(self, review_id: int) -> bool:
        """
        Move a review into processing.

        Returns:
            False if the review is already completed (or missing)
        """
        with self.db.session() as session:
            result = session.execute(
                update(ReviewResult)
                .where(ReviewResult.id == review_id, ReviewResult.status.in_(_STARTABLE))
                .values(status=ReviewStatus.PROCESSING.value, error_message=None)
            )
            return result.rowcount > 0

    def mark_failed(self, review_id: int, message: str) -> bool:
        """
        Record a failure on a review that has not completed.

        Args:
            review_id: Review to fail
            message: Human-readable reason, truncated to 1000 characters

        Returns:
            False if the review is completed (or missing) and was left alone
        """
        with self.db.session() as session:
            result = session.execute(
                update(ReviewResult)
                .where(
                    ReviewResult.id == review_id,
                    ReviewResult.status != ReviewStatus.COMPLETED.value,
                )
                .values(status=ReviewStatus.FAILED.value, error_message=_truncate(message))
            )
            updated = result.rowcount > 0
        if updated:
            logger.bind(review_id=review_id).warning(f"Review failed: {message}")
        return updated

    def save_result(self, review_id: int, outcome: ReviewOutcome) -> bool:
        """
        Persist a completed review and its suggestions in one transaction.

        The status update is a compare-and-set on ``status != completed``; if
        another worker completed the review first nothing is written.

        Args:
            review_id: Review being completed
            outcome: Normalized review, statistics, documents and usage

        Returns:
            True if this call completed the review

        Raises:
            SQLAlchemyError: If the transaction fails; nothing is persisted
        """
        stats = outcome.statistics
        values = {
            "status": ReviewStatus.COMPLETED.value,
            "error_message": None,
            "summary": outcome.review.summary,
            "score": outcome.review.score,
            "raw_result": outcome.raw_result,
            "result_document": outcome.result_document,
            "parser_strategy": outcome.review.strategy,
            "prompt_source": outcome.prompt_source,
            "reviewed_at": datetime.now(timezone.utc),
            "total_issues": stats.total_issues,
            "critical_count": stats.by_severity.critical,
            "high_count": stats.by_severity.high,
            "medium_count": stats.by_severity.medium,
            "low_count": stats.by_severity.low,
            "security_count": stats.by_category.security,
            "performance_count": stats.by_category.performance,
            "style_count": stats.by_category.style,
            "logic_count": stats.by_category.logic,
            "documentation_count": stats.by_category.documentation,
            "other_count": stats.by_category.other,
            "prompt_tokens": outcome.prompt_tokens,
            "completion_tokens": outcome.completion_tokens,
            "total_tokens": outcome.total_tokens,
            "llm_duration_ms": outcome.llm_duration_ms,
        }
        rows = [
            {"review_result_id": review_id, "position": position, **suggestion.model_dump(mode="json")}
            for position, suggestion in enumerate(outcome.review.suggestions)
        ]

        with self.db.session() as session:
            result = session.execute(
                update(ReviewResult)
                .where(
                    ReviewResult.id == review_id,
                    ReviewResult.status != ReviewStatus.COMPLETED.value,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                logger.bind(review_id=review_id).info("Review already completed, result discarded")
                return False

            for start in range(0, len(rows), SUGGESTION_BATCH_SIZE):
                session.execute(insert(FixSuggestion), rows[start : start + SUGGESTION_BATCH_SIZE])

        logger.bind(review_id=review_id).info(
            f"Saved review result: score={outcome.review.score}, suggestions={len(rows)}"
        )
        return True

    def mark_comment_posted(self, review_id: int) -> None:
        with self.db.session() as session:
            session.execute(
                update(ReviewResult)
                .where(ReviewResult.id == review_id)
                .values(comment_posted=True)
            )

    # =========================================================================
    # Reads
    # =========================================================================

    def load_normalized_review(self, review_id: int) -> NormalizedReview | None:
        """Rebuild the normalized review of a completed job from stored rows."""
        with self.db.session() as session:
            row = session.get(ReviewResult, review_id)
            if row is None or row.status != ReviewStatus.COMPLETED.value:
                return None
            return NormalizedReview(
                summary=row.summary or "",
                score=row.score or 0,
                strategy=row.parser_strategy or "fenced_json",
                fallback_used=row.parser_strategy == "free_text",
                suggestions=[
                    ReviewSuggestion(
                        file_path=s.file_path,
                        line_start=s.line_start,
                        line_end=s.line_end,
                        severity=s.severity,
                        category=s.category,
                        description=s.description,
                        suggestion=s.suggestion,
                        code_snippet=s.code_snippet,
                    )
                    for s in row.suggestions
                ],
            )

    def get_review(self, review_id: int) -> dict | None:
        """Return a review with its suggestions as plain data, or None."""
        with self.db.session() as session:
            row = session.get(ReviewResult, review_id)
            if row is None:
                return None
            return {
                "id": row.id,
                "repository_id": row.repository_id,
                "merge_request_id": row.merge_request_id,
                "merge_request_iid": row.merge_request_iid,
                "title": row.title,
                "status": row.status,
                "error_message": row.error_message,
                "summary": row.summary,
                "score": row.score,
                "total_issues": row.total_issues,
                "comment_posted": row.comment_posted,
                "task_id": row.task_id,
                "reviewed_at": row.reviewed_at.isoformat() if row.reviewed_at else None,
                "suggestions": [
                    {
                        "file_path": s.file_path,
                        "line_start": s.line_start,
                        "line_end": s.line_end,
                        "severity": s.severity,
                        "category": s.category,
                        "description": s.description,
                        "suggestion": s.suggestion,
                    }
                    for s in row.suggestions
                ],
            }

    def count_suggestions(self, review_id: int) -> int:
        with self.db.session() as session:
            return len(
                session.scalars(
                    select(FixSuggestion.id).where(FixSuggestion.review_result_id == review_id)
                ).all()
            )
