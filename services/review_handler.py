"""
MergeGuard - Review job state machine.

Runs one review job end to end:

    load -> processing -> diff -> LLM -> parse -> persist -> comment -> finalize

The handler knows nothing about the queue. It signals the outcome through
exceptions: ``RetryableJobError`` asks for redelivery, ``PermanentJobError``
ends the job for good.
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from adapters import get_adapter
from adapters.base import EmptyDiffError, GitPlatformAdapter
from llm.base import (
    DEFAULT_SYSTEM_MESSAGE,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    LLMConfigurationError,
    LLMError,
    LLMRequestError,
)
from llm.client_pool import ClientPool
from llm.formatter import build_document
from llm.parser import ResponseParseError, parse_review
from llm.prompt import render_prompt, select_template
from models.platform import EventStatus, PlatformType, ReviewStatus
from models.review import (
    ChangeSnapshot,
    NormalizedReview,
    ReviewContext,
    RepositorySnapshot,
    ReviewRunSnapshot,
)
from repositories.catalog import CatalogRepository, RepositoryRecord
from repositories.reviews import ReviewJob, ReviewOutcome, ReviewRepository
from repositories.usage import UsageEntry, UsageRepository
from repositories.webhook_events import WebhookEventRepository
from utils.config import Config
from utils.degradation import ServiceName, best_effort, get_health_status
from utils.errors import PermanentJobError, RetryableJobError
from utils.metrics import review_duration_seconds, review_parser_strategy_total, reviews_in_progress

AdapterFactory = Callable[..., GitPlatformAdapter]


class ReviewRunResult(BaseModel):
    review_id: int
    status: ReviewStatus
    skipped: bool = False
    score: int | None = None
    suggestions: int = 0
    comment_posted: bool = False
    message: str = ""


class ReviewHandler:
    """
    Executes review jobs.

    One handler is shared by every worker thread of a process; all per-job
    state lives on the stack.
    """

    def __init__(
        self,
        reviews: ReviewRepository,
        catalog: CatalogRepository,
        events: WebhookEventRepository,
        usage: UsageRepository,
        client_pool: ClientPool,
        config: Config,
        adapter_factory: AdapterFactory = get_adapter,
    ) -> None:
        """
        Initialize review handler.

        Args:
            reviews: Review job store
            catalog: Repository and provider lookups
            events: Webhook delivery log
            usage: LLM usage accounting
            client_pool: Shared LLM client pool
            config: Application configuration (LLM request shape, timeouts)
            adapter_factory: Builds the source-control adapter for a platform
        """
        self.reviews = reviews
        self.catalog = catalog
        self.events = events
        self.usage = usage
        self.client_pool = client_pool
        self.config = config
        self.adapter_factory = adapter_factory

    # =========================================================================
    # Entry point
    # =========================================================================

    def process(self, review_id: int) -> ReviewRunResult:
        """
        Run one review job.

        Args:
            review_id: Review to process

        Returns:
            ReviewRunResult describing what happened

        Raises:
            RetryableJobError: Diff fetch, LLM call, parsing, persistence or
                               comment posting failed
            PermanentJobError: The review, its repository or its LLM
                               provider is missing or unusable
        """
        start = time.perf_counter()
        platform = "unknown"
        status = "failed"
        reviews_in_progress.inc()
        try:
            job = self.reviews.load_job(review_id)
            if job is None:
                raise PermanentJobError(f"Review {review_id} not found", review_id)

            repository = self.catalog.get_repository(job.repository_id)
            if repository is None:
                self._fail(job, f"Repository {job.repository_id} not found")
                raise PermanentJobError(f"Repository {job.repository_id} not found", review_id)
            platform = repository.platform.platform_type

            if job.status == ReviewStatus.COMPLETED:
                result = self._resume_completed(job, repository)
            else:
                result = self._run(job, repository)
            status = "skipped" if result.skipped else result.status.value
            return result
        finally:
            reviews_in_progress.dec()
            review_duration_seconds.labels(platform=platform, status=status).observe(
                time.perf_counter() - start
            )

    # =========================================================================
    # Steps
    # =========================================================================

    def _run(self, job: ReviewJob, repository: RepositoryRecord) -> ReviewRunResult:
        log = logger.bind(review_id=job.id)

        provider = repository.llm_provider
        if provider is None:
            message = "No LLM provider configured for repository"
            self._fail(job, message)
            raise PermanentJobError(message, job.id)

        if not self.reviews.mark_processing(job.id):
            log.info("Review completed by another worker, skipping")
            return ReviewRunResult(review_id=job.id, status=ReviewStatus.COMPLETED, skipped=True)
        log.info(f"Processing review for change {job.merge_request_iid}")

        adapter = self._adapter(repository)

        # Step A: diff
        try:
            diff = adapter.get_diff(repository.platform_repo_id, job.merge_request_iid)
        except EmptyDiffError as e:
            message = f"Failed to get MR diff: {e}"
            self._fail(job, message)
            raise PermanentJobError(message, job.id) from e
        except Exception as e:
            message = f"Failed to get MR diff: {e}"
            self._fail(job, message)
            raise RetryableJobError(message, job.id) from e

        # Step B: LLM
        template, prompt_info = select_template(
            repository.custom_review_prompt,
            self.catalog.get_project_prompt(repository.project_id),
        )
        user_prompt = render_prompt(
            template,
            {
                "diff": diff,
                "title": job.title,
                "author": job.author,
                "source_branch": job.source_branch,
                "target_branch": job.target_branch,
            },
        )
        request = ChatRequest(
            messages=[
                ChatMessage(role="system", content=DEFAULT_SYSTEM_MESSAGE),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=self.config.LLM_TEMPERATURE,
            max_tokens=self.config.LLM_MAX_TOKENS,
        )
        usage_base = UsageEntry(
            review_result_id=job.id,
            repository_id=repository.id,
            project_id=repository.project_id,
            llm_provider_id=provider.id,
            model_name=provider.model,
            request_size=len(user_prompt),
            temperature=request.temperature,
        )

        try:
            client = self.client_pool.get_or_create(provider.to_llm_config(timeout=self.config.LLM_TIMEOUT))
        except LLMConfigurationError as e:
            message = f"LLM review failed: {e}"
            self._fail(job, message)
            raise PermanentJobError(message, job.id) from e

        call_start = time.perf_counter()
        try:
            response = client.chat_completion(request)
        except LLMError as e:
            timed_out = isinstance(e, LLMRequestError) and e.timeout
            get_health_status().set_health(ServiceName.LLM, False)
            self.usage.record(
                usage_base.model_copy(
                    update={
                        "status": "timeout" if timed_out else "failed",
                        "error_message": str(e),
                        "duration_ms": int((time.perf_counter() - call_start) * 1000),
                    }
                )
            )
            message = f"LLM review failed: {e}"
            self._fail(job, message)
            raise RetryableJobError(message, job.id) from e

        get_health_status().set_health(ServiceName.LLM, True)
        self.usage.record(self._usage_success(usage_base, response))
        log.bind(latency_ms=response.duration_ms, status="success").info(
            f"LLM review received ({response.usage.total_tokens} tokens, prompt={prompt_info.source})"
        )

        # Step C: parse
        try:
            normalized = parse_review(response.content)
        except ResponseParseError as e:
            message = f"Failed to parse LLM response: {e}"
            self._fail(job, message)
            raise RetryableJobError(message, job.id) from e
        review_parser_strategy_total.labels(strategy=normalized.strategy).inc()

        # Step D: persist
        document = build_document(
            normalized,
            self._context(job, repository, response),
            prompt_info,
            raw_response_available=True,
        )
        outcome = ReviewOutcome(
            review=normalized,
            statistics=document.statistics,
            raw_result=response.content,
            result_document=document.model_dump_json(indent=2),
            prompt_source=prompt_info.source,
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            total_tokens=response.usage.total_tokens,
            llm_duration_ms=response.duration_ms,
        )
        try:
            saved = self.reviews.save_result(job.id, outcome)
        except SQLAlchemyError as e:
            message = f"Failed to save review result: {e}"
            self._fail(job, message)
            raise RetryableJobError(message, job.id) from e
        if not saved:
            return ReviewRunResult(review_id=job.id, status=ReviewStatus.COMPLETED, skipped=True)

        # Step E: comment
        self._post_comment(adapter, repository, job, normalized)

        # Step F: finalize
        self.events.update_status(job.webhook_event_id, EventStatus.COMPLETED)
        log.info(f"Review completed: score={normalized.score}, suggestions={len(normalized.suggestions)}")
        return ReviewRunResult(
            review_id=job.id,
            status=ReviewStatus.COMPLETED,
            score=normalized.score,
            suggestions=len(normalized.suggestions),
            comment_posted=True,
        )

    def _resume_completed(self, job: ReviewJob, repository: RepositoryRecord) -> ReviewRunResult:
        """Finish a completed review whose comment has not been posted yet."""
        log = logger.bind(review_id=job.id)
        if job.comment_posted:
            log.info("Review already completed and commented, skipping")
            return ReviewRunResult(
                review_id=job.id, status=ReviewStatus.COMPLETED, skipped=True, comment_posted=True
            )

        normalized = self.reviews.load_normalized_review(job.id)
        if normalized is None:
            raise PermanentJobError(f"Completed review {job.id} has no stored result", job.id)

        log.info("Resuming comment posting for completed review")
        self._post_comment(self._adapter(repository), repository, job, normalized)
        self.events.update_status(job.webhook_event_id, EventStatus.COMPLETED)
        return ReviewRunResult(
            review_id=job.id,
            status=ReviewStatus.COMPLETED,
            score=normalized.score,
            suggestions=len(normalized.suggestions),
            comment_posted=True,
        )

    def _post_comment(
        self,
        adapter: GitPlatformAdapter,
        repository: RepositoryRecord,
        job: ReviewJob,
        review: NormalizedReview,
    ) -> None:
        try:
            reference = adapter.post_comment(
                repository.platform_repo_id, job.merge_request_iid, adapter.format_comment(review)
            )
        except Exception as e:
            # The result stays persisted and completed; redelivery resumes here
            logger.bind(review_id=job.id).error(f"Failed to post review comment: {e}")
            raise RetryableJobError(f"Failed to post review comment: {e}", job.id) from e

        self._mark_comment_posted(job.id)
        logger.bind(review_id=job.id).info(f"Review comment posted ({reference or 'no reference'})")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _adapter(self, repository: RepositoryRecord) -> GitPlatformAdapter:
        platform = repository.platform
        return self.adapter_factory(
            platform.platform_type,
            base_url=platform.base_url,
            token=platform.access_token,
            timeout=self.config.HTTP_TIMEOUT,
        )

    def _fail(self, job: ReviewJob, message: str) -> None:
        # Never raises, so the caller's job error reaches the queue intact
        self._mark_failed(job.id, message)
        self.events.update_status(job.webhook_event_id, EventStatus.FAILED, message)

    @best_effort("failure_status", log_level="error")
    def _mark_failed(self, review_id: int, message: str) -> None:
        self.reviews.mark_failed(review_id, message)

    @best_effort("comment_flag")
    def _mark_comment_posted(self, review_id: int) -> None:
        self.reviews.mark_comment_posted(review_id)

    @staticmethod
    def _usage_success(base: UsageEntry, response: ChatResponse) -> UsageEntry:
        return base.model_copy(
            update={
                "status": "success",
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
                "duration_ms": response.duration_ms,
                "response_size": len(response.content),
            }
        )

    @staticmethod
    def _context(job: ReviewJob, repository: RepositoryRecord, response: ChatResponse) -> ReviewContext:
        provider = repository.llm_provider
        return ReviewContext(
            repository=RepositorySnapshot(
                id=repository.id,
                name=repository.name,
                full_name=repository.full_path,
                platform=PlatformType(repository.platform.platform_type),
                platform_repo_id=repository.platform_repo_id,
            ),
            merge_request=ChangeSnapshot(
                id=job.merge_request_id,
                iid=job.merge_request_iid,
                title=job.title,
                author=job.author,
                source_branch=job.source_branch,
                target_branch=job.target_branch,
                web_url=job.web_url,
            ),
            review=ReviewRunSnapshot(
                id=job.id,
                reviewed_at=datetime.now(timezone.utc),
                llm_provider=provider.name if provider else "",
                llm_model=response.model or (provider.model if provider else ""),
                tokens_used=response.usage.total_tokens,
                duration_ms=response.duration_ms,
            ),
        )
