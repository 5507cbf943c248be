"""
MergeGuard - LLM usage accounting.
"""

from loguru import logger
from pydantic import BaseModel

from models.tables import LLMUsageLog
from repositories.database import Database
from utils.degradation import best_effort


class UsageEntry(BaseModel):
    """One LLM call, successful or not."""

    review_result_id: int | None = None
    repository_id: int | None = None
    project_id: int | None = None
    llm_provider_id: int | None = None
    model_name: str = ""
    request_type: str = "code_review"
    status: str = "success"  # success, failed, timeout
    error_message: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    duration_ms: int = 0
    request_size: int = 0
    response_size: int = 0
    temperature: float | None = None


class UsageRepository:
    """Writes ``llm_usage_logs``; failures never reach the caller."""

    def __init__(self, database: Database) -> None:
        self.db = database

    @best_effort("usage_log")
    def record(self, entry: UsageEntry) -> None:
        data = entry.model_dump()
        if data["error_message"]:
            data["error_message"] = data["error_message"][:1000]
        with self.db.session() as session:
            session.add(LLMUsageLog(**data))
        logger.bind(review_id=entry.review_result_id, status=entry.status).debug(
            f"Recorded LLM usage: {entry.total_tokens} tokens in {entry.duration_ms}ms"
        )
