"""
MergeGuard - Repository Layer

Data access layer over SQLAlchemy:
- ReviewRepository: review jobs, transitions and results
- WebhookEventRepository: accepted webhook deliveries
- UsageRepository: LLM usage accounting
- CatalogRepository: repository, host and provider configuration lookups
"""

from repositories.catalog import CatalogRepository, ProviderRecord, RepositoryRecord
from repositories.database import Database, get_database, reset_database
from repositories.reviews import ReviewJob, ReviewOutcome, ReviewRepository, UpsertResult
from repositories.usage import UsageEntry, UsageRepository
from repositories.webhook_events import WebhookEventRepository

__all__ = [
    "Database",
    "get_database",
    "reset_database",
    "CatalogRepository",
    "ProviderRecord",
    "RepositoryRecord",
    "ReviewRepository",
    "ReviewJob",
    "ReviewOutcome",
    "UpsertResult",
    "UsageEntry",
    "UsageRepository",
    "WebhookEventRepository",
]
