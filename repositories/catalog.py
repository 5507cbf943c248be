"""
MergeGuard - Configuration lookups.

Read-only access to repositories, source-control hosts, LLM providers and
project settings. Rows are returned as frozen snapshots so callers never hold
a session-bound ORM object.
"""

from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select

from llm.base import LLMConfig
from models.tables import GitPlatformConfig, LLMProvider, ProjectSetting, Repository
from repositories.database import Database

PROJECT_PROMPT_KEY = "review_prompt"


class ProviderRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    provider_type: str
    base_url: str
    api_key: str
    model: str

    def to_llm_config(self, timeout: float = 60.0) -> LLMConfig:
        return LLMConfig(
            provider_id=self.id,
            provider_type=self.provider_type,
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            timeout=timeout,
        )


class PlatformRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    platform_type: str
    base_url: str
    access_token: str
    webhook_secret: str | None = None


class RepositoryRecord(BaseModel):
    """An enrolled repository with the settings a review needs."""

    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int | None
    platform_repo_id: str
    name: str
    full_path: str
    webhook_secret: str | None
    custom_review_prompt: str | None
    platform: PlatformRecord
    llm_provider: ProviderRecord | None

    @property
    def effective_webhook_secret(self) -> str | None:
        """Repository secret, falling back to the host-level secret."""
        return self.webhook_secret or self.platform.webhook_secret


def provider_record(provider: LLMProvider | None) -> ProviderRecord | None:
    if provider is None or not provider.is_active:
        return None
    return ProviderRecord(
        id=provider.id,
        name=provider.name,
        provider_type=provider.provider_type,
        base_url=provider.base_url,
        api_key=provider.api_key,
        model=provider.model,
    )


def repository_record(repository: Repository) -> RepositoryRecord:
    platform = repository.platform
    return RepositoryRecord(
        id=repository.id,
        project_id=repository.project_id,
        platform_repo_id=repository.platform_repo_id,
        name=repository.name,
        full_path=repository.full_path,
        webhook_secret=repository.webhook_secret,
        custom_review_prompt=repository.custom_review_prompt,
        platform=PlatformRecord(
            id=platform.id,
            platform_type=platform.platform_type,
            base_url=platform.base_url,
            access_token=platform.access_token,
            webhook_secret=platform.webhook_secret,
        ),
        llm_provider=provider_record(repository.llm_provider),
    )


class CatalogRepository:
    """Lookups against the configuration tables."""

    def __init__(self, database: Database) -> None:
        """
        Initialize catalog repository.

        Args:
            database: Database holding the configuration tables
        """
        self.db = database

    def find_active_repository(
        self, platform_type: str, external_id: str
    ) -> RepositoryRecord | None:
        """
        Resolve an enrolled repository from its id on the source-control host.

        Args:
            platform_type: "gitlab" or "github"
            external_id: Repository id as sent in the webhook

        Returns:
            RepositoryRecord, or None if the repository is unknown or inactive
        """
        with self.db.session() as session:
            stmt = (
                select(Repository)
                .join(GitPlatformConfig, Repository.platform_id == GitPlatformConfig.id)
                .where(
                    Repository.platform_repo_id == str(external_id),
                    Repository.is_active.is_(True),
                    GitPlatformConfig.platform_type == platform_type,
                    GitPlatformConfig.is_active.is_(True),
                )
            )
            repository = session.scalars(stmt).first()
            if repository is None:
                logger.bind(platform=platform_type).debug(
                    f"No active repository for external id {external_id}"
                )
                return None
            return repository_record(repository)

    def get_repository(self, repository_id: int) -> RepositoryRecord | None:
        with self.db.session() as session:
            repository = session.get(Repository, repository_id)
            return repository_record(repository) if repository else None

    def get_project_prompt(self, project_id: int | None) -> str | None:
        """Return the project-level review prompt override, if one is set."""
        if project_id is None:
            return None
        with self.db.session() as session:
            setting = session.scalars(
                select(ProjectSetting).where(
                    ProjectSetting.project_id == project_id,
                    ProjectSetting.key == PROJECT_PROMPT_KEY,
                )
            ).first()
            return setting.value if setting and setting.value else None
