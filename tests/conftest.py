"""
MergeGuard - Pytest Configuration and Fixtures

Shared fixtures and test configuration for all test modules.
"""

import os
import sys
import tempfile

# Test environment must be in place before application modules read it
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ALLOW_UNSIGNED_WEBHOOKS"] = "true"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["LOG_FILE"] = os.path.join(tempfile.gettempdir(), "mergeguard-tests", "app.log")
os.environ.pop("GITLAB_WEBHOOK_SECRET", None)
os.environ.pop("GITHUB_WEBHOOK_SECRET", None)

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from adapters.gitlab import GitLabAdapter  # noqa: E402
from llm.base import ChatResponse, LLMClient, TokenUsage  # noqa: E402
from llm.client_pool import ClientPool  # noqa: E402
from models.tables import GitPlatformConfig, LLMProvider, Repository  # noqa: E402
from repositories import (  # noqa: E402
    CatalogRepository,
    Database,
    ReviewRepository,
    UsageRepository,
    WebhookEventRepository,
    reset_database,
)
from services.event_validator import EventValidator  # noqa: E402
from services.ingestion import WebhookIngestionService  # noqa: E402
from services.queue import TaskQueue  # noqa: E402
from services.review_handler import ReviewHandler  # noqa: E402
from tests.fixtures import (  # noqa: E402
    FENCED_JSON_RESPONSE,
    GITHUB_REPOSITORY_ID,
    GITLAB_PROJECT_ID,
    github_pull_request_payload,
    gitlab_merge_request_payload,
)
from utils.config import Config  # noqa: E402
from utils.degradation import ServiceName, get_health_status  # noqa: E402

SAMPLE_DIFF = """--- a/payments/retry.py
+++ b/payments/retry.py
@@ -10,3 +10,6 @@
+def retry_charge(api_key, charge):
+    for attempt in range(3):
+        logger.error(f"charge failed {api_key}")
"""


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def database():
    """In-memory SQLite job store, installed as the process-wide database."""
    db = Database("sqlite://")
    db.create_all()
    reset_database(db)
    yield db
    reset_database(None)
    db.engine.dispose()


@pytest.fixture
def seeded(database) -> dict:
    """
    Configuration rows for one GitLab and one GitHub repository.

    Returns:
        dict of ids: gitlab_repo, github_repo, provider, gitlab_host, github_host
    """
    with database.session() as session:
        gitlab_host = GitPlatformConfig(
            project_id=1,
            platform_type="gitlab",
            base_url="https://gitlab.example.com",
            access_token="glpat-test",
        )
        github_host = GitPlatformConfig(
            project_id=1,
            platform_type="github",
            base_url="https://api.github.com",
            access_token="ghp-test",
        )
        provider = LLMProvider(
            project_id=1,
            name="OpenAI",
            provider_type="openai",
            base_url="https://api.openai.com/v1",
            api_key="sk-test",
            model="gpt-4o-mini",
        )
        session.add_all([gitlab_host, github_host, provider])
        session.flush()

        gitlab_repo = Repository(
            project_id=1,
            platform_id=gitlab_host.id,
            platform_repo_id=str(GITLAB_PROJECT_ID),
            name="payments",
            full_path="acme/payments",
            llm_provider_id=provider.id,
        )
        github_repo = Repository(
            project_id=1,
            platform_id=github_host.id,
            platform_repo_id=str(GITHUB_REPOSITORY_ID),
            name="test-repo",
            full_path="octocat/test-repo",
            llm_provider_id=provider.id,
        )
        session.add_all([gitlab_repo, github_repo])
        session.flush()

        return {
            "gitlab_repo": gitlab_repo.id,
            "github_repo": github_repo.id,
            "provider": provider.id,
            "gitlab_host": gitlab_host.id,
            "github_host": github_host.id,
        }


@pytest.fixture
def catalog(database) -> CatalogRepository:
    return CatalogRepository(database)


@pytest.fixture
def review_repository(database) -> ReviewRepository:
    return ReviewRepository(database)


@pytest.fixture
def event_repository(database) -> WebhookEventRepository:
    return WebhookEventRepository(database)


@pytest.fixture
def usage_repository(database) -> UsageRepository:
    return UsageRepository(database)


@pytest.fixture(autouse=True)
def reset_health():
    """Service health is process-wide; restore it after every test."""
    yield
    for service in ServiceName:
        get_health_status().set_health(service, True)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> Config:
    """Config built from the test environment."""
    return Config()


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def gitlab_payload() -> dict:
    return gitlab_merge_request_payload()


@pytest.fixture
def github_payload() -> dict:
    return github_pull_request_payload()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def mock_queue():
    """TaskQueue double that hands out a fixed task id."""
    queue = MagicMock(spec=TaskQueue)
    queue.enqueue.return_value = "task-123"
    return queue


@pytest.fixture
def validator(catalog, test_config) -> EventValidator:
    return EventValidator(catalog, test_config)


@pytest.fixture
def ingestion_service(validator, review_repository, event_repository, mock_queue):
    return WebhookIngestionService(validator, review_repository, event_repository, mock_queue)


@pytest.fixture
def mock_llm_client():
    """LLM client returning a fenced JSON review."""
    client = MagicMock(spec=LLMClient)
    client.chat_completion.return_value = ChatResponse(
        content=FENCED_JSON_RESPONSE,
        model="gpt-4o-mini",
        usage=TokenUsage(prompt_tokens=800, completion_tokens=200, total_tokens=1000),
        duration_ms=1500,
    )
    return client


@pytest.fixture
def client_pool(mock_llm_client) -> ClientPool:
    return ClientPool(factory=lambda config: mock_llm_client)


@pytest.fixture
def mock_adapter():
    """Real GitLab adapter with the network calls replaced."""
    adapter = GitLabAdapter(base_url="https://gitlab.example.com", token="glpat-test")
    adapter.get_diff = MagicMock(return_value=SAMPLE_DIFF)
    adapter.post_comment = MagicMock(return_value="5001")
    return adapter


@pytest.fixture
def review_handler(
    review_repository, catalog, event_repository, usage_repository, client_pool, test_config, mock_adapter
) -> ReviewHandler:
    return ReviewHandler(
        reviews=review_repository,
        catalog=catalog,
        events=event_repository,
        usage=usage_repository,
        client_pool=client_pool,
        config=test_config,
        adapter_factory=lambda *args, **kwargs: mock_adapter,
    )


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
def test_client(ingestion_service, review_repository):
    """FastAPI TestClient with the ingestion pipeline wired to test doubles."""
    from fastapi.testclient import TestClient

    from main import app, get_ingestion_service, get_review_repository

    app.dependency_overrides[get_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[get_review_repository] = lambda: review_repository
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "contract: HTTP contract tests against the FastAPI app")
    config.addinivalue_line("markers", "integration: end-to-end pipeline scenarios")
