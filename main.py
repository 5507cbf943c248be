"""
MergeGuard - FastAPI Application

API layer of the review pipeline:
- Webhook endpoints for GitLab merge requests and GitHub pull requests
- Review status polling
- Celery task status polling
- Health and Prometheus metrics endpoints

Webhooks are only validated, recorded and enqueued here; reviews run in the
Celery worker (worker.py).
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from models.platform import PlatformType
from repositories import (
    CatalogRepository,
    ReviewRepository,
    WebhookEventRepository,
    get_database,
)
from services.event_validator import EventValidator
from services.ingestion import IngestionResult, WebhookIngestionService
from services.queue import TaskQueue
from utils.config import Config
from utils.degradation import get_health_status
from utils.errors import WebhookError
from utils.logger import setup_logging

# =============================================================================
# Global Configuration
# =============================================================================

config = Config()

setup_logging()

SERVICE_NAME = "MergeGuard"
SERVICE_VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the job store (creating tables on first use) before the first
    request is served.
    """
    logger.info(f"Starting {SERVICE_NAME} API (env: {config.APP_ENV})")
    get_database(config.DATABASE_URL)

    yield

    logger.info(f"Shutting down {SERVICE_NAME} API")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title=SERVICE_NAME,
    description="Asynchronous AI code review for GitLab and GitHub",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

api_v1_prefix = "/v1"


# =============================================================================
# Dependencies
# =============================================================================

def get_config() -> Config:
    """Dependency injection for Config."""
    return config


def get_review_repository() -> ReviewRepository:
    return ReviewRepository(get_database(config.DATABASE_URL))


def get_ingestion_service(cfg: Config = Depends(get_config)) -> WebhookIngestionService:
    """
    Dependency injection for the ingestion pipeline.

    The Celery app is imported here so importing the API does not pull in
    broker configuration until a webhook arrives.
    """
    from celery_app import app as celery

    database = get_database(cfg.DATABASE_URL)
    return WebhookIngestionService(
        validator=EventValidator(CatalogRepository(database), cfg),
        reviews=ReviewRepository(database),
        events=WebhookEventRepository(database),
        queue=TaskQueue(celery, lane=cfg.QUEUE_DEFAULT_LANE),
    )


async def _ingest(
    request: Request,
    service: WebhookIngestionService,
    platform: str | None,
) -> IngestionResult:
    body = await request.body()
    try:
        return await run_in_threadpool(service.ingest, body, request.headers, platform)
    except WebhookError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "operational",
        "platforms": [p.value for p in PlatformType],
        "docs": "/docs",
        "metrics": "/metrics",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    services = get_health_status().snapshot()
    return {
        "status": "healthy" if all(v == "healthy" for v in services.values()) else "degraded",
        "services": services,
    }


@app.post(f"{api_v1_prefix}/webhook/{{platform}}", response_model=IngestionResult)
async def receive_platform_webhook(
    platform: str,
    request: Request,
    service: WebhookIngestionService = Depends(get_ingestion_service),
):
    """
    Receive a webhook from a named platform.

    Args:
        platform: "gitlab" or "github"
        request: Raw webhook request

    Returns:
        IngestionResult; 200 for ignored and accepted deliveries

    Raises:
        HTTPException: 400 malformed payload, 401 signature mismatch,
                       500 storage or enqueue failure
    """
    return await _ingest(request, service, platform)


@app.post(f"{api_v1_prefix}/webhook", response_model=IngestionResult)
async def receive_webhook(
    request: Request,
    service: WebhookIngestionService = Depends(get_ingestion_service),
):
    """Receive a webhook, detecting the platform from its headers."""
    return await _ingest(request, service, None)


@app.get(f"{api_v1_prefix}/reviews/{{review_id}}")
def get_review(
    review_id: int,
    reviews: ReviewRepository = Depends(get_review_repository),
):
    """
    Get review status, score and suggestions.

    Raises:
        HTTPException: 404 if the review does not exist
    """
    review = reviews.get_review(review_id)
    if review is None:
        raise HTTPException(status_code=404, detail=f"Review {review_id} not found")
    return review


@app.get(f"{api_v1_prefix}/tasks/{{task_id}}")
def get_task_status(task_id: str):
    """
    Get state of a review task from the Celery result backend.

    Args:
        task_id: Celery task ID from the webhook response
    """
    from celery_app import get_task_info

    return get_task_info(task_id)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.LOG_LEVEL.lower(),
    )
