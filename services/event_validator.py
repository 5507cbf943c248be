"""
MergeGuard - Webhook event validation.

Turns a raw webhook delivery into one of three outcomes:

- ignored: not a review trigger (other event kinds, merge/close/reopen,
  unknown repository, no LLM provider)
- rejected: malformed payload (400) or failed authenticity check (401)
- accepted: a normalized change descriptor plus the resolved repository
"""

import json
from collections.abc import Mapping

from loguru import logger
from pydantic import BaseModel

from adapters import get_adapter
from adapters.base import GitPlatformAdapter
from models.platform import ChangeDescriptor, PlatformType, ValidationOutcome
from repositories.catalog import CatalogRepository, RepositoryRecord
from utils.config import Config
from utils.metrics import webhook_outcome_total, webhook_signature_verified_total


class ValidationResult(BaseModel):
    outcome: ValidationOutcome
    platform: PlatformType | None = None
    reason: str = ""
    status_code: int = 200
    change: ChangeDescriptor | None = None
    repository: RepositoryRecord | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome == ValidationOutcome.ACCEPTED


def normalize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(key).lower(): value for key, value in headers.items()}


def detect_platform(headers: Mapping[str, str]) -> PlatformType | None:
    """
    Identify the sending platform from its characteristic headers.

    Args:
        headers: Request headers with lower-cased names
    """
    if "x-gitlab-event" in headers or "x-gitlab-token" in headers:
        return PlatformType.GITLAB
    if "x-github-event" in headers:
        return PlatformType.GITHUB
    return None


class EventValidator:
    """
    Validates inbound webhooks against the repository catalog.

    Secrets are checked in order: the global per-platform secret from
    configuration, then the repository secret, then the host-level secret.
    With none configured the delivery passes only when unsigned webhooks are
    allowed.
    """

    def __init__(self, catalog: CatalogRepository, config: Config) -> None:
        """
        Initialize validator.

        Args:
            catalog: Repository/provider lookups
            config: Application configuration (secrets, unsigned policy)
        """
        self.catalog = catalog
        self.config = config

    def _result(self, outcome: ValidationOutcome, platform: PlatformType | None, **kwargs) -> ValidationResult:
        result = ValidationResult(outcome=outcome, platform=platform, **kwargs)
        webhook_outcome_total.labels(
            platform=platform.value if platform else "unknown", outcome=outcome.value
        ).inc()
        if outcome != ValidationOutcome.ACCEPTED:
            logger.bind(platform=platform.value if platform else "unknown").info(
                f"Webhook {outcome.value}: {result.reason}"
            )
        return result

    def _verify(
        self,
        adapter: GitPlatformAdapter,
        body: bytes,
        headers: Mapping[str, str],
        secret: str,
    ) -> bool:
        is_valid = adapter.verify_signature(body, headers, secret)
        webhook_signature_verified_total.labels(
            platform=adapter.platform.value, result="success" if is_valid else "failure"
        ).inc()
        return is_valid

    def validate(
        self,
        body: bytes,
        headers: Mapping[str, str],
        platform: str | PlatformType | None = None,
    ) -> ValidationResult:
        """
        Validate one webhook delivery.

        Args:
            body: Raw request body
            headers: Request headers (any case)
            platform: Platform from the URL; detected from headers when None

        Returns:
            ValidationResult; never raises for bad input
        """
        headers = normalize_headers(headers)

        if platform is None:
            detected = detect_platform(headers)
            if detected is None:
                return self._result(
                    ValidationOutcome.REJECTED, None,
                    reason="Unable to determine webhook platform", status_code=400,
                )
            platform = detected
        try:
            adapter = get_adapter(platform)
        except ValueError as e:
            return self._result(ValidationOutcome.REJECTED, None, reason=str(e), status_code=400)
        platform = adapter.platform

        # 1. Shallow parse: only the event-kind discriminator
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return self._result(
                ValidationOutcome.REJECTED, platform, reason="Invalid JSON payload", status_code=400
            )
        if not isinstance(payload, dict):
            return self._result(
                ValidationOutcome.REJECTED, platform, reason="Payload must be a JSON object", status_code=400
            )
        if not adapter.is_change_event(payload, headers):
            return self._result(ValidationOutcome.IGNORED, platform, reason="Unsupported event kind")

        # 2. Deep parse
        try:
            change = adapter.parse_webhook(payload)
        except ValueError as e:
            return self._result(ValidationOutcome.REJECTED, platform, reason=str(e), status_code=400)

        # 3. Trigger predicate: merge/close/reopen are ignored before any secret check
        if not adapter.should_trigger_review(change):
            return self._result(
                ValidationOutcome.IGNORED, platform, change=change,
                reason=f"Action '{change.action}' on state '{change.state}' does not trigger review",
            )

        # 4. Global secret, checked before anything touches the database
        global_secret = self.config.webhook_secret_for(platform.value)
        if global_secret and not self._verify(adapter, body, headers, global_secret):
            return self._result(
                ValidationOutcome.REJECTED, platform, reason="Invalid webhook signature", status_code=401
            )

        # 5. Repository resolution
        repository = self.catalog.find_active_repository(
            platform.value, change.repository_external_id
        )
        if repository is None:
            return self._result(
                ValidationOutcome.IGNORED, platform, change=change,
                reason=f"Repository {change.repository_external_id} is not configured",
            )

        # 6. Repository or host secret
        if not global_secret:
            secret = repository.effective_webhook_secret
            if secret:
                if not self._verify(adapter, body, headers, secret):
                    return self._result(
                        ValidationOutcome.REJECTED, platform,
                        reason="Invalid webhook signature", status_code=401,
                    )
            elif self.config.ALLOW_UNSIGNED_WEBHOOKS:
                webhook_signature_verified_total.labels(platform=platform.value, result="unsigned").inc()
                logger.bind(platform=platform.value).warning(
                    f"Accepting unsigned webhook for repository {repository.id}: no secret configured"
                )
            else:
                return self._result(
                    ValidationOutcome.REJECTED, platform,
                    reason="Webhook secret required but not configured", status_code=401,
                )

        if repository.llm_provider is None:
            return self._result(
                ValidationOutcome.IGNORED, platform, change=change, repository=repository,
                reason=f"No LLM provider configured for repository {repository.id}",
            )

        return self._result(
            ValidationOutcome.ACCEPTED, platform, change=change, repository=repository,
            reason="Review requested",
        )
