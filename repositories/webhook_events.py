"""
MergeGuard - Webhook delivery log.
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from models.platform import ChangeDescriptor, EventStatus
from models.tables import WebhookEvent
from repositories.database import Database
from utils.degradation import best_effort


class WebhookEventRepository:
    """
    Repository for accepted webhook deliveries.

    Deliveries are deduplicated by (repository, head commit): a redelivery
    for the same commit returns the existing row.
    """

    def __init__(self, database: Database) -> None:
        self.db = database

    @best_effort("webhook_event")
    def record(
        self,
        repository_id: int,
        change: ChangeDescriptor,
        raw_payload: str | None = None,
        event_type: str = "merge_request",
    ) -> int | None:
        """
        Record an accepted delivery.

        Args:
            repository_id: Internal repository id
            change: Normalized change descriptor
            raw_payload: Request body as received
            event_type: Platform event name

        Returns:
            The event id (new or existing), or None if recording failed
        """
        commit_sha = change.head_commit_id or None
        try:
            with self.db.session() as session:
                if commit_sha is not None:
                    existing = session.scalars(
                        select(WebhookEvent.id).where(
                            WebhookEvent.repository_id == repository_id,
                            WebhookEvent.commit_sha == commit_sha,
                        )
                    ).first()
                    if existing is not None:
                        logger.debug(f"Webhook event for commit {commit_sha} already recorded")
                        return existing

                event = WebhookEvent(
                    repository_id=repository_id,
                    event_type=event_type,
                    action=change.action,
                    merge_request_id=change.change_id,
                    commit_sha=commit_sha,
                    status=EventStatus.PENDING.value,
                    raw_payload=raw_payload,
                )
                session.add(event)
                session.flush()
                return event.id
        except IntegrityError:
            # A concurrent delivery recorded the same commit
            with self.db.session() as session:
                return session.scalars(
                    select(WebhookEvent.id).where(
                        WebhookEvent.repository_id == repository_id,
                        WebhookEvent.commit_sha == commit_sha,
                    )
                ).first()

    @best_effort("webhook_event")
    def update_status(
        self, event_id: int | None, status: EventStatus, error_message: str | None = None
    ) -> None:
        if event_id is None:
            return
        values: dict = {"status": status.value}
        if status in (EventStatus.COMPLETED, EventStatus.FAILED):
            values["processed_at"] = datetime.now(timezone.utc)
        if error_message:
            values["error_message"] = error_message[:1000]
        with self.db.session() as session:
            session.execute(update(WebhookEvent).where(WebhookEvent.id == event_id).values(**values))

    def get_status(self, event_id: int) -> EventStatus | None:
        with self.db.session() as session:
            event = session.get(WebhookEvent, event_id)
            return EventStatus(event.status) if event else None
