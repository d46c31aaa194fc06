"""Writes notification intents to the outbox in the caller's transaction."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.notifications import NotificationContent
from transfer.infrastructure.models import NotificationModel
from transfer.infrastructure.repositories import NotificationRepository

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, session: AsyncSession):
        self.repo = NotificationRepository(session)

    def send(
        self,
        recipient_id: Optional[str],
        content: NotificationContent,
        booking_id: Optional[int] = None,
    ) -> None:
        """Queue *content* for *recipient_id*; a missing recipient is skipped."""
        if not recipient_id:
            logger.debug("No recipient for %s on booking %s", content.kind, booking_id)
            return
        self.repo.add(
            NotificationModel(
                recipient_id=recipient_id,
                booking_id=booking_id,
                kind=content.kind,
                title_th=content.title_th,
                title_en=content.title_en,
                body_th=content.body_th,
                body_en=content.body_en,
            )
        )
