"""Redaction follow-up: retract our location replies when the photo is removed."""

import asyncio
import logging
from typing import Optional

from .content import RETRACTION_REASON
from .matrix import MatrixError
from .replies import find_reply_edge
from .tasks import BackgroundTasks

logger = logging.getLogger("geolocbot.redactions")


class RedactionReconciler:
    """Finds the bot's own replies to a redacted event and redacts them too.

    Args:
        gateway: Provides ``history_pages(room_id, sender)`` and
            ``redact_event(room_id, event_id, reason)``
        user_id: The bot's MXID
        tasks: Where reconciliation passes are submitted
        reason: Redaction reason attached to each retraction
    """

    def __init__(
        self,
        gateway,
        user_id: str,
        tasks: BackgroundTasks,
        reason: str = RETRACTION_REASON,
    ):
        self.gateway = gateway
        self.user_id = user_id
        self.tasks = tasks
        self.reason = reason

    def on_redaction(
        self,
        room_id: str,
        sender: str,
        redacted_event_id: str,
    ) -> Optional[asyncio.Task]:
        """Schedule a reconciliation pass for a redaction seen in ``room_id``.

        Returns immediately; the pass runs in the background.

        Returns:
            The scheduled task, or None when the redaction was our own
        """
        if sender == self.user_id:
            logger.debug(f"Skipping own redaction of {redacted_event_id}")
            return None

        return self.tasks.spawn(
            self.reconcile(room_id, redacted_event_id),
            name=f"reconcile:{room_id}:{redacted_event_id}",
        )

    async def reconcile(self, room_id: str, redacted_event_id: str) -> list[str]:
        """Redact every message of ours in ``room_id`` that replies to ``redacted_event_id``.

        Returns:
            Event ids that were redacted successfully, newest first
        """
        retracted: list[str] = []
        try:
            async for page in self.gateway.history_pages(room_id, sender=self.user_id):
                for event in page.events:
                    edge = find_reply_edge(event)
                    if edge is None or edge.to_event != redacted_event_id:
                        continue
                    if await self._retract(room_id, edge.from_event, redacted_event_id):
                        retracted.append(edge.from_event)
        except MatrixError as e:
            logger.warning(f"History query failed in {room_id}: {e}")

        return retracted

    async def _retract(self, room_id: str, event_id: str, redacted_event_id: str) -> bool:
        try:
            await self.gateway.redact_event(room_id, event_id, reason=self.reason)
        except Exception as e:
            # Best-effort
            logger.warning(f"Failed to redact {event_id} in {room_id}: {e}")
            return False
        logger.info(f"Redacted {event_id}, our response to redacted {redacted_event_id}")
        return True
