"""Message router: hands nio events to the right handler.

Handlers run inside nio's sync processing, one event at a time. Anything
slow (history scans, join retries) is pushed to BackgroundTasks, and every
handler logs its own failures so a bad event never stops the sync loop.
"""

import asyncio
import logging

from nio import (
    InviteMemberEvent,
    MatrixRoom,
    RedactionEvent,
    RoomEncryptedImage,
    RoomMessageImage,
    RoomMessageText,
)

from .autojoin import JoinAcceptor
from .config import BotSettings
from .content import location_content, text_content
from .exif import DecodeError, extract_location
from .matrix import ImageEvent, MatrixError, MatrixGateway
from .redactions import RedactionReconciler
from .tasks import BackgroundTasks

logger = logging.getLogger("geolocbot.router")

LEAVE_COMMAND = "!leave"


class MessageRouter:
    """Wires room events to the EXIF codec, redaction reconciler and join acceptor.

    Build it after login: the bot's MXID is read from the gateway here.
    """

    def __init__(self, gateway: MatrixGateway, settings: BotSettings, tasks: BackgroundTasks):
        self.gateway = gateway
        self.settings = settings
        self.tasks = tasks
        self.reconciler = RedactionReconciler(gateway, gateway.user_id, tasks)
        self.acceptor = JoinAcceptor(gateway, gateway.user_id, tasks)

    def register(self):
        """Attach handlers to the client. Call after the initial sync."""
        if self.settings.autojoin:
            self.gateway.add_event_callback(self.on_invite, InviteMemberEvent)
        self.gateway.add_event_callback(self.on_text, RoomMessageText)
        self.gateway.add_event_callback(self.on_image, (RoomMessageImage, RoomEncryptedImage))
        self.gateway.add_event_callback(self.on_redaction, RedactionEvent)

    def _is_own(self, sender: str) -> bool:
        return sender == self.gateway.user_id

    # ── Message handlers ─────────────────────────────────────

    async def on_text(self, room: MatrixRoom, event: RoomMessageText):
        if self.settings.ignore_own_messages and self._is_own(event.sender):
            logger.debug("Skipping message from ourselves.")
            return

        if event.body.strip() != LEAVE_COMMAND:
            return

        logger.info(f"Leaving {room.room_id} on request of {event.sender}")
        try:
            await self.gateway.send_message(room.room_id, text_content("Bye"))
            await self.gateway.leave_room(room.room_id)
        except MatrixError as e:
            logger.error(f"Failed to leave {room.room_id}: {e}")

    async def on_image(self, room: MatrixRoom, event: ImageEvent):
        """Reply with the photo's location, or react with the failure marker."""
        if self.settings.ignore_own_messages and self._is_own(event.sender):
            logger.debug("Skipping image from ourselves.")
            return

        try:
            data = await self.gateway.get_image_bytes(event)
        except MatrixError as e:
            logger.warning(f"Could not fetch image {event.event_id}: {e}")
            return
        if data is None:
            return

        try:
            coordinate = await asyncio.to_thread(extract_location, data)
        except DecodeError as e:
            logger.info(f"No location in {event.event_id}: {type(e).__name__}: {e}")
            await self._react_failure(room.room_id, event.event_id)
            return

        logger.info(f"Location for {event.event_id}: {coordinate.geo_uri}")
        try:
            await self.gateway.send_message(
                room.room_id,
                location_content(coordinate, reply_to=event.event_id),
            )
        except MatrixError as e:
            logger.error(f"Failed to send location for {event.event_id}: {e}")

    async def _react_failure(self, room_id: str, event_id: str):
        try:
            await self.gateway.send_reaction(room_id, event_id, self.settings.failure_reaction)
        except MatrixError as e:
            logger.error(f"Failed to react to {event_id}: {e}")

    # ── Redactions & membership ─────────────────────────────

    async def on_redaction(self, room: MatrixRoom, event: RedactionEvent):
        if not event.redacts:
            return
        self.reconciler.on_redaction(room.room_id, event.sender, event.redacts)

    async def on_invite(self, room: MatrixRoom, event: InviteMemberEvent):
        if event.membership != "invite":
            return
        self.acceptor.on_invite(room.room_id, event.state_key)
