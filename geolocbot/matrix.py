"""Matrix gateway: the bot's only contact with the homeserver.

Wraps ``nio.AsyncClient`` so the rest of the bot deals in plain dicts,
event ids and exceptions instead of nio response objects.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional, Union

from nio import (
    AsyncClient,
    AsyncClientConfig,
    ErrorResponse,
    LocalProtocolError,
    RoomEncryptedImage,
    RoomMessageImage,
)
from nio.api import MessageDirection
from nio.crypto.attachments import decrypt_attachment

from .config import BotSettings
from .content import reaction_content

logger = logging.getLogger("geolocbot.matrix")


class MatrixError(Exception):
    """Base class for gateway failures."""
    pass

class MatrixRequestError(MatrixError):
    """The homeserver rejected a request (or it never reached it)."""

    def __init__(self, message: str, status_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_response(cls, action: str, response: ErrorResponse) -> "MatrixRequestError":
        return cls(f"{action} failed: {response.message}", response.status_code)

class MediaDecryptionError(MatrixError):
    """An encrypted attachment could not be decrypted."""
    pass


@dataclass
class HistoryPage:
    """One ``/messages`` chunk, newest first."""

    events: list[dict] = field(default_factory=list)
    end: Optional[str] = None


ImageEvent = Union[RoomMessageImage, RoomEncryptedImage]


def _check(action: str, response):
    """Raise MatrixRequestError for nio error responses, pass anything else through."""
    if isinstance(response, ErrorResponse):
        raise MatrixRequestError.from_response(action, response)
    return response


class MatrixGateway:
    """Homeserver operations used by the router, reconciler and join acceptor."""

    def __init__(self, settings: BotSettings, client: Optional[AsyncClient] = None):
        self.settings = settings
        self.client = client or AsyncClient(
            settings.homeserver_url,
            settings.username,
            config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
        )

    @property
    def user_id(self) -> str:
        return self.client.user_id

    # ── Session ─────────────────────────────────────────────

    async def login(self):
        """Password login. Raises MatrixRequestError when refused."""
        response = await self.client.login(
            self.settings.password,
            device_name=self.settings.device_name,
        )
        _check("login", response)
        logger.info(f"Logged in as {self.client.user_id}")

    async def initial_sync(self) -> str:
        """One sync so history from before startup is not answered.

        Returns:
            The ``next_batch`` token to continue syncing from
        """
        response = _check(
            "sync",
            await self.client.sync(timeout=self.settings.sync_timeout_ms, full_state=True),
        )
        return response.next_batch

    async def sync_forever(self, since: str):
        await self.client.sync_forever(
            timeout=self.settings.sync_timeout_ms,
            since=since,
        )

    def add_event_callback(self, callback: Callable, event_types):
        self.client.add_event_callback(callback, event_types)

    async def close(self):
        await self.client.close()

    # ── Media ───────────────────────────────────────────────

    async def get_image_bytes(self, event: ImageEvent) -> Optional[bytes]:
        """Download (and decrypt) the file behind an image event.

        Returns:
            The file bytes, or None when the event has no file or the
            homeserver no longer has it

        Raises:
            MatrixRequestError: download failed
            MediaDecryptionError: encrypted attachment did not decrypt
        """
        url = getattr(event, "url", None)
        if not url:
            return None

        response = await self.client.download(mxc=url)
        if isinstance(response, ErrorResponse):
            if response.status_code == "M_NOT_FOUND":
                logger.info(f"Media {url} not available")
                return None
            raise MatrixRequestError.from_response("download", response)

        data = response.body
        if isinstance(event, RoomEncryptedImage):
            try:
                data = decrypt_attachment(
                    data,
                    event.key["k"],
                    event.hashes["sha256"],
                    event.iv,
                )
            except Exception as e:
                raise MediaDecryptionError(f"Cannot decrypt {url}: {e}") from e
        return data

    # ── History ─────────────────────────────────────────────

    async def history_pages(self, room_id: str, sender: str) -> AsyncIterator[HistoryPage]:
        """Page backward from now through events sent by ``sender`` in ``room_id``.

        Stops after ``history_max_pages`` pages or when the server has no
        older events.

        Raises:
            MatrixRequestError: a ``/messages`` request failed
        """
        message_filter = {"senders": [sender], "rooms": [room_id]}
        token: Optional[str] = None

        for _ in range(self.settings.history_max_pages):
            response = _check(
                "room_messages",
                await self.client.room_messages(
                    room_id,
                    start=token,
                    direction=MessageDirection.back,
                    limit=self.settings.history_page_size,
                    message_filter=message_filter,
                ),
            )
            yield HistoryPage(
                events=[event.source for event in response.chunk],
                end=response.end,
            )
            if not response.chunk or not response.end:
                break
            token = response.end

    # ── Sending ─────────────────────────────────────────────

    async def _room_send(self, room_id: str, message_type: str, content: dict) -> str:
        try:
            response = await self.client.room_send(
                room_id,
                message_type=message_type,
                content=content,
                ignore_unverified_devices=True,
            )
        except LocalProtocolError as e:
            raise MatrixRequestError(f"room_send failed: {e}") from e
        return _check("room_send", response).event_id

    async def send_message(self, room_id: str, content: dict) -> str:
        """Send an ``m.room.message``. Returns the new event id."""
        return await self._room_send(room_id, "m.room.message", content)

    async def send_reaction(self, room_id: str, target_event_id: str, key: str) -> str:
        """Annotate ``target_event_id`` with ``key``. Returns the reaction event id."""
        return await self._room_send(room_id, "m.reaction", reaction_content(target_event_id, key))

    async def redact_event(self, room_id: str, event_id: str, reason: Optional[str] = None):
        _check("room_redact", await self.client.room_redact(room_id, event_id, reason=reason))

    # ── Membership ──────────────────────────────────────────

    async def accept_invite(self, room_id: str):
        _check("join", await self.client.join(room_id))

    async def leave_room(self, room_id: str):
        _check("room_leave", await self.client.room_leave(room_id))
