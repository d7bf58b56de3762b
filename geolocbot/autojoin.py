"""Invite auto-accept with exponential backoff.

Synapse can deliver an invite before the invited user is able to join
(matrix-org/synapse#4345), so a failed join is retried:

    attempt → fail → wait 2s → attempt → fail → wait 4s → ...
    → wait 1024s → attempt → fail → give up

The delay doubles after every failure. Once the doubled delay exceeds
MAX_DELAY_SECONDS the acceptor gives up without waiting again: the 2048s
wait that would precede a twelfth attempt is never slept.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional

from .tasks import BackgroundTasks

logger = logging.getLogger("geolocbot.autojoin")

INITIAL_DELAY_SECONDS = 2
MAX_DELAY_SECONDS = 3600


class JoinPhase(Enum):
    IDLE = "idle"
    RETRYING = "retrying"
    ACCEPTED = "accepted"
    GIVEN_UP = "given_up"


@dataclass(frozen=True)
class RetryState:
    """Backoff state for one invite. Transitions return a new state."""

    room_id: str
    delay_seconds: int = INITIAL_DELAY_SECONDS
    attempt: int = 0
    phase: JoinPhase = JoinPhase.IDLE

    @property
    def finished(self) -> bool:
        return self.phase in (JoinPhase.ACCEPTED, JoinPhase.GIVEN_UP)

    def on_attempt(self) -> "RetryState":
        return replace(self, attempt=self.attempt + 1, phase=JoinPhase.RETRYING)

    def on_success(self) -> "RetryState":
        return replace(self, phase=JoinPhase.ACCEPTED)

    def on_failure(self) -> "RetryState":
        """Double the delay; past the ceiling the state is GIVEN_UP."""
        doubled = self.delay_seconds * 2
        if doubled > MAX_DELAY_SECONDS:
            return replace(self, delay_seconds=doubled, phase=JoinPhase.GIVEN_UP)
        return replace(self, delay_seconds=doubled)


class JoinAcceptor:
    """Accepts invites addressed to the bot, one independent retry loop per room.

    Args:
        gateway: Provides ``accept_invite(room_id)``
        user_id: The bot's MXID
        tasks: Where accept loops are submitted
        sleep: Awaitable delay, ``asyncio.sleep`` outside tests
    """

    def __init__(
        self,
        gateway,
        user_id: str,
        tasks: BackgroundTasks,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.user_id = user_id
        self.tasks = tasks
        self._sleep = sleep

    def on_invite(self, room_id: str, invitee: str) -> Optional[asyncio.Task]:
        """Start accepting ``room_id`` if the invite is for us."""
        if invitee != self.user_id:
            return None
        return self.tasks.spawn(self.accept(room_id), name=f"autojoin:{room_id}")

    async def accept(self, room_id: str) -> RetryState:
        """Join ``room_id``, retrying with backoff.

        Returns:
            Final state, ACCEPTED or GIVEN_UP
        """
        logger.info(f"Autojoining room {room_id}")
        state = RetryState(room_id=room_id)

        while not state.finished:
            state = state.on_attempt()
            try:
                await self.gateway.accept_invite(room_id)
            except Exception as e:
                wait = state.delay_seconds
                state = state.on_failure()
                if state.phase is JoinPhase.GIVEN_UP:
                    logger.error(f"Can't join room {room_id} after {state.attempt} attempts ({e})")
                    break
                logger.warning(f"Failed to join room {room_id} ({e}), retrying in {wait}s")
                await self._sleep(wait)
            else:
                state = state.on_success()
                logger.info(f"Successfully joined room {room_id}")

        return state
