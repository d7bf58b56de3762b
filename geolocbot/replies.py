"""Reply scanning: find which event a historical message replies to.

History pages are heterogeneous (encrypted and plain messages, reactions,
state, redacted leftovers), so every lookup here is best-effort: anything
that is not a well-formed reply yields ``None``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class MessageKind(Enum):
    """Message shapes that can carry a reply relation."""

    PROTECTED = "m.room.encrypted"
    ORDINARY = "m.room.message"


@dataclass(frozen=True)
class ReplyRelation:
    """Reply relation found on a message, tagged with the message shape."""

    kind: MessageKind
    in_reply_to: str


@dataclass(frozen=True)
class ReplyEdge:
    """``from_event`` is a reply to ``to_event``."""

    from_event: str
    to_event: str


def message_kind(event: dict) -> Optional[MessageKind]:
    """Classify a raw event by its type. State events are never messages."""
    if not isinstance(event, dict) or "state_key" in event:
        return None
    try:
        return MessageKind(event.get("type"))
    except ValueError:
        return None


def _in_reply_to(content: Any) -> Optional[str]:
    if not isinstance(content, dict):
        return None
    relates_to = content.get("m.relates_to")
    if not isinstance(relates_to, dict):
        return None
    # Threads, edits and annotations may carry a reply fallback; they are not replies
    if "rel_type" in relates_to:
        return None
    in_reply_to = relates_to.get("m.in_reply_to")
    if not isinstance(in_reply_to, dict):
        return None
    event_id = in_reply_to.get("event_id")
    if isinstance(event_id, str) and event_id:
        return event_id
    return None


def parse_reply_relation(event: dict) -> Optional[ReplyRelation]:
    """Return the reply relation of a message event, if it has one.

    Encrypted events keep ``m.relates_to`` in cleartext next to the
    ciphertext, so both shapes are read from the top level of ``content``.
    """
    kind = message_kind(event)
    if kind is None:
        return None

    content = event.get("content")
    if kind is MessageKind.PROTECTED:
        if not isinstance(content, dict) or "ciphertext" not in content:
            return None
        target = _in_reply_to(content)
    else:
        if not isinstance(content, dict) or "msgtype" not in content:
            return None
        target = _in_reply_to(content)

    if target is None:
        return None
    return ReplyRelation(kind=kind, in_reply_to=target)


def find_reply_edge(event: dict) -> Optional[ReplyEdge]:
    """Extract ``(this event, replied-to event)`` from a raw timeline event.

    Args:
        event: Raw event as delivered by the homeserver (``nio`` ``Event.source``)

    Returns:
        ReplyEdge, or None for non-replies, non-messages and malformed payloads
    """
    relation = parse_reply_relation(event)
    if relation is None:
        return None
    event_id = event.get("event_id")
    if not isinstance(event_id, str) or not event_id:
        return None
    return ReplyEdge(from_event=event_id, to_event=relation.in_reply_to)
