"""Event content builders for the messages the bot sends."""

from typing import Optional

from .exif import GeoCoordinate

FAILURE_REACTION = "🚫"
RETRACTION_REASON = "Image got removed. Location pointless now."


def _reply_relation(event_id: str) -> dict:
    return {"m.in_reply_to": {"event_id": event_id}}


def text_content(body: str, reply_to: Optional[str] = None) -> dict:
    content = {"msgtype": "m.text", "body": body}
    if reply_to:
        content["m.relates_to"] = _reply_relation(reply_to)
    return content


def location_content(coordinate: GeoCoordinate, reply_to: Optional[str] = None) -> dict:
    """``m.location`` message for ``coordinate``, optionally threaded as a reply.

    The geo URI doubles as the fallback body, like other bots that only
    know a position and no place name.
    """
    uri = coordinate.geo_uri
    content = {"msgtype": "m.location", "body": uri, "geo_uri": uri}
    if reply_to:
        content["m.relates_to"] = _reply_relation(reply_to)
    return content


def reaction_content(target_event_id: str, key: str) -> dict:
    return {
        "m.relates_to": {
            "rel_type": "m.annotation",
            "event_id": target_event_id,
            "key": key,
        }
    }
