"""Tests for redaction follow-up."""

import pytest
from unittest.mock import AsyncMock

from geolocbot.content import RETRACTION_REASON
from geolocbot.matrix import HistoryPage, MatrixRequestError
from geolocbot.redactions import RedactionReconciler
from geolocbot.tasks import BackgroundTasks

BOT = "@bot:example.org"
ROOM = "!room:example.org"


def _reply(event_id: str, in_reply_to: str) -> dict:
    return {
        "type": "m.room.message",
        "event_id": event_id,
        "sender": BOT,
        "content": {
            "msgtype": "m.location",
            "body": "geo:1,2",
            "geo_uri": "geo:1,2",
            "m.relates_to": {"m.in_reply_to": {"event_id": in_reply_to}},
        },
    }


class FakeGateway:
    """History served from a fixed list of pages; redactions recorded."""

    def __init__(self, pages=None, history_error=None, redact_side_effect=None):
        self.pages = pages or []
        self.history_error = history_error
        self.history_calls = []
        self.redact_event = AsyncMock(side_effect=redact_side_effect)

    async def history_pages(self, room_id, sender):
        self.history_calls.append((room_id, sender))
        for page in self.pages:
            yield page
        if self.history_error:
            raise self.history_error


class TestReconcile:
    """Test the reconciliation pass."""

    @pytest.mark.asyncio
    async def test_retracts_only_matching_replies(self):
        gateway = FakeGateway(pages=[HistoryPage(events=[
            _reply("$a", "$photo"),
            _reply("$b", "$other"),
            _reply("$c", "$photo"),
        ])])
        reconciler = RedactionReconciler(gateway, BOT, BackgroundTasks())

        retracted = await reconciler.reconcile(ROOM, "$photo")

        assert retracted == ["$a", "$c"]
        assert gateway.history_calls == [(ROOM, BOT)]
        assert [c.args[1] for c in gateway.redact_event.await_args_list] == ["$a", "$c"]
        for call in gateway.redact_event.await_args_list:
            assert call.args[0] == ROOM
            assert call.kwargs["reason"] == RETRACTION_REASON

    @pytest.mark.asyncio
    async def test_scans_every_page(self):
        gateway = FakeGateway(pages=[
            HistoryPage(events=[_reply("$a", "$photo")], end="t1"),
            HistoryPage(events=[_reply("$b", "$photo")], end=None),
        ])
        reconciler = RedactionReconciler(gateway, BOT, BackgroundTasks())

        assert await reconciler.reconcile(ROOM, "$photo") == ["$a", "$b"]

    @pytest.mark.asyncio
    async def test_ignores_non_replies(self):
        gateway = FakeGateway(pages=[HistoryPage(events=[
            {"type": "m.reaction", "event_id": "$r", "content": {}},
            {"type": "m.room.message", "event_id": "$t", "content": {"msgtype": "m.text", "body": "Bye"}},
        ])])
        reconciler = RedactionReconciler(gateway, BOT, BackgroundTasks())

        assert await reconciler.reconcile(ROOM, "$photo") == []
        gateway.redact_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_redaction_failure_is_skipped(self):
        gateway = FakeGateway(
            pages=[HistoryPage(events=[_reply("$a", "$photo"), _reply("$b", "$photo")])],
            redact_side_effect=[MatrixRequestError("forbidden", "M_FORBIDDEN"), None],
        )
        reconciler = RedactionReconciler(gateway, BOT, BackgroundTasks())

        assert await reconciler.reconcile(ROOM, "$photo") == ["$b"]
        assert gateway.redact_event.await_count == 2

    @pytest.mark.asyncio
    async def test_history_failure_ends_pass(self, caplog):
        gateway = FakeGateway(
            pages=[HistoryPage(events=[_reply("$a", "$photo")])],
            history_error=MatrixRequestError("room_messages failed: timeout"),
        )
        reconciler = RedactionReconciler(gateway, BOT, BackgroundTasks())

        retracted = await reconciler.reconcile(ROOM, "$photo")

        assert retracted == ["$a"]
        assert "History query failed" in caplog.text


class TestOnRedaction:
    """Test redaction dispatch."""

    @pytest.mark.asyncio
    async def test_own_redaction_ignored(self):
        gateway = FakeGateway(pages=[HistoryPage(events=[_reply("$a", "$photo")])])
        tasks = BackgroundTasks()
        reconciler = RedactionReconciler(gateway, BOT, tasks)

        assert reconciler.on_redaction(ROOM, BOT, "$photo") is None
        await tasks.join()
        assert gateway.history_calls == []
        gateway.redact_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_runs_in_background(self):
        gateway = FakeGateway(pages=[HistoryPage(events=[_reply("$a", "$photo")])])
        tasks = BackgroundTasks()
        reconciler = RedactionReconciler(gateway, BOT, tasks)

        task = reconciler.on_redaction(ROOM, "@alice:example.org", "$photo")

        # Nothing has run yet: the handler only scheduled the pass
        assert task is not None
        gateway.redact_event.assert_not_called()

        assert await task == ["$a"]
        gateway.redact_event.assert_awaited_once_with(ROOM, "$a", reason=RETRACTION_REASON)
