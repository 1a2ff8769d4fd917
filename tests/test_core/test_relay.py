"""Tests for the inbound message relay."""

from __future__ import annotations

import pytest
from conftest import group_chat, private_chat, text_message

from chatrelay.core.relay import (
    OTHER_MEDIA_LABEL,
    MessageRelay,
    RelayOutcome,
    media_label,
    message_body,
)
from chatrelay.core.state import SessionPhase, SessionState, SessionStateView
from chatrelay.services.backend import BackendError
from chatrelay.services.session_client import InboundMessage, MediaKind

SENDER = "212633333333@c.us"


def media_message(kind: str, message_id: str | None = None) -> InboundMessage:
    return InboundMessage.from_payload(
        {"from": SENDER, "hasMedia": True, "type": kind, "body": "base64-junk", "id": message_id}
    )


@pytest.fixture
def relay(fake_backend) -> MessageRelay:
    return MessageRelay(fake_backend)


@pytest.fixture
def ready_view() -> SessionStateView:
    return SessionStateView(SessionState(phase=SessionPhase.READY))


class TestClassification:
    """Tests for body extraction and media labels."""

    @pytest.mark.parametrize(
        ("kind", "label"),
        [
            ("image", "Image"),
            ("audio", "Audio"),
            ("video", "Vidéo"),
            ("document", "Document"),
            ("ptt", "Voice Message"),
            ("sticker", "Sticker"),
            ("location", OTHER_MEDIA_LABEL),
        ],
    )
    def test_media_body_is_label(self, kind: str, label: str) -> None:
        """Test media messages carry the fixed label, never the payload."""
        assert message_body(media_message(kind)) == label

    def test_unknown_kind_parses_to_other(self) -> None:
        """Test unknown network types fall back to OTHER."""
        assert MediaKind.parse("vcard") == MediaKind.OTHER
        assert media_label(None) == OTHER_MEDIA_LABEL

    def test_text_body_is_trimmed(self) -> None:
        """Test surrounding whitespace is stripped from text."""
        assert message_body(text_message(SENDER, "  hi there \n")) == "hi there"

    def test_blank_text_has_no_body(self) -> None:
        """Test whitespace-only text yields nothing to relay."""
        assert message_body(text_message(SENDER, " \t\n")) is None


class TestRelay:
    """Tests for MessageRelay.relay."""

    @pytest.mark.asyncio
    async def test_relays_text(self, relay, fake_backend) -> None:
        """Test a text message produces one webhook call."""
        result = await relay.relay(text_message(SENDER, "Bonjour"))

        assert result.outcome == RelayOutcome.RELAYED
        fake_backend.post_message.assert_awaited_once_with(SENDER, "Bonjour")

    @pytest.mark.asyncio
    async def test_self_originated_dropped(self, relay, fake_backend) -> None:
        """Test our own messages never reach the webhook."""
        message = InboundMessage(sender_id=SENDER, is_self_originated=True, text_body="hi")

        result = await relay.relay(message)

        assert result.outcome == RelayOutcome.SELF_ORIGINATED
        fake_backend.post_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_text_dropped(self, relay, fake_backend) -> None:
        """Test whitespace-only text is dropped without a call."""
        result = await relay.relay(text_message(SENDER, "   "))

        assert result.outcome == RelayOutcome.EMPTY
        fake_backend.post_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_media_sends_label(self, relay, fake_backend) -> None:
        """Test a voice note is relayed as its label."""
        await relay.relay(media_message("ptt"))

        fake_backend.post_message.assert_awaited_once_with(SENDER, "Voice Message")

    @pytest.mark.asyncio
    async def test_backend_failure_is_reported(self, relay, fake_backend) -> None:
        """Test a webhook failure becomes a FAILED result instead of raising."""
        fake_backend.post_message.side_effect = BackendError("503")

        result = await relay.relay(text_message(SENDER, "hi"))

        assert result.outcome == RelayOutcome.FAILED
        assert result.error == "503"

    @pytest.mark.asyncio
    async def test_duplicate_id_skipped_within_cycle(self, relay, fake_backend) -> None:
        """Test the same message id is relayed once per ready cycle."""
        await relay.relay(text_message(SENDER, "hi", "abc"))
        second = await relay.relay(text_message(SENDER, "hi", "abc"))

        assert second.outcome == RelayOutcome.DUPLICATE
        assert fake_backend.post_message.await_count == 1

    @pytest.mark.asyncio
    async def test_new_cycle_forgets_ids(self, relay, fake_backend) -> None:
        """Test begin_cycle resets deduplication."""
        await relay.relay(text_message(SENDER, "hi", "abc"))
        relay.begin_cycle()
        await relay.relay(text_message(SENDER, "hi", "abc"))

        assert fake_backend.post_message.await_count == 2


class TestUnreadDrain:
    """Tests for MessageRelay.drain_unread."""

    @pytest.mark.asyncio
    async def test_relays_exactly_unread_count_then_marks_seen(
        self, relay, fake_client, fake_backend, ready_view
    ) -> None:
        """Test a chat with N unread relays the N latest, then is marked seen."""
        fake_client.chats = [private_chat("212633333333", unread=3)]
        fake_client.messages[SENDER] = [text_message(SENDER, f"m{i}") for i in range(5)]
        fake_backend.post_message.side_effect = lambda *_: fake_client.calls.append("post")

        report = await relay.drain_unread(fake_client, ready_view)

        bodies = [c.args[1] for c in fake_backend.post_message.await_args_list]
        assert bodies == ["m2", "m3", "m4"]
        assert f"fetch:{SENDER}:3" in fake_client.calls
        assert fake_client.calls[-4:] == ["post", "post", "post", f"seen:{SENDER}"]
        assert report.chats_drained == 1
        assert len(report.results) == 3

    @pytest.mark.asyncio
    async def test_skips_groups_and_read_chats(
        self, relay, fake_client, fake_backend, ready_view
    ) -> None:
        """Test groups and chats without unread messages are left alone."""
        fake_client.chats = [group_chat("120363000", unread=4), private_chat("212644444444")]

        report = await relay.drain_unread(fake_client, ready_view)

        assert report.chats_drained == 0
        assert fake_client.calls == ["list_chats"]
        fake_backend.post_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chat_error_does_not_stop_drain(
        self, relay, fake_client, fake_backend, ready_view
    ) -> None:
        """Test one failing chat is reported and the next one still drains."""
        other = "212655555555@c.us"
        fake_client.chats = [
            private_chat("212633333333", unread=1),
            private_chat("212655555555", unread=1),
        ]
        fake_client.fail_fetch_for = {SENDER}
        fake_client.messages[other] = [text_message(other, "ok")]

        report = await relay.drain_unread(fake_client, ready_view)

        assert SENDER in report.chat_errors
        assert report.chats_drained == 1
        assert f"seen:{SENDER}" not in fake_client.calls
        fake_backend.post_message.assert_awaited_once_with(other, "ok")

    @pytest.mark.asyncio
    async def test_stops_when_not_ready(self, relay, fake_client, fake_backend) -> None:
        """Test the drain stops as soon as the session leaves Ready."""
        fake_client.chats = [private_chat("212633333333", unread=1)]
        fake_client.messages[SENDER] = [text_message(SENDER, "hi")]
        view = SessionStateView(SessionState(phase=SessionPhase.DISCONNECTED))

        report = await relay.drain_unread(fake_client, view)

        assert report.interrupted
        fake_backend.post_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_object_message_ids_are_flattened(
        self, relay, fake_client, fake_backend, ready_view
    ) -> None:
        """Test messages whose id is an object drain and dedup by its serialized form."""
        other = "212655555555@c.us"
        serialized = f"false_{SENDER}_3EB0C431D5"
        payload = {
            "from": SENDER,
            "body": "hello",
            "id": {"fromMe": False, "remote": SENDER, "id": "3EB0C431D5", "_serialized": serialized},
        }
        message = InboundMessage.from_payload(payload)
        fake_client.chats = [
            private_chat("212633333333", unread=2),
            private_chat("212655555555", unread=1),
        ]
        fake_client.messages[SENDER] = [message, InboundMessage.from_payload(payload)]
        fake_client.messages[other] = [text_message(other, "ok")]

        report = await relay.drain_unread(fake_client, ready_view)

        assert message.message_id == serialized
        assert [r.outcome for r in report.results] == [
            RelayOutcome.RELAYED,
            RelayOutcome.DUPLICATE,
            RelayOutcome.RELAYED,
        ]
        assert report.chats_drained == 2
        assert f"seen:{SENDER}" in fake_client.calls
        assert f"seen:{other}" in fake_client.calls

    @pytest.mark.asyncio
    async def test_unexpected_relay_error_fails_one_message(
        self, relay, fake_client, fake_backend, ready_view
    ) -> None:
        """Test an unexpected error on one message does not abort the drain."""
        fake_client.chats = [private_chat("212633333333", unread=2)]
        fake_client.messages[SENDER] = [text_message(SENDER, "boom"), text_message(SENDER, "ok")]
        fake_backend.post_message.side_effect = [RuntimeError("unexpected"), None]

        report = await relay.drain_unread(fake_client, ready_view)

        assert [r.outcome for r in report.results] == [RelayOutcome.FAILED, RelayOutcome.RELAYED]
        assert "RuntimeError" in report.results[0].error
        assert report.chats_drained == 1
        assert fake_client.calls[-1] == f"seen:{SENDER}"
