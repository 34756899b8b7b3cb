"""
Tests for the outbound sender.
"""

import asyncio

import pytest

from conftest import settle
from whatsapp_gateway.auth.base import MemoryAuthStore
from whatsapp_gateway.errors import Cancelled, SessionNotConnected, SessionNotFound
from whatsapp_gateway.outbound.rate_queue import RateLimitConfig
from whatsapp_gateway.service.outbound import OutboundSender
from whatsapp_gateway.sessions.orchestrator import SessionOrchestrator


def paced_config(session_id):
    return RateLimitConfig(
        messages_per_minute=10,
        min_delay_ms=0,
        max_delay_ms=0,
        jitter_ms=0,
        per_recipient_delay_ms=0,
    )


@pytest.fixture
def orchestrator(transports, recording_sleep):
    """Orchestrator over stub transports."""
    return SessionOrchestrator(transports, MemoryAuthStore(), sleep=recording_sleep)


@pytest.fixture
def sender(orchestrator, fake_clock):
    """Sender with fast pacing on a simulated clock."""
    return OutboundSender(orchestrator, config_factory=paced_config, clock=fake_clock)


class TestOutboundSender:
    """Tests for paced sending through sessions."""

    @pytest.mark.asyncio
    async def test_unknown_session(self, sender):
        """Test sending from an unknown session fails immediately."""
        with pytest.raises(SessionNotFound):
            sender.send_message("missing", "5511@s.whatsapp.net", {"text": "hi"})

    @pytest.mark.asyncio
    async def test_send_through_connected_session(self, sender, orchestrator, transports, sample_jid):
        """Test a connected session sends through its transport."""
        await orchestrator.create_session("s1")
        transports.latest.open()

        result = await sender.send_message("s1", sample_jid, {"text": "Seu pedido saiu"})

        assert result.success
        assert result.message_id.startswith("stub_msg_")
        assert transports.latest.sent_messages[0]["to"] == sample_jid
        assert transports.latest.sent_messages[0]["payload"] == {"text": "Seu pedido saiu"}
        assert sender.stats("s1").sent_today == 1

    @pytest.mark.asyncio
    async def test_session_not_connected(self, sender, orchestrator, sample_jid):
        """Test sends from a session that is not connected fail at dispatch."""
        await orchestrator.create_session("s1")

        with pytest.raises(SessionNotConnected):
            await sender.send_message("s1", sample_jid, {"text": "hi"})

    @pytest.mark.asyncio
    async def test_queue_per_session(self, sender, orchestrator, transports, sample_jid):
        """Test each session gets its own queue."""
        await orchestrator.create_session("a")
        transports.latest.open()
        await orchestrator.create_session("b")
        transports.latest.open()

        await asyncio.gather(
            sender.send_message("a", sample_jid, {"text": "1"}),
            sender.send_message("a", sample_jid, {"text": "2"}),
            sender.send_message("b", sample_jid, {"text": "3"}),
        )

        assert sender.queue_for("a") is not sender.queue_for("b")
        assert sender.stats("a").sent_today == 2
        assert sender.stats("b").sent_today == 1

    @pytest.mark.asyncio
    async def test_destroy_releases_queue(self, sender, orchestrator, transports, sample_jid):
        """Test destroying a session rejects its queued sends."""
        await orchestrator.create_session("s1")
        transports.latest.open()

        futures = [sender.send_message("s1", sample_jid, {"text": str(i)}) for i in range(3)]
        await orchestrator.destroy_session("s1")
        await settle()

        for future in futures:
            with pytest.raises((Cancelled, SessionNotConnected)):
                await future
        assert sender.stats("s1") is None
        assert transports.latest.sent_messages == []

    @pytest.mark.asyncio
    async def test_aclose(self, sender, orchestrator, transports, sample_jid):
        """Test aclose closes every queue."""
        await orchestrator.create_session("s1")
        transports.latest.open()
        queue = sender.queue_for("s1")

        await sender.aclose()

        assert queue.closed
        assert sender.stats("s1") is None
