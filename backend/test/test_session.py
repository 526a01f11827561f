"""NegotiationSession 상태 머신 테스트."""

import asyncio
import logging

import pytest

from modules.shared import dto
from modules.webrtc import (
    NegotiationSession,
    NegotiationTimeout,
    ResourceError,
    SignalingState,
    TransportError,
)

from conftest import FakeEngine, FakeMediaProvider, SentMessages, candidate, wait_until

OFFER = {"sdp": "remote-offer", "type": "offer"}
ANSWER = {"sdp": "remote-answer", "type": "answer"}


class ErrorSink:
    def __init__(self):
        self.errors = []

    async def __call__(self, error):
        self.errors.append(error)


# ==================== offer / answer ====================


@pytest.mark.asyncio
async def test_create_offer_moves_idle_to_offer_sent(session, engine, sent):
    assert await session.create_offer() is True

    assert session.state is SignalingState.OFFER_SENT
    assert session.local_description == {"sdp": "engine-offer", "type": "offer"}
    assert sent.items == [(dto.OFFER, {"offer": session.local_description, "roomId": "r1"})]


@pytest.mark.asyncio
async def test_second_create_offer_is_ignored(session, sent, caplog):
    await session.create_offer()

    with caplog.at_level(logging.WARNING):
        assert await session.create_offer() is False

    assert session.state is SignalingState.OFFER_SENT
    assert sent.events() == [dto.OFFER]
    assert "createOffer not allowed in state OfferSent" in caplog.text


@pytest.mark.asyncio
async def test_answer_in_idle_is_ignored(session, engine):
    assert await session.receive_answer(ANSWER) is False

    assert session.state is SignalingState.IDLE
    assert session.remote_description is None
    assert engine.calls == []


@pytest.mark.asyncio
async def test_receive_offer_sends_answer_and_connects(session, engine, sent):
    assert await session.receive_offer(OFFER) is True

    assert session.state is SignalingState.CONNECTED
    assert session.remote_description == OFFER
    assert engine.remote == OFFER
    assert sent.items == [
        (dto.ANSWER, {"answer": {"sdp": "engine-answer", "type": "answer"}, "roomId": "r1"})
    ]


@pytest.mark.asyncio
async def test_offer_while_offer_sent_is_ignored(session, sent):
    await session.create_offer()

    assert await session.receive_offer(OFFER) is False

    assert session.state is SignalingState.OFFER_SENT
    assert session.remote_description is None
    assert sent.events() == [dto.OFFER]


@pytest.mark.asyncio
async def test_receive_answer_connects(session, engine):
    await session.create_offer()

    assert await session.receive_answer(ANSWER) is True

    assert session.state is SignalingState.CONNECTED
    assert session.remote_description == ANSWER


@pytest.mark.asyncio
async def test_duplicate_answer_is_ignored(session, engine):
    await session.create_offer()
    await session.receive_answer(ANSWER)

    assert await session.receive_answer({"sdp": "other", "type": "answer"}) is False
    assert session.remote_description == ANSWER
    assert engine.calls.count("set_remote_description") == 1


# ==================== engine failures ====================


@pytest.mark.asyncio
async def test_create_offer_failure_keeps_idle(session, engine, sent):
    engine.fail.add("create_local_offer")

    with pytest.raises(TransportError) as exc_info:
        await session.create_offer()

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert session.state is SignalingState.IDLE
    assert session.pending is None
    assert sent.items == []

    engine.fail.clear()
    assert await session.create_offer() is True


@pytest.mark.asyncio
async def test_receive_offer_failure_keeps_idle(session, engine, sent):
    engine.fail.add("create_local_answer")

    with pytest.raises(TransportError):
        await session.receive_offer(OFFER)

    assert session.state is SignalingState.IDLE
    assert session.remote_description is None
    assert session.local_description is None
    assert sent.items == []


@pytest.mark.asyncio
async def test_receive_answer_failure_keeps_offer_sent(session, engine):
    await session.create_offer()
    engine.fail.add("set_remote_description")

    with pytest.raises(TransportError):
        await session.receive_answer(ANSWER)

    assert session.state is SignalingState.OFFER_SENT
    assert session.remote_description is None


# ==================== candidates ====================


@pytest.mark.asyncio
async def test_candidates_before_remote_description_are_buffered(session, engine):
    await session.create_offer()
    for n in range(3):
        assert await session.receive_candidate(candidate(n)) is True

    assert engine.applied == []
    assert len(session.candidates) == 3

    await session.receive_answer(ANSWER)

    assert engine.applied == [candidate(0), candidate(1), candidate(2)]
    assert len(session.candidates) == 0


@pytest.mark.asyncio
async def test_buffered_candidates_applied_before_answer_is_sent(engine):
    order = []

    async def send(event, payload):
        order.append(("send", event, len(engine.applied)))

    session = NegotiationSession("r1", engine, send)
    await session.receive_candidate(candidate(1))
    await session.receive_candidate(candidate(2))

    await session.receive_offer(OFFER)

    assert engine.applied == [candidate(1), candidate(2)]
    assert order == [("send", dto.ANSWER, 2)]


@pytest.mark.asyncio
async def test_candidate_after_remote_description_applied_immediately(session, engine):
    await session.receive_offer(OFFER)

    await session.receive_candidate(candidate(7))

    assert engine.applied == [candidate(7)]


@pytest.mark.asyncio
async def test_rejected_candidate_raises_transport_error(session):
    await session.receive_offer(OFFER)

    with pytest.raises(TransportError):
        await session.receive_candidate({"candidate": "bad"})

    assert session.state is SignalingState.CONNECTED


@pytest.mark.asyncio
async def test_rejected_buffered_candidate_reported_and_rest_applied(session, engine):
    errors = ErrorSink()
    session.on_error = errors
    await session.create_offer()
    await session.receive_candidate(candidate(1))
    await session.receive_candidate({"candidate": "bad"})
    await session.receive_candidate(candidate(2))

    assert await session.receive_answer(ANSWER) is True

    assert session.state is SignalingState.CONNECTED
    assert engine.applied == [candidate(1), candidate(2)]
    assert len(errors.errors) == 1
    assert isinstance(errors.errors[0], TransportError)


@pytest.mark.asyncio
async def test_candidate_after_close_is_ignored(session, engine):
    await session.close()

    assert await session.receive_candidate(candidate(1)) is False
    assert len(session.candidates) == 0


@pytest.mark.asyncio
async def test_local_candidates_are_sent_with_room(session, engine, sent):
    await engine.emit_local_candidate(candidate(3))

    assert sent.items == [(dto.ICE_CANDIDATE, {"candidate": candidate(3), "roomId": "r1"})]

    await session.close()
    await engine.emit_local_candidate(candidate(4))
    assert len(sent.items) == 1


# ==================== concurrency ====================


@pytest.mark.asyncio
async def test_transition_rejected_while_another_is_pending(session, engine, sent):
    gate = asyncio.Event()
    engine.gates["create_local_offer"] = gate

    task = asyncio.create_task(session.create_offer())
    await wait_until(lambda: session.pending == "createOffer")

    assert await session.receive_offer(OFFER) is False
    assert await session.create_offer() is False

    gate.set()
    assert await task is True
    assert session.state is SignalingState.OFFER_SENT
    assert sent.events() == [dto.OFFER]
    assert engine.remote is None


@pytest.mark.asyncio
async def test_candidates_accepted_while_transition_pending(session, engine):
    gate = asyncio.Event()
    engine.gates["create_local_answer"] = gate

    task = asyncio.create_task(session.receive_offer(OFFER))
    await wait_until(lambda: "create_local_answer" in engine.calls)

    assert await session.receive_candidate(candidate(1)) is True
    assert engine.applied == []

    gate.set()
    await task
    assert engine.applied == [candidate(1)]


@pytest.mark.asyncio
async def test_close_during_pending_offer_discards_result(session, engine, sent):
    gate = asyncio.Event()
    engine.gates["create_local_offer"] = gate

    task = asyncio.create_task(session.create_offer())
    await wait_until(lambda: session.pending == "createOffer")
    await session.close()
    gate.set()

    assert await task is False
    assert session.state is SignalingState.CLOSED
    assert sent.items == []
    assert engine.local is None


@pytest.mark.asyncio
async def test_close_during_pending_offer_discards_engine_failure(session, engine):
    gate = asyncio.Event()
    engine.gates["create_local_offer"] = gate
    engine.fail.add("create_local_offer")

    task = asyncio.create_task(session.create_offer())
    await wait_until(lambda: session.pending == "createOffer")
    await session.close()
    gate.set()

    assert await task is False


# ==================== close ====================


@pytest.mark.asyncio
async def test_close_is_idempotent(session, engine):
    await session.close()
    await session.close()

    assert session.state is SignalingState.CLOSED
    assert engine.closed is True
    assert await session.create_offer() is False


@pytest.mark.asyncio
async def test_connection_state_is_observed_without_transition(session, engine):
    states = []

    async def on_state(state):
        states.append(state)

    session.on_connection_state = on_state
    await engine.emit_connection_state("failed")

    assert session.connection_state == "failed"
    assert session.state is SignalingState.IDLE
    assert states == ["failed"]


# ==================== media ====================


@pytest.mark.asyncio
async def test_start_call_adds_tracks_and_sends_offer(engine, sent):
    media = FakeMediaProvider()
    session = NegotiationSession("r1", engine, sent, media=media)

    assert await session.start_call() is True

    assert engine.tracks == ["audio-track", "video-track"]
    assert media.acquired[0].source == {"audio": True, "video": True}
    assert session.state is SignalingState.OFFER_SENT

    await session.close()
    assert media.released == media.acquired


@pytest.mark.asyncio
async def test_start_call_without_media_provider(session):
    with pytest.raises(ResourceError):
        await session.start_call()
    assert session.state is SignalingState.IDLE


@pytest.mark.asyncio
async def test_start_call_media_failure_keeps_idle(engine, sent):
    session = NegotiationSession("r1", engine, sent, media=FakeMediaProvider(fail=True))

    with pytest.raises(ResourceError):
        await session.start_call({"audio": True})

    assert session.state is SignalingState.IDLE
    assert session.pending is None
    assert sent.items == []


@pytest.mark.asyncio
async def test_start_call_offer_failure_releases_stream(engine, sent):
    media = FakeMediaProvider()
    session = NegotiationSession("r1", engine, sent, media=media)
    engine.fail.add("create_local_offer")

    with pytest.raises(TransportError):
        await session.start_call()

    assert media.released == media.acquired
    assert session.state is SignalingState.IDLE

    engine.fail.clear()
    assert await session.start_call() is True
    await session.close()

    assert len(media.acquired) == 2
    assert media.released == media.acquired


@pytest.mark.asyncio
async def test_close_during_media_acquisition_releases_late_stream(engine, sent):
    gate = asyncio.Event()
    media = FakeMediaProvider(gate=gate)
    session = NegotiationSession("r1", engine, sent, media=media)

    task = asyncio.create_task(session.start_call())
    await wait_until(lambda: session.pending == "startCall")
    await session.close()
    gate.set()

    assert await task is False
    assert media.released == media.acquired
    assert len(media.acquired) == 1
    assert engine.tracks == []
    assert sent.items == []


# ==================== offer timeout ====================


@pytest.mark.asyncio
async def test_offer_timeout_closes_session():
    engine = FakeEngine()
    errors = ErrorSink()
    session = NegotiationSession("r1", engine, SentMessages(), offer_timeout=0.01)
    session.on_error = errors

    await session.create_offer()
    await wait_until(lambda: session.closed)
    await wait_until(lambda: errors.errors)

    assert engine.closed is True
    assert isinstance(errors.errors[0], NegotiationTimeout)


@pytest.mark.asyncio
async def test_answer_cancels_offer_timeout():
    errors = ErrorSink()
    session = NegotiationSession("r1", FakeEngine(), SentMessages(), offer_timeout=0.01)
    session.on_error = errors

    await session.create_offer()
    await session.receive_answer(ANSWER)
    await asyncio.sleep(0.03)

    assert session.state is SignalingState.CONNECTED
    assert errors.errors == []
