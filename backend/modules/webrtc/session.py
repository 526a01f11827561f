"""시그널링 협상 상태 머신 모듈.

피어 한 명의 offer/answer 교환과 ICE candidate 교환을 명시적인 상태 머신으로
관리합니다. SDP 생성/적용은 TransportEngine에 위임하고, 와이어 메시지는
send 콜백을 통해 릴레이로 전송합니다.

States:
    Idle -> OfferSent -> Connected -> Closed
    수신 측은 offer에 answer하는 즉시 Idle -> Connected로 전이

Failure Semantics:
    - 허용되지 않는 상태의 요청: ProtocolViolation 로그 후 무시 (상태 변화 없음)
    - 엔진 실패: TransportError를 호출자에게 전달, 세션 상태는 호출 전과 동일
    - 미디어 획득 실패: ResourceError를 호출자에게 전달
    - close() 이후 완료된 비동기 결과는 버림

Examples:
    >>> session = NegotiationSession("r1", AiortcEngine(), send)
    >>> await session.create_offer()      # Idle -> OfferSent, offer 전송
    >>> await session.receive_answer(answer)  # OfferSent -> Connected
    >>> await session.close()
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..shared import dto
from ..shared.errors import (
    NegotiationTimeout,
    ProtocolViolation,
    ResourceError,
    SignalingError,
    TransportError,
)
from .candidate_queue import CandidateQueue
from .engine import TransportEngine
from .media import LocalStream, MediaProvider

logger = logging.getLogger(__name__)

SendCallback = Callable[[str, dict], Awaitable[None]]


class SignalingState(str, Enum):
    """세션의 시그널링 진행 상태 (엔진 내부 상태와 별개)."""

    IDLE = "Idle"
    OFFER_SENT = "OfferSent"
    CONNECTED = "Connected"
    CLOSED = "Closed"


class NegotiationSession:
    """피어 세션 하나의 협상 상태 머신.

    Attributes:
        room_id (str): 세션이 속한 룸
        engine (TransportEngine): SDP/ICE 처리를 위임하는 엔진
        media (Optional[MediaProvider]): start_call()에서 사용하는 미디어 제공자
        state (SignalingState): 현재 시그널링 상태
        local_description (Optional[dict]): 적용된 로컬 디스크립션
        remote_description (Optional[dict]): 적용된 원격 디스크립션
        connection_state (str): 엔진이 보고한 연결 상태 (관찰용, 전이에 영향 없음)
        candidates (CandidateQueue): 원격 디스크립션 이전에 도착한 candidate 버퍼
        offer_timeout (Optional[float]): answer 대기 제한 시간 (None이면 무제한)

    Callbacks:
        on_connection_state: 연결 상태 변경 시 (state: str)
        on_remote_track: 원격 미디어 트랙 수신 시 (track)
        on_error: 비동기로 발생한 오류 보고 (SignalingError)

    Concurrency:
        - 상태 전이는 한 번에 하나만 진행됨. 진행 중인 전이가 있으면
          다른 상태 전이 요청은 잘못된 상태로 간주하여 무시 (큐잉하지 않음)
        - candidate 적용은 전이 진행 여부와 무관하게 처리됨
    """

    def __init__(
        self,
        room_id: str,
        engine: TransportEngine,
        send: SendCallback,
        media: Optional[MediaProvider] = None,
        offer_timeout: Optional[float] = None,
    ):
        self.room_id = room_id
        self.engine = engine
        self.media = media
        self.offer_timeout = offer_timeout
        self._send = send

        self.state = SignalingState.IDLE
        self.local_description: Optional[dict] = None
        self.remote_description: Optional[dict] = None
        self.connection_state = "new"
        self.candidates = CandidateQueue()

        self.on_connection_state: Optional[Callable[[str], Awaitable[None]]] = None
        self.on_remote_track: Optional[Callable[[Any], Awaitable[None]]] = None
        self.on_error: Optional[Callable[[SignalingError], Awaitable[None]]] = None

        self._pending: Optional[str] = None
        self._local_stream: Optional[LocalStream] = None
        self._offer_timer: Optional[asyncio.Task] = None

        engine.on_local_candidate = self._on_local_candidate
        engine.on_track = self._on_track
        engine.on_connection_state_change = self._on_connection_state_change

    @property
    def closed(self) -> bool:
        return self.state is SignalingState.CLOSED

    @property
    def pending(self) -> Optional[str]:
        """진행 중인 전이 이름. 없으면 None."""
        return self._pending

    def _guard(self, operation: str, allowed: SignalingState) -> bool:
        if self.state is allowed and self._pending is None:
            return True
        state = self.state.value
        if self._pending:
            state = f"{state} ({self._pending} 진행 중)"
        logger.warning(f"[WebRTC] {ProtocolViolation(operation, state)} - 무시 (room={self.room_id})")
        return False

    def _discard_if_closed(self, operation: str) -> bool:
        if self.closed:
            logger.info(f"[WebRTC] {operation} 완료 전 세션 종료됨 - 결과 폐기 (room={self.room_id})")
            return True
        return False

    async def start_call(self, constraints: Optional[dict] = None) -> bool:
        """로컬 미디어를 획득해 엔진에 추가한 뒤 offer를 생성합니다.

        Args:
            constraints: 미디어 제약 조건. 기본값 {"audio": True, "video": True}

        Returns:
            bool: offer를 전송했으면 True, 상태 위반/세션 종료로 무시되면 False

        Raises:
            ResourceError: 미디어 제공자가 없거나 획득에 실패한 경우
            TransportError: offer 생성이 실패한 경우
        """
        if not self._guard("startCall", SignalingState.IDLE):
            return False
        if self.media is None:
            raise ResourceError("no media provider configured")

        self._pending = "startCall"
        try:
            stream = await self.media.acquire_local_stream(constraints or {"audio": True, "video": True})
        except ResourceError:
            raise
        except Exception as e:
            raise ResourceError(f"media acquisition failed: {e}") from e
        finally:
            self._pending = None

        if self._discard_if_closed("startCall"):
            await self.media.release_stream(stream)
            return False

        self._local_stream = stream
        for track in stream.tracks:
            self.engine.add_track(track)
        try:
            sent = await self.create_offer()
        except Exception:
            await self._release_local_stream()
            raise
        if not sent:
            await self._release_local_stream()
        return sent

    async def create_offer(self) -> bool:
        """Idle 상태에서 로컬 offer를 생성하고 전송합니다 (Idle -> OfferSent).

        Returns:
            bool: 전이했으면 True, 무시되었으면 False

        Raises:
            TransportError: 엔진이 offer 생성/적용에 실패한 경우 (상태는 Idle 유지)
        """
        if not self._guard("createOffer", SignalingState.IDLE):
            return False

        self._pending = "createOffer"
        try:
            offer = await self.engine.create_local_offer()
            if self._discard_if_closed("createOffer"):
                return False
            await self.engine.set_local_description(offer)
            if self._discard_if_closed("createOffer"):
                return False
        except Exception as e:
            if self._discard_if_closed("createOffer"):
                return False
            raise _transport_error("createOffer", e)
        finally:
            self._pending = None

        self.local_description = self.engine.local_description or offer
        self.state = SignalingState.OFFER_SENT
        logger.info(f"[WebRTC] Idle -> OfferSent (room={self.room_id})")
        self._start_offer_timer()

        await self._send(dto.OFFER, {"offer": self.local_description, "roomId": self.room_id})
        return True

    async def receive_offer(self, offer: dict) -> bool:
        """원격 offer를 받아 answer를 생성하고 전송합니다 (Idle -> Connected).

        Returns:
            bool: 전이했으면 True, 무시되었으면 False

        Raises:
            TransportError: 엔진이 offer 적용 또는 answer 생성에 실패한 경우 (상태는 Idle 유지)
        """
        if not self._guard("receiveOffer", SignalingState.IDLE):
            return False

        self._pending = "receiveOffer"
        try:
            await self.engine.set_remote_description(offer)
            if self._discard_if_closed("receiveOffer"):
                return False
            answer = await self.engine.create_local_answer()
            if self._discard_if_closed("receiveOffer"):
                return False
            await self.engine.set_local_description(answer)
            if self._discard_if_closed("receiveOffer"):
                return False
        except Exception as e:
            if self._discard_if_closed("receiveOffer"):
                return False
            raise _transport_error("receiveOffer", e)
        finally:
            self._pending = None

        self.remote_description = offer
        self.local_description = self.engine.local_description or answer
        self.state = SignalingState.CONNECTED
        logger.info(f"[WebRTC] Idle -> Connected (answer, room={self.room_id})")

        await self._flush_candidates()
        await self._send(dto.ANSWER, {"answer": self.local_description, "roomId": self.room_id})
        return True

    async def receive_answer(self, answer: dict) -> bool:
        """보낸 offer에 대한 answer를 적용합니다 (OfferSent -> Connected).

        Returns:
            bool: 전이했으면 True, 무시되었으면 False

        Raises:
            TransportError: 엔진이 answer 적용에 실패한 경우 (상태는 OfferSent 유지)
        """
        if not self._guard("receiveAnswer", SignalingState.OFFER_SENT):
            return False

        self._pending = "receiveAnswer"
        try:
            await self.engine.set_remote_description(answer)
            if self._discard_if_closed("receiveAnswer"):
                return False
        except Exception as e:
            if self._discard_if_closed("receiveAnswer"):
                return False
            raise _transport_error("receiveAnswer", e)
        finally:
            self._pending = None

        self._cancel_offer_timer()
        self.remote_description = answer
        self.state = SignalingState.CONNECTED
        logger.info(f"[WebRTC] OfferSent -> Connected (room={self.room_id})")

        await self._flush_candidates()
        return True

    async def receive_candidate(self, candidate: dict) -> bool:
        """원격 ICE candidate를 적용하거나 버퍼에 보관합니다.

        원격 디스크립션이 없으면 큐에 추가만 합니다. 있으면 큐에 추가한 뒤
        flush하므로 아직 flush 중인 이전 candidate보다 먼저 적용되지 않습니다.

        Returns:
            bool: 처리(적용 또는 버퍼)했으면 True, 세션이 닫혀 무시되었으면 False

        Raises:
            TransportError: 엔진이 candidate를 거부한 경우
        """
        if self.closed:
            logger.warning(f"[WebRTC] {ProtocolViolation('receiveCandidate', self.state.value)} - 무시")
            return False

        self.candidates.enqueue(candidate)
        if self.remote_description is None:
            logger.debug(f"[WebRTC] 원격 디스크립션 없음 - ICE candidate 버퍼 ({len(self.candidates)}개)")
            return True

        await self.candidates.flush(self._apply_candidate, ready=True)
        return True

    async def close(self) -> None:
        """세션을 종료하고 엔진과 로컬 미디어를 해제합니다. 여러 번 호출해도 안전합니다."""
        if self.closed:
            return

        self.state = SignalingState.CLOSED
        self._cancel_offer_timer()
        self.candidates.clear()

        try:
            await self._release_local_stream()
        finally:
            await self.engine.close()
        logger.info(f"[WebRTC] 세션 종료 (room={self.room_id})")

    async def _release_local_stream(self) -> None:
        stream, self._local_stream = self._local_stream, None
        if stream is not None and self.media is not None:
            await self.media.release_stream(stream)

    async def _apply_candidate(self, candidate: dict) -> None:
        if self.closed:
            return
        try:
            await self.engine.add_remote_candidate(candidate)
        except Exception as e:
            raise _transport_error("addRemoteCandidate", e)

    async def _flush_candidates(self) -> None:
        try:
            await self.candidates.flush(self._apply_candidate, ready=self.remote_description is not None)
        except TransportError as e:
            await self._report_error(e)

    async def _report_error(self, error: SignalingError) -> None:
        if self.on_error:
            await self.on_error(error)
        else:
            logger.error(f"[WebRTC] 세션 오류 (room={self.room_id}): {error}")

    def _start_offer_timer(self) -> None:
        if self.offer_timeout:
            self._offer_timer = asyncio.create_task(self._expire_offer(self.offer_timeout))

    def _cancel_offer_timer(self) -> None:
        timer, self._offer_timer = self._offer_timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _expire_offer(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self.state is not SignalingState.OFFER_SENT:
            return
        logger.warning(f"[WebRTC] {timeout}초 동안 answer 없음 - 세션 종료 (room={self.room_id})")
        await self.close()
        await self._report_error(NegotiationTimeout(f"no answer within {timeout}s in room {self.room_id}"))

    async def _on_local_candidate(self, candidate: dict) -> None:
        if self.closed:
            return
        await self._send(dto.ICE_CANDIDATE, {"candidate": candidate, "roomId": self.room_id})

    async def _on_track(self, track: Any) -> None:
        if self.closed:
            return
        if self.on_remote_track:
            await self.on_remote_track(track)

    async def _on_connection_state_change(self, state: str) -> None:
        self.connection_state = state
        if self.on_connection_state:
            await self.on_connection_state(state)


def _transport_error(operation: str, error: Exception) -> TransportError:
    if isinstance(error, TransportError):
        return error
    logger.error(f"[WebRTC] {operation} 실패: {error}")
    wrapped = TransportError(f"{operation} failed: {error}")
    wrapped.__cause__ = error
    return wrapped
