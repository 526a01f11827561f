"""피어 측 시그널링 클라이언트 모듈.

릴레이 서버의 /ws 엔드포인트에 websocket으로 접속해 룸에 참가하고,
수신한 offer/answer/ice-candidate 메시지를 NegotiationSession에 전달합니다.
세션이 보내는 메시지는 같은 websocket으로 릴레이에 전송됩니다.

Examples:
    >>> client = SignalingClient(
    ...     "ws://localhost:5000/ws", "r1",
    ...     session_factory=lambda room_id, send: NegotiationSession(room_id, AiortcEngine(), send),
    ... )
    >>> await client.connect()
    >>> await client.join()
    >>> await client.run()
"""
import json
import logging
from typing import Awaitable, Callable, Optional

import websockets
from pydantic import ValidationError

from ..shared import dto
from ..shared.errors import SignalingError
from .session import NegotiationSession, SendCallback

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str, SendCallback], NegotiationSession]


class SignalingClient:
    """릴레이와 세션 사이의 메시지 전달을 담당하는 클라이언트.

    Attributes:
        url (str): 릴레이 websocket URL
        room_id (str): 참가할 룸
        connection_id (Optional[str]): 릴레이가 부여한 연결 ID
        session (Optional[NegotiationSession]): 현재 협상 세션
        auto_offer (bool): 룸 입장 시 다른 참가자가 있으면 바로 통화 시작
        on_error: 세션에서 발생한 TransportError/ResourceError 보고 콜백

    Note:
        - 상대가 나가면(user-left) 현재 세션을 닫고 새 Idle 세션을 만듦
        - offer는 나중에 입장한 쪽만 보냄. 먼저 있던 쪽은 user-joined를 받아도 offer 대기
    """

    def __init__(
        self,
        url: str,
        room_id: str,
        session_factory: SessionFactory,
        auto_offer: bool = False,
        constraints: Optional[dict] = None,
    ):
        self.url = url
        self.room_id = room_id
        self.session_factory = session_factory
        self.auto_offer = auto_offer
        self.constraints = constraints
        self.connection_id: Optional[str] = None
        self.session: Optional[NegotiationSession] = None
        self.on_error: Optional[Callable[[SignalingError], Awaitable[None]]] = None
        self._ws = None

    async def connect(self) -> None:
        self._ws = await websockets.connect(self.url)
        logger.info(f"릴레이 연결됨: {self.url}")

    async def send(self, event: str, payload) -> None:
        await self._ws.send(json.dumps(dto.make_message(event, payload)))

    async def join(self) -> None:
        """룸에 참가하고 새 세션을 준비합니다."""
        self._new_session()
        await self.send(dto.JOIN_ROOM, self.room_id)

    async def start_call(self) -> bool:
        """통화를 시작합니다. 미디어 제공자가 있으면 로컬 미디어를 먼저 획득합니다."""
        if self.session.media is not None:
            return await self.session.start_call(self.constraints)
        return await self.session.create_offer()

    async def run(self) -> None:
        """연결이 끊길 때까지 메시지를 수신해 처리합니다."""
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"잘못된 JSON 메시지 무시: {raw!r}")
                    continue
                try:
                    await self.handle_message(message)
                except SignalingError as e:
                    await self._report_error(e)
        finally:
            if self.session is not None:
                await self.session.close()

    async def handle_message(self, message: dict) -> None:
        """릴레이에서 받은 메시지 하나를 처리합니다.

        Raises:
            TransportError: 세션이 offer/answer/candidate 적용에 실패한 경우
            ResourceError: auto_offer로 시작한 통화의 미디어 획득에 실패한 경우
        """
        event = message.get("type")
        data = message.get("data")

        if event == dto.CONNECTION_ID:
            self.connection_id = data
            logger.info(f"연결 ID 수신: {data}")

        elif event == dto.ROOM_JOINED:
            peers = (data or {}).get("peers", [])
            logger.info(f"룸 '{self.room_id}' 입장 완료, 다른 참가자 {len(peers)}명")
            if self.auto_offer and peers:
                await self.start_call()

        elif event == dto.USER_JOINED:
            # offer는 나중에 들어온 쪽이 보냄 (양쪽 동시 offer 방지)
            logger.info(f"참가자 입장: {data} - offer 대기")

        elif event == dto.USER_LEFT:
            logger.info(f"참가자 퇴장: {data} - 세션 재설정")
            if self.session is not None:
                await self.session.close()
            self._new_session()

        elif event in dto.RELAYED_EVENTS:
            await self._dispatch_relayed(event, data)

        elif event == dto.ERROR:
            logger.warning(f"릴레이 오류: {data}")

        else:
            logger.warning(f"알 수 없는 메시지 타입: {event}")

    async def _dispatch_relayed(self, event: str, data) -> None:
        try:
            payload = dto.validate_relay_payload(event, data)
        except ValidationError as e:
            logger.warning(f"잘못된 {event} 페이로드 무시: {e}")
            return

        if payload.roomId != self.room_id:
            logger.warning(f"다른 룸({payload.roomId})의 {event} 무시")
            return

        if event == dto.OFFER:
            await self.session.receive_offer(payload.offer.model_dump())
        elif event == dto.ANSWER:
            await self.session.receive_answer(payload.answer.model_dump())
        else:
            await self.session.receive_candidate(payload.candidate.model_dump())

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
        if self._ws is not None:
            await self._ws.close()

    def _new_session(self) -> None:
        self.session = self.session_factory(self.room_id, self.send)
        self.session.on_error = self._report_error

    async def _report_error(self, error: SignalingError) -> None:
        if self.on_error:
            await self.on_error(error)
        else:
            logger.error(f"세션 오류: {error}")
