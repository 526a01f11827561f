"""시그널링 릴레이 서비스 모듈.

RoomRegistry를 소유하고 연결별 룸 참가/퇴장, 룸 멤버 간 메시지 전달,
연결 종료 시 정리를 담당합니다. 메시지 페이로드는 해석하거나 변환하지 않습니다.

주요 기능:
    - join: 기존 룸에서 자동 퇴장 후 새 룸 참가, 다른 멤버에게 user-joined 알림
    - leave: 룸 퇴장, 남은 멤버에게 user-left 알림
    - relay: 보낸 연결을 제외한 룸 멤버 전원에게 메시지 그대로 전달
    - disconnect: 모든 룸에서 제거, 남은 멤버에게 user-left 알림

Concurrency:
    - 단일 asyncio 이벤트 루프에서 동작
    - 레지스트리 변경은 asyncio.Lock 안에서 await 없이 한 번에 수행
    - 메시지 전송은 변경이 끝난 뒤 락 밖에서 수행
    - 전송 실패한 연결은 disconnect로 정리 (보낸 쪽에는 전파하지 않음)

Examples:
    >>> relay = RelayService(RoomRegistry())
    >>> relay.register("conn-a", websocket_a.send_json)
    >>> relay.register("conn-b", websocket_b.send_json)
    >>> await relay.join("conn-a", "r1")
    >>> await relay.join("conn-b", "r1")   # conn-a가 user-joined(conn-b) 수신
    >>> await relay.relay("conn-a", "r1", {"type": "offer", "data": {...}})  # conn-b만 수신
    >>> await relay.disconnect("conn-a")    # conn-b가 user-left(conn-a) 수신
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from ..shared import dto
from ..shared.errors import UnknownRoom, UnknownSender
from .registry import RoomRegistry

logger = logging.getLogger(__name__)

Sender = Callable[[dict], Awaitable[None]]


class RelayService:
    """룸 기반 시그널링 메시지 릴레이.

    Attributes:
        registry (RoomRegistry): 룸 멤버십 레지스트리 (이 서비스만 변경)
        connections (Dict[str, Sender]): 연결 ID → 메시지 전송 코루틴 함수
    """

    def __init__(self, registry: Optional[RoomRegistry] = None):
        self.registry = registry if registry is not None else RoomRegistry()
        self.connections: Dict[str, Sender] = {}
        self._lock = asyncio.Lock()

    def register(self, connection_id: str, sender: Sender) -> None:
        """전송 채널이 수락한 연결을 등록합니다."""
        self.connections[connection_id] = sender
        logger.info(f"[Relay] 연결 {connection_id} 등록 (총 {len(self.connections)}개)")

    async def join(self, connection_id: str, room_id: str) -> List[str]:
        """연결을 룸에 참가시킵니다.

        이전에 참가한 다른 룸에서는 자동으로 퇴장합니다. 같은 룸에 다시 참가하면
        멤버십과 알림 모두 변화가 없습니다.

        Args:
            connection_id: 참가하는 연결 ID
            room_id: 참가할 룸 ID

        Returns:
            List[str]: 룸의 다른 멤버 연결 ID 목록
        """
        async with self._lock:
            already_member = self.registry.is_member(room_id, connection_id)
            departures = []
            for previous in sorted(self.registry.rooms_of(connection_id)):
                if previous == room_id:
                    continue
                self.registry.remove(previous, connection_id)
                departures.append((previous, self.registry.others(previous, connection_id)))
            self.registry.add(room_id, connection_id)
            others = self.registry.others(room_id, connection_id)

        for previous, remaining in departures:
            await self._deliver(remaining, dto.make_message(dto.USER_LEFT, connection_id))

        if already_member:
            logger.debug(f"[Relay] 연결 {connection_id} 이미 룸 '{room_id}' 멤버 - 알림 생략")
        else:
            await self._deliver(others, dto.make_message(dto.USER_JOINED, connection_id))

        await self._deliver(
            [connection_id],
            dto.make_message(dto.ROOM_JOINED, {"roomId": room_id, "peers": others}),
        )
        return others

    async def leave(self, connection_id: str, room_id: str) -> bool:
        """연결을 룸에서 퇴장시킵니다. 멤버가 아니면 아무 작업도 하지 않습니다.

        Returns:
            bool: 실제로 퇴장했으면 True
        """
        async with self._lock:
            removed = self.registry.remove(room_id, connection_id)
            remaining = self.registry.others(room_id, connection_id)

        if removed:
            await self._deliver(remaining, dto.make_message(dto.USER_LEFT, connection_id))
        return removed

    async def relay(self, sender_id: str, room_id: str, message: dict) -> int:
        """보낸 연결을 제외한 룸 멤버 전원에게 메시지를 그대로 전달합니다.

        보낸 연결이 룸 멤버가 아니면 (이미 끊겼거나 참가하지 않은 경우)
        메시지를 조용히 버립니다.

        Returns:
            int: 전달에 성공한 멤버 수
        """
        async with self._lock:
            try:
                recipients = self._recipients(sender_id, room_id)
            except (UnknownRoom, UnknownSender) as e:
                logger.warning(f"[Relay] {message.get('type')} 메시지 폐기: {e}")
                return 0

        delivered = await self._deliver(recipients, message)
        logger.debug(f"[Relay] {message.get('type')} {sender_id} -> {delivered}명 (룸 '{room_id}')")
        return delivered

    async def disconnect(self, connection_id: str) -> List[str]:
        """연결을 모든 룸에서 제거하고 남은 멤버에게 알립니다.

        어떤 룸에도 속하지 않은 연결이어도 안전하게 호출할 수 있습니다.

        Returns:
            List[str]: 연결이 속해 있던 룸 ID 목록
        """
        async with self._lock:
            self.connections.pop(connection_id, None)
            departures: List[Tuple[str, List[str]]] = []
            for room_id in self.registry.remove_everywhere(connection_id):
                departures.append((room_id, self.registry.others(room_id, connection_id)))

        for room_id, remaining in departures:
            await self._deliver(remaining, dto.make_message(dto.USER_LEFT, connection_id))

        logger.info(f"[Relay] 연결 {connection_id} 정리 완료 (퇴장한 룸 {len(departures)}개)")
        return [room_id for room_id, _ in departures]

    async def close(self) -> None:
        """모든 연결과 룸을 정리합니다 (서버 종료 시)."""
        async with self._lock:
            self.connections.clear()
            self.registry.clear()
        logger.info("[Relay] 릴레이 서비스 정리 완료")

    def _recipients(self, sender_id: str, room_id: str) -> List[str]:
        if not self.registry.has_room(room_id):
            raise UnknownRoom(f"room '{room_id}' does not exist")
        if not self.registry.is_member(room_id, sender_id):
            raise UnknownSender(f"{sender_id} is not a member of room '{room_id}'")
        return self.registry.others(room_id, sender_id)

    async def _deliver(self, recipients: Iterable[str], message: dict) -> int:
        delivered = 0
        failed = []
        for connection_id in recipients:
            sender = self.connections.get(connection_id)
            if sender is None:
                continue
            try:
                await sender(message)
                delivered += 1
            except Exception as e:
                logger.error(f"[Relay] 연결 {connection_id}에 전송 중 오류: {e}")
                failed.append(connection_id)

        # 전송 실패한 연결 정리
        for connection_id in failed:
            await self.disconnect(connection_id)
        return delivered
