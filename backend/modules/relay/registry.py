"""룸 레지스트리 모듈.

룸 ID와 멤버 연결 ID 집합의 매핑을 관리하는 순수 데이터 구조입니다.
I/O를 수행하지 않으며, 알림과 단일 룸 정책은 RelayService가 담당합니다.

Architecture:
    - rooms: Dict[str, Set[str]] - 룸 ID → 멤버 연결 ID 집합
    - memberships: Dict[str, Set[str]] - 연결 ID → 참가 중인 룸 ID 집합 (빠른 조회용)

Note:
    - 룸 레코드는 멤버 집합이 비어 있지 않을 때만 존재함
      (첫 참가 시 생성, 마지막 멤버 퇴장 시 즉시 삭제)

Examples:
    >>> registry = RoomRegistry()
    >>> registry.add("r1", "conn-a")
    True
    >>> registry.members("r1")
    frozenset({'conn-a'})
    >>> registry.remove("r1", "conn-a")
    True
    >>> registry.has_room("r1")
    False

See Also:
    service.py: 레지스트리를 소유하는 릴레이 서비스
"""
import logging
from typing import Dict, FrozenSet, List, Set

logger = logging.getLogger(__name__)


class RoomRegistry:
    """룸과 멤버 연결을 관리하는 레지스트리.

    Attributes:
        rooms (Dict[str, Set[str]]): 룸 ID를 키로 하는 멤버 집합
        memberships (Dict[str, Set[str]]): 연결 ID를 키로 하는 룸 집합 (역 매핑)

    Design Patterns:
        - 이중 맵 구조: 양방향 빠른 조회 지원
        - 자동 생성/삭제: 필요 시 룸 자동 생성, 비어있을 때 자동 삭제

    Thread Safety:
        - 자체 동기화 없음. RelayService가 락 안에서만 변경함
    """

    def __init__(self):
        # room_id -> {connection_id}
        self.rooms: Dict[str, Set[str]] = {}

        # connection_id -> {room_id} (for quick lookup)
        self.memberships: Dict[str, Set[str]] = {}

    def add(self, room_id: str, connection_id: str) -> bool:
        """연결을 룸에 추가합니다. 룸이 없으면 생성합니다.

        Args:
            room_id (str): 참가할 룸 ID
            connection_id (str): 참가하는 연결 ID

        Returns:
            bool: 새로 추가되었으면 True, 이미 멤버였으면 False
        """
        if room_id not in self.rooms:
            self.rooms[room_id] = set()
            logger.info(f"[Relay] Room '{room_id}' created")

        members = self.rooms[room_id]
        if connection_id in members:
            return False

        members.add(connection_id)
        self.memberships.setdefault(connection_id, set()).add(room_id)
        logger.info(f"[Relay] Connection {connection_id} joined room '{room_id}'. "
                    f"Room has {len(members)} members")
        return True

    def remove(self, room_id: str, connection_id: str) -> bool:
        """연결을 룸에서 제거합니다. 룸이 비면 삭제합니다.

        Args:
            room_id (str): 퇴장할 룸 ID
            connection_id (str): 퇴장하는 연결 ID

        Returns:
            bool: 실제로 제거되었으면 True, 멤버가 아니었으면 False
        """
        members = self.rooms.get(room_id)
        if not members or connection_id not in members:
            return False

        members.discard(connection_id)
        rooms_of = self.memberships.get(connection_id)
        if rooms_of is not None:
            rooms_of.discard(room_id)
            if not rooms_of:
                del self.memberships[connection_id]

        if not members:
            del self.rooms[room_id]
            logger.info(f"[Relay] Room '{room_id}' deleted (empty)")
        else:
            logger.info(f"[Relay] Connection {connection_id} left room '{room_id}'. "
                        f"Room has {len(members)} members")
        return True

    def remove_everywhere(self, connection_id: str) -> List[str]:
        """연결을 참가 중인 모든 룸에서 제거합니다.

        Returns:
            List[str]: 연결이 속해 있던 룸 ID 목록 (정렬됨). 없으면 빈 리스트
        """
        left = sorted(self.memberships.get(connection_id, ()))
        for room_id in left:
            self.remove(room_id, connection_id)
        return left

    def members(self, room_id: str) -> FrozenSet[str]:
        return frozenset(self.rooms.get(room_id, ()))

    def others(self, room_id: str, exclude: str) -> List[str]:
        """특정 연결을 제외한 룸 멤버 목록을 반환합니다."""
        return sorted(m for m in self.rooms.get(room_id, ()) if m != exclude)

    def rooms_of(self, connection_id: str) -> FrozenSet[str]:
        return frozenset(self.memberships.get(connection_id, ()))

    def is_member(self, room_id: str, connection_id: str) -> bool:
        return connection_id in self.rooms.get(room_id, ())

    def has_room(self, room_id: str) -> bool:
        return room_id in self.rooms

    def room_count(self) -> int:
        return len(self.rooms)

    def snapshot(self) -> List[dict]:
        """모든 룸의 정보를 리스트로 반환합니다.

        Returns:
            List[dict]: 룸 정보 딕셔너리의 리스트
                - roomId (str): 룸 ID
                - memberCount (int): 현재 멤버 수
                - members (List[str]): 멤버 연결 ID 목록
        """
        return [
            {
                "roomId": room_id,
                "memberCount": len(members),
                "members": sorted(members),
            }
            for room_id, members in self.rooms.items()
        ]

    def clear(self) -> None:
        self.rooms.clear()
        self.memberships.clear()
