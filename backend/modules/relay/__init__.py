"""시그널링 릴레이 모듈.

Classes:
    RoomRegistry: 룸 ID → 멤버 연결 ID 레지스트리
    RelayService: 룸 참가/퇴장, 메시지 릴레이, 연결 정리

Config:
    RelaySettings / get_settings: 서버 설정
"""

from .registry import RoomRegistry
from .service import RelayService
from .config import RelaySettings, get_settings

__all__ = [
    "RoomRegistry",
    "RelayService",
    "RelaySettings",
    "get_settings",
]
