"""Backend modules package.

이 패키지는 룸 기반 WebRTC 시그널링 시스템의 핵심 모듈을 포함합니다.

Modules:
    relay: 룸 레지스트리와 시그널링 메시지 릴레이 (서버 측)
    webrtc: 협상 상태 머신, ICE candidate 버퍼, 전송 엔진/미디어 인터페이스 (피어 측)
    shared: 와이어 메시지 정의와 예외
"""

from .shared import dto
from .relay import RoomRegistry, RelayService, RelaySettings, get_settings
from .webrtc import (
    NegotiationSession,
    SignalingState,
    CandidateQueue,
    AiortcEngine,
    MediaPlayerProvider,
    SignalingClient,
)


__all__ = [
    "dto",
    # Relay
    "RoomRegistry",
    "RelayService",
    "RelaySettings",
    "get_settings",
    # WebRTC
    "NegotiationSession",
    "SignalingState",
    "CandidateQueue",
    "AiortcEngine",
    "MediaPlayerProvider",
    "SignalingClient",
]
