"""WebRTC 모듈.

피어 측 시그널링 협상 상태 머신과 외부 협력자(전송 엔진, 미디어) 인터페이스를 제공합니다.

Classes:
    NegotiationSession: offer/answer/candidate 협상 상태 머신
    SignalingState: 시그널링 상태 (Idle, OfferSent, Connected, Closed)
    CandidateQueue: 원격 디스크립션 이전 ICE candidate 버퍼
    TransportEngine: 전송 협상 엔진 프로토콜
    AiortcEngine: aiortc 기반 엔진 구현
    MediaProvider / MediaPlayerProvider: 로컬 미디어 획득
    SignalingClient: 릴레이 websocket 클라이언트

Config:
    ice_config: ICE 서버 설정
    connection_config: 협상 설정
"""

from ..shared.errors import (
    SignalingError,
    ProtocolViolation,
    UnknownRoom,
    UnknownSender,
    TransportError,
    ResourceError,
    NegotiationTimeout,
)
from .candidate_queue import CandidateQueue
from .engine import TransportEngine, AiortcEngine
from .media import LocalStream, MediaProvider, MediaPlayerProvider
from .session import NegotiationSession, SignalingState
from .client import SignalingClient
from .config import (
    ice_config,
    connection_config,
    ICEServerConfig,
    ConnectionConfig,
)

__all__ = [
    # Errors
    "SignalingError",
    "ProtocolViolation",
    "UnknownRoom",
    "UnknownSender",
    "TransportError",
    "ResourceError",
    "NegotiationTimeout",
    # Classes
    "CandidateQueue",
    "TransportEngine",
    "AiortcEngine",
    "LocalStream",
    "MediaProvider",
    "MediaPlayerProvider",
    "NegotiationSession",
    "SignalingState",
    "SignalingClient",
    # Config
    "ice_config",
    "connection_config",
    "ICEServerConfig",
    "ConnectionConfig",
]
