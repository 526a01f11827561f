"""전송 협상 엔진 인터페이스 모듈.

NegotiationSession은 SDP 생성/검증과 연결성 검사를 직접 수행하지 않고
TransportEngine 인터페이스를 통해 외부 엔진에 위임합니다.
실제 구현은 aiortc의 RTCPeerConnection을 감싼 AiortcEngine이며,
테스트에서는 같은 인터페이스를 가진 가짜 엔진으로 대체합니다.

Classes:
    TransportEngine: 엔진이 제공해야 하는 기능 프로토콜
    AiortcEngine: aiortc 기반 구현

Examples:
    >>> engine = AiortcEngine()
    >>> offer = await engine.create_local_offer()
    >>> await engine.set_local_description(offer)
    >>> print(engine.local_description["type"])
    offer
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
    MediaStreamTrack,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from .config import ice_config

logger = logging.getLogger(__name__)

LocalCandidateCallback = Callable[[dict], Awaitable[None]]
TrackCallback = Callable[[Any], Awaitable[None]]
ConnectionStateCallback = Callable[[str], Awaitable[None]]


class TransportEngine(Protocol):
    """세션이 의존하는 전송 협상 엔진 기능.

    디스크립션은 {"sdp": str, "type": str} 딕셔너리,
    candidate는 {"candidate": str, "sdpMid": ..., "sdpMLineIndex": ...} 딕셔너리로 주고받습니다.

    Callbacks:
        on_local_candidate: 로컬 ICE candidate 발견 시
        on_track: 원격 미디어 트랙 수신 시
        on_connection_state_change: 연결 상태 변경 시 (new, connecting, connected, ...)
    """

    on_local_candidate: Optional[LocalCandidateCallback]
    on_track: Optional[TrackCallback]
    on_connection_state_change: Optional[ConnectionStateCallback]

    @property
    def local_description(self) -> Optional[dict]: ...

    async def create_local_offer(self) -> dict: ...

    async def create_local_answer(self) -> dict: ...

    async def set_local_description(self, description: dict) -> None: ...

    async def set_remote_description(self, description: dict) -> None: ...

    async def add_remote_candidate(self, candidate: dict) -> None: ...

    def add_track(self, track: Any) -> None: ...

    async def close(self) -> None: ...


def candidate_to_dict(candidate) -> dict:
    """aiortc RTCIceCandidate를 와이어 형식으로 변환합니다."""
    return {
        "candidate": "candidate:" + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_dict(data: dict):
    """와이어 형식 candidate를 aiortc RTCIceCandidate로 변환합니다.

    Returns:
        Optional[RTCIceCandidate]: candidate 문자열이 비어 있으면 (end-of-candidates) None
    """
    candidate_str = data.get("candidate", "")
    if not candidate_str:
        return None
    if candidate_str.startswith("candidate:"):
        candidate_str = candidate_str[10:]

    ice_candidate = candidate_from_sdp(candidate_str)
    ice_candidate.sdpMid = data.get("sdpMid")
    ice_candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return ice_candidate


def _build_configuration(ice_servers: List[dict]) -> RTCConfiguration:
    servers = []
    for server in ice_servers:
        urls = server["urls"]
        servers.append(RTCIceServer(
            urls=urls if isinstance(urls, list) else [urls],
            username=server.get("username"),
            credential=server.get("credential"),
        ))
    return RTCConfiguration(iceServers=servers)


class AiortcEngine:
    """aiortc RTCPeerConnection 기반 TransportEngine 구현.

    Attributes:
        pc (RTCPeerConnection): 감싸고 있는 aiortc 피어 연결
        on_local_candidate: 로컬 candidate 콜백
        on_track: 원격 트랙 콜백
        on_connection_state_change: 연결 상태 콜백

    Note:
        - aiortc는 setLocalDescription() 안에서 ICE gathering을 끝내고
          candidate를 SDP에 포함시키므로 local_description에는 candidate가 들어 있음
        - icecandidate 이벤트가 발생하는 구현에서는 on_local_candidate로 전달됨
    """

    def __init__(self, ice_servers: Optional[List[dict]] = None):
        if ice_servers is None:
            ice_servers = ice_config.as_dicts()
        self.pc = RTCPeerConnection(configuration=_build_configuration(ice_servers))
        self.on_local_candidate: Optional[LocalCandidateCallback] = None
        self.on_track: Optional[TrackCallback] = None
        self.on_connection_state_change: Optional[ConnectionStateCallback] = None

        logger.info(f"[WebRTC] RTCPeerConnection 생성 완료 (ICE 서버 {len(ice_servers)}개)")

        @self.pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            if candidate and self.on_local_candidate:
                await self.on_local_candidate(candidate_to_dict(candidate))

        @self.pc.on("track")
        async def on_track(track: MediaStreamTrack):
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신")
            if self.on_track:
                await self.on_track(track)

        @self.pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] 연결 상태: {self.pc.connectionState}")
            if self.on_connection_state_change:
                await self.on_connection_state_change(self.pc.connectionState)

    @property
    def local_description(self) -> Optional[dict]:
        desc = self.pc.localDescription
        if desc is None:
            return None
        return {"sdp": desc.sdp, "type": desc.type}

    @property
    def connection_state(self) -> str:
        return self.pc.connectionState

    async def create_local_offer(self) -> dict:
        offer = await self.pc.createOffer()
        return {"sdp": offer.sdp, "type": offer.type}

    async def create_local_answer(self) -> dict:
        answer = await self.pc.createAnswer()
        return {"sdp": answer.sdp, "type": answer.type}

    async def set_local_description(self, description: dict) -> None:
        await self.pc.setLocalDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )
        candidate_count = self.pc.localDescription.sdp.count("a=candidate:")
        logger.info(f"[WebRTC] setLocalDescription 완료: gathering={self.pc.iceGatheringState}, 후보수={candidate_count}")

    async def set_remote_description(self, description: dict) -> None:
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )

    async def add_remote_candidate(self, candidate: dict) -> None:
        ice_candidate = candidate_from_dict(candidate)
        if ice_candidate is None:
            logger.debug("[WebRTC] end-of-candidates 수신, 무시")
            return
        await self.pc.addIceCandidate(ice_candidate)

    def add_track(self, track: Any) -> None:
        self.pc.addTrack(track)

    async def close(self) -> None:
        await self.pc.close()
