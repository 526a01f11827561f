"""시그널링 와이어 메시지 정의.

릴레이 서버와 피어가 주고받는 이벤트 이름과 페이로드 모델을 정의합니다.
필드 이름(roomId, offer, answer, candidate)은 클라이언트/서버 간
호환성 계약이므로 변경하면 안 됩니다.

Envelope:
    모든 메시지는 {"type": <이벤트 이름>, "data": <페이로드>} 형태의 JSON 텍스트 프레임입니다.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# client -> relay
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"

# relay -> room members
USER_JOINED = "user-joined"
USER_LEFT = "user-left"

# relay -> single connection
CONNECTION_ID = "connection-id"
ROOM_JOINED = "room-joined"
ERROR = "error"

# peer -> relay -> peer
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"

RELAYED_EVENTS = (OFFER, ANSWER, ICE_CANDIDATE)


class SessionDescription(BaseModel):
    """SDP 세션 디스크립션 ({"sdp": ..., "type": "offer" | "answer"})."""

    sdp: str
    type: str


class IceCandidate(BaseModel):
    """ICE candidate. candidate 문자열은 "candidate:" 접두사를 포함할 수 있습니다."""

    candidate: str
    sdpMid: Optional[str] = None
    sdpMLineIndex: Optional[int] = None


class RoomPayload(BaseModel):
    """join-room / leave-room 페이로드 (객체 형태)."""

    roomId: str = Field(min_length=1)


class OfferPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    offer: SessionDescription
    roomId: str = Field(min_length=1)


class AnswerPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    answer: SessionDescription
    roomId: str = Field(min_length=1)


class IceCandidatePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    candidate: IceCandidate
    roomId: str = Field(min_length=1)


PAYLOAD_MODELS = {
    OFFER: OfferPayload,
    ANSWER: AnswerPayload,
    ICE_CANDIDATE: IceCandidatePayload,
}


def make_message(event: str, data: Any) -> dict:
    """와이어 envelope을 생성합니다."""
    return {"type": event, "data": data}


def parse_room_id(data: Union[str, dict, None]) -> Optional[str]:
    """join-room / leave-room 페이로드에서 roomId를 추출합니다.

    브라우저 클라이언트는 roomId 문자열을 그대로 보내므로 문자열과
    {"roomId": ...} 객체 형태를 모두 허용합니다.

    Returns:
        Optional[str]: 유효한 roomId, 없거나 비어 있으면 None
    """
    if isinstance(data, str):
        return data or None
    if isinstance(data, dict):
        try:
            return RoomPayload.model_validate(data).roomId
        except ValidationError:
            return None
    return None


def validate_relay_payload(event: str, data: Any) -> BaseModel:
    """릴레이 대상 페이로드를 검증합니다.

    Raises:
        KeyError: 릴레이 대상 이벤트가 아닌 경우
        ValidationError: 필수 필드가 누락되었거나 타입이 맞지 않는 경우
    """
    return PAYLOAD_MODELS[event].model_validate(data)
