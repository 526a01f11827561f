"""WebRTC 시그널링 WebSocket 라우터.

클라이언트 연결을 RelayService에 연결하는 전송 채널입니다.
룸 참가/퇴장과 offer/answer/ice-candidate 릴레이를 담당하며,
메시지 페이로드는 검증만 하고 그대로 전달합니다.
"""

import json
import logging
import uuid
from typing import Optional, TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from modules.shared import dto

if TYPE_CHECKING:
    from modules import RelayService

logger = logging.getLogger(__name__)

router = APIRouter()

# 글로벌 릴레이 참조 (app.py lifespan에서 설정됨)
_relay: Optional["RelayService"] = None


def init_relay(relay: Optional["RelayService"]):
    """릴레이 서비스 인스턴스를 설정합니다.

    app.py의 lifespan에서 서버 시작 시 설정하고 종료 시 None으로 해제합니다.

    Args:
        relay: RelayService 인스턴스 또는 None
    """
    global _relay
    _relay = relay
    if relay is not None:
        logger.info("시그널링 라우터 릴레이 초기화 완료")


def get_relay() -> Optional["RelayService"]:
    """현재 릴레이 서비스를 반환합니다."""
    return _relay


async def _send_error(websocket: WebSocket, message: str):
    await websocket.send_json(dto.make_message(dto.ERROR, {"message": message}))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebRTC 시그널링을 위한 WebSocket 엔드포인트.

    처리하는 메시지 타입:
        - join-room: 룸 참가 (data: roomId 문자열 또는 {"roomId": ...})
        - leave-room: 룸 퇴장
        - offer: {"offer": ..., "roomId": ...} 룸의 다른 멤버에게 전달
        - answer: {"answer": ..., "roomId": ...} 룸의 다른 멤버에게 전달
        - ice-candidate: {"candidate": ..., "roomId": ...} 룸의 다른 멤버에게 전달

    Args:
        websocket: FastAPI WebSocket 연결 객체
    """
    relay = _relay
    if relay is None:
        logger.error("릴레이가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await websocket.accept()

    connection_id = str(uuid.uuid4())
    relay.register(connection_id, websocket.send_json)
    logger.info(f"연결 {connection_id} 수락됨")

    try:
        # 클라이언트에 connection ID 전송
        await websocket.send_json(dto.make_message(dto.CONNECTION_ID, connection_id))

        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"연결 {connection_id}: 잘못된 JSON 프레임")
                await _send_error(websocket, "Invalid JSON")
                continue

            await _handle_message(websocket, relay, connection_id, message)

    except WebSocketDisconnect:
        logger.info(f"연결 {connection_id} 끊김")
    except Exception as e:
        logger.error(f"연결 {connection_id}의 WebSocket 처리 중 오류: {e}")
    finally:
        await relay.disconnect(connection_id)


async def _handle_message(websocket: WebSocket, relay: "RelayService", connection_id: str, message):
    """수신한 메시지 하나를 처리합니다."""
    if not isinstance(message, dict):
        await _send_error(websocket, "Message must be an object")
        return

    message_type = message.get("type")
    data = message.get("data")

    if message_type == dto.JOIN_ROOM:
        room_id = dto.parse_room_id(data)
        if room_id is None:
            await _send_error(websocket, "roomId is required")
            return
        await relay.join(connection_id, room_id)

    elif message_type == dto.LEAVE_ROOM:
        room_id = dto.parse_room_id(data)
        if room_id is None:
            await _send_error(websocket, "roomId is required")
            return
        await relay.leave(connection_id, room_id)

    elif message_type in dto.RELAYED_EVENTS:
        try:
            payload = dto.validate_relay_payload(message_type, data)
        except ValidationError as e:
            logger.warning(f"연결 {connection_id}: 잘못된 {message_type} 페이로드 ({e.error_count()}개 오류)")
            await _send_error(websocket, f"Invalid {message_type} payload")
            return
        await relay.relay(connection_id, payload.roomId, message)

    else:
        logger.warning(f"알 수 없는 메시지 타입: {message_type}")
        await _send_error(websocket, f"Unknown message type: {message_type}")
