"""Health Check API 라우터.

서비스 상태 확인을 위한 엔드포인트들을 제공합니다.
"""

from fastapi import APIRouter

from .signaling import get_relay

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """릴레이 서비스 상태를 확인합니다.

    Returns:
        dict: 릴레이 상태와 룸/연결 수
    """
    relay = get_relay()
    if relay is None:
        return {"status": "not_initialized", "rooms": 0, "connections": 0}

    return {
        "status": "ok",
        "rooms": relay.registry.room_count(),
        "connections": len(relay.connections),
    }
