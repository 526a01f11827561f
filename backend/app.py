"""FastAPI WebRTC Signaling Relay Server with Room Support.

이 모듈은 두 피어가 직접 미디어/데이터 연결을 맺을 수 있도록
offer/answer와 ICE candidate를 중계하는 시그널링 서버를 제공합니다.
FastAPI와 WebSocket을 사용하며, 메시지는 같은 룸의 다른 멤버에게만 전달됩니다.

주요 기능:
    - 룸 기반 연결 관리 (룸 자동 생성/삭제)
    - offer / answer / ice-candidate 릴레이 (보낸 연결 제외)
    - 실시간 참가자 입/퇴장 알림 (user-joined, user-left)
    - CORS 설정을 통한 크로스 오리진 요청 지원

Architecture:
    - RelayService: 룸 레지스트리 소유 및 메시지 라우팅
    - RoomRegistry: 룸 ID → 멤버 연결 ID
    - WebSocket: 실시간 시그널링 메시지 전송
"""
import logging
from contextlib import asynccontextmanager
import os
from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modules import RelayService, RoomRegistry, get_settings
from modules.webrtc import ice_config
from routes import health_router, signaling_router, init_relay, get_relay


settings = get_settings()

# 로그 설정
os.makedirs(settings.LOG_DIR, exist_ok=True)
log_filename = os.path.join(settings.LOG_DIR, f"server_{datetime.now().strftime('%Y%m%d')}.log")


def cleanup_old_logs(log_dir: str = settings.LOG_DIR, retention_days: int = settings.LOG_RETENTION_DAYS) -> int:
    """오래된 로그 파일을 삭제합니다.

    Args:
        log_dir: 로그 디렉토리 경로
        retention_days: 보관 기간 (일)

    Returns:
        삭제된 파일 수
    """
    import glob

    if not os.path.exists(log_dir):
        return 0

    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for log_file in glob.glob(os.path.join(log_dir, "server_*.log")):
        try:
            filename = os.path.basename(log_file)
            date_str = filename.replace("server_", "").replace(".log", "")
            file_date = datetime.strptime(date_str, "%Y%m%d")

            if file_date < cutoff_date:
                os.remove(log_file)
                deleted_count += 1
        except (ValueError, OSError):
            continue

    return deleted_count


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(),  # 콘솔 출력
        logging.FileHandler(log_filename, encoding="utf-8"),  # 파일 저장
    ]
)
logger = logging.getLogger(__name__)
logger.info(f"로깅 초기화 완료: level={settings.LOG_LEVEL}, env={settings.ENV}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    서버 시작 시 룸 레지스트리와 릴레이 서비스를 생성하고,
    종료 시 모든 연결과 룸을 정리합니다.

    Args:
        app (FastAPI): FastAPI 애플리케이션 인스턴스

    Yields:
        None: 앱이 실행되는 동안 제어를 반환
    """
    logger.info("시그널링 릴레이 서버 시작 중...")

    deleted_logs = cleanup_old_logs()
    if deleted_logs > 0:
        logger.info(f"오래된 로그 파일 {deleted_logs}개 정리 완료 ({settings.LOG_RETENTION_DAYS}일 이상)")

    relay = RelayService(RoomRegistry())
    init_relay(relay)

    yield

    logger.info("서버 종료 중...")
    await relay.close()
    init_relay(None)


app = FastAPI(title="WebRTC Signaling Relay Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(health_router)
app.include_router(signaling_router)


@app.get("/")
async def root():
    """서버 상태 확인 엔드포인트 (Health check).

    Returns:
        dict: 서버 상태 정보를 포함하는 딕셔너리
            - status (str): 서버 상태
            - service (str): 서비스 이름
    """
    return {"status": "ok", "service": "WebRTC Signaling Relay Server"}


@app.get("/api/rooms")
async def get_rooms_api():
    """활성화된 모든 룸의 목록을 조회합니다.

    Returns:
        dict: {"rooms": [{"roomId", "memberCount", "members"}, ...]}
    """
    relay = get_relay()
    return {"rooms": relay.registry.snapshot() if relay else []}


@app.get("/api/ice-servers")
async def get_ice_servers():
    """클라이언트 RTCPeerConnection에 사용할 ICE 서버 목록을 제공합니다.

    Environment Variables:
        STUN_SERVER_URL: 커스텀 STUN 서버 URL (선택)
        TURN_SERVER_URL / TURN_USERNAME / TURN_CREDENTIAL: TURN 서버 (모두 설정된 경우만 포함)

    Returns:
        list: ICE servers 배열 (STUN + 선택적 TURN)
    """
    servers = ice_config.as_dicts()
    if ice_config.has_turn_server:
        logger.info("ICE 서버 제공: STUN + TURN")
    else:
        logger.info("ICE 서버 제공: STUN만 (TURN 미설정)")
    return servers


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level="info")
