"""릴레이 서버 설정.

포트, CORS 허용 오리진, 로깅 등 서버 설정.
ICE 서버와 협상 타임아웃은 webrtc/config.py에서 관리합니다.
"""

import logging
from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# .env 파일 로드
_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


class RelaySettings(BaseSettings):
    """릴레이 서버 설정 클래스.

    환경 변수를 Python 객체로 매핑하고 유효성을 검증합니다.
    """

    # 서버 설정
    HOST: str = Field(
        default="0.0.0.0",
        description="바인딩 주소"
    )

    PORT: int = Field(
        default=5000,
        description="리스닝 포트"
    )

    CORS_ORIGIN: str = Field(
        default="http://localhost:5173",
        description="허용할 크로스 오리진 호출자 (쉼표로 여러 개 지정 가능)"
    )

    ENV: str = Field(
        default="development",
        description="실행 환경"
    )

    # 로깅 설정
    LOG_LEVEL: str = Field(
        default="INFO",
        description="로그 레벨"
    )

    LOG_DIR: str = Field(
        default="logs",
        description="로그 파일 디렉토리"
    )

    LOG_RETENTION_DAYS: int = Field(
        default=60,
        description="로그 보관 기간 (일)"
    )

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """로그 레벨 유효성 검증"""
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL은 {allowed} 중 하나여야 합니다.")
        return v.upper()

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]

    class Config:
        """Pydantic 설정"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> RelaySettings:
    """설정 싱글톤 인스턴스 반환.

    Returns:
        RelaySettings: 설정 객체
    """
    return RelaySettings()
