"""WebRTC 모듈 설정.

TURN/STUN 서버, ICE 서버 디스커버리 등 WebRTC 관련 상수와 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

# 환경변수 로드
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정."""

    # 디스커버리 엔드포인트 ({BACKEND_URL}/api/ice)
    BACKEND_URL: str = os.getenv("LIVECAST_BACKEND_URL", "http://localhost:5000")
    DISCOVERY_PATH: str = "/api/ice"
    DISCOVERY_TIMEOUT: float = float(os.getenv("ICE_DISCOVERY_TIMEOUT", "5.0"))

    # TURN 서버
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 기본 공개 STUN 서버 (fallback) - 서로 다른 제공자
    # aiortc는 전체 ICE 서버 목록에서 첫 번째 STUN URL과 첫 번째 TURN 서버만 사용하고 나머지는 무시함
    FALLBACK_STUN_SERVERS: tuple = (
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
        "stun:global.stun.twilio.com:3478",
        "stun:stun.cloudflare.com:3478",
        "stun:stun.nextcloud.com:443",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    @property
    def discovery_url(self) -> str:
        """디스커버리 엔드포인트 전체 URL."""
        return self.BACKEND_URL.rstrip("/") + self.DISCOVERY_PATH


# ============================================================
# WebRTC 연결 설정
# ============================================================

@dataclass(frozen=True)
class ConnectionConfig:
    """피어 연결 관련 설정."""

    # 로그에 표시할 피어 ID 길이
    PEER_ID_LOG_LENGTH: int = 8

    # ICE 연결 실패 시 해당 피어 연결 종료 여부
    CLOSE_ON_FAILED: bool = True


# ============================================================
# 싱글톤 인스턴스
# ============================================================

ice_config = ICEServerConfig()
connection_config = ConnectionConfig()


# ============================================================
# 설정 로드 확인 로그
# ============================================================

logger.info(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.info(f"[WebRTC Config] ICE 디스커버리: {ice_config.discovery_url}")
logger.info(f"[WebRTC Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")
if ice_config.STUN_SERVER_URL:
    logger.info(f"[WebRTC Config] STUN URL: {ice_config.STUN_SERVER_URL}")
