"""시그널링 모듈 설정.

socket.io 시그널링 서버 접속 관련 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


def _parse_bool(value: Optional[str], default: bool = True) -> bool:
    """문자열을 bool로 변환."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class SignalingConfig:
    """socket.io 시그널링 설정."""

    # 시그널링 서버 URL (미설정 시 백엔드 URL 사용)
    SIGNALING_URL: str = os.getenv(
        "SIGNALING_URL", os.getenv("LIVECAST_BACKEND_URL", "http://localhost:5000")
    )

    # 인증 토큰 (socket.io auth 페이로드로 전달)
    AUTH_TOKEN: Optional[str] = os.getenv("SIGNALING_AUTH_TOKEN")

    # socket.io 자동 재연결
    RECONNECTION: bool = _parse_bool(os.getenv("SIGNALING_RECONNECTION"), True)

    # 연결 대기 시간 (초)
    CONNECT_TIMEOUT: float = float(os.getenv("SIGNALING_CONNECT_TIMEOUT", "10"))

    # 전송 방식 우선순위
    TRANSPORTS: tuple = ("websocket", "polling")

    @property
    def auth(self) -> Optional[dict]:
        """socket.io 연결 시 전달할 auth 페이로드."""
        if not self.AUTH_TOKEN:
            return None
        return {"token": self.AUTH_TOKEN}


signaling_config = SignalingConfig()

logger.info(f"[Signaling Config] URL: {signaling_config.SIGNALING_URL}, "
            f"재연결: {signaling_config.RECONNECTION}, 인증: {bool(signaling_config.AUTH_TOKEN)}")
