"""미디어 캡처 모듈 설정.

카메라/마이크 장치 경로, 입력 포맷, 기본 제약 조건(constraints) 설정.
장치 경로와 포맷은 플랫폼별 기본값을 가지며 환경변수로 덮어쓸 수 있습니다.
"""

import os
import sys
import logging
from pathlib import Path
from dataclasses import dataclass, field
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


# platform -> (video device, video format, audio device, audio format)
_PLATFORM_DEFAULTS = {
    "linux": ("/dev/video0", "v4l2", "default", "pulse"),
    "darwin": ("default:none", "avfoundation", "none:default", "avfoundation"),
    "win32": ("video=Integrated Camera", "dshow", "audio=Microphone", "dshow"),
}


def _platform_default(index: int) -> Optional[str]:
    for prefix, defaults in _PLATFORM_DEFAULTS.items():
        if sys.platform.startswith(prefix):
            return defaults[index]
    return None


# ============================================================
# 캡처 제약 조건
# ============================================================

@dataclass(frozen=True)
class VideoConstraints:
    """비디오 제약 조건 (ideal/max 쌍, 플랫폼이 가장 가까운 값으로 대체 가능)."""

    width_ideal: int = 1280
    width_max: int = 1920
    height_ideal: int = 720
    height_max: int = 1080
    frame_rate_ideal: int = 30
    frame_rate_max: int = 60
    facing_mode: str = "user"
    aspect_ratio: float = 16 / 9


@dataclass(frozen=True)
class AudioConstraints:
    """오디오 제약 조건."""

    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    channel_count: int = 2
    sample_rate: int = 48000
    sample_size: int = 16


@dataclass(frozen=True)
class MediaConstraints:
    """캡처 요청 시 사용하는 제약 조건 프로파일.

    video/audio 중 하나를 None으로 두면 해당 미디어는 요청하지 않습니다.
    """

    video: Optional[VideoConstraints] = field(default_factory=VideoConstraints)
    audio: Optional[AudioConstraints] = field(default_factory=AudioConstraints)


# ============================================================
# 캡처 장치 설정
# ============================================================

@dataclass(frozen=True)
class CaptureConfig:
    """캡처 장치 설정."""

    VIDEO_DEVICE: Optional[str] = os.getenv("CAPTURE_VIDEO_DEVICE", _platform_default(0))
    VIDEO_FORMAT: Optional[str] = os.getenv("CAPTURE_VIDEO_FORMAT", _platform_default(1))
    AUDIO_DEVICE: Optional[str] = os.getenv("CAPTURE_AUDIO_DEVICE", _platform_default(2))
    AUDIO_FORMAT: Optional[str] = os.getenv("CAPTURE_AUDIO_FORMAT", _platform_default(3))

    # 보안 정책으로 캡처 차단 (false면 모든 캡처 요청 거부)
    CAPTURE_ALLOWED: bool = _parse_bool(os.getenv("CAPTURE_ALLOWED"), True)

    # 카메라 장치 탐색 패턴 (Linux)
    VIDEO_DEVICE_GLOB: str = "/dev/video*"


capture_config = CaptureConfig()

logger.info(f"[Media Config] 비디오: {capture_config.VIDEO_DEVICE} ({capture_config.VIDEO_FORMAT}), "
            f"오디오: {capture_config.AUDIO_DEVICE} ({capture_config.AUDIO_FORMAT}), "
            f"허용: {capture_config.CAPTURE_ALLOWED}")
