"""미디어 모듈.

Classes:
    MediaCapture: 로컬 카메라/마이크 캡처 래퍼
    MediaStream: 트랙 묶음 (로컬/원격 스트림 핸들)
    MediaConstraints: 캡처 제약 조건 프로파일

Config:
    capture_config: 캡처 장치 설정
"""

from .stream import MediaStream
from .capture import MediaCapture, classify_capture_error
from .config import (
    capture_config,
    CaptureConfig,
    MediaConstraints,
    VideoConstraints,
    AudioConstraints,
)

__all__ = [
    "MediaStream",
    "MediaCapture",
    "classify_capture_error",
    "capture_config",
    "CaptureConfig",
    "MediaConstraints",
    "VideoConstraints",
    "AudioConstraints",
]
