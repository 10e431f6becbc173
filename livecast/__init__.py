"""livecast 패키지.

publisher 한 명이 여러 viewer에게 P2P로 카메라/마이크를 방송하는
WebRTC 클라이언트 측 연결 조정 계층입니다.

Modules:
    session: 룸 참가 및 피어별 협상 오케스트레이션
    signaling: socket.io 시그널링 채널
    webrtc: 피어 연결 레지스트리, ICE 서버 디스커버리
    media: 로컬 카메라/마이크 캡처
    shared: 시그널링 wire 모델
"""

from .session import SessionOrchestrator, Role, SessionState, ConnectionStatus
from .signaling import SignalingChannel
from .webrtc import PeerConnectionRegistry, IceServerResolver
from .media import MediaCapture, MediaStream, MediaConstraints
from .errors import (
    LivecastError,
    SessionStateError,
    SignalingConnectionError,
    MediaCaptureError,
    MediaErrorKind,
    InvalidTransitionError,
)

__version__ = "0.1.0"

__all__ = [
    # Session
    "SessionOrchestrator",
    "Role",
    "SessionState",
    "ConnectionStatus",
    # Components
    "SignalingChannel",
    "PeerConnectionRegistry",
    "IceServerResolver",
    "MediaCapture",
    "MediaStream",
    "MediaConstraints",
    # Errors
    "LivecastError",
    "SessionStateError",
    "SignalingConnectionError",
    "MediaCaptureError",
    "MediaErrorKind",
    "InvalidTransitionError",
]
