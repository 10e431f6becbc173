"""livecast 예외 정의.

세션 오케스트레이션 계층에서 호출자에게 전달되는 예외 타입.
대부분의 실패(디스커버리, 협상, 오래된 메시지)는 내부에서 복구되며
여기 정의된 예외만 호출자에게 노출됩니다.
"""

from enum import Enum


class LivecastError(Exception):
    """livecast 예외의 기본 클래스."""


class SessionStateError(LivecastError):
    """현재 세션 상태에서 허용되지 않는 호출."""


class SignalingConnectionError(LivecastError):
    """시그널링 서버 연결 실패."""


class InvalidTransitionError(LivecastError):
    """피어 연결 상태 머신의 허용되지 않는 전이."""

    def __init__(self, peer_id: str, current, target):
        super().__init__(f"peer {peer_id}: {current.value} -> {target.value} 전이 불가")
        self.peer_id = peer_id
        self.current = current
        self.target = target


class MediaErrorKind(str, Enum):
    """미디어 접근 실패 분류."""

    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    DEVICE_BUSY = "device_busy"
    SECURITY_BLOCKED = "security_blocked"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


_MESSAGE_PREFIX = "Could not access camera/microphone. "

_USER_MESSAGES = {
    MediaErrorKind.PERMISSION_DENIED: "Permission denied. Please allow camera and microphone access.",
    MediaErrorKind.NOT_FOUND: "No suitable camera found. Please check your device.",
    MediaErrorKind.DEVICE_BUSY: "Camera/microphone is already in use by another application.",
    MediaErrorKind.SECURITY_BLOCKED: "Camera/microphone access is blocked by security settings.",
    MediaErrorKind.UNSUPPORTED: "Media capture is not supported on this platform.",
}


class MediaCaptureError(LivecastError):
    """분류된 미디어 캡처 실패.

    Attributes:
        kind (MediaErrorKind): 실패 분류
        detail (str): 원본 진단 메시지
        user_message (str): 사용자에게 표시할 메시지
    """

    def __init__(self, kind: MediaErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        self.user_message = self.message_for(kind, detail)
        super().__init__(self.user_message)

    @staticmethod
    def message_for(kind: MediaErrorKind, detail: str = "") -> str:
        if kind in _USER_MESSAGES:
            return _MESSAGE_PREFIX + _USER_MESSAGES[kind]
        return _MESSAGE_PREFIX + f"Please check permissions and try again. ({detail})"
