"""세션 모듈.

Classes:
    SessionOrchestrator: 룸 참가와 피어별 WebRTC 협상을 관리하는 세션
    Role: 세션 역할 (publisher / viewer)
    SessionState: 세션 상태
    ConnectionStatus: 시그널링 연결 상태
    ViewerCounter: 룸 시청자 수 추적
"""

from .orchestrator import SessionOrchestrator
from .state import Role, SessionState, ConnectionStatus, ViewerCounter

__all__ = [
    "SessionOrchestrator",
    "Role",
    "SessionState",
    "ConnectionStatus",
    "ViewerCounter",
]
