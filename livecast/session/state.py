"""세션 상태 정의.

Classes:
    Role: 세션 역할 (publisher / viewer)
    SessionState: 세션 수준 상태
    ConnectionStatus: 시그널링 연결 상태
    ViewerCounter: 룸 시청자 수 추적
"""

import logging
from enum import Enum
from typing import Set

logger = logging.getLogger(__name__)


class Role(str, Enum):
    PUBLISHER = "publisher"
    VIEWER = "viewer"


class SessionState(str, Enum):
    """세션 상태: idle -> joining -> joined -> (streaming | waiting)."""

    IDLE = "idle"
    JOINING = "joining"
    JOINED = "joined"
    STREAMING = "streaming"
    WAITING = "waiting"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ViewerCounter:
    """룸에 입장한 시청자 수.

    입장한 시청자 ID를 기록하여 같은 ID의 중복 입장은 한 번만 세고,
    입장 기록이 없는 퇴장(중복/순서 뒤바뀜)은 무시합니다. 따라서 값은
    절대 음수가 되지 않습니다.
    """

    def __init__(self):
        self._viewers: Set[str] = set()

    @property
    def count(self) -> int:
        return len(self._viewers)

    def joined(self, viewer_id: str) -> int:
        if viewer_id in self._viewers:
            logger.debug(f"[Session] 시청자 {viewer_id[:8]} 재입장 (중복 집계 안 함)")
        self._viewers.add(viewer_id)
        return self.count

    def left(self, viewer_id: str) -> int:
        if viewer_id not in self._viewers:
            logger.warning(f"[Session] 입장 기록 없는 시청자 퇴장 무시: {viewer_id[:8]}")
            return self.count
        self._viewers.discard(viewer_id)
        return self.count

    def viewer_ids(self) -> Set[str]:
        return set(self._viewers)

    def reset(self) -> None:
        self._viewers.clear()

    def __contains__(self, viewer_id: object) -> bool:
        return viewer_id in self._viewers
