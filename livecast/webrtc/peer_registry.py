"""WebRTC 피어 연결 레지스트리 모듈.

원격 피어 ID별로 하나의 RTCPeerConnection과 그 이벤트 구독, 협상 상태를
관리합니다. 세션마다 자체 레지스트리를 소유하며 모듈 전역 상태는 없습니다.

주요 기능:
    - 피어 연결 생성 (같은 ID의 기존 연결은 먼저 제거 후 종료)
    - 피어 ID로 조회
    - 연결 종료 및 제거 (존재하지 않는 ID도 안전)
    - 피어별 협상 상태 머신과 FIFO 락

Peer Connection States:
    publisher 측: created -> offering -> awaiting_answer -> negotiating -> connected -> closed
    viewer 측:    created -> awaiting_offer -> answering -> negotiating -> connected -> closed
    모든 상태에서 closed로 전이 가능하며, ICE 재시작 시 connected -> negotiating 허용.

Examples:
    >>> registry = PeerConnectionRegistry()
    >>> entry = registry.create("viewer-123", ice_servers)
    >>> entry.transition(PeerState.OFFERING)
    >>> await registry.close_peer_connection("viewer-123")
    >>> await registry.cleanup_all()
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from aiortc import RTCPeerConnection

from ..errors import InvalidTransitionError
from ..media.stream import MediaStream
from ..shared.dto import IceServerDescriptor
from .config import connection_config
from .negotiation import create_peer_connection

logger = logging.getLogger(__name__)

PeerConnectionFactory = Callable[[Sequence[IceServerDescriptor]], RTCPeerConnection]


def short_id(peer_id: str) -> str:
    return peer_id[:connection_config.PEER_ID_LOG_LENGTH]


class PeerState(str, Enum):
    """피어 연결 협상 상태."""

    CREATED = "created"
    OFFERING = "offering"
    AWAITING_ANSWER = "awaiting_answer"
    AWAITING_OFFER = "awaiting_offer"
    ANSWERING = "answering"
    NEGOTIATING = "negotiating"
    CONNECTED = "connected"
    CLOSED = "closed"


# closed is reachable from every state but itself
_TRANSITIONS = {
    PeerState.CREATED: {PeerState.OFFERING, PeerState.AWAITING_OFFER},
    PeerState.OFFERING: {PeerState.AWAITING_ANSWER},
    PeerState.AWAITING_ANSWER: {PeerState.NEGOTIATING},
    PeerState.AWAITING_OFFER: {PeerState.ANSWERING},
    PeerState.ANSWERING: {PeerState.NEGOTIATING},
    PeerState.NEGOTIATING: {PeerState.CONNECTED},
    PeerState.CONNECTED: {PeerState.NEGOTIATING},
    PeerState.CLOSED: set(),
}


class PeerEntry:
    """원격 피어 하나에 대한 연결 항목.

    Attributes:
        peer_id (str): 원격 피어 ID (시그널링 서버가 부여)
        pc (RTCPeerConnection): 피어 연결
        state (PeerState): 현재 협상 상태
        lock (asyncio.Lock): 이 피어의 시그널링 메시지를 도착 순서대로 처리하기 위한 락
        remote_streams (Dict[str, MediaStream]): 수신한 원격 스트림 (스트림 ID별)
    """

    def __init__(self, peer_id: str, pc: RTCPeerConnection):
        self.peer_id = peer_id
        self.pc = pc
        self.state = PeerState.CREATED
        self.lock = asyncio.Lock()
        self.remote_streams: Dict[str, MediaStream] = {}

        # (event, handler) registered on the peer connection
        self._subscriptions: List[Tuple[str, Callable]] = []

    @property
    def short_id(self) -> str:
        return short_id(self.peer_id)

    @property
    def closed(self) -> bool:
        return self.state == PeerState.CLOSED

    def subscribe(self, event: str, handler: Callable) -> None:
        """피어 연결 이벤트에 핸들러를 등록합니다 (종료 시 자동 해제)."""
        self.pc.on(event, handler)
        self._subscriptions.append((event, handler))

    def can_transition(self, target: PeerState) -> bool:
        if target == PeerState.CLOSED:
            return self.state != PeerState.CLOSED
        return target in _TRANSITIONS[self.state]

    def transition(self, target: PeerState) -> None:
        """상태를 전이합니다.

        Raises:
            InvalidTransitionError: 허용되지 않는 전이
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self.peer_id, self.state, target)
        logger.debug(f"[WebRTC] 피어 {self.short_id} 상태: {self.state.value} -> {target.value}")
        self.state = target

    async def close(self) -> None:
        """이벤트 구독을 해제하고 연결을 닫습니다. 두 번 호출해도 안전합니다."""
        if self.closed:
            return

        self.state = PeerState.CLOSED
        for event, handler in self._subscriptions:
            try:
                self.pc.remove_listener(event, handler)
            except KeyError:
                logger.debug(f"[WebRTC] 피어 {self.short_id} '{event}' 핸들러 이미 해제됨")
        self._subscriptions.clear()

        await self.pc.close()

    def __repr__(self) -> str:
        return f"<PeerEntry {self.short_id} {self.state.value}>"


class PeerConnectionRegistry:
    """피어 ID -> PeerEntry 매핑.

    세션 오케스트레이터의 이벤트 핸들러에서만 변경됩니다.

    Attributes:
        entries (Dict[str, PeerEntry]): 피어 ID -> 연결 항목
    """

    def __init__(self, factory: PeerConnectionFactory = create_peer_connection):
        self.entries: Dict[str, PeerEntry] = {}
        self._factory = factory

        # entries replaced by create() and not yet closed
        self._retired: List[PeerEntry] = []

    def create(self, peer_id: str, ice_servers: Sequence[IceServerDescriptor]) -> PeerEntry:
        """새 피어 연결을 만들어 등록합니다.

        같은 ID의 기존 항목은 새 항목 등록 전에 매핑에서 제거되어 종료 대기
        목록으로 이동합니다 (close_retired()에서 종료). 따라서 어느 시점에도
        ID당 항목은 최대 하나입니다.

        동기 함수이므로 호출자는 다른 태스크가 끼어들기 전에 새 항목의 락을
        잡을 수 있습니다.

        Args:
            peer_id (str): 원격 피어 ID
            ice_servers: 연결에 사용할 ICE 서버 목록

        Returns:
            PeerEntry: 생성된 항목 (state=CREATED)
        """
        prior = self.entries.pop(peer_id, None)
        if prior is not None:
            logger.info(f"[WebRTC] 피어 {short_id(peer_id)} 기존 연결 교체")
            self._retired.append(prior)

        entry = PeerEntry(peer_id, self._factory(ice_servers))
        self.entries[peer_id] = entry
        logger.info(f"[WebRTC] 피어 연결 생성: peer={entry.short_id}, ICE 서버={len(ice_servers)}")
        return entry

    async def close_retired(self) -> int:
        """create()로 교체된 이전 항목들을 종료합니다."""
        retired, self._retired = self._retired, []
        for entry in retired:
            await self._close_entry(entry)
        return len(retired)

    def get(self, peer_id: str) -> Optional[PeerEntry]:
        """피어 ID의 항목을 반환합니다."""
        return self.entries.get(peer_id)

    def get_peer_connection(self, peer_id: str) -> Optional[RTCPeerConnection]:
        """피어의 RTCPeerConnection을 반환합니다."""
        entry = self.entries.get(peer_id)
        return entry.pc if entry else None

    async def close_peer_connection(self, peer_id: str, entry: Optional[PeerEntry] = None) -> bool:
        """피어 연결을 종료하고 레지스트리에서 제거합니다.

        Args:
            peer_id (str): 종료할 피어 ID
            entry (Optional[PeerEntry]): 지정하면 해당 항목만 종료합니다.
                이미 새 항목으로 교체된 경우 새 항목은 건드리지 않습니다.

        Returns:
            bool: 레지스트리에서 항목을 제거했는지 여부

        Note:
            - 존재하지 않는 피어 ID로 호출해도 안전함
        """
        current = self.entries.get(peer_id)
        if entry is not None and current is not entry:
            await self._close_entry(entry)
            return False

        if current is None:
            return False

        del self.entries[peer_id]
        await self._close_entry(current)
        logger.info(f"[WebRTC] 피어 {short_id(peer_id)} 연결 종료")
        return True

    async def cleanup_all(self) -> int:
        """모든 피어 연결을 종료합니다.

        매핑을 먼저 비운 뒤 각 연결을 닫습니다. 개별 종료 실패는 로그만
        남기고 나머지 연결 정리를 계속합니다.

        Returns:
            int: 종료한 연결 수
        """
        entries = list(self.entries.values())
        self.entries.clear()

        if entries:
            logger.info(f"[WebRTC] 피어 연결 {len(entries)}개 종료")
        for entry in entries:
            await self._close_entry(entry)
        await self.close_retired()
        return len(entries)

    def peer_ids(self) -> List[str]:
        return list(self.entries.keys())

    async def _close_entry(self, entry: PeerEntry) -> None:
        try:
            await entry.close()
        except Exception as e:
            logger.error(f"[WebRTC] 피어 {entry.short_id} 연결 종료 중 오류: {type(e).__name__}: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self.entries

    def __iter__(self) -> Iterator[PeerEntry]:
        return iter(list(self.entries.values()))
