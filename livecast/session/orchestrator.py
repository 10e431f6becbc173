"""세션 오케스트레이터 모듈.

시그널링 채널, ICE 서버 디스커버리, 미디어 캡처, 피어 연결 레지스트리를
조합하여 룸 참가와 피어별 WebRTC 협상을 진행합니다. publisher 한 명이
여러 viewer에게 P2P로 오디오/비디오를 방송하는 구조입니다.

주요 기능:
    - 룸 참가 (connect 시 join-room 전송, 재연결 시 재전송)
    - ICE 서버 목록 비동기 조회 (세션 종료 후 도착한 결과는 폐기)
    - publisher: 시청자 입장마다 offer 생성/전송, answer/candidate 적용
    - viewer: offer 수신 시 answer 생성/전송, 원격 스트림 전달
    - 피어 퇴장/publisher 퇴장/스트리밍 중지 시 연결 정리

Session States:
    idle -> joining -> joined -> (streaming | waiting)
    - joined -> streaming: publisher의 start_streaming() 성공
    - joined -> waiting: viewer는 참가 즉시 offer 대기

WebRTC Flow (publisher):
    1. viewer-joined 수신 (로컬 스트림이 없으면 연결 생성 안 함)
    2. 피어 연결 생성 후 로컬 트랙 추가
    3. offer 생성, local description 설정, webrtc-offer 전송
    4. webrtc-answer 수신 시 remote description 설정
    5. ICE candidate 양방향 전달 (로컬 SDP의 candidate를 description 전송 후 개별 메시지로 전달)

Error Handling:
    - room-error: on_remote_stream(None) 호출, 상태는 유지
    - 디스커버리 실패: fallback 목록 사용 (resolver 내부 처리)
    - 미디어 접근 실패: start_streaming()이 False 반환, last_media_error 기록
    - 협상 실패: 해당 피어 연결만 종료
    - 알 수 없는 피어 ID 메시지: 조용히 폐기

Examples:
    >>> session = SessionOrchestrator()
    >>> await session.start("room-1", "publisher")
    >>> if await session.start_streaming():
    ...     print(session.viewer_count)
    >>> await session.leave()

    viewer:
        >>> async with SessionOrchestrator() as session:
        ...     await session.start("room-1", "viewer", on_remote_stream=render)
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Type, TypeVar, Union

from aiortc import MediaStreamTrack
from pydantic import ValidationError

from ..errors import InvalidTransitionError, MediaCaptureError, SessionStateError, SignalingConnectionError
from ..media.capture import MediaCapture
from ..media.config import MediaConstraints
from ..media.stream import MediaStream
from ..shared.dto import (
    IceServerDescriptor,
    InboundCandidate,
    InboundDescription,
    JoinRoomRequest,
    OutboundCandidate,
    OutboundDescription,
    PublisherLeftNotice,
    RoomErrorMessage,
    ViewerEvent,
    WireModel,
)
from ..signaling.channel import SignalingChannel
from ..webrtc.config import connection_config
from ..webrtc.ice_resolver import IceServerResolver
from ..webrtc.negotiation import (
    candidate_from_payload,
    count_candidates,
    create_peer_connection,
    description_from_payload,
    description_to_payload,
    local_candidates,
    sdp_has_candidate,
    stream_id_for_track,
)
from ..webrtc.peer_registry import PeerConnectionFactory, PeerConnectionRegistry, PeerEntry, PeerState, short_id
from .state import ConnectionStatus, Role, SessionState, ViewerCounter

logger = logging.getLogger(__name__)

RemoteStreamCallback = Callable[[Optional[MediaStream]], Any]
TrackEndedCallback = Callable[[str], Any]

M = TypeVar("M", bound=WireModel)


class SessionOrchestrator:
    """룸 참가와 피어별 협상을 관리하는 세션 상태 머신.

    세션마다 자체 PeerConnectionRegistry와 ViewerCounter를 소유합니다.
    모든 상태 변경은 단일 이벤트 루프의 핸들러에서만 일어나며, 같은 피어에
    대한 협상 단계는 PeerEntry.lock으로 도착 순서대로 처리됩니다.

    Attributes:
        channel (SignalingChannel): 시그널링 채널
        resolver (IceServerResolver): ICE 서버 디스커버리
        capture (MediaCapture): 로컬 미디어 캡처
        registry (PeerConnectionRegistry): 원격 피어 ID -> 연결 항목
        role (Optional[Role]): 세션 역할
        room_id (Optional[str]): 참가한 룸 ID
        state (SessionState): 세션 상태
        connection_status (ConnectionStatus): 시그널링 연결 상태
        local_stream (Optional[MediaStream]): 캡처된 로컬 스트림 (publisher)
        ice_servers (List[IceServerDescriptor]): 현재 ICE 서버 목록
        last_room_error (Optional[str]): 마지막 room-error 메시지
        last_media_error (Optional[MediaCaptureError]): 마지막 미디어 접근 실패
    """

    # event -> handler method
    _COMMON_EVENTS = {
        "connect": "_on_connect",
        "disconnect": "_on_disconnect",
        "room-joined": "_on_room_joined",
        "room-error": "_on_room_error",
    }
    _ROLE_EVENTS = {
        Role.PUBLISHER: {
            "viewer-joined": "_on_viewer_joined",
            "viewer-left": "_on_viewer_left",
            "webrtc-answer": "_on_answer",
            "webrtc-ice-candidate": "_on_remote_candidate",
        },
        Role.VIEWER: {
            "webrtc-offer": "_on_offer",
            "webrtc-ice-candidate": "_on_remote_candidate",
            "publisher-left": "_on_publisher_left",
        },
    }

    def __init__(
        self,
        channel: Optional[SignalingChannel] = None,
        resolver: Optional[IceServerResolver] = None,
        capture: Optional[MediaCapture] = None,
        peer_connection_factory: PeerConnectionFactory = create_peer_connection,
        constraints: Optional[MediaConstraints] = None,
        on_track_ended: Optional[TrackEndedCallback] = None,
    ):
        self.channel = channel or SignalingChannel()
        self.resolver = resolver or IceServerResolver()
        self.capture = capture or MediaCapture()
        self.constraints = constraints
        self.on_track_ended = on_track_ended
        self._factory = peer_connection_factory

        self.role: Optional[Role] = None
        self.room_id: Optional[str] = None
        self.state = SessionState.IDLE
        self.connection_status = ConnectionStatus.DISCONNECTED
        self.registry = PeerConnectionRegistry(peer_connection_factory)
        self.viewers = ViewerCounter()
        self.local_stream: Optional[MediaStream] = None
        self.ice_servers: List[IceServerDescriptor] = []
        self.room_info: Optional[dict] = None
        self.last_room_error: Optional[str] = None
        self.last_media_error: Optional[MediaCaptureError] = None

        self._on_remote_stream: Optional[RemoteStreamCallback] = None
        self._registered: List[Tuple[str, Callable]] = []
        self._background_tasks: Set[asyncio.Task] = set()
        self._streaming_lock = asyncio.Lock()

        # bumped on start/leave; stale ICE results are discarded
        self._generation = 0
        # bumped on stop_streaming; stale capture results are released
        self._stream_epoch = 0
        # set while leave() tears the session down
        self._leaving = False

    # ============================================================
    # 공개 API
    # ============================================================

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED

    @property
    def is_streaming(self) -> bool:
        return self.local_stream is not None

    @property
    def viewer_count(self) -> int:
        return self.viewers.count

    def snapshot(self) -> Dict[str, Any]:
        """현재 세션 상태 요약."""
        return {
            "room_id": self.room_id,
            "role": self.role.value if self.role else None,
            "state": self.state.value,
            "connection_status": self.connection_status.value,
            "is_streaming": self.is_streaming,
            "viewer_count": self.viewer_count,
            "peers": {entry.peer_id: entry.state.value for entry in self.registry},
            "ice_servers": len(self.ice_servers),
        }

    async def start(
        self,
        room_id: str,
        role: Union[Role, str],
        on_remote_stream: Optional[RemoteStreamCallback] = None,
    ) -> "SessionOrchestrator":
        """룸 참가를 시작합니다.

        핸들러를 등록하고 ICE 서버 조회를 백그라운드로 시작한 뒤 시그널링
        채널을 엽니다. join-room 요청은 connect 이벤트에서 전송됩니다.

        Args:
            room_id (str): 참가할 룸 ID (publisher 계정 ID)
            role (Role | str): "publisher" 또는 "viewer"
            on_remote_stream: 원격 스트림 수신/해제 시 호출되는 콜백 (해제 시 None)

        Returns:
            SessionOrchestrator: 세션 자신

        Raises:
            SessionStateError: 이미 룸에 참가 중인 경우 (leave() 후 다시 시작)
            SignalingConnectionError: 시그널링 서버 연결 실패
            ValueError: room_id가 비어 있거나 role이 올바르지 않은 경우
        """
        if self.state != SessionState.IDLE:
            raise SessionStateError(f"already in room '{self.room_id}', call leave() first")
        if not room_id:
            raise ValueError("room_id is required")

        self.role = Role(role)
        self.room_id = room_id
        self._on_remote_stream = on_remote_stream
        self._generation += 1

        self.registry = PeerConnectionRegistry(self._factory)
        self.viewers.reset()
        self.ice_servers = []
        self.room_info = None
        self.last_room_error = None
        self.last_media_error = None

        self.state = SessionState.JOINING
        self.connection_status = ConnectionStatus.CONNECTING
        logger.info(f"[Session] 세션 시작: room={room_id}, role={self.role.value}")

        self._register_handlers()
        self._spawn(self._resolve_ice_servers(self._generation))

        try:
            if self.channel.connected:
                # No connect event will fire for an already open channel
                await self._on_connect()
            else:
                await self.channel.connect()
        except SignalingConnectionError:
            await self.leave()
            raise

        return self

    async def start_streaming(self) -> bool:
        """로컬 미디어를 캡처하고 방송을 시작합니다 (publisher 전용).

        이미 룸에 있는 시청자에게는 즉시 offer를 보내고, 이후 입장하는
        시청자마다 연결을 생성합니다.

        Returns:
            bool: 성공 여부. 실패 시 last_media_error에 분류된 오류가 기록됨
        """
        if self.role != Role.PUBLISHER or self.state == SessionState.IDLE:
            logger.warning("[Session] publisher로 참가한 세션에서만 스트리밍을 시작할 수 있음")
            return False

        async with self._streaming_lock:
            if self.local_stream is not None:
                return True

            epoch = self._stream_epoch
            self.last_media_error = None
            logger.info("[Session] 미디어 권한 요청 중...")
            try:
                stream = await self.capture.capture(self.constraints, on_track_ended=self._on_local_track_ended)
            except MediaCaptureError as e:
                self.last_media_error = e
                logger.error(f"[Session] 스트리밍 시작 실패: {e.user_message}")
                return False

            if epoch != self._stream_epoch or self.state == SessionState.IDLE:
                logger.info("[Session] 캡처 중 세션이 중지됨, 스트림 해제")
                self.capture.release(stream)
                return False

            self.local_stream = stream
            if self.state == SessionState.JOINED:
                self.state = SessionState.STREAMING
            logger.info(f"[Session] 스트리밍 시작: {stream}")

        for viewer_id in self.viewers.viewer_ids():
            if viewer_id not in self.registry:
                self._spawn(self._create_publisher_connection(viewer_id))

        return True

    async def stop_streaming(self) -> None:
        """스트리밍을 중지하고 모든 피어 연결을 정리합니다.

        Cleanup Steps:
            1. 로컬 트랙의 종료 콜백 해제 후 모든 트랙 정지
            2. 모든 피어 연결 종료 및 레지스트리 비우기
            3. 시청자 수 초기화
            4. publisher이고 실제로 정리한 것이 있으면 publisher-left 전송

        Note:
            - 진행 중인 협상 결과와 관계없이 항상 끝까지 정리함
            - 두 번째 호출은 아무 작업도 하지 않음
        """
        self._stream_epoch += 1
        stream, self.local_stream = self.local_stream, None

        if stream is not None:
            try:
                self.capture.release(stream)
            except Exception as e:
                logger.error(f"[Session] 로컬 트랙 정지 중 오류: {type(e).__name__}: {e}", exc_info=True)

        closed = await self.registry.cleanup_all()
        self.viewers.reset()

        if self.state == SessionState.STREAMING:
            self.state = SessionState.JOINED

        if stream is None and not closed:
            return

        logger.info(f"[Session] 스트림 정지: 피어 연결 {closed}개 종료")

        if self.role == Role.PUBLISHER and stream is not None and self.room_id and self.channel.connected:
            logger.info("[Session] 시청자에게 방송 종료 알림")
            await self._send("publisher-left", PublisherLeftNotice(room_id=self.room_id))

    async def leave(self) -> None:
        """룸에서 나가고 세션을 정리합니다. 두 번 호출해도 안전합니다.

        Cleanup Steps:
            1. 시그널링 핸들러 해제 (이후 도착한 offer/입장 알림은 무시)
            2. 스트리밍 중지 및 모든 피어 연결 종료
            3. 백그라운드 태스크 취소, 시그널링 연결 종료
            4. 정리 중 생성된 피어 연결까지 최종 종료
        """
        if self.state == SessionState.IDLE and not self._registered:
            return

        logger.info(f"[Session] 세션 종료: room={self.room_id}")
        self._generation += 1
        self._leaving = True
        self._unregister_handlers()

        try:
            await self.stop_streaming()

            current = asyncio.current_task()
            for task in list(self._background_tasks):
                if task is not current:
                    task.cancel()

            try:
                await self.channel.disconnect()
            except Exception as e:
                logger.error(f"[Session] 시그널링 연결 종료 중 오류: {type(e).__name__}: {e}")

            # Handlers dispatched before unregistering may have added entries
            leftover = await self.registry.cleanup_all()
            if leftover:
                logger.info(f"[Session] 정리 중 생성된 피어 연결 {leftover}개 추가 종료")
        finally:
            self._leaving = False
            self.state = SessionState.IDLE
            self.connection_status = ConnectionStatus.DISCONNECTED
            self.room_id = None
            self._on_remote_stream = None

    async def __aenter__(self) -> "SessionOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.leave()

    # ============================================================
    # 핸들러 등록 / 백그라운드 태스크
    # ============================================================

    def _register_handlers(self) -> None:
        events = dict(self._COMMON_EVENTS)
        events.update(self._ROLE_EVENTS[self.role])
        for event, name in events.items():
            handler = getattr(self, name)
            self.channel.on(event, handler)
            self._registered.append((event, handler))
        logger.debug(f"[Session] 시그널링 핸들러 {len(self._registered)}개 등록")

    def _unregister_handlers(self) -> None:
        for event, handler in self._registered:
            self.channel.off(event, handler)
        self._registered.clear()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        # Keep a reference until done
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _resolve_ice_servers(self, generation: int) -> None:
        servers = await self.resolver.resolve()
        if generation != self._generation or self.state == SessionState.IDLE:
            logger.debug("[Session] 세션이 종료되어 ICE 서버 결과 폐기")
            return
        self.ice_servers = servers
        logger.info(f"[Session] ICE 서버 {len(servers)}개 준비됨")

    # ============================================================
    # 공통 시그널링 이벤트
    # ============================================================

    async def _on_connect(self, *args) -> None:
        logger.info("[Session] 시그널링 서버 연결됨")
        self.connection_status = ConnectionStatus.CONNECTED
        await self._send("join-room", JoinRoomRequest(room_id=self.room_id, role=self.role.value))

        if self.state == SessionState.JOINING:
            if self.role == Role.VIEWER:
                self.state = SessionState.WAITING
            elif self.local_stream is not None:
                self.state = SessionState.STREAMING
            else:
                self.state = SessionState.JOINED
        logger.info(f"[Session] 룸 참가 요청: room={self.room_id}, state={self.state.value}")

    async def _on_disconnect(self, *args) -> None:
        reason = args[0] if args else ""
        logger.warning(f"[Session] 시그널링 서버 연결 끊김 {reason}".rstrip())
        self.connection_status = ConnectionStatus.DISCONNECTED

    async def _on_room_joined(self, data=None) -> None:
        self.room_info = data if isinstance(data, dict) else {"data": data}
        logger.info(f"[Session] 룸 참가 완료: {data}")

    async def _on_room_error(self, data=None) -> None:
        message = self._parse(RoomErrorMessage, data, "room-error")
        self.last_room_error = message.message if message else str(data)
        logger.error(f"[Session] 룸 오류: {self.last_room_error}")
        await self._deliver_remote_stream(None)

    # ============================================================
    # publisher 측
    # ============================================================

    async def _on_viewer_joined(self, data=None) -> None:
        event = self._parse(ViewerEvent, data, "viewer-joined")
        if event is None:
            return

        count = self.viewers.joined(event.viewer_id)
        logger.info(f"[Session] 시청자 입장: {short_id(event.viewer_id)}, 시청자 수={count}")

        if self.local_stream is None:
            logger.info(f"[Session] 로컬 스트림 없음 - 시청자 {short_id(event.viewer_id)} 연결 생성 안 함")
            return

        await self._create_publisher_connection(event.viewer_id)

    async def _on_viewer_left(self, data=None) -> None:
        event = self._parse(ViewerEvent, data, "viewer-left")
        if event is None:
            return

        count = self.viewers.left(event.viewer_id)
        logger.info(f"[Session] 시청자 퇴장: {short_id(event.viewer_id)}, 시청자 수={count}")
        await self.registry.close_peer_connection(event.viewer_id)

    async def _create_publisher_connection(self, viewer_id: str) -> None:
        """시청자용 피어 연결을 만들고 offer를 전송합니다."""
        stream = self.local_stream
        if stream is None or self._leaving:
            return

        entry = self.registry.create(viewer_id, self.ice_servers)
        self._subscribe_peer_events(entry)

        async with entry.lock:
            await self.registry.close_retired()
            try:
                tracks = stream.get_tracks()
                for track in tracks:
                    entry.pc.addTrack(track)
                logger.info(f"[WebRTC] 피어 {entry.short_id} 트랙 {len(tracks)}개 추가")

                entry.transition(PeerState.OFFERING)
                offer = await entry.pc.createOffer()
                await entry.pc.setLocalDescription(offer)
                if entry.closed:
                    logger.debug(f"[WebRTC] 피어 {entry.short_id} offer 생성 중 연결 종료됨")
                    return

                entry.transition(PeerState.AWAITING_ANSWER)
                description = entry.pc.localDescription or offer
                logger.info(
                    f"[WebRTC] 피어 {entry.short_id} offer 전송 (SDP 후보 수: {count_candidates(description.sdp)})"
                )
                await self._send(
                    "webrtc-offer",
                    OutboundDescription(target_id=viewer_id, sdp=description_to_payload(description)),
                )
                await self._relay_local_candidates(entry, description.sdp)
            except Exception as e:
                await self._fail_peer(entry, "offer 생성", e)

    async def _on_answer(self, data=None) -> None:
        message = self._parse(InboundDescription, data, "webrtc-answer")
        if message is None:
            return

        entry = self.registry.get(message.from_id)
        if entry is None:
            logger.debug(f"[WebRTC] 알 수 없는 피어의 answer 폐기: {short_id(message.from_id)}")
            return

        async with entry.lock:
            if entry.closed:
                return
            try:
                if message.sdp.type != "answer":
                    raise ValueError(f"expected answer, got {message.sdp.type}")
                if not entry.can_transition(PeerState.NEGOTIATING):
                    raise InvalidTransitionError(entry.peer_id, entry.state, PeerState.NEGOTIATING)

                await entry.pc.setRemoteDescription(description_from_payload(message.sdp))
                if entry.closed:
                    return
                entry.transition(PeerState.NEGOTIATING)
                logger.info(f"[WebRTC] 피어 {entry.short_id} answer 적용 완료")
            except Exception as e:
                await self._fail_peer(entry, "answer 적용", e)

    # ============================================================
    # viewer 측
    # ============================================================

    async def _on_offer(self, data=None) -> None:
        message = self._parse(InboundDescription, data, "webrtc-offer")
        if message is None:
            return
        if message.sdp.type != "offer":
            logger.warning(f"[WebRTC] offer가 아닌 description 무시: {message.sdp.type}")
            return

        if self._leaving:
            logger.debug(f"[WebRTC] 세션 종료 중 - offer 폐기: {short_id(message.from_id)}")
            return

        logger.info(f"[WebRTC] publisher {short_id(message.from_id)}로부터 offer 수신")

        # A new offer from the same peer supersedes the previous negotiation
        entry = self.registry.create(message.from_id, self.ice_servers)
        self._subscribe_peer_events(entry, receive=True)

        async with entry.lock:
            await self.registry.close_retired()
            try:
                entry.transition(PeerState.AWAITING_OFFER)
                await entry.pc.setRemoteDescription(description_from_payload(message.sdp))
                if entry.closed:
                    return

                entry.transition(PeerState.ANSWERING)
                answer = await entry.pc.createAnswer()
                await entry.pc.setLocalDescription(answer)
                if entry.closed:
                    return

                entry.transition(PeerState.NEGOTIATING)
                description = entry.pc.localDescription or answer
                logger.info(f"[WebRTC] 피어 {entry.short_id} answer 전송")
                await self._send(
                    "webrtc-answer",
                    OutboundDescription(target_id=message.from_id, sdp=description_to_payload(description)),
                )
                await self._relay_local_candidates(entry, description.sdp)
            except Exception as e:
                await self._fail_peer(entry, "answer 생성", e)

    async def _on_publisher_left(self, data=None) -> None:
        logger.info("[Session] publisher가 방송을 종료함")
        await self._deliver_remote_stream(None)
        await self.registry.cleanup_all()
        if self.state != SessionState.IDLE:
            self.state = SessionState.WAITING

    async def _on_remote_track(self, entry: PeerEntry, track: MediaStreamTrack) -> None:
        if entry.closed:
            return

        remote = entry.pc.remoteDescription
        stream_id = stream_id_for_track(remote.sdp if remote else None, track.id)
        logger.info(f"[WebRTC] 피어 {entry.short_id} {track.kind} 트랙 수신 (stream={stream_id})")

        if stream_id is None:
            logger.warning(f"[WebRTC] 피어 {entry.short_id} 스트림 없는 트랙 수신")
            return

        stream = entry.remote_streams.get(stream_id)
        if stream is not None:
            stream.add_track(track)
            return

        stream = MediaStream(stream_id=stream_id, tracks=[track])
        entry.remote_streams[stream_id] = stream
        await self._deliver_remote_stream(stream)

    # ============================================================
    # 공통 피어 처리
    # ============================================================

    def _subscribe_peer_events(self, entry: PeerEntry, receive: bool = False) -> None:
        """피어 연결 이벤트 핸들러를 등록합니다."""

        async def on_connection_state_change():
            state = entry.pc.connectionState
            logger.info(f"[WebRTC] 피어 {entry.short_id} 연결 상태: {state}")
            if state == "connected" and entry.can_transition(PeerState.CONNECTED):
                entry.transition(PeerState.CONNECTED)
            elif state == "failed" and connection_config.CLOSE_ON_FAILED:
                await self.registry.close_peer_connection(entry.peer_id, entry)

        async def on_ice_connection_state_change():
            logger.info(f"[WebRTC] 피어 {entry.short_id} ICE 상태: {entry.pc.iceConnectionState}")

        entry.subscribe("connectionstatechange", on_connection_state_change)
        entry.subscribe("iceconnectionstatechange", on_ice_connection_state_change)

        if receive:
            async def on_track(track):
                await self._on_remote_track(entry, track)

            entry.subscribe("track", on_track)

    async def _on_remote_candidate(self, data=None) -> None:
        message = self._parse(InboundCandidate, data, "webrtc-ice-candidate")
        if message is None:
            return

        entry = self.registry.get(message.from_id)
        if entry is None:
            logger.debug(f"[WebRTC] 알 수 없는 피어의 ICE candidate 폐기: {short_id(message.from_id)}")
            return
        if message.candidate.is_end_of_candidates:
            logger.debug(f"[WebRTC] 피어 {entry.short_id} ICE 수집 완료 신호")
            return

        async with entry.lock:
            if entry.closed:
                return
            try:
                remote = entry.pc.remoteDescription
                if remote is not None and sdp_has_candidate(remote.sdp, message.candidate):
                    logger.debug(f"[WebRTC] 피어 {entry.short_id} SDP에 이미 포함된 candidate 건너뜀")
                    return
                await entry.pc.addIceCandidate(candidate_from_payload(message.candidate))
                logger.debug(f"[WebRTC] 피어 {entry.short_id} ICE candidate 적용")
            except Exception as e:
                await self._fail_peer(entry, "ICE candidate 적용", e)

    async def _relay_local_candidates(self, entry: PeerEntry, sdp: Optional[str]) -> None:
        """local description의 candidate를 하나씩 webrtc-ice-candidate로 보냅니다."""
        candidates = local_candidates(sdp)
        for candidate in candidates:
            if entry.closed:
                return
            await self._send("webrtc-ice-candidate", OutboundCandidate(target_id=entry.peer_id, candidate=candidate))
        if candidates:
            logger.debug(f"[WebRTC] 피어 {entry.short_id} 로컬 ICE candidate {len(candidates)}개 전송")

    def _on_local_track_ended(self, track: MediaStreamTrack) -> None:
        """로컬 트랙이 예기치 않게 종료됨 (예: 장치 권한 회수).

        비디오 종료는 방송 전체를 중지하고, 오디오 종료는 방송을 유지합니다.
        """
        kind = track.kind
        if kind == "video":
            logger.warning("[Session] 카메라 접근이 해제됨 - 스트리밍 중지")
            self._spawn(self.stop_streaming())
        else:
            logger.warning(f"[Session] {kind} 트랙 종료 - 스트리밍 유지")

        if self.on_track_ended is not None:
            try:
                result = self.on_track_ended(kind)
                if inspect.isawaitable(result):
                    self._spawn(result)
            except Exception as e:
                logger.error(f"[Session] on_track_ended 콜백 오류: {e}", exc_info=True)

    async def _fail_peer(self, entry: PeerEntry, step: str, error: Exception) -> None:
        if entry.closed:
            logger.debug(f"[WebRTC] 피어 {entry.short_id} {step} 중단 (연결 종료됨): {error}")
        else:
            logger.error(f"[WebRTC] 피어 {entry.short_id} {step} 실패: {type(error).__name__}: {error}", exc_info=True)
        await self.registry.close_peer_connection(entry.peer_id, entry)

    async def _deliver_remote_stream(self, stream: Optional[MediaStream]) -> None:
        if self._on_remote_stream is None:
            return
        try:
            result = self._on_remote_stream(stream)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[Session] on_remote_stream 콜백 오류: {e}", exc_info=True)

    async def _send(self, event: str, message: WireModel) -> None:
        await self.channel.emit(event, message.to_wire())

    def _parse(self, model: Type[M], data, event: str) -> Optional[M]:
        try:
            return model.model_validate(data if data is not None else {})
        except ValidationError as e:
            logger.warning(f"[Session] 잘못된 '{event}' 메시지 무시: {e.error_count()}개 오류")
            return None
