"""socket.io 시그널링 채널 어댑터.

시그널링 서버와의 지속적인 양방향 메시지 연결을 제공합니다. 도메인 상태는
가지지 않으며, 모든 상태는 세션 오케스트레이터가 소유합니다.

주요 기능:
    - connect/disconnect 생명주기
    - emit(event, payload) 메시지 전송
    - on/off 이벤트 핸들러 등록/해제 (이벤트당 여러 핸들러)

Architecture:
    - socketio.AsyncClient는 이벤트당 핸들러 하나만 허용하므로, 이벤트마다
      하나의 dispatch 함수를 등록하고 여기서 구독 핸들러 목록으로 전달합니다.
    - 핸들러 예외는 로그만 남기고 다른 핸들러 실행을 막지 않습니다.

Examples:
    >>> channel = SignalingChannel("http://localhost:5000")
    >>> channel.on("viewer-joined", handle_viewer_joined)
    >>> await channel.connect()
    >>> await channel.emit("join-room", {"roomId": "abc", "role": "publisher"})
    >>> channel.off("viewer-joined", handle_viewer_joined)
    >>> await channel.disconnect()
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import socketio

from ..errors import SignalingConnectionError
from .config import SignalingConfig, signaling_config

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


class SignalingChannel:
    """socketio.AsyncClient 기반 시그널링 채널.

    Attributes:
        url (str): 시그널링 서버 URL
        client (socketio.AsyncClient): 하위 socket.io 클라이언트
    """

    def __init__(
        self,
        url: Optional[str] = None,
        config: SignalingConfig = signaling_config,
        client: Optional[socketio.AsyncClient] = None,
    ):
        self.url = url or config.SIGNALING_URL
        self._config = config
        self.client = client or socketio.AsyncClient(
            reconnection=config.RECONNECTION,
            logger=False,
            engineio_logger=False,
        )

        # event -> handlers (registration order)
        self._handlers: Dict[str, List[EventHandler]] = {}

        # events already bound on the socket.io client
        self._bound: Set[str] = set()

        self.client.on("connect_error", self._on_connect_error)

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    async def connect(self) -> None:
        """시그널링 서버에 연결합니다.

        Raises:
            SignalingConnectionError: 연결 실패 시
        """
        if self.connected:
            logger.debug("[Signaling] 이미 연결됨")
            return

        logger.info(f"[Signaling] 연결 시도: {self.url}")
        try:
            await self.client.connect(
                self.url,
                auth=self._config.auth,
                transports=list(self._config.TRANSPORTS),
                wait_timeout=self._config.CONNECT_TIMEOUT,
            )
        except socketio.exceptions.ConnectionError as e:
            logger.error(f"[Signaling] 연결 실패: {e}")
            raise SignalingConnectionError(f"could not connect to {self.url}: {e}") from e

    async def disconnect(self) -> None:
        """연결을 종료합니다 (재연결 시도도 중단)."""
        logger.info("[Signaling] 연결 종료")
        await self.client.disconnect()

    async def emit(self, event: str, payload: Optional[dict] = None) -> bool:
        """이벤트를 전송합니다.

        connect 핸들러 안에서도 호출할 수 있습니다. socket.io는 connect 핸들러가
        끝난 뒤에야 `connected`를 True로 바꾸므로, 연결 여부는 미리 확인하지 않고
        네임스페이스 미연결 오류로 판단합니다.

        Returns:
            bool: 전송 여부 (연결되지 않았으면 False)
        """
        try:
            await self.client.emit(event, payload)
        except socketio.exceptions.BadNamespaceError:
            logger.warning(f"[Signaling] 연결되지 않아 '{event}' 전송 생략")
            return False
        logger.debug(f"[Signaling] 전송: {event}")
        return True

    def on(self, event: str, handler: EventHandler) -> None:
        """이벤트 핸들러를 등록합니다. 같은 핸들러의 중복 등록은 무시됩니다."""
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

        if event not in self._bound:
            self.client.on(event, self._make_dispatcher(event))
            self._bound.add(event)

    def off(self, event: str, handler: EventHandler) -> None:
        """이벤트 핸들러를 해제합니다. 등록되지 않은 핸들러는 무시됩니다."""
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: Optional[str] = None) -> int:
        """등록된 핸들러 수를 반환합니다 (event 미지정 시 전체)."""
        if event is not None:
            return len(self._handlers.get(event, ()))
        return sum(len(handlers) for handlers in self._handlers.values())

    def _make_dispatcher(self, event: str):
        async def dispatch(*args):
            await self.dispatch(event, *args)
        return dispatch

    async def dispatch(self, event: str, *args) -> None:
        """등록된 핸들러에 이벤트를 순서대로 전달합니다."""
        # Snapshot: handlers may unsubscribe while being dispatched
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[Signaling] '{event}' 핸들러 오류: {type(e).__name__}: {e}", exc_info=True)

    async def _on_connect_error(self, data=None):
        logger.warning(f"[Signaling] 연결 오류: {data}")
