"""livecast 명령줄 클라이언트.

publisher로 카메라/마이크를 방송하거나 viewer로 방송을 수신합니다.

사용법:
    livecast publish --room ROOM_ID
    livecast view --room ROOM_ID [--backend-url http://localhost:5000]

Ctrl-C(SIGINT) 또는 SIGTERM을 받으면 세션을 정리하고 종료합니다.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Set

from aiortc.contrib.media import MediaBlackhole

from .errors import LivecastError
from .logging_config import setup_logging
from .media import MediaStream
from .session import Role, SessionOrchestrator
from .signaling import SignalingChannel
from .webrtc import IceServerResolver, ice_config

logger = logging.getLogger(__name__)

STATUS_INTERVAL = 5.0


class RemoteStreamSink:
    """수신한 원격 트랙을 소비하여 버리는 싱크 (viewer CLI용)."""

    def __init__(self):
        self.stream: Optional[MediaStream] = None
        self._blackhole: Optional[MediaBlackhole] = None
        self._drained: Set[str] = set()

    async def on_remote_stream(self, stream: Optional[MediaStream]) -> None:
        if stream is None:
            logger.info("[Session] 원격 스트림 없음 (방송 종료 또는 룸 오류)")
            await self.stop()
            return

        await self.stop()
        logger.info(f"[Session] 원격 스트림 수신: {stream}")
        self.stream = stream
        self._blackhole = MediaBlackhole()
        await self.sync()

    async def sync(self) -> None:
        """스트림에 나중에 추가된 트랙도 소비를 시작합니다."""
        if self.stream is None or self._blackhole is None:
            return
        added = False
        for track in self.stream.get_tracks():
            if track.id not in self._drained:
                self._blackhole.addTrack(track)
                self._drained.add(track.id)
                added = True
        if added:
            await self._blackhole.start()

    async def stop(self) -> None:
        if self._blackhole is not None:
            await self._blackhole.stop()
        self._blackhole = None
        self.stream = None
        self._drained.clear()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="livecast", description="WebRTC one-to-many live broadcast client")
    parser.add_argument("--log-level", default=None, help="로그 레벨 (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-file", default=None, help="로그 파일 경로")
    parser.add_argument("--backend-url", default=None, help="시그널링/디스커버리 서버 URL")

    commands = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (("publish", "카메라/마이크 방송"), ("view", "방송 시청")):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("--room", required=True, help="룸 ID (publisher 계정 ID)")
    return parser


def build_session(backend_url: Optional[str] = None) -> SessionOrchestrator:
    if not backend_url:
        return SessionOrchestrator()

    base = backend_url.rstrip("/")
    return SessionOrchestrator(
        channel=SignalingChannel(base),
        resolver=IceServerResolver(discovery_url=base + ice_config.DISCOVERY_PATH),
    )


async def run(args: argparse.Namespace) -> int:
    role = Role.PUBLISHER if args.command == "publish" else Role.VIEWER
    session = build_session(args.backend_url)
    sink = RemoteStreamSink()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    try:
        await session.start(
            args.room, role,
            on_remote_stream=sink.on_remote_stream if role == Role.VIEWER else None,
        )

        if role == Role.PUBLISHER and not await session.start_streaming():
            error = session.last_media_error
            print(error.user_message if error else "스트리밍을 시작할 수 없습니다.", file=sys.stderr)
            return 1

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=STATUS_INTERVAL)
            except asyncio.TimeoutError:
                pass
            await sink.sync()
            logger.info(f"[Session] 상태: {session.snapshot()}")
    except LivecastError as e:
        logger.error(f"[Session] 세션 오류: {e}")
        return 1
    finally:
        await sink.stop()
        await session.leave()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass

    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
