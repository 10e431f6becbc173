"""로컬 미디어 캡처 모듈.

카메라/마이크 장치를 aiortc MediaPlayer로 열어 로컬 MediaStream을 만듭니다.
실패는 사용자에게 표시할 수 있도록 분류된 MediaCaptureError로 변환됩니다.

주요 기능:
    - 제약 조건 프로파일(해상도/프레임레이트 ideal 값)을 장치 옵션으로 전달
    - 장치가 제약 조건을 거부하면 플랫폼 기본값으로 한 번 재시도
    - 권한 거부 / 장치 없음 / 장치 사용 중 / 보안 정책 차단 분류
    - release(): end-of-track 콜백 해제 후 모든 트랙 정지 (두 번 호출해도 안전)

Examples:
    >>> capture = MediaCapture()
    >>> try:
    ...     stream = await capture.capture(on_track_ended=handle_track_ended)
    ... except MediaCaptureError as e:
    ...     print(e.user_message)
    >>> capture.release(stream)
"""

import asyncio
import errno
import functools
import glob
import logging
import sys
from typing import Callable, List, Optional, Tuple

from aiortc import MediaStreamTrack
from aiortc.contrib.media import MediaPlayer

from ..errors import MediaCaptureError, MediaErrorKind
from .config import (
    AudioConstraints,
    CaptureConfig,
    MediaConstraints,
    VideoConstraints,
    capture_config,
)
from .stream import MediaStream

logger = logging.getLogger(__name__)

TrackEndedCallback = Callable[[MediaStreamTrack], None]

_NOT_FOUND_ERRNOS = {errno.ENOENT, errno.ENODEV, errno.ENXIO}


def classify_capture_error(error: BaseException) -> MediaErrorKind:
    """캡처 예외를 MediaErrorKind로 분류합니다.

    PyAV 예외는 대응하는 내장 OSError 하위 클래스를 상속하고 errno를
    가지므로 내장 타입과 errno로 분류합니다.
    """
    if isinstance(error, MediaCaptureError):
        return error.kind

    code = getattr(error, "errno", None)

    if isinstance(error, PermissionError):
        if code == errno.EPERM:
            return MediaErrorKind.SECURITY_BLOCKED
        return MediaErrorKind.PERMISSION_DENIED
    if isinstance(error, FileNotFoundError):
        return MediaErrorKind.NOT_FOUND
    # EINVAL: requested format/size not supported by the device
    if isinstance(error, ValueError):
        return MediaErrorKind.NOT_FOUND
    if isinstance(error, (ImportError, NotImplementedError)):
        return MediaErrorKind.UNSUPPORTED
    if isinstance(error, OSError):
        if code == errno.EBUSY:
            return MediaErrorKind.DEVICE_BUSY
        if code in _NOT_FOUND_ERRNOS:
            return MediaErrorKind.NOT_FOUND
        if code == errno.EACCES:
            return MediaErrorKind.PERMISSION_DENIED
        if code == errno.EPERM:
            return MediaErrorKind.SECURITY_BLOCKED

    return MediaErrorKind.UNKNOWN


def video_options(constraints: VideoConstraints) -> dict:
    """비디오 제약 조건을 장치 입력 옵션으로 변환합니다."""
    return {
        "video_size": f"{constraints.width_ideal}x{constraints.height_ideal}",
        "framerate": str(constraints.frame_rate_ideal),
    }


def audio_options(constraints: AudioConstraints) -> dict:
    """오디오 제약 조건을 장치 입력 옵션으로 변환합니다."""
    return {
        "sample_rate": str(constraints.sample_rate),
        "channels": str(constraints.channel_count),
    }


class MediaCapture:
    """로컬 카메라/마이크 캡처 래퍼.

    Attributes:
        config (CaptureConfig): 장치 설정
    """

    def __init__(self, config: CaptureConfig = capture_config, player_factory=MediaPlayer):
        self.config = config
        self._player_factory = player_factory

    def enumerate_video_devices(self) -> List[str]:
        """사용 가능한 카메라 장치 목록을 반환합니다."""
        if sys.platform.startswith("linux"):
            return sorted(glob.glob(self.config.VIDEO_DEVICE_GLOB))
        return [self.config.VIDEO_DEVICE] if self.config.VIDEO_DEVICE else []

    async def capture(
        self,
        constraints: Optional[MediaConstraints] = None,
        on_track_ended: Optional[TrackEndedCallback] = None,
    ) -> MediaStream:
        """로컬 오디오/비디오를 캡처합니다.

        Args:
            constraints: 제약 조건 프로파일 (기본: MediaConstraints())
            on_track_ended: 트랙이 예기치 않게 종료될 때 호출할 콜백

        Returns:
            MediaStream: 캡처된 로컬 스트림

        Raises:
            MediaCaptureError: 분류된 캡처 실패
        """
        constraints = constraints or MediaConstraints()

        if not self.config.CAPTURE_ALLOWED:
            raise MediaCaptureError(MediaErrorKind.SECURITY_BLOCKED, "capture disabled by configuration")

        cameras = self.enumerate_video_devices()
        logger.info(f"[Media] 사용 가능한 카메라: {len(cameras)}")

        players = []
        tracks: List[MediaStreamTrack] = []
        try:
            if constraints.video is not None:
                player, track = await self._open(
                    "video", self.config.VIDEO_DEVICE, self.config.VIDEO_FORMAT,
                    video_options(constraints.video),
                )
                players.append(player)
                tracks.append(track)

            if constraints.audio is not None:
                audio = constraints.audio
                logger.debug(
                    f"[Media] 오디오 처리 요청: echo={audio.echo_cancellation}, "
                    f"noise={audio.noise_suppression}, agc={audio.auto_gain_control}"
                )
                player, track = await self._open(
                    "audio", self.config.AUDIO_DEVICE, self.config.AUDIO_FORMAT,
                    audio_options(audio),
                )
                players.append(player)
                tracks.append(track)
        except Exception as e:
            for track in tracks:
                track.stop()
            kind = classify_capture_error(e)
            logger.error(f"[Media] 미디어 장치 접근 실패 ({kind.value}): {type(e).__name__}: {e}")
            if isinstance(e, MediaCaptureError):
                raise
            raise MediaCaptureError(kind, str(e)) from e

        if not tracks:
            raise MediaCaptureError(MediaErrorKind.NOT_FOUND, "no audio or video requested")

        stream = MediaStream(tracks=tracks, source=players)
        if on_track_ended is not None:
            for track in tracks:
                stream.watch_ended(track, self._ended_listener(track, on_track_ended))

        logger.info(
            f"[Media] 미디어 접근 허용: 비디오 {len(stream.get_video_tracks())}, "
            f"오디오 {len(stream.get_audio_tracks())}"
        )
        return stream

    def release(self, stream: Optional[MediaStream]) -> None:
        """스트림의 모든 트랙을 정지합니다.

        end-of-track 콜백을 먼저 해제하여 정지 과정에서 "트랙 종료" 반응이
        발생하지 않도록 합니다. 이미 해제된 스트림은 무시합니다.
        """
        if stream is None or stream.released:
            return

        stream.released = True
        stream.detach_ended_listeners()

        tracks = stream.get_tracks()
        logger.info(f"[Media] 트랙 {len(tracks)}개 정지")
        for track in tracks:
            track.stop()

    async def _open(
        self,
        kind: str,
        device: Optional[str],
        fmt: Optional[str],
        options: dict,
    ) -> Tuple[object, MediaStreamTrack]:
        if not device:
            raise MediaCaptureError(MediaErrorKind.UNSUPPORTED, f"no {kind} device configured for {sys.platform}")

        loop = asyncio.get_running_loop()
        open_player = functools.partial(self._player_factory, device, format=fmt)

        logger.info(f"[Media] {kind} 장치 열기: {device} ({fmt}), 옵션={options}")
        try:
            player = await loop.run_in_executor(None, functools.partial(open_player, options=options))
        except ValueError as e:
            # Overconstrained: let the device pick its nearest capability
            logger.warning(f"[Media] {kind} 제약 조건 거부됨, 기본값으로 재시도: {e}")
            player = await loop.run_in_executor(None, functools.partial(open_player, options={}))

        track = player.video if kind == "video" else player.audio
        if track is None:
            raise MediaCaptureError(MediaErrorKind.NOT_FOUND, f"{device} has no {kind} track")
        return player, track

    @staticmethod
    def _ended_listener(track: MediaStreamTrack, callback: TrackEndedCallback):
        def on_ended():
            logger.warning(f"[Media] {track.kind} 트랙 종료됨")
            callback(track)
        return on_ended
