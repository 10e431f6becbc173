"""미디어 스트림 핸들 모듈.

로컬 캡처 트랙 또는 원격 피어에서 수신한 트랙들을 하나의 스트림으로 묶습니다.
브라우저의 MediaStream과 같은 역할을 하며, UI 계층은 이 객체를 받아 렌더링합니다.
"""

import uuid
import logging
from typing import Any, Callable, List, Optional, Tuple

from aiortc import MediaStreamTrack

logger = logging.getLogger(__name__)


class MediaStream:
    """트랙 묶음.

    Attributes:
        id (str): 스트림 ID (원격 스트림은 SDP msid의 stream 부분)
        source (Any): 로컬 캡처 소스 (예: MediaPlayer), 원격 스트림은 None
        released (bool): release() 완료 여부
    """

    def __init__(
        self,
        stream_id: Optional[str] = None,
        tracks: Optional[List[MediaStreamTrack]] = None,
        source: Any = None,
    ):
        self.id = stream_id or str(uuid.uuid4())
        self.source = source
        self.released = False
        self._tracks: List[MediaStreamTrack] = []
        # (track, "ended" listener) pairs registered by the capture layer
        self._ended_listeners: List[Tuple[MediaStreamTrack, Callable]] = []

        for track in tracks or []:
            self.add_track(track)

    def add_track(self, track: MediaStreamTrack) -> None:
        if track not in self._tracks:
            self._tracks.append(track)

    def get_tracks(self) -> List[MediaStreamTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> List[MediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "video"]

    def get_audio_tracks(self) -> List[MediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "audio"]

    def watch_ended(self, track: MediaStreamTrack, listener: Callable) -> None:
        """트랙의 "ended" 이벤트에 리스너를 등록하고 해제용으로 기록합니다."""
        track.on("ended", listener)
        self._ended_listeners.append((track, listener))

    def detach_ended_listeners(self) -> None:
        """등록된 모든 "ended" 리스너를 해제합니다."""
        for track, listener in self._ended_listeners:
            try:
                track.remove_listener("ended", listener)
            except KeyError:
                # aiortc drops all listeners once a track has ended
                logger.debug(f"[Media] {track.kind} 트랙 리스너 이미 해제됨")
        self._ended_listeners.clear()

    def __repr__(self) -> str:
        kinds = ",".join(track.kind for track in self._tracks)
        return f"<MediaStream {self.id[:8]} tracks=[{kinds}]>"
