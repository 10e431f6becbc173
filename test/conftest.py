"""Shared fixtures and fakes for livecast tests.

The fakes stand in for the socket.io channel, the aiortc peer connection and
the discovery resolver so the orchestrator can be driven event by event
without a network or capture devices.
"""

import asyncio
import inspect
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiortc import MediaStreamTrack, RTCSessionDescription

from livecast.errors import SignalingConnectionError
from livecast.media.capture import MediaCapture
from livecast.media.config import CaptureConfig
from livecast.session import SessionOrchestrator
from livecast.shared.dto import IceServerDescriptor

OFFER_SDP = (
    "v=0\r\n"
    "o=- 1 1 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=msid-semantic:WMS stream-1\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96\r\n"
    "a=mid:0\r\n"
    "a=msid:stream-1 video-track-1\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 111\r\n"
    "a=mid:1\r\n"
    "a=ssrc:1234 msid:stream-1 audio-track-1\r\n"
)

ANSWER_SDP = "v=0\r\no=- 2 2 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\n"

HOST_CANDIDATE = "candidate:1 1 udp 2130706431 192.168.1.10 54321 typ host"

# Offer as aiortc produces it: candidates gathered into each m= section
GATHERED_OFFER_SDP = OFFER_SDP.replace(
    "a=msid:stream-1 video-track-1\r\n",
    "a=msid:stream-1 video-track-1\r\na=" + HOST_CANDIDATE + "\r\na=end-of-candidates\r\n",
).replace(
    "a=ssrc:1234 msid:stream-1 audio-track-1\r\n",
    "a=" + HOST_CANDIDATE.replace("54321", "54322") + "\r\na=ssrc:1234 msid:stream-1 audio-track-1\r\n",
)


# ============================================================================
# Tracks
# ============================================================================


class FakeVideoTrack(MediaStreamTrack):
    kind = "video"

    def __init__(self, track_id: Optional[str] = None):
        super().__init__()
        if track_id:
            self._id = track_id

    async def recv(self):
        raise NotImplementedError


class FakeAudioTrack(MediaStreamTrack):
    kind = "audio"

    def __init__(self, track_id: Optional[str] = None):
        super().__init__()
        if track_id:
            self._id = track_id

    async def recv(self):
        raise NotImplementedError


class FakePlayer:
    """Stands in for aiortc.contrib.media.MediaPlayer."""

    def __init__(self, file: str, format: Optional[str] = None, options: Optional[dict] = None):
        self.file = file
        self.format = format
        self.options = options
        self.video = FakeVideoTrack() if format != "pulse" else None
        self.audio = FakeAudioTrack() if format == "pulse" else None


class PlayerFactory:
    """Records every device open and optionally fails."""

    def __init__(self, errors: Optional[Dict[str, List[BaseException]]] = None):
        self.calls: List[Tuple[str, Optional[str], dict]] = []
        self.players: List[FakePlayer] = []
        self._errors = errors or {}

    def __call__(self, file, format=None, options=None):
        self.calls.append((file, format, options))
        pending = self._errors.get(file)
        if pending:
            raise pending.pop(0)
        player = FakePlayer(file, format=format, options=options)
        self.players.append(player)
        return player


# ============================================================================
# Signaling
# ============================================================================


class FakeSignalingChannel:
    """In-memory signaling channel recording every emitted message."""

    def __init__(self, fail_connect: bool = False):
        self.connected = False
        # namespace joined; socket.io only flips `connected` after the connect handlers ran
        self._open = False
        self.fail_connect = fail_connect
        self.emitted: List[Tuple[str, Any]] = []
        self.handlers: Dict[str, List[Any]] = {}
        self.connect_calls = 0
        self.disconnect_calls = 0

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise SignalingConnectionError("connection refused")
        self._open = True
        await self.trigger("connect")
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._open:
            self._open = False
            self.connected = False
            await self.trigger("disconnect", "io client disconnect")

    async def emit(self, event: str, payload=None) -> bool:
        if not self._open:
            return False
        self.emitted.append((event, payload))
        return True

    def on(self, event, handler) -> None:
        handlers = self.handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event, handler) -> None:
        handlers = self.handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self.handlers.get(event, []))
        return sum(len(handlers) for handlers in self.handlers.values())

    async def trigger(self, event: str, *args) -> None:
        for handler in list(self.handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    def sent(self, event: str) -> List[Any]:
        return [payload for name, payload in self.emitted if name == event]


# ============================================================================
# Peer connections
# ============================================================================


class FakePeerConnection:
    """Minimal RTCPeerConnection double with pyee-like listener semantics."""

    def __init__(self, ice_servers=None):
        self.ice_servers = list(ice_servers or [])
        self.listeners: Dict[str, List[Any]] = {}
        self.tracks: List[MediaStreamTrack] = []
        self.candidates: List[Any] = []
        self.localDescription: Optional[RTCSessionDescription] = None
        self.remoteDescription: Optional[RTCSessionDescription] = None
        self.connectionState = "new"
        self.iceConnectionState = "new"
        self.closed = False
        self.fail_on: Optional[str] = None
        self.offer_sdp = OFFER_SDP
        # hold createOffer() or close() open until set
        self.offer_gate: Optional[asyncio.Event] = None
        self.close_gate: Optional[asyncio.Event] = None

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)
        return handler

    def remove_listener(self, event, handler):
        # pyee raises KeyError for unknown listeners
        handlers = self.listeners[event]
        if handler not in handlers:
            raise KeyError(handler)
        handlers.remove(handler)

    async def fire(self, event: str, *args) -> None:
        for handler in list(self.listeners.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        if self.offer_gate is not None:
            await self.offer_gate.wait()
        self._maybe_fail("createOffer")
        return RTCSessionDescription(sdp=self.offer_sdp, type="offer")

    async def createAnswer(self):
        self._maybe_fail("createAnswer")
        return RTCSessionDescription(sdp=ANSWER_SDP, type="answer")

    async def setLocalDescription(self, description):
        self._maybe_fail("setLocalDescription")
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self._maybe_fail("setRemoteDescription")
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self._maybe_fail("addIceCandidate")
        self.candidates.append(candidate)

    async def close(self):
        if self.close_gate is not None:
            await self.close_gate.wait()
        self.closed = True
        self.connectionState = "closed"

    def _maybe_fail(self, step: str) -> None:
        if self.fail_on == step:
            raise RuntimeError(f"{step} failed")


class PeerConnectionFactory:
    def __init__(self):
        self.created: List[FakePeerConnection] = []
        self.fail_on: Optional[str] = None
        self.offer_sdp = OFFER_SDP
        # handed to the next connections in creation order
        self.offer_gates: List[asyncio.Event] = []

    def __call__(self, ice_servers):
        pc = FakePeerConnection(ice_servers)
        pc.fail_on = self.fail_on
        pc.offer_sdp = self.offer_sdp
        if self.offer_gates:
            pc.offer_gate = self.offer_gates.pop(0)
        self.created.append(pc)
        return pc


# ============================================================================
# Discovery
# ============================================================================


class FakeResponse:
    """aiohttp response double usable as an async context manager."""

    def __init__(self, status: int = 200, body: Any = None, content_type: str = "application/json", text: str = ""):
        self.status = status
        self.headers = {"Content-Type": content_type} if content_type else {}
        self._body = body
        self._text = text

    async def text(self) -> str:
        return self._text

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeHttpSession:
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[BaseException] = None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, headers=None):
        self.requests.append((url, headers))
        if self.error is not None:
            raise self.error
        return self.response


class FakeResolver:
    def __init__(self, servers: Optional[List[IceServerDescriptor]] = None):
        self.servers = servers if servers is not None else [
            IceServerDescriptor(urls="stun:stun.example.org:3478")
        ]
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0

    async def resolve(self) -> List[IceServerDescriptor]:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return list(self.servers)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def capture_settings() -> CaptureConfig:
    return CaptureConfig(
        VIDEO_DEVICE="/dev/video0",
        VIDEO_FORMAT="v4l2",
        AUDIO_DEVICE="default",
        AUDIO_FORMAT="pulse",
        CAPTURE_ALLOWED=True,
    )


@pytest.fixture
def player_factory() -> PlayerFactory:
    return PlayerFactory()


@pytest.fixture
def capture(capture_settings: CaptureConfig, player_factory: PlayerFactory) -> MediaCapture:
    return MediaCapture(config=capture_settings, player_factory=player_factory)


@pytest.fixture
def channel() -> FakeSignalingChannel:
    return FakeSignalingChannel()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def pc_factory() -> PeerConnectionFactory:
    return PeerConnectionFactory()


@pytest.fixture
def session(channel, resolver, capture, pc_factory) -> SessionOrchestrator:
    return SessionOrchestrator(
        channel=channel,
        resolver=resolver,
        capture=capture,
        peer_connection_factory=pc_factory,
    )


async def settle() -> None:
    """Let spawned background tasks run to completion."""
    for _ in range(5):
        await asyncio.sleep(0)
