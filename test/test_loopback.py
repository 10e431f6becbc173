"""Publisher and viewer sessions negotiating over real aiortc peer connections.

Two in-memory channels forward targeted messages to each other the way the
signaling server does, so offer, answer and candidate handling run against
RTCPeerConnection instead of a double.
"""

import asyncio
from typing import Optional, Set

import pytest
from aiortc import AudioStreamTrack, VideoStreamTrack

from livecast.media.capture import MediaCapture
from livecast.session import SessionOrchestrator
from livecast.webrtc.negotiation import count_candidates, create_peer_connection
from livecast.webrtc.peer_registry import PeerState

from conftest import FakeResolver, FakeSignalingChannel

ROOM = "publisher-account-1"
PUBLISHER_ID = "publisher-sid"
VIEWER_ID = "viewer-sid"


class SyntheticPlayer:
    """MediaPlayer stand-in producing aiortc's test-pattern tracks."""

    def __init__(self, file, format=None, options=None):
        self.video = VideoStreamTrack() if format != "pulse" else None
        self.audio = AudioStreamTrack() if format == "pulse" else None


class RelayChannel(FakeSignalingChannel):
    """Forwards `targetId` messages to the remote channel as `fromId` messages."""

    def __init__(self, socket_id: str):
        super().__init__()
        self.socket_id = socket_id
        self.remote: Optional["RelayChannel"] = None
        self.deliveries: Set[asyncio.Task] = set()

    async def emit(self, event: str, payload=None) -> bool:
        sent = await super().emit(event, payload)
        if sent and self.remote is not None and isinstance(payload, dict) and "targetId" in payload:
            forwarded = {key: value for key, value in payload.items() if key != "targetId"}
            forwarded["fromId"] = self.socket_id
            # socket.io runs every handler in its own task
            task = asyncio.ensure_future(self.remote.trigger(event, forwarded))
            self.remote.deliveries.add(task)
            task.add_done_callback(self.remote.deliveries.discard)
        return sent


def link(a: RelayChannel, b: RelayChannel) -> None:
    a.remote = b
    b.remote = a


async def drain(*channels: RelayChannel) -> None:
    while any(channel.deliveries for channel in channels):
        for channel in channels:
            if channel.deliveries:
                await asyncio.gather(*list(channel.deliveries))


async def wait_until(predicate, timeout: float = 10.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.05)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
async def sessions(capture_settings):
    publisher_channel = RelayChannel(PUBLISHER_ID)
    viewer_channel = RelayChannel(VIEWER_ID)
    link(publisher_channel, viewer_channel)

    publisher = SessionOrchestrator(
        channel=publisher_channel,
        resolver=FakeResolver([]),
        capture=MediaCapture(config=capture_settings, player_factory=SyntheticPlayer),
        peer_connection_factory=create_peer_connection,
    )
    viewer = SessionOrchestrator(
        channel=viewer_channel,
        resolver=FakeResolver([]),
        peer_connection_factory=create_peer_connection,
    )
    yield publisher, viewer, publisher_channel, viewer_channel

    await viewer.leave()
    await publisher.leave()


@pytest.mark.integration
async def test_publisher_to_viewer_negotiation(sessions) -> None:
    publisher, viewer, publisher_channel, viewer_channel = sessions
    streams = []

    await publisher.start(ROOM, "publisher")
    await viewer.start(ROOM, "viewer", on_remote_stream=streams.append)
    assert await publisher.start_streaming()

    await publisher_channel.trigger("viewer-joined", {"viewerId": VIEWER_ID})
    await drain(publisher_channel, viewer_channel)
    await wait_until(lambda: len(streams) >= 1 and len(streams[0].get_tracks()) == 2)

    assert len(streams) == 1
    assert sorted(track.kind for track in streams[0].get_tracks()) == ["audio", "video"]

    entry = publisher.registry.get(VIEWER_ID)
    assert entry is not None
    assert entry.state in (PeerState.NEGOTIATING, PeerState.CONNECTED)
    assert viewer.registry.get(PUBLISHER_ID) is not None

    # every gathered candidate of the offer was also sent on its own
    gathered = count_candidates(entry.pc.localDescription.sdp)
    assert gathered > 0
    assert len(publisher_channel.sent("webrtc-ice-candidate")) == gathered
