"""Signaling wire payloads and traversal-server descriptors.

Every message exchanged with the signaling server and the discovery endpoint
is validated through these models. Field names are snake_case; the wire form
uses the camelCase aliases.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for camelCase wire payloads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================
# Traversal servers
# ============================================================

class IceServerDescriptor(WireModel):
    """STUN/TURN 서버 디스크립터."""

    urls: Union[str, List[str]]
    username: Optional[str] = None
    credential: Optional[str] = None

    def to_rtc(self):
        """aiortc RTCIceServer로 변환합니다."""
        from aiortc import RTCIceServer

        return RTCIceServer(urls=self.urls, username=self.username, credential=self.credential)


class IceServerList(WireModel):
    """디스커버리 엔드포인트 응답 본문."""

    ice_servers: List[IceServerDescriptor] = Field(alias="iceServers")


# ============================================================
# Negotiation payloads
# ============================================================

class SessionDescriptionPayload(WireModel):
    type: Literal["offer", "answer", "pranswer", "rollback"]
    sdp: str


class CandidatePayload(WireModel):
    """브라우저 RTCIceCandidate JSON 형식."""

    candidate: str = ""
    sdp_mid: Optional[str] = Field(default=None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(default=None, alias="sdpMLineIndex")

    @property
    def is_end_of_candidates(self) -> bool:
        return not self.candidate.strip()


# ============================================================
# Client -> server
# ============================================================

class JoinRoomRequest(WireModel):
    room_id: str = Field(alias="roomId")
    role: str


class OutboundDescription(WireModel):
    target_id: str = Field(alias="targetId")
    sdp: SessionDescriptionPayload


class OutboundCandidate(WireModel):
    target_id: str = Field(alias="targetId")
    candidate: CandidatePayload


class PublisherLeftNotice(WireModel):
    room_id: str = Field(alias="roomId")


# ============================================================
# Server -> client
# ============================================================

class ViewerEvent(WireModel):
    viewer_id: str = Field(alias="viewerId")


class InboundDescription(WireModel):
    from_id: str = Field(alias="fromId")
    sdp: SessionDescriptionPayload


class InboundCandidate(WireModel):
    from_id: str = Field(alias="fromId")
    candidate: CandidatePayload


class RoomErrorMessage(WireModel):
    message: str = "unknown room error"
