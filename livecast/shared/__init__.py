"""Shared wire models used across the signaling and WebRTC packages.

Only lightweight pydantic models live here. Do not place connection logic
or heavy dependencies in this package.
"""

from .dto import (
    WireModel,
    IceServerDescriptor,
    IceServerList,
    SessionDescriptionPayload,
    CandidatePayload,
    JoinRoomRequest,
    OutboundDescription,
    OutboundCandidate,
    PublisherLeftNotice,
    ViewerEvent,
    InboundDescription,
    InboundCandidate,
    RoomErrorMessage,
)

__all__ = [
    "WireModel",
    "IceServerDescriptor",
    "IceServerList",
    "SessionDescriptionPayload",
    "CandidatePayload",
    "JoinRoomRequest",
    "OutboundDescription",
    "OutboundCandidate",
    "PublisherLeftNotice",
    "ViewerEvent",
    "InboundDescription",
    "InboundCandidate",
    "RoomErrorMessage",
]
