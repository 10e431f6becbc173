"""WebRTC 모듈.

피어 연결 레지스트리, 협상 보조 함수, ICE 서버 디스커버리를 제공합니다.

Classes:
    PeerConnectionRegistry: 피어 ID별 RTCPeerConnection 관리
    PeerEntry: 피어 연결 항목 (상태 머신 + 이벤트 구독)
    PeerState: 피어 연결 협상 상태
    IceServerResolver: ICE 서버 디스커버리 (실패 시 fallback)

Config:
    ice_config: ICE 서버 설정
    connection_config: 피어 연결 설정
"""

from .peer_registry import PeerConnectionRegistry, PeerEntry, PeerState
from .ice_resolver import IceServerResolver, fallback_servers
from .negotiation import create_peer_connection
from .config import (
    ice_config,
    connection_config,
    ICEServerConfig,
    ConnectionConfig,
)

__all__ = [
    # Classes
    "PeerConnectionRegistry",
    "PeerEntry",
    "PeerState",
    "IceServerResolver",
    "fallback_servers",
    "create_peer_connection",
    # Config
    "ice_config",
    "connection_config",
    "ICEServerConfig",
    "ConnectionConfig",
]
