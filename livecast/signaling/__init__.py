"""시그널링 모듈.

Classes:
    SignalingChannel: socket.io 시그널링 채널 어댑터

Config:
    signaling_config: 시그널링 서버 접속 설정
"""

from .channel import SignalingChannel
from .config import signaling_config, SignalingConfig

__all__ = [
    "SignalingChannel",
    "signaling_config",
    "SignalingConfig",
]
