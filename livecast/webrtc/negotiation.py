"""WebRTC 협상 보조 함수.

피어 연결 생성과 시그널링 페이로드 <-> aiortc 객체 변환을 담당합니다.

WebRTC Flow (publisher 측):
    1. create_peer_connection(): 현재 ICE 서버 목록으로 RTCPeerConnection 생성
    2. createOffer / setLocalDescription
    3. description_to_payload(): offer를 wire 형식으로 변환해 전송
    4. description_from_payload(): 수신한 answer를 RTCSessionDescription으로 변환
    5. local_candidates(): local description에 포함된 candidate를 개별 메시지로 전송
    6. candidate_from_payload(): 수신한 ICE candidate를 RTCIceCandidate로 변환

Note:
    aiortc는 setLocalDescription() 안에서 candidate 수집을 끝내고 SDP에 포함시키며
    "icecandidate" 이벤트를 발생시키지 않습니다. trickle을 기대하는 브라우저 피어를
    위해 local_candidates()로 SDP의 candidate를 꺼내 따로 전달합니다.

    aiortc의 "track" 이벤트는 트랙만 전달하고 스트림 정보를 주지 않으므로,
    stream_id_for_track()으로 원격 SDP의 msid에서 스트림 ID를 찾습니다.
"""

import logging
from typing import List, Optional, Sequence

from aiortc import RTCConfiguration, RTCIceCandidate, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..shared.dto import CandidatePayload, IceServerDescriptor, SessionDescriptionPayload

logger = logging.getLogger(__name__)

CANDIDATE_PREFIX = "candidate:"


def create_peer_connection(ice_servers: Sequence[IceServerDescriptor]) -> RTCPeerConnection:
    """ICE 서버 목록으로 RTCPeerConnection을 생성합니다.

    목록이 비어 있으면 aiortc 기본 STUN 서버를 사용합니다.
    """
    rtc_servers = [server.to_rtc() for server in ice_servers]
    configuration = RTCConfiguration(iceServers=rtc_servers or None)
    logger.debug(f"[WebRTC] RTCPeerConnection 생성 (ICE 서버 {len(rtc_servers)}개)")
    return RTCPeerConnection(configuration=configuration)


def description_from_payload(payload: SessionDescriptionPayload) -> RTCSessionDescription:
    return RTCSessionDescription(sdp=payload.sdp, type=payload.type)


def description_to_payload(description: RTCSessionDescription) -> SessionDescriptionPayload:
    return SessionDescriptionPayload(type=description.type, sdp=description.sdp)


def candidate_from_payload(payload: CandidatePayload) -> RTCIceCandidate:
    """브라우저 형식 candidate를 RTCIceCandidate로 변환합니다.

    Raises:
        ValueError: candidate 문자열을 해석할 수 없을 때
    """
    text = payload.candidate.strip()
    if text.startswith(CANDIDATE_PREFIX):
        text = text[len(CANDIDATE_PREFIX):]

    try:
        candidate = candidate_from_sdp(text)
    except (AssertionError, IndexError, ValueError) as e:
        raise ValueError(f"malformed ICE candidate: {payload.candidate!r}") from e

    candidate.sdpMid = payload.sdp_mid
    candidate.sdpMLineIndex = payload.sdp_mline_index
    return candidate


def candidate_to_payload(candidate: RTCIceCandidate) -> CandidatePayload:
    return CandidatePayload(
        candidate=CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        sdp_mid=candidate.sdpMid,
        sdp_mline_index=candidate.sdpMLineIndex,
    )


def stream_id_for_track(sdp: Optional[str], track_id: str) -> Optional[str]:
    """원격 SDP의 msid 속성에서 트랙이 속한 스트림 ID를 찾습니다.

    `a=msid:<stream> <track>` 과 `a=ssrc:<n> msid:<stream> <track>` 형식을
    모두 지원합니다. 스트림이 "-"이거나 일치하는 트랙이 없으면 None.
    """
    if not sdp:
        return None

    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("a=msid:"):
            parts = line[len("a=msid:"):].split()
        elif line.startswith("a=ssrc:") and " msid:" in line:
            parts = line.split(" msid:", 1)[1].split()
        else:
            continue

        if len(parts) >= 2 and parts[1] == track_id and parts[0] != "-":
            return parts[0]

    return None


def count_candidates(sdp: Optional[str]) -> int:
    """SDP에 포함된 candidate 수."""
    return sdp.count("a=candidate:") if sdp else 0


def local_candidates(sdp: Optional[str]) -> List[CandidatePayload]:
    """local description의 `a=candidate:` 줄을 시그널링 전송 형식으로 꺼냅니다.

    m= 섹션 순서가 sdpMLineIndex, 섹션의 `a=mid:` 값이 sdpMid가 됩니다.
    해석할 수 없는 줄은 건너뜁니다.
    """
    if not sdp:
        return []

    # (mid, [candidate text, ...]) per m= section
    sections = []
    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            sections.append([None, []])
        elif not sections:
            continue
        elif line.startswith("a=mid:"):
            sections[-1][0] = line[len("a=mid:"):]
        elif line.startswith("a=" + CANDIDATE_PREFIX):
            sections[-1][1].append(line[len("a=" + CANDIDATE_PREFIX):])

    payloads = []
    for index, (mid, texts) in enumerate(sections):
        for text in texts:
            try:
                candidate = candidate_from_sdp(text)
            except (AssertionError, IndexError, ValueError):
                logger.debug(f"[WebRTC] 해석할 수 없는 로컬 candidate 건너뜀: {text!r}")
                continue
            candidate.sdpMid = mid
            candidate.sdpMLineIndex = index
            payloads.append(candidate_to_payload(candidate))
    return payloads


def sdp_has_candidate(sdp: Optional[str], payload: CandidatePayload) -> bool:
    """candidate가 이미 SDP에 포함되어 있는지 확인합니다.

    aiortc 피어는 description에 candidate와 `a=end-of-candidates`를 함께 넣으므로,
    같은 candidate를 다시 addIceCandidate()하면 ValueError가 발생합니다.
    """
    if not sdp:
        return False
    text = payload.candidate.strip()
    if text.startswith(CANDIDATE_PREFIX):
        text = text[len(CANDIDATE_PREFIX):]
    return ("a=" + CANDIDATE_PREFIX + text) in (line.strip() for line in sdp.splitlines())
