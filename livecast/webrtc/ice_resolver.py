"""ICE 서버 디스커버리 모듈.

시그널링 백엔드의 디스커버리 엔드포인트(`GET {base}/api/ice`)에서 STUN/TURN
서버 목록을 가져옵니다. 요청이 어떤 이유로든 실패하면 공개 STUN 서버
fallback 목록을 반환하며, 호출자에게 예외를 전달하지 않습니다.

Fallback 조건:
    - 네트워크/전송 오류, 타임아웃
    - 2xx 이외의 HTTP 상태 코드
    - Content-Type이 JSON이 아닌 응답
    - `{"iceServers": [...]}` 형식이 아니거나 빈 목록

Examples:
    >>> resolver = IceServerResolver()
    >>> servers = await resolver.resolve()
    >>> rtc_servers = [s.to_rtc() for s in servers]
"""

import logging
from typing import List, Optional, Sequence

import aiohttp

from ..shared.dto import IceServerDescriptor, IceServerList
from .config import ice_config

logger = logging.getLogger(__name__)


class IceDiscoveryError(Exception):
    """디스커버리 응답을 사용할 수 없음 (fallback 트리거)."""


def fallback_servers() -> List[IceServerDescriptor]:
    """공개 STUN fallback 목록을 반환합니다."""
    return [IceServerDescriptor(urls=url) for url in ice_config.FALLBACK_STUN_SERVERS]


def static_servers() -> List[IceServerDescriptor]:
    """환경변수로 설정된 STUN/TURN 서버 목록을 반환합니다."""
    servers = []
    if ice_config.STUN_SERVER_URL:
        servers.append(IceServerDescriptor(urls=ice_config.STUN_SERVER_URL))
    if ice_config.has_turn_server:
        servers.append(IceServerDescriptor(
            urls=ice_config.TURN_SERVER_URL,
            username=ice_config.TURN_USERNAME,
            credential=ice_config.TURN_CREDENTIAL,
        ))
    return servers


class IceServerResolver:
    """디스커버리 엔드포인트에서 ICE 서버 목록을 조회하는 클래스.

    Attributes:
        discovery_url (str): 조회할 엔드포인트 URL
        timeout (float): 요청 전체 타임아웃 (초)
        fallback (List[IceServerDescriptor]): 실패 시 반환할 목록
        static (List[IceServerDescriptor]): 결과 앞에 항상 추가되는 설정 서버

    Note:
        - 재시도하지 않음 (세션 시작 시 한 번만 호출)
        - http_session을 전달하면 해당 세션을 사용하고 닫지 않음
    """

    def __init__(
        self,
        discovery_url: Optional[str] = None,
        timeout: Optional[float] = None,
        fallback: Optional[Sequence[IceServerDescriptor]] = None,
        static: Optional[Sequence[IceServerDescriptor]] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.discovery_url = discovery_url or ice_config.discovery_url
        self.timeout = timeout if timeout is not None else ice_config.DISCOVERY_TIMEOUT
        self.fallback = list(fallback) if fallback is not None else fallback_servers()
        self.static = list(static) if static is not None else static_servers()
        self._http_session = http_session

    async def resolve(self) -> List[IceServerDescriptor]:
        """ICE 서버 목록을 조회합니다.

        Returns:
            List[IceServerDescriptor]: 설정 서버 + (조회 결과 또는 fallback 목록)
        """
        logger.info(f"[ICE] ICE 서버 조회: {self.discovery_url}")
        try:
            servers = await self._fetch()
            logger.info(f"[ICE] ICE 서버 {len(servers)}개 조회 성공")
        except Exception as e:
            logger.warning(f"[ICE] ICE 서버 조회 실패, fallback 사용: {type(e).__name__}: {e}")
            servers = list(self.fallback)

        return list(self.static) + servers

    async def _fetch(self) -> List[IceServerDescriptor]:
        if self._http_session is not None:
            return await self._request(self._http_session)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._request(session)

    async def _request(self, session) -> List[IceServerDescriptor]:
        headers = {"Accept": "application/json"}
        async with session.get(self.discovery_url, headers=headers) as response:
            logger.debug(f"[ICE] 응답 상태: {response.status}")
            if not 200 <= response.status < 300:
                raise IceDiscoveryError(f"HTTP error! status: {response.status}")

            content_type = response.headers.get("Content-Type", "")
            if "application/json" not in content_type:
                text = await response.text()
                logger.warning(f"[ICE] JSON이 아닌 응답: {text[:200]}")
                raise IceDiscoveryError(f"Expected JSON but got: {content_type or 'none'}")

            data = await response.json(content_type=None)

        servers = IceServerList.model_validate(data).ice_servers
        if not servers:
            raise IceDiscoveryError("empty iceServers list")
        return servers
