"""
OneComme 푸시 소켓 클라이언트
WebSocket으로 들어오는 댓글 봉투를 받아 정규화 후 콜백으로 넘깁니다.

프레임 형식: {"type": "comments", "data": {"comments": [{service?, id?, data: {...}}]}}
연결이 끊기면 고정 간격으로 무한 재연결합니다 (stop() 전까지).
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set

import websockets

from .base_client import Comment
from .comment_parser import CommentParser

logger = logging.getLogger(__name__)

DEFAULT_WEBSOCKET_URL = "ws://localhost:11180/sub"
DEFAULT_RECONNECT_DELAY = 3.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECT_SCHEDULED = "reconnect_scheduled"


# url -> 연결 객체 (async for 로 프레임 수신, close() 지원)
Connector = Callable[[str], Awaitable[Any]]


class OneCommeClient:
    """OneComme WebSocket 댓글 클라이언트

    start(url)로 백그라운드 연결 루프를 시작하고 stop()으로 종료합니다.
    처리한 댓글 ID 집합은 연결 단위로 유지되며 새 연결마다 비워집니다.
    """

    @property
    def platform_name(self) -> str:
        """플랫폼 이름"""
        return "onecomme"

    def __init__(
        self,
        on_comments: Callable[[List[Comment]], Any],
        url_provider: Optional[Callable[[], Optional[str]]] = None,
        should_accept: Optional[Callable[[], bool]] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        parser: Optional[CommentParser] = None,
    ):
        """
        Args:
            on_comments: 댓글 수신 시 호출할 콜백 (동기/비동기 모두 가능)
            url_provider: 접속 시도마다 최신 소켓 URL을 읽는 함수
            should_accept: False를 반환하면 프레임을 정규화 전에 버림 (처리 중 등)
            reconnect_delay: 재연결 간격 (초, 고정)
            connector: url을 받아 연결 객체를 돌려주는 함수 (기본: websockets.connect)
            sleep: 재연결 대기 함수 (테스트에서 교체)
            parser: 댓글 파서
        """
        self.on_comments = on_comments
        self.url_provider = url_provider
        self.should_accept = should_accept
        self.reconnect_delay = reconnect_delay
        self._connector = connector or websockets.connect
        self._sleep = sleep
        self.parser = parser or CommentParser()

        # 연결 상태
        self.state = ConnectionState.DISCONNECTED
        self.processed_ids: Set[str] = set()
        self.connect_attempts = 0
        self._fallback_url: Optional[str] = None
        self._socket: Any = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = True
        self._opened_since_clear = False

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.OPEN

    def resolve_url(self) -> str:
        """설정값(매번 새로 읽음) → start() 때 받은 값 → 기본 주소 순으로 URL 결정"""
        candidates = [self.url_provider() if self.url_provider else None, self._fallback_url]
        for url in candidates:
            if isinstance(url, str) and url.strip():
                return url.strip()
        return DEFAULT_WEBSOCKET_URL

    def start(self, url: Optional[str] = None) -> asyncio.Task:
        """연결 루프 시작 (실행 중인 이벤트 루프 필요)"""
        if self._task is not None and not self._task.done():
            logger.debug(f"[{self.platform_name}] 이미 실행 중")
            return self._task
        self._fallback_url = url
        self._stopped = False
        self.processed_ids.clear()
        self._opened_since_clear = False
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        """연결 종료 (여러 번 호출해도 안전). 예약된 재연결도 취소"""
        self._stopped = True
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_socket()
        if self.state != ConnectionState.DISCONNECTED:
            logger.info(f"[{self.platform_name}] 연결 종료")
        self.state = ConnectionState.DISCONNECTED
        self.processed_ids.clear()

    async def _close_socket(self):
        socket, self._socket = self._socket, None
        if socket is None:
            return
        self.state = ConnectionState.CLOSING
        try:
            await socket.close()
        except Exception as e:
            logger.debug(f"[{self.platform_name}] 소켓 닫기 실패: {e}")

    async def _run(self):
        """연결 → 수신 → 끊기면 고정 간격 후 재연결"""
        while not self._stopped:
            await self._connect_and_listen()
            if self._stopped:
                break
            self.state = ConnectionState.RECONNECT_SCHEDULED
            logger.info(f"[{self.platform_name}] {self.reconnect_delay}초 후 재연결")
            await self._sleep(self.reconnect_delay)
        self.state = ConnectionState.DISCONNECTED

    async def _connect_and_listen(self):
        if self._opened_since_clear:
            # 새 연결은 새 중복 제거 범위
            self.processed_ids.clear()
            self._opened_since_clear = False

        url = self.resolve_url()
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        try:
            self._socket = await self._connector(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.platform_name}] 연결 실패 ({url}): {e}")
            self._socket = None
            return

        self.state = ConnectionState.OPEN
        self._opened_since_clear = True
        logger.info(f"[{self.platform_name}] WebSocket 연결 성공: {url}")

        try:
            async for frame in self._socket:
                await self._on_frame(frame)
            logger.warning(f"[{self.platform_name}] WebSocket 연결 종료")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self.platform_name}] WebSocket 오류: {e}")
        finally:
            if not self._stopped:
                await self._close_socket()

    async def _on_frame(self, frame: Any):
        """수신 프레임 처리. 실패는 로그만 남기고 다음 프레임 계속"""
        if not isinstance(frame, str):
            return
        try:
            payload = json.loads(frame)
        except json.JSONDecodeError:
            logger.debug(f"[{self.platform_name}] non-JSON frame: {frame[:100]}")
            return

        try:
            if self.should_accept is not None and not self.should_accept():
                return
            comments = self.parser.parse(payload, dedup=self.processed_ids)
            if not comments:
                return
            logger.debug(f"[{self.platform_name}] 댓글 {len(comments)}개 수신")
            cb = self.on_comments(comments)
            if asyncio.iscoroutine(cb):
                await cb
        except Exception as e:
            logger.error(f"[{self.platform_name}] 댓글 처리 오류: {e}", exc_info=True)
