"""
YouTube Data API 폴링 클라이언트
라이브 방송 ID로 채팅 ID를 조회한 뒤, 페이지 토큰을 이어가며 댓글을 가져옵니다.

참고: https://developers.google.com/youtube/v3/live/docs/liveChatMessages/list
"""

import logging
from typing import Optional

import httpx

from .base_client import CommentBatch, ConfigurationError, TransportError
from .comment_parser import CommentParser

logger = logging.getLogger(__name__)


class YouTubeApiClient:
    """YouTube Data API 폴링 클라이언트

    스스로 주기 호출하지 않습니다. 컨트롤러가 틱마다 fetch_batch를 호출합니다.
    """

    API_BASE_URL = "https://youtube.googleapis.com/youtube/v3"

    @property
    def platform_name(self) -> str:
        """플랫폼 이름"""
        return "youtube-api"

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        parser: Optional[CommentParser] = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            http_client: 재사용할 httpx.AsyncClient (테스트에서 MockTransport 주입용)
            parser: 댓글 파서 (None이면 기본 필터)
            timeout: HTTP 요청 타임아웃 (초)
        """
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._owns_client = http_client is None
        self.parser = parser or CommentParser()

    async def _get_json(self, path: str, params: dict) -> dict:
        try:
            response = await self._client.get(f"{self.API_BASE_URL}{path}", params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"YouTube API 호출 실패 ({path}): {e}") from e
        except ValueError as e:
            raise TransportError(f"YouTube API 응답이 JSON이 아닙니다 ({path}): {e}") from e
        if not isinstance(data, dict):
            raise TransportError(f"YouTube API 응답 형식 오류 ({path}): {type(data).__name__}")
        return data

    async def get_live_chat_id(self, live_id: str, api_key: str) -> str:
        """
        라이브 방송(영상) ID로 activeLiveChatId 조회

        Returns:
            채팅 ID. 방송을 찾을 수 없으면 빈 문자열
        """
        data = await self._get_json(
            "/videos",
            {"part": "liveStreamingDetails", "id": live_id, "key": api_key},
        )
        items = data.get("items") or []
        if not items or not isinstance(items[0], dict):
            return ""
        details = items[0].get("liveStreamingDetails") or {}
        chat_id = details.get("activeLiveChatId") if isinstance(details, dict) else None
        return chat_id if isinstance(chat_id, str) else ""

    async def fetch_batch(
        self,
        session_id: str,
        api_key: str,
        page_token: str = "",
    ) -> Optional[CommentBatch]:
        """
        댓글 한 페이지 가져오기

        Args:
            session_id: 라이브 방송(영상) ID
            api_key: YouTube Data API 키
            page_token: 이어서 읽을 페이지 토큰 ('' 이면 처음부터)

        Returns:
            CommentBatch (댓글이 없어도 next_page_token 포함). 채팅 ID 조회 실패 시 None

        Raises:
            ConfigurationError: session_id 또는 api_key 없음
            TransportError: HTTP/응답 오류
        """
        if not session_id or not api_key:
            raise ConfigurationError("YouTube 라이브 ID와 API 키가 필요합니다")

        live_chat_id = await self.get_live_chat_id(session_id, api_key)
        if not live_chat_id:
            logger.info(f"[{self.platform_name}] 라이브 채팅 ID를 찾을 수 없음: {session_id}")
            return None

        params = {
            "liveChatId": live_chat_id,
            "part": "authorDetails,snippet",
            "key": api_key,
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self._get_json("/liveChat/messages", params)
        next_token = data.get("nextPageToken")
        if not isinstance(next_token, str):
            next_token = page_token

        comments = self.parser.parse(data)
        logger.debug(
            f"[{self.platform_name}] 댓글 {len(comments)}개 수신 "
            f"(원본 {len(data.get('items') or [])}개)"
        )
        return CommentBatch(comments=comments, next_page_token=next_token)

    async def aclose(self):
        """직접 만든 HTTP 클라이언트 정리"""
        if self._owns_client:
            await self._client.aclose()
