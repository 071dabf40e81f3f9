"""
댓글 수집 클라이언트 팩토리
설정의 comment_source 값("api" / "push")에 맞는 수집 클라이언트를 생성
"""

from typing import Any, Dict

from .base_client import ConfigurationError
from .onecomme_client import OneCommeClient
from .youtube_api_client import YouTubeApiClient

SOURCE_API = "api"
SOURCE_PUSH = "push"

# 이전 설정 값 호환
_SOURCE_ALIASES = {
    "websocket": SOURCE_PUSH,
    "onecomme": SOURCE_PUSH,
    "youtube": SOURCE_API,
}


def normalize_source(source: str) -> str:
    """comment_source 값 정규화 (대소문자·별칭 처리)"""
    value = (source or "").strip().lower()
    return _SOURCE_ALIASES.get(value, value)


class ChatClientFactory:
    """댓글 수집 클라이언트 팩토리 클래스"""

    _sources: Dict[str, type] = {
        SOURCE_API: YouTubeApiClient,
        SOURCE_PUSH: OneCommeClient,
    }

    @classmethod
    def create(cls, source: str, **kwargs: Any):
        """
        수집 방식별 클라이언트 생성

        Args:
            source: "api" 또는 "push" ("websocket"도 허용)
            **kwargs: 클라이언트별 생성 인자 (on_comments, url_provider 등)

        Returns:
            YouTubeApiClient 또는 OneCommeClient 인스턴스

        Raises:
            ConfigurationError: 지원하지 않는 수집 방식인 경우
        """
        key = normalize_source(source)
        if key not in cls._sources:
            supported = ", ".join(cls._sources.keys())
            raise ConfigurationError(
                f"지원하지 않는 댓글 수집 방식: {source}. "
                f"지원 방식: {supported}"
            )
        return cls._sources[key](**kwargs)

    @classmethod
    def get_supported_sources(cls) -> list[str]:
        """지원하는 수집 방식 목록 반환"""
        return list(cls._sources.keys())
