"""
댓글 수집 모듈
YouTube 라이브 댓글을 REST 폴링 또는 OneComme 푸시 소켓으로 수집하는 모듈
"""

from .base_client import (
    Comment,
    CommentBatch,
    ConfigurationError,
    DEFAULT_USER_NAME,
    TransportError,
)
from .comment_parser import CommentParser, FilterConfig, normalize
from .youtube_api_client import YouTubeApiClient
from .onecomme_client import ConnectionState, DEFAULT_WEBSOCKET_URL, OneCommeClient
from .client_factory import ChatClientFactory, SOURCE_API, SOURCE_PUSH, normalize_source

__all__ = [
    "Comment",
    "CommentBatch",
    "ConfigurationError",
    "DEFAULT_USER_NAME",
    "TransportError",
    "CommentParser",
    "FilterConfig",
    "normalize",
    "YouTubeApiClient",
    "ConnectionState",
    "DEFAULT_WEBSOCKET_URL",
    "OneCommeClient",
    "ChatClientFactory",
    "SOURCE_API",
    "SOURCE_PUSH",
    "normalize_source",
]
