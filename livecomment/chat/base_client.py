"""
댓글 수집 공통 타입
폴링(REST)·푸시(WebSocket) 두 수집 방식이 공유하는 댓글 데이터와 예외
"""

from dataclasses import dataclass, field
from typing import List, Optional


# 표시 이름이 없을 때 쓰는 기본 닉네임
DEFAULT_USER_NAME = "YouTubeUser"


class TransportError(Exception):
    """댓글 수집 실패 (API 호출 실패, 소켓 오류, 잘못된 응답 등). 해당 틱만 건너뜀."""


class ConfigurationError(ValueError):
    """설정 누락/오류 (세션 ID·API 키 없음, 알 수 없는 설정 키 등)."""


@dataclass
class Comment:
    """정규화된 시청자 댓글 (수집 방식 공통)"""
    user_name: str
    user_icon_url: str
    text: str
    comment_id: Optional[str] = field(default=None, compare=False)


@dataclass
class CommentBatch:
    """폴링 1회 결과: 댓글 목록 + 다음 페이지 토큰"""
    comments: List[Comment]
    next_page_token: str
