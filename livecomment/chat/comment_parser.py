"""
댓글 페이로드 정규화 및 필터링
- 푸시 소켓(OneComme) 봉투: {"type": "comments", "data": {"comments": [...]}}
- YouTube Data API 페이지: {"kind": "...", "items": [...], "nextPageToken": "..."}
두 형식 모두 Comment 리스트로 변환합니다.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Set

from .base_client import Comment, DEFAULT_USER_NAME

logger = logging.getLogger(__name__)

CommentFilter = Callable[[Comment], bool]

EXPECTED_SERVICE = "youtube"
PUSH_PAYLOAD_TYPE = "comments"
API_RESPONSE_KIND = "youtube#liveChatMessageListResponse"


def _pick_first_string(*values: Any) -> str:
    """문자열 후보 중 공백 제거 후 비어 있지 않은 첫 값. 없으면 빈 문자열."""
    for value in values:
        if isinstance(value, str):
            trimmed = value.strip()
            if trimmed:
                return trimmed
    return ""


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _is_usable_text(text: str) -> bool:
    # 비어 있거나 '#'으로 시작하는 태그성 댓글은 제외
    return bool(text) and not text.startswith("#")


def _map_push_entry(raw: dict, dedup: Optional[Set[str]]) -> Optional[Comment]:
    service = raw.get("service") if isinstance(raw.get("service"), str) else ""
    if service and service != EXPECTED_SERVICE:
        return None

    comment_id = raw.get("id") if isinstance(raw.get("id"), str) else None
    if comment_id and dedup is not None and comment_id in dedup:
        return None

    data = _as_dict(raw.get("data"))
    text = _pick_first_string(
        data.get("comment"),
        data.get("speechText"),
        data.get("text"),
        raw.get("comment"),
    )
    if not _is_usable_text(text):
        return None

    user_name = _pick_first_string(data.get("displayName"), data.get("name"), raw.get("name"))
    icon = data.get("profileImage")

    return Comment(
        user_name=user_name or DEFAULT_USER_NAME,
        user_icon_url=icon if isinstance(icon, str) else "",
        text=text,
        comment_id=comment_id,
    )


def _map_api_item(item: dict, dedup: Optional[Set[str]]) -> Optional[Comment]:
    comment_id = item.get("id") if isinstance(item.get("id"), str) else None
    if comment_id and dedup is not None and comment_id in dedup:
        return None

    author = _as_dict(item.get("authorDetails"))
    snippet = _as_dict(item.get("snippet"))
    text = _pick_first_string(
        _as_dict(snippet.get("textMessageDetails")).get("messageText"),
        _as_dict(snippet.get("superChatDetails")).get("userComment"),
    )
    if not _is_usable_text(text):
        return None

    icon = author.get("profileImageUrl")
    return Comment(
        user_name=_pick_first_string(author.get("displayName")) or DEFAULT_USER_NAME,
        user_icon_url=icon if isinstance(icon, str) else "",
        text=text,
        comment_id=comment_id,
    )


def normalize(
    payload: Any,
    dedup: Optional[Set[str]] = None,
    accept: Optional[CommentFilter] = None,
) -> List[Comment]:
    """
    수신 페이로드를 Comment 리스트로 변환

    Args:
        payload: 푸시 소켓 봉투 또는 YouTube API 응답 (json 디코딩된 dict)
        dedup: 처리한 댓글 ID 집합. 주어지면 이미 있는 ID는 건너뛰고, 통과한 ID는 추가
        accept: 추가 필터. False인 댓글은 버리고 ID도 기록하지 않음

    Returns:
        입력 순서를 유지한 Comment 리스트. 형식이 맞지 않으면 빈 리스트
    """
    if not isinstance(payload, dict):
        return []

    if "items" in payload:
        kind = payload.get("kind")
        if kind is not None and kind != API_RESPONSE_KIND:
            return []
        entries = payload.get("items")
        mapper = _map_api_item
    else:
        if payload.get("type") != PUSH_PAYLOAD_TYPE:
            return []
        entries = _as_dict(payload.get("data")).get("comments")
        mapper = _map_push_entry

    if not isinstance(entries, list):
        return []

    comments: List[Comment] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            comment = mapper(entry, dedup)
        except Exception as e:
            # 항목 하나가 깨져도 배치 전체는 계속 처리
            logger.warning(f"댓글 항목 파싱 실패: {e}, 원본: {entry}")
            continue
        if comment is None or (accept is not None and not accept(comment)):
            continue
        if comment.comment_id and dedup is not None:
            dedup.add(comment.comment_id)
        comments.append(comment)
    return comments


@dataclass
class FilterConfig:
    """추가 필터 설정 (기본값은 필터 없음)"""
    max_length: Optional[int] = None  # 최대 댓글 길이
    blocked_keywords: list[str] = None  # 차단 키워드 목록

    def __post_init__(self):
        if self.blocked_keywords is None:
            self.blocked_keywords = []


class CommentParser:
    """normalize + 선택적 키워드/길이 필터"""

    def __init__(self, filter_config: Optional[FilterConfig] = None):
        """
        Args:
            filter_config: 필터 설정 (None이면 기본 설정 사용)
        """
        self.filter_config = filter_config or FilterConfig()

    def filter(self, comment: Comment) -> bool:
        """
        댓글 필터링

        Returns:
            True: 댓글 통과, False: 댓글 차단
        """
        max_length = self.filter_config.max_length
        if max_length is not None and len(comment.text) > max_length:
            return False

        text_lower = comment.text.lower()
        for keyword in self.filter_config.blocked_keywords:
            if keyword.lower() in text_lower:
                logger.debug(f"차단 키워드 발견: {keyword}")
                return False

        return True

    def parse(self, payload: Any, dedup: Optional[Set[str]] = None) -> List[Comment]:
        """정규화 + 필터. 필터에 걸린 댓글은 dedup에 ID를 남기지 않음"""
        return normalize(payload, dedup, accept=self.filter)
