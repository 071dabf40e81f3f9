"""
대화 히스토리 (대화 지속 판단·댓글 선택의 맥락)
토큰 기반 슬라이딩 윈도우. 오래된 메시지는 상한을 넘으면 버림.
"""

from __future__ import annotations

import logging
import os
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 3000
DEFAULT_MAX_MESSAGES = 200


def count_tokens(text: str) -> int:
    """대략적인 토큰 수 (len//4 근사)."""
    if not text:
        return 0
    return max(1, len(text) // 4)


class ChatHistory:
    """텍스트 대화 로그. get_context_messages()가 대화 지속 엔진의 히스토리 접근자."""

    def __init__(self, max_tokens: int = DEFAULT_MAX_TOKENS, max_messages: int = DEFAULT_MAX_MESSAGES):
        self.max_tokens = int(os.environ.get("CHAT_HISTORY_MAX_TOKENS") or max_tokens)
        self.max_messages = max_messages
        self.recent_messages: List[dict] = []  # {"role": "user"|"assistant", "content": "..."}

    def __len__(self) -> int:
        return len(self.recent_messages)

    def _append(self, role: str, content: str) -> None:
        content = (content or "").strip()
        if not content:
            return
        self.recent_messages.append({"role": role, "content": content})
        if len(self.recent_messages) > self.max_messages:
            dropped = len(self.recent_messages) - self.max_messages
            self.recent_messages = self.recent_messages[dropped:]
            logger.debug("히스토리 상한 초과: 오래된 메시지 %d개 제거", dropped)

    def add_user_message(self, user_name: str, content: str) -> None:
        """user 메시지 추가 (닉네임: 내용 형식)."""
        text = f"{user_name}: {content}" if user_name else content
        self._append("user", text)

    def add_assistant_message(self, content: str) -> None:
        """assistant 메시지 추가."""
        self._append("assistant", content)

    def get_context_messages(self) -> List[dict]:
        """최근 대화를 시간 순으로 반환. 토큰 상한 안에서 가장 최근 메시지 우선."""
        out: List[dict] = []
        acc = 0
        for m in reversed(self.recent_messages):
            t = count_tokens(m.get("content", ""))
            if out and acc + t > self.max_tokens:
                break
            out.append(dict(m))
            acc += t
        out.reverse()
        return out

    def clear(self) -> None:
        self.recent_messages = []
