"""
대화 지속 콘텐츠 생성
무댓글 상황에서 이어 말하기 필요 여부 판단, 이어 말하기/새 주제/잠들기 프롬프트 구성,
여러 댓글 중 대화 흐름에 가장 맞는 댓글 선택을 담당합니다.

ContinuityContentProvider는 엔진이 호출하는 인터페이스이고,
GroqContinuityClient는 Groq(OpenAI 호환) API를 쓰는 기본 구현입니다.
"""

import asyncio
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from openai import OpenAI

from livecomment.chat.base_client import Comment

from .models import (
    ContinuityPrompt,
    PROMPT_CONTINUATION,
    PROMPT_NEW_TOPIC,
    PROMPT_SLEEP,
)

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "openai/gpt-oss-120b"

CONTINUATION_CHECK_PROMPT = """아래는 방송 중 AI 진행자와 시청자의 최근 대화입니다.
시청자 댓글이 없는 지금, AI 진행자가 직전 발화를 자연스럽게 이어서 더 말해야 하는지 판단하세요.
직전 발화가 질문으로 끝났거나 화제가 마무리된 경우에는 이어 말할 필요가 없습니다.
반드시 JSON 한 줄만 출력: {"needed": true 또는 false}"""

CONTINUATION_INSTRUCTION = """[시청자 댓글 없음] 직전까지의 대화 흐름을 이어서 한두 문장 더 말하세요.
같은 말을 반복하지 말고, 시청자가 참여하고 싶어지도록 자연스럽게 이어가세요."""

ANOTHER_TOPIC_PROMPT = """아래 대화를 보고, 방송에서 새로 꺼내기 좋은 다른 주제 하나를 짧게 제안하세요.
지금까지 나온 주제와 겹치지 않게 하세요.
반드시 JSON 한 줄만 출력: {"topic": "주제"}"""

NEW_TOPIC_INSTRUCTION = """[시청자 댓글이 한동안 없음] 지금까지의 화제를 자연스럽게 마무리하고,
다음 주제로 화제를 바꿔 시청자에게 말을 걸어 보세요: {topic}"""

SLEEP_INSTRUCTION = """[시청자 댓글이 오랫동안 없음] 졸려서 잠깐 쉬겠다는 느낌으로 짧게 말하고,
댓글이 오면 다시 이야기하겠다고 전하세요."""

BEST_COMMENT_PROMPT = """아래는 방송 중 대화와, 새로 들어온 시청자 댓글 목록(번호: 닉네임: 내용)입니다.
지금 대화 흐름에 가장 잘 맞고 답하기 좋은 댓글 하나를 고르세요.
도배·스팸·무의미한 댓글은 고르지 마세요. 고를 댓글이 없으면 index를 0으로 두세요.
반드시 JSON 한 줄만 출력: {"index": 번호}"""


def _sanitize_user_text(value: Any, max_len: int = 500) -> str:
    """프롬프트에 삽입하기 전 사용자 입력 최소 정제."""
    s = str(value or "")
    s = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    if len(s) > max_len:
        s = s[:max_len]
    return s


def _parse_json_object(raw: str) -> dict:
    """모델 출력에서 JSON 객체 추출 (```json 코드블록 허용). 실패 시 빈 dict."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0].strip()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}


def _history_as_text(history: Sequence[dict]) -> str:
    return "\n".join(f"{m.get('role', 'user')}: {m.get('content', '')}" for m in history)


class ContinuityContentProvider(ABC):
    """대화 지속 엔진이 호출하는 콘텐츠 생성 인터페이스"""

    @abstractmethod
    async def is_continuation_needed(self, history: List[dict]) -> bool:
        """댓글이 없을 때 직전 발화를 이어서 말할 필요가 있는지"""

    @abstractmethod
    async def continuation_prompt(self, system_prompt: str, history: List[dict]) -> ContinuityPrompt:
        """이어 말하기 메시지"""

    @abstractmethod
    async def another_topic(self, history: List[dict]) -> str:
        """다음에 꺼낼 다른 주제"""

    @abstractmethod
    async def new_topic_prompt(self, system_prompt: str, history: List[dict], topic: str) -> ContinuityPrompt:
        """주제 전환 메시지"""

    @abstractmethod
    async def sleep_prompt(self, system_prompt: str, history: List[dict]) -> ContinuityPrompt:
        """잠들기(대기 상태 전환) 메시지"""

    @abstractmethod
    async def best_comment(self, history: List[dict], comments: List[Comment]) -> str:
        """댓글 중 대화 흐름에 가장 맞는 댓글 본문. 고를 게 없으면 빈 문자열"""


def build_prompt(
    kind: str,
    system_prompt: str,
    history: List[dict],
    instruction: str,
    topic: str = "",
) -> ContinuityPrompt:
    """시스템 프롬프트 + 히스토리 + 지시문으로 메시지 묶음 구성"""
    messages: List[dict] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.extend(dict(m) for m in history)
    messages.append({"role": "user", "content": instruction})
    return ContinuityPrompt(kind=kind, messages=messages, topic=topic)


class GroqContinuityClient(ContinuityContentProvider):
    """Groq API(OpenAI 호환)로 대화 지속 판단·주제 생성·댓글 선택"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 256,
        client: Optional[Any] = None,
    ):
        self.api_key = (api_key or os.environ.get("GROQ_API_KEY", "")).strip()
        if client is None and not self.api_key:
            raise ValueError("GROQ_API_KEY가 설정되지 않았습니다. .env 또는 인자로 전달하세요.")
        _model = (model or "").strip()
        self.model = _model or (os.environ.get("GROQ_MODEL") or "").strip() or DEFAULT_MODEL
        self.max_tokens = max_tokens
        self._client = client or OpenAI(api_key=self.api_key, base_url=GROQ_BASE_URL)
        logger.info("GroqContinuityClient 초기화 완료: model=%s, max_tokens=%s", self.model, self.max_tokens)

    def _complete_json(self, system: str, user_content: str, where: str) -> dict:
        """동기 호출: JSON 응답 1건. asyncio.to_thread에서 호출."""
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user_content[:8000]},
                ],
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.warning("%s: Groq API 호출 실패: %s", where, e)
            return {}
        choices = getattr(response, "choices", None) or []
        if not choices:
            logger.warning("%s: response.choices가 비어 있습니다.", where)
            return {}
        content = getattr(getattr(choices[0], "message", None), "content", "") or ""
        data = _parse_json_object(str(content))
        if not data:
            logger.warning("%s: JSON 파싱 실패, raw=%r", where, str(content)[:200])
        return data

    async def is_continuation_needed(self, history: List[dict]) -> bool:
        if not history:
            return False
        data = await asyncio.to_thread(
            self._complete_json,
            CONTINUATION_CHECK_PROMPT,
            _history_as_text(history),
            "is_continuation_needed",
        )
        needed = data.get("needed")
        if isinstance(needed, str):
            return needed.strip().lower() in ("true", "yes", "1")
        return bool(needed)

    async def continuation_prompt(self, system_prompt: str, history: List[dict]) -> ContinuityPrompt:
        return build_prompt(PROMPT_CONTINUATION, system_prompt, history, CONTINUATION_INSTRUCTION)

    async def another_topic(self, history: List[dict]) -> str:
        data = await asyncio.to_thread(
            self._complete_json,
            ANOTHER_TOPIC_PROMPT,
            _history_as_text(history) or "(대화 없음)",
            "another_topic",
        )
        return _sanitize_user_text(data.get("topic"), max_len=200)

    async def new_topic_prompt(self, system_prompt: str, history: List[dict], topic: str) -> ContinuityPrompt:
        instruction = NEW_TOPIC_INSTRUCTION.format(topic=topic or "자유 주제")
        return build_prompt(PROMPT_NEW_TOPIC, system_prompt, history, instruction, topic=topic)

    async def sleep_prompt(self, system_prompt: str, history: List[dict]) -> ContinuityPrompt:
        return build_prompt(PROMPT_SLEEP, system_prompt, history, SLEEP_INSTRUCTION)

    async def best_comment(self, history: List[dict], comments: List[Comment]) -> str:
        if not comments:
            return ""
        lines = [
            f"{i}. {_sanitize_user_text(c.user_name, max_len=40)}: {_sanitize_user_text(c.text)}"
            for i, c in enumerate(comments, 1)
        ]
        user_content = f"대화:\n{_history_as_text(history) or '(대화 없음)'}\n\n댓글 목록:\n" + "\n".join(lines)
        data = await asyncio.to_thread(self._complete_json, BEST_COMMENT_PROMPT, user_content, "best_comment")
        try:
            index = int(data.get("index", 0))
        except (TypeError, ValueError):
            index = 0
        if 1 <= index <= len(comments):
            return comments[index - 1].text
        logger.debug("best_comment: 선택된 댓글 없음 (index=%r)", data.get("index"))
        return ""
