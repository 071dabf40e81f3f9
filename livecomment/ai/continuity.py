"""
대화 지속 상태 머신
댓글이 없는 틱마다 호출되어 이어 말하기 → 주제 전환 → 잠들기 순으로 단계를 올립니다.

상태(SettingsStore에 저장):
- no_comment_count: 연속 무댓글 틱 수
- continuation_count: 연속 이어 말하기 횟수 (상한 1)
- sleep_mode: 잠들기 상태. 실제 댓글이 처리되면 해제
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Union

from livecomment.utils.settings import SettingsStore

from .continuity_client import ContinuityContentProvider
from .models import ContinuityPrompt

logger = logging.getLogger(__name__)

MAX_CONTINUATION_COUNT = 1
NEW_TOPIC_THRESHOLD = 3
SLEEP_THRESHOLD = 6

Dispatch = Callable[[Union[str, ContinuityPrompt]], Any]


class ContinuityEngine:
    """
    대화 지속 상태의 유일한 소유자. 폴링 틱과 푸시 유휴 틱이 겹쳐도
    카운터 변경은 내부 Lock으로 직렬화된다.
    """

    def __init__(
        self,
        settings: SettingsStore,
        content: ContinuityContentProvider,
        history: Callable[[], List[dict]],
        dispatch: Dispatch,
    ):
        """
        Args:
            settings: 공유 설정/상태 저장소
            content: 프롬프트·주제 생성기
            history: 현재 대화 로그를 돌려주는 함수
            dispatch: 하류 응답 파이프라인으로 보내는 함수 (동기/비동기)
        """
        self.settings = settings
        self.content = content
        self.history = history
        self._dispatch = dispatch
        self._lock = asyncio.Lock()

    async def _send(self, item: Union[str, ContinuityPrompt]) -> None:
        result = self._dispatch(item)
        if asyncio.iscoroutine(result):
            await result

    def _reset_continuation_count(self) -> None:
        if self.settings.get().continuation_count != 0:
            self.settings.update(continuation_count=0)

    async def handle_continuation_if_needed(self) -> bool:
        """
        직전 발화를 이어 말해야 하면 이어 말하기 메시지를 보냄

        Returns:
            True: 이어 말하기 수행, False: 수행 안 함
        """
        async with self._lock:
            ss = self.settings.get()
            if (
                ss.sleep_mode
                or ss.continuation_count >= MAX_CONTINUATION_COUNT
                or not ss.continuity_mode_enabled
            ):
                self._reset_continuation_count()
                return False

            history = self.history()
            if not await self.content.is_continuation_needed(history):
                self._reset_continuation_count()
                return False

            prompt = await self.content.continuation_prompt(ss.system_prompt, history)
            await self._send(prompt)

            changes = {"continuation_count": ss.continuation_count + 1}
            # 다음 무댓글 틱이 카운트 0에서 다시 이어 말하기로 빠지지 않도록
            if ss.no_comment_count < 1:
                changes["no_comment_count"] = 1
            self.settings.update(**changes)
            logger.info("이어 말하기 수행 (continuation_count=%d)", changes["continuation_count"])
            return True

    async def handle_no_comments(self) -> None:
        """무댓글 틱: 카운트 증가 후 단계별 메시지 전송"""
        async with self._lock:
            ss = self.settings.get()
            count = ss.no_comment_count + 1

            if ss.continuity_mode_enabled:
                history = self.history()
                if count < NEW_TOPIC_THRESHOLD or NEW_TOPIC_THRESHOLD < count < SLEEP_THRESHOLD:
                    await self._send(await self.content.continuation_prompt(ss.system_prompt, history))
                elif count == NEW_TOPIC_THRESHOLD:
                    topic = await self.content.another_topic(history)
                    logger.info("주제 전환: %s", topic)
                    await self._send(await self.content.new_topic_prompt(ss.system_prompt, history, topic))
                elif count == SLEEP_THRESHOLD:
                    await self._send(await self.content.sleep_prompt(ss.system_prompt, history))
                    self.settings.update(sleep_mode=True)
                    logger.info("잠들기 모드 진입")

            logger.debug("no_comment_count: %d", count)
            self.settings.update(no_comment_count=count)

    async def mark_comment_activity(self) -> None:
        """실제 댓글 처리 시: 무댓글 카운트·잠들기 해제. 진행 중인 무댓글 틱이 끝난 뒤 적용"""
        async with self._lock:
            self.settings.update(no_comment_count=0, sleep_mode=False)

    async def clear_no_comment_count(self) -> None:
        async with self._lock:
            self.settings.update(no_comment_count=0)

    async def reset(self) -> None:
        """수집 중지/방식 변경 시 대화 지속 상태 초기화"""
        async with self._lock:
            self.settings.update(no_comment_count=0, continuation_count=0, sleep_mode=False)
