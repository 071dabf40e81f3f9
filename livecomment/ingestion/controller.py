"""
댓글 수집 컨트롤러
설정에 따라 수집 방식(YouTube API 폴링 / OneComme 푸시) 하나를 골라 고정 주기 틱을 돌리고,
댓글이 있으면 하나를 골라 하류로 보내고, 없으면 대화 지속 엔진에 맡깁니다.

- 폴링 틱: 이어 말하기 확인 → 댓글 페이지 조회 → 댓글 처리 또는 무댓글 처리
- 푸시: 프레임 도착 시 즉시 댓글 처리, 별도 유휴 틱에서 무댓글 처리
- 하류가 처리 중(ProcessingState.busy)이면 틱은 아무것도 하지 않음 (유일한 진입 제어)
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from livecomment.ai.continuity import ContinuityEngine
from livecomment.ai.continuity_client import ContinuityContentProvider
from livecomment.ai.models import ContinuityPrompt
from livecomment.chat.base_client import Comment, ConfigurationError, TransportError
from livecomment.chat.client_factory import (
    ChatClientFactory,
    SOURCE_API,
    SOURCE_PUSH,
    normalize_source,
)
from livecomment.utils.settings import SettingsStore

from .scheduler import PeriodicJob, Scheduler

logger = logging.getLogger(__name__)

# 댓글 조회/유휴 틱 주기 (초)
DEFAULT_TICK_INTERVAL = 10.0


@dataclass
class ProcessingState:
    """하류 응답 파이프라인의 처리 중 신호 (컨트롤러는 읽기만 함)"""
    processing: bool = False
    processing_count: int = 0

    @property
    def busy(self) -> bool:
        return self.processing or self.processing_count > 0


class IngestionController:
    """수집 방식 선택 + 틱 스케줄링 + 댓글 선택/전송"""

    def __init__(
        self,
        settings: SettingsStore,
        processing: ProcessingState,
        content: ContinuityContentProvider,
        history: Callable[[], List[dict]],
        dispatch: Callable[[Union[str, ContinuityPrompt]], Any],
        scheduler: Optional[Scheduler] = None,
        api_client: Any = None,
        push_client_factory: Optional[Callable[..., Any]] = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            settings: 공유 설정/상태 저장소
            processing: 하류 처리 중 신호
            content: 대화 지속 콘텐츠 생성기 (댓글 선택 포함)
            history: 현재 대화 로그를 돌려주는 함수
            dispatch: 하류로 댓글 본문/대화 지속 메시지를 보내는 함수 (동기/비동기)
            scheduler: 주기 실행기 (None이면 asyncio 스케줄러)
            api_client: 폴링 클라이언트 (None이면 팩토리로 생성)
            push_client_factory: 푸시 클라이언트 생성 함수 (키워드 인자)
            tick_interval: 틱 주기 (초)
            rng: 무작위 댓글 선택용 난수기
        """
        self.settings = settings
        self.processing = processing
        self.content = content
        self.history = history
        self._dispatch = dispatch
        self.scheduler = scheduler or Scheduler()
        self.tick_interval = tick_interval
        self._api_client = api_client
        self._push_client_factory = push_client_factory or (
            lambda **kwargs: ChatClientFactory.create(SOURCE_PUSH, **kwargs)
        )
        self._rng = rng or random.Random()

        self.continuity = ContinuityEngine(settings, content, history, dispatch)
        self.push_client: Any = None
        self.active_source: Optional[str] = None
        self._jobs: List[PeriodicJob] = []
        self._received_since_tick = False

    @property
    def running(self) -> bool:
        return bool(self._jobs)

    @property
    def api_client(self):
        if self._api_client is None:
            self._api_client = ChatClientFactory.create(SOURCE_API)
        return self._api_client

    async def _send(self, item: Union[str, ContinuityPrompt]) -> None:
        result = self._dispatch(item)
        if asyncio.iscoroutine(result):
            await result

    # ----- 수명 주기

    async def start(self) -> None:
        """설정된 수집 방식으로 틱 시작. 비활성 상태면 아무것도 안 함."""
        if self.running:
            return
        ss = self.settings.get()
        if not ss.enabled:
            logger.info("댓글 수집 비활성 상태: 시작 안 함")
            return

        source = normalize_source(ss.comment_source)
        if source == SOURCE_API:
            self._jobs.append(
                self.scheduler.run_every(self.tick_interval, self.poll_tick, name="youtube-api-poll")
            )
        elif source == SOURCE_PUSH:
            self._received_since_tick = False
            self.push_client = self._push_client_factory(
                on_comments=self.on_push_comments,
                url_provider=lambda: self.settings.get().socket_url,
                should_accept=self._can_accept_push,
            )
            self.push_client.start(ss.socket_url)
            self._jobs.append(
                self.scheduler.run_every(self.tick_interval, self.push_tick, name="onecomme-idle")
            )
        else:
            logger.error("알 수 없는 댓글 수집 방식: %s", ss.comment_source)
            return
        self.active_source = source
        logger.info("댓글 수집 시작: source=%s, interval=%.1f초", source, self.tick_interval)

    async def stop(self, reset: bool = False) -> None:
        """
        모든 타이머 중지, 소켓 종료, 예약된 재연결 취소

        Args:
            reset: True면 페이지 토큰과 대화 지속 상태도 초기화 (수집 끄기/방식 변경 시)
        """
        jobs, self._jobs = self._jobs, []
        for job in jobs:
            job.cancel()
        for job in jobs:
            await job.wait_cancelled()

        push_client, self.push_client = self.push_client, None
        if push_client is not None:
            await push_client.stop()

        self._received_since_tick = False
        if self.active_source is not None:
            logger.info("댓글 수집 중지: source=%s", self.active_source)
        self.active_source = None
        if reset:
            self.settings.update(page_token="")
            await self.continuity.reset()

    async def aclose(self) -> None:
        """종료: 수집 중지 후 폴링 HTTP 클라이언트 정리"""
        await self.stop()
        if self._api_client is not None and hasattr(self._api_client, "aclose"):
            await self._api_client.aclose()

    async def reconfigure(self, reset: bool = False) -> None:
        await self.stop(reset=reset)
        await self.start()

    async def set_enabled(self, enabled: bool) -> None:
        """수집 켜기/끄기. 끄면 상태도 초기화."""
        self.settings.update(enabled=bool(enabled))
        if enabled:
            await self.start()
        else:
            await self.stop(reset=True)

    async def set_comment_source(self, source: str) -> None:
        """수집 방식 전환 (api ↔ push). 이전 방식의 상태는 버림."""
        source = normalize_source(source)
        if source not in (SOURCE_API, SOURCE_PUSH):
            raise ConfigurationError(f"지원하지 않는 댓글 수집 방식: {source}")
        if source == normalize_source(self.settings.get().comment_source) and (
            self.active_source in (None, source)
        ):
            return
        self.settings.update(comment_source=source)
        await self.reconfigure(reset=True)

    async def set_socket_url(self, url: str) -> None:
        """소켓 URL 변경. 푸시 수집 중이면 새 URL로 다시 연결."""
        self.settings.update(socket_url=(url or "").strip())
        if self.push_client is not None:
            await self.push_client.stop()
            self.push_client.start(self.settings.get().socket_url)

    # ----- 틱

    def _can_accept_push(self) -> bool:
        ss = self.settings.get()
        return (
            not self.processing.busy
            and ss.enabled
            and normalize_source(ss.comment_source) == SOURCE_PUSH
        )

    async def poll_tick(self) -> None:
        """폴링 틱: 이어 말하기 → 댓글 조회 → 댓글 처리 / 무댓글 처리"""
        ss = self.settings.get()
        if (
            normalize_source(ss.comment_source) != SOURCE_API
            or not ss.session_id
            or not ss.api_key
            or self.processing.busy
            or not ss.enabled
        ):
            return

        try:
            if await self.continuity.handle_continuation_if_needed():
                return

            ss = self.settings.get()
            batch = await self.api_client.fetch_batch(ss.session_id, ss.api_key, ss.page_token)
            if batch is None:
                return
            self.settings.update(page_token=batch.next_page_token)

            if batch.comments:
                await self.process_comments(batch.comments)
                return

            await self.continuity.handle_no_comments()
        except (TransportError, ConfigurationError) as e:
            logger.warning("댓글 조회 실패: %s", e)

    async def push_tick(self) -> None:
        """푸시 유휴 틱: 이어 말하기 → 최근 수신 여부 확인 → 무댓글 처리"""
        ss = self.settings.get()
        if self.processing.busy or not ss.enabled:
            return

        if await self.continuity.handle_continuation_if_needed():
            self._received_since_tick = False
            return

        if self._received_since_tick:
            # 수신 시점에 이미 처리됨
            self._received_since_tick = False
            await self.continuity.clear_no_comment_count()
            return

        await self.continuity.handle_no_comments()

    async def on_push_comments(self, comments: List[Comment]) -> None:
        """푸시 클라이언트 콜백: 수신 표시 후 바로 처리"""
        if not comments:
            return
        self._received_since_tick = True
        await self.process_comments(comments)

    # ----- 댓글 선택/전송

    async def select_comment(self, comments: List[Comment]) -> str:
        """대화 지속 모드면 흐름에 맞는 댓글, 아니면 무작위 댓글 본문"""
        if not comments:
            return ""
        if self.settings.get().continuity_mode_enabled:
            return await self.content.best_comment(self.history(), comments)
        return self._rng.choice(comments).text

    async def process_comments(self, comments: List[Comment]) -> bool:
        """
        댓글 묶음 처리: 무댓글/잠들기 상태 해제 후 하나를 골라 전송

        Returns:
            True: 전송함, False: 고른 댓글 없음
        """
        if not comments:
            return False
        await self.continuity.mark_comment_activity()

        selected = await self.select_comment(comments)
        if not selected:
            logger.info("선택된 댓글 없음 (후보 %d개)", len(comments))
            return False

        logger.info("선택된 댓글: %s", selected[:80])
        await self._send(selected)
        return True
