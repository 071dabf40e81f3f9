"""
주기 실행 스케줄러
run_every(interval, fn)로 비동기 함수를 고정 주기로 실행하고, 취소 핸들을 돌려줍니다.
틱마다 별도 태스크로 실행하므로 느린 틱이 다음 틱을 막지 않습니다 (겹침 허용).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

TickFn = Callable[[], Awaitable[Any]]


class PeriodicJob:
    """run_every가 돌려주는 취소 핸들"""

    def __init__(self, name: str, interval: float, fn: TickFn, run_immediately: bool = True):
        self.name = name
        self.interval = interval
        self.fn = fn
        self.run_immediately = run_immediately
        self.tick_count = 0
        self._timer: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _start(self) -> None:
        self._timer = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")

    async def _loop(self) -> None:
        if self.run_immediately:
            self._spawn_tick()
        while not self._cancelled:
            await asyncio.sleep(self.interval)
            self._spawn_tick()

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self._run_tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _run_tick(self) -> None:
        self.tick_count += 1
        try:
            await self.fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # 틱 실패는 루프를 멈추지 않음
            logger.exception("[%s] 주기 작업 오류: %s", self.name, e)

    def cancel(self) -> None:
        """타이머와 진행 중인 틱 모두 취소 (여러 번 호출해도 안전)"""
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        for task in list(self._ticks):
            task.cancel()

    async def wait_cancelled(self) -> None:
        """cancel() 후 태스크 정리까지 대기"""
        # 틱 안에서 stop()을 부른 경우 자기 자신은 기다리지 않음
        current = asyncio.current_task()
        tasks = [t for t in [self._timer, *self._ticks] if t is not None and t is not current]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class Scheduler:
    """asyncio 기반 스케줄러. 테스트에서는 같은 인터페이스의 수동 스케줄러로 교체."""

    def run_every(
        self,
        interval: float,
        fn: TickFn,
        name: str = "job",
        run_immediately: bool = True,
    ) -> PeriodicJob:
        """
        fn을 interval초마다 실행 (실행 중인 이벤트 루프 필요)

        Args:
            interval: 주기 (초)
            fn: 인자 없는 비동기 함수
            name: 로그용 이름
            run_immediately: True면 시작 즉시 한 번 실행

        Returns:
            PeriodicJob (cancel()로 중지)
        """
        job = PeriodicJob(name, interval, fn, run_immediately=run_immediately)
        job._start()
        logger.debug("[%s] 주기 작업 시작 (%.1f초)", name, interval)
        return job
