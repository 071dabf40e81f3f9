import asyncio

from fakes import RecordingDispatch, StubContent

from livecomment.ai import ContinuityEngine, PROMPT_CONTINUATION, PROMPT_NEW_TOPIC, PROMPT_SLEEP
from livecomment.utils import LiveSettings, SettingsStore


def _engine(continuity=True, needed=False, **state):
    store = SettingsStore(LiveSettings(continuity_mode_enabled=continuity, system_prompt="너는 진행자", **state))
    content = StubContent(needed=needed)
    dispatch = RecordingDispatch()
    history = [{"role": "assistant", "content": "오늘 날씨 좋네요"}]
    engine = ContinuityEngine(store, content, lambda: list(history), dispatch)
    return engine, store, content, dispatch


def test_idle_ticks_escalate_to_new_topic_then_sleep():
    engine, store, content, dispatch = _engine()
    counts = []
    sleep_flags = []

    async def run():
        for _ in range(7):
            if not await engine.handle_continuation_if_needed():
                await engine.handle_no_comments()
            counts.append(store.get().no_comment_count)
            sleep_flags.append(store.get().sleep_mode)

    asyncio.run(run())
    assert counts == [1, 2, 3, 4, 5, 6, 7]
    assert sleep_flags == [False] * 5 + [True, True]
    assert dispatch.kinds() == [
        PROMPT_CONTINUATION,
        PROMPT_CONTINUATION,
        PROMPT_NEW_TOPIC,
        PROMPT_CONTINUATION,
        PROMPT_CONTINUATION,
        PROMPT_SLEEP,
    ]
    assert dispatch.items[2].topic == "여름 휴가"
    assert content.calls.count("another_topic") == 1


def test_dispatched_prompt_carries_system_prompt_and_history():
    engine, _, _, dispatch = _engine()
    asyncio.run(engine.handle_no_comments())
    messages = dispatch.items[0].messages
    assert messages[0] == {"role": "system", "content": "너는 진행자"}
    assert messages[1] == {"role": "assistant", "content": "오늘 날씨 좋네요"}
    assert messages[-1]["role"] == "user"


def test_continuation_runs_once_then_caps():
    engine, store, _, dispatch = _engine(needed=True)

    async def run():
        first = await engine.handle_continuation_if_needed()
        second = await engine.handle_continuation_if_needed()
        return first, second

    first, second = asyncio.run(run())
    assert (first, second) == (True, False)
    assert dispatch.kinds() == [PROMPT_CONTINUATION]
    ss = store.get()
    assert ss.continuation_count == 0
    assert ss.no_comment_count == 1


def test_continuation_keeps_higher_idle_count():
    engine, store, _, _ = _engine(needed=True, no_comment_count=4)
    assert asyncio.run(engine.handle_continuation_if_needed()) is True
    assert store.get().no_comment_count == 4
    assert store.get().continuation_count == 1


def test_continuation_not_needed_resets_count():
    engine, store, content, dispatch = _engine(needed=False, continuation_count=1)
    assert asyncio.run(engine.handle_continuation_if_needed()) is False
    assert store.get().continuation_count == 0
    assert dispatch.items == []


def test_sleep_mode_blocks_continuation():
    engine, store, content, dispatch = _engine(needed=True, sleep_mode=True)
    assert asyncio.run(engine.handle_continuation_if_needed()) is False
    assert "is_continuation_needed" not in content.calls
    assert dispatch.items == []


def test_disabled_mode_counts_but_sends_nothing():
    engine, store, content, dispatch = _engine(continuity=False, needed=True)

    async def run():
        for _ in range(6):
            assert await engine.handle_continuation_if_needed() is False
            await engine.handle_no_comments()

    asyncio.run(run())
    assert store.get().no_comment_count == 6
    assert store.get().sleep_mode is False
    assert dispatch.items == []
    assert content.calls == []


def test_comment_activity_clears_sleep_and_count():
    engine, store, _, _ = _engine(no_comment_count=6, sleep_mode=True, continuation_count=1)
    asyncio.run(engine.mark_comment_activity())
    ss = store.get()
    assert (ss.no_comment_count, ss.sleep_mode, ss.continuation_count) == (0, False, 1)

    asyncio.run(engine.reset())
    assert store.get().continuation_count == 0


def test_concurrent_idle_ticks_do_not_lose_updates():
    engine, store, _, _ = _engine(continuity=False)

    async def run():
        await asyncio.gather(*(engine.handle_no_comments() for _ in range(5)))

    asyncio.run(run())
    assert store.get().no_comment_count == 5


def test_sync_dispatch_is_supported():
    store = SettingsStore(LiveSettings(continuity_mode_enabled=True))
    sent = []
    engine = ContinuityEngine(store, StubContent(), lambda: [], sent.append)
    asyncio.run(engine.handle_no_comments())
    assert [p.kind for p in sent] == [PROMPT_CONTINUATION]


class _BlockingSleepContent(StubContent):
    """sleep_prompt가 release될 때까지 멈춤 (느린 LLM 호출 대용)"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def sleep_prompt(self, system_prompt, history):
        self.entered.set()
        await self.release.wait()
        return await super().sleep_prompt(system_prompt, history)


def test_comment_during_slow_idle_tick_is_not_overwritten():
    async def run():
        store = SettingsStore(LiveSettings(continuity_mode_enabled=True, no_comment_count=5))
        content = _BlockingSleepContent()
        dispatch = RecordingDispatch()
        engine = ContinuityEngine(store, content, lambda: [], dispatch)

        idle = asyncio.create_task(engine.handle_no_comments())
        await content.entered.wait()
        activity = asyncio.create_task(engine.mark_comment_activity())
        await asyncio.sleep(0)
        content.release.set()
        await asyncio.gather(idle, activity)
        return store.get(), dispatch

    ss, dispatch = asyncio.run(run())
    assert (ss.no_comment_count, ss.sleep_mode) == (0, False)
    assert dispatch.kinds() == [PROMPT_SLEEP]


def test_received_flag_clear_waits_for_running_idle_tick():
    async def run():
        store = SettingsStore(LiveSettings(continuity_mode_enabled=True, no_comment_count=5))
        content = _BlockingSleepContent()
        engine = ContinuityEngine(store, content, lambda: [], RecordingDispatch())

        idle = asyncio.create_task(engine.handle_no_comments())
        await content.entered.wait()
        cleared = asyncio.create_task(engine.clear_no_comment_count())
        await asyncio.sleep(0)
        content.release.set()
        await asyncio.gather(idle, cleared)
        return store.get()

    assert asyncio.run(run()).no_comment_count == 0
