import asyncio
import random

import pytest

from fakes import FakeApiClient, FakePushClient, ManualScheduler, RecordingDispatch, StubContent

from livecomment.ai import PROMPT_CONTINUATION
from livecomment.chat import Comment, CommentBatch, ConfigurationError, TransportError
from livecomment.ingestion import IngestionController, ProcessingState
from livecomment.utils import LiveSettings, SettingsStore


def _comments(*texts):
    return [Comment(user_name="viewer", user_icon_url="", text=t) for t in texts]


class Harness:
    def __init__(self, results=(), needed=False, best=None, **overrides):
        values = dict(
            enabled=True,
            comment_source="api",
            session_id="live-1",
            api_key="key-1",
            socket_url="ws://socket",
        )
        values.update(overrides)
        self.store = SettingsStore(LiveSettings(**values))
        self.processing = ProcessingState()
        self.content = StubContent(needed=needed, best=best)
        self.dispatch = RecordingDispatch()
        self.api = FakeApiClient(results)
        self.scheduler = ManualScheduler()
        self.push_clients = []
        self.controller = IngestionController(
            settings=self.store,
            processing=self.processing,
            content=self.content,
            history=lambda: [],
            dispatch=self.dispatch,
            scheduler=self.scheduler,
            api_client=self.api,
            push_client_factory=self._make_push_client,
            rng=random.Random(0),
        )

    def _make_push_client(self, **kwargs):
        client = FakePushClient(**kwargs)
        self.push_clients.append(client)
        return client


def test_poll_tick_dispatches_comment_and_advances_token():
    h = Harness(
        results=[CommentBatch(comments=_comments("hello"), next_page_token="tok-2")],
        no_comment_count=4,
        sleep_mode=True,
        page_token="tok-1",
    )
    asyncio.run(h.controller.poll_tick())

    assert h.api.calls == [("live-1", "key-1", "tok-1")]
    assert h.dispatch.items == ["hello"]
    ss = h.store.get()
    assert ss.page_token == "tok-2"
    assert ss.no_comment_count == 0
    assert ss.sleep_mode is False


def test_poll_tick_is_noop_while_busy():
    h = Harness(results=[CommentBatch(comments=_comments("hello"), next_page_token="tok-2")])
    h.processing.processing_count = 1
    asyncio.run(h.controller.poll_tick())
    assert h.api.calls == []
    assert h.dispatch.items == []
    assert h.store.get().page_token == ""


@pytest.mark.parametrize(
    "overrides",
    [{"session_id": ""}, {"api_key": ""}, {"enabled": False}, {"comment_source": "push"}],
)
def test_poll_tick_requires_configured_api_source(overrides):
    h = Harness(**overrides)
    asyncio.run(h.controller.poll_tick())
    assert h.api.calls == []


def test_poll_tick_empty_page_runs_idle_handling():
    h = Harness(
        results=[CommentBatch(comments=[], next_page_token="tok-2")],
        continuity_mode_enabled=True,
    )
    asyncio.run(h.controller.poll_tick())
    assert h.store.get().no_comment_count == 1
    assert h.store.get().page_token == "tok-2"
    assert h.dispatch.kinds() == [PROMPT_CONTINUATION]


def test_poll_tick_without_live_chat_changes_nothing():
    h = Harness(results=[None], page_token="tok-1", no_comment_count=2)
    asyncio.run(h.controller.poll_tick())
    ss = h.store.get()
    assert (ss.page_token, ss.no_comment_count) == ("tok-1", 2)


def test_poll_tick_swallows_transport_errors():
    h = Harness(results=[TransportError("503"), ConfigurationError("no key")], no_comment_count=2)

    async def run():
        await h.controller.poll_tick()
        await h.controller.poll_tick()

    asyncio.run(run())
    assert h.store.get().no_comment_count == 2
    assert h.dispatch.items == []


def test_poll_tick_continuation_skips_fetch():
    h = Harness(needed=True, continuity_mode_enabled=True)
    asyncio.run(h.controller.poll_tick())
    assert h.api.calls == []
    assert h.dispatch.kinds() == [PROMPT_CONTINUATION]


def test_random_selection_without_continuity_mode():
    h = Harness()
    comments = _comments("a", "b", "c")
    expected = random.Random(0).choice(comments).text
    assert asyncio.run(h.controller.select_comment(comments)) == expected
    assert "best_comment" not in h.content.calls


def test_best_comment_selection_in_continuity_mode():
    h = Harness(best="b", continuity_mode_enabled=True)
    assert asyncio.run(h.controller.process_comments(_comments("a", "b"))) is True
    assert h.dispatch.items == ["b"]


def test_empty_selection_sends_nothing_but_clears_idle_state():
    h = Harness(best="", continuity_mode_enabled=True, no_comment_count=6, sleep_mode=True)
    assert asyncio.run(h.controller.process_comments(_comments("a"))) is False
    assert h.dispatch.items == []
    assert h.store.get().sleep_mode is False
    assert h.store.get().no_comment_count == 0


def test_push_tick_after_received_comments_only_clears_count():
    h = Harness(comment_source="push", continuity_mode_enabled=True, no_comment_count=3)

    async def run():
        await h.controller.on_push_comments(_comments("hi"))
        await h.controller.push_tick()

    asyncio.run(run())
    assert h.dispatch.items == ["hi"]
    assert h.store.get().no_comment_count == 0


def test_push_tick_without_comments_escalates():
    h = Harness(comment_source="push", continuity_mode_enabled=True)

    async def run():
        for _ in range(6):
            await h.controller.push_tick()

    asyncio.run(run())
    ss = h.store.get()
    assert ss.no_comment_count == 6
    assert ss.sleep_mode is True
    assert h.dispatch.kinds() == ["continuation", "continuation", "new_topic", "continuation", "continuation", "sleep"]


def test_push_tick_is_noop_while_busy():
    h = Harness(comment_source="push", continuity_mode_enabled=True)
    h.processing.processing = True
    asyncio.run(h.controller.push_tick())
    assert h.store.get().no_comment_count == 0
    assert h.dispatch.items == []


def test_push_frames_are_refused_while_busy():
    h = Harness(comment_source="push")
    assert h.controller._can_accept_push() is True
    h.processing.processing = True
    assert h.controller._can_accept_push() is False


def test_start_api_registers_one_poll_job_and_stop_keeps_token():
    h = Harness(results=[CommentBatch(comments=[], next_page_token="tok-2")])

    async def run():
        await h.controller.start()
        await h.controller.start()
        assert [job.name for job in h.scheduler.active()] == ["youtube-api-poll"]
        await h.scheduler.tick()
        await h.controller.stop()

    asyncio.run(run())
    assert h.scheduler.active() == []
    assert h.controller.running is False
    assert h.store.get().page_token == "tok-2"


def test_start_push_opens_socket_and_idle_job():
    h = Harness(comment_source="websocket")

    async def run():
        await h.controller.start()
        client = h.push_clients[0]
        assert client.started_with == ["ws://socket"]
        assert client.kwargs["url_provider"]() == "ws://socket"
        assert [job.name for job in h.scheduler.active()] == ["onecomme-idle"]
        await h.controller.stop()
        return client

    client = asyncio.run(run())
    assert client.stop_calls == 1
    assert h.controller.push_client is None


def test_start_does_nothing_when_disabled():
    h = Harness(enabled=False)
    asyncio.run(h.controller.start())
    assert h.scheduler.jobs == []


def test_switching_source_resets_state_and_restarts():
    h = Harness(page_token="tok-9", no_comment_count=5, continuation_count=1, sleep_mode=True)

    async def run():
        await h.controller.start()
        await h.controller.set_comment_source("push")

    asyncio.run(run())
    ss = h.store.get()
    assert ss.comment_source == "push"
    assert (ss.page_token, ss.no_comment_count, ss.continuation_count, ss.sleep_mode) == ("", 0, 0, False)
    assert h.scheduler.jobs[0].cancelled is True
    assert [job.name for job in h.scheduler.active()] == ["onecomme-idle"]
    assert h.controller.active_source == "push"


def test_unknown_source_is_rejected():
    h = Harness()
    with pytest.raises(ConfigurationError):
        asyncio.run(h.controller.set_comment_source("irc"))


def test_disable_stops_and_resets():
    h = Harness(comment_source="push", no_comment_count=4)

    async def run():
        await h.controller.start()
        await h.controller.set_enabled(False)

    asyncio.run(run())
    assert h.scheduler.active() == []
    assert h.push_clients[0].stop_calls == 1
    assert h.store.get().no_comment_count == 0
    assert h.store.get().enabled is False


def test_socket_url_change_reconnects_push_client():
    h = Harness(comment_source="push")

    async def run():
        await h.controller.start()
        await h.controller.set_socket_url(" ws://new ")

    asyncio.run(run())
    client = h.push_clients[0]
    assert client.stop_calls == 1
    assert client.started_with == ["ws://socket", "ws://new"]


class _SlowSleepContent(StubContent):
    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def sleep_prompt(self, system_prompt, history):
        self.entered.set()
        await self.release.wait()
        return await super().sleep_prompt(system_prompt, history)


def test_push_comment_during_sleep_transition_wakes_the_engine():
    h = Harness(comment_source="push", continuity_mode_enabled=True, no_comment_count=5)

    async def run():
        content = _SlowSleepContent()
        h.controller.content = content
        h.controller.continuity.content = content
        idle = asyncio.create_task(h.controller.push_tick())
        await content.entered.wait()
        comment = asyncio.create_task(h.controller.on_push_comments(_comments("wake up")))
        await asyncio.sleep(0)
        content.release.set()
        await asyncio.gather(idle, comment)

    asyncio.run(run())
    ss = h.store.get()
    assert (ss.no_comment_count, ss.sleep_mode) == (0, False)
    assert h.dispatch.kinds() == ["sleep", "text"]
    assert h.dispatch.items[-1] == "wake up"
