"""
YouTube 라이브 댓글 수신 → 댓글 하나 선택 → Groq 답변 (콘솔 출력)
댓글이 없으면 대화 지속 엔진이 이어 말하기 / 주제 전환 / 잠들기 메시지를 보냅니다.

.env 설정 후 실행: python examples/youtube_comment_example.py  (프로젝트 루트에서)
- GROQ_API_KEY: 필수
- YOUTUBE_COMMENT_SOURCE=api 이면 YOUTUBE_LIVE_ID, YOUTUBE_API_KEY 필요
- YOUTUBE_COMMENT_SOURCE=push 이면 OneComme 소켓 (YOUTUBE_WEBSOCKET_URL, 기본 ws://localhost:11180/sub)
- CONVERSATION_CONTINUITY_MODE=1 로 대화 지속 모드 사용
- LIVECOMMENT_STATE_PATH: 페이지 토큰·무댓글 카운트 보존 파일 (선택)
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Union

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
from openai import OpenAI

from livecomment.ai import ChatHistory, ContinuityPrompt, GroqContinuityClient
from livecomment.ai.continuity_client import GROQ_BASE_URL
from livecomment.chat import SOURCE_API
from livecomment.ingestion import IngestionController, ProcessingState
from livecomment.utils import SettingsStore, load_settings, setup_logging

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

logger = logging.getLogger(__name__)

REPLY_INSTRUCTION = "시청자 댓글에 방송 진행자로서 한두 문장으로 짧게 답하세요."


def _complete(client: OpenAI, model: str, messages: list) -> str:
    """동기: 답변 생성. asyncio.to_thread에서 호출."""
    response = client.chat.completions.create(model=model, messages=messages, max_tokens=256)
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    return (getattr(choices[0].message, "content", "") or "").strip()


async def reply_worker(
    queue: asyncio.Queue,
    client: OpenAI,
    model: str,
    system_prompt: str,
    chat_history: ChatHistory,
    processing: ProcessingState,
):
    """큐에서 댓글/대화 지속 메시지를 꺼내 답변 생성 후 출력. 처리 중에는 수집 틱이 쉬도록 신호 설정."""
    while True:
        try:
            item: Union[str, ContinuityPrompt] = await queue.get()
            processing.processing = True
            try:
                if isinstance(item, ContinuityPrompt):
                    messages = item.messages
                    label = item.kind
                else:
                    chat_history.add_user_message("", item)
                    messages = [{"role": "system", "content": f"{system_prompt}\n\n{REPLY_INSTRUCTION}".strip()}]
                    messages.extend(chat_history.get_context_messages())
                    label = "comment"
                text = await asyncio.to_thread(_complete, client, model, messages)
                if text:
                    chat_history.add_assistant_message(text)
                    print(f"[{label}] {text}")
            finally:
                processing.processing = False
                processing.processing_count = queue.qsize()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.exception("reply_worker 오류: %s", e)


async def main():
    setup_logging()
    groq_key = os.getenv("GROQ_API_KEY", "").strip()
    if not groq_key:
        print("❌ .env에 GROQ_API_KEY를 설정해주세요.")
        return

    settings = load_settings()
    if settings.comment_source == SOURCE_API and (not settings.session_id or not settings.api_key):
        print("❌ .env에 YOUTUBE_LIVE_ID, YOUTUBE_API_KEY를 설정해주세요. (또는 YOUTUBE_COMMENT_SOURCE=push)")
        return
    state_path = os.getenv("LIVECOMMENT_STATE_PATH") or None
    store = SettingsStore(settings, state_path=Path(state_path) if state_path else None)

    content = GroqContinuityClient(api_key=groq_key)
    reply_client = OpenAI(api_key=groq_key, base_url=GROQ_BASE_URL)
    chat_history = ChatHistory()
    processing = ProcessingState()
    queue: asyncio.Queue = asyncio.Queue()

    def dispatch(item: Union[str, ContinuityPrompt]):
        queue.put_nowait(item)
        processing.processing_count = queue.qsize()

    worker_task = asyncio.create_task(
        reply_worker(queue, reply_client, content.model, settings.system_prompt, chat_history, processing)
    )
    controller = IngestionController(
        settings=store,
        processing=processing,
        content=content,
        history=chat_history.get_context_messages,
        dispatch=dispatch,
    )

    print(f"댓글 수집 방식: {settings.comment_source}, 대화 지속 모드: {settings.continuity_mode_enabled}")
    print("댓글 수신 중... (종료: Ctrl+C)\n")
    try:
        await controller.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await controller.aclose()
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n종료합니다.")
