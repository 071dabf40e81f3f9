"""
OneComme 푸시 소켓 댓글 수신 테스트 (AI 없이 출력만)

OneComme 실행 후: python examples/onecomme_chat_example.py
.env의 YOUTUBE_WEBSOCKET_URL 사용 (없으면 ws://localhost:11180/sub)
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv

from livecomment.chat import ChatClientFactory, Comment, SOURCE_PUSH

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def on_comments(comments: List[Comment]):
    """댓글 수신 시 호출되는 콜백"""
    for c in comments:
        print(f"{c.user_name}: {c.text}")


async def main():
    client = ChatClientFactory.create(
        SOURCE_PUSH,
        on_comments=on_comments,
        url_provider=lambda: os.getenv("YOUTUBE_WEBSOCKET_URL"),
    )
    print(f"지원 수집 방식: {ChatClientFactory.get_supported_sources()}")
    print(f"연결 주소: {client.resolve_url()} (종료: Ctrl+C)\n")
    try:
        await client.start()
    except asyncio.CancelledError:
        pass
    finally:
        await client.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n클라이언트 종료 중...")
