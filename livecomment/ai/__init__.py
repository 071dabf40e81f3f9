# AI 대화 지속 모듈

from .models import ContinuityPrompt, PROMPT_CONTINUATION, PROMPT_NEW_TOPIC, PROMPT_SLEEP
from .chat_history import ChatHistory
from .continuity_client import ContinuityContentProvider, GroqContinuityClient, build_prompt
from .continuity import ContinuityEngine

__all__ = [
    "ContinuityPrompt",
    "PROMPT_CONTINUATION",
    "PROMPT_NEW_TOPIC",
    "PROMPT_SLEEP",
    "ChatHistory",
    "ContinuityContentProvider",
    "GroqContinuityClient",
    "build_prompt",
    "ContinuityEngine",
]
