"""
AI 모듈 데이터 모델
대화 지속(무댓글 대응) 프롬프트
"""

from dataclasses import dataclass, field
from typing import List


PROMPT_CONTINUATION = "continuation"
PROMPT_NEW_TOPIC = "new_topic"
PROMPT_SLEEP = "sleep"

VALID_PROMPT_KINDS = frozenset({PROMPT_CONTINUATION, PROMPT_NEW_TOPIC, PROMPT_SLEEP})


@dataclass
class ContinuityPrompt:
    """하류 응답 파이프라인으로 보낼 대화 지속 메시지 묶음"""
    kind: str  # continuation | new_topic | sleep
    messages: List[dict] = field(default_factory=list)  # [{"role": ..., "content": ...}, ...]
    topic: str = ""  # kind가 new_topic일 때 선택된 주제

    def __post_init__(self):
        if self.kind not in VALID_PROMPT_KINDS:
            raise ValueError(f"알 수 없는 프롬프트 종류: {self.kind}")
