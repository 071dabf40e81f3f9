"""
라이브 댓글 설정/상태 저장소.

- 설정: .env / 환경 변수에서 로드 (load_settings)
- 런타임 상태(page_token, 무댓글 카운트 등): state_path 지정 시 JSON으로 보존해 재시작 후에도 유지
- 모든 읽기는 최신 값 스냅샷, 모든 쓰기는 부분 병합
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from livecomment.chat.base_client import ConfigurationError
from livecomment.chat.client_factory import SOURCE_API, normalize_source

logger = logging.getLogger(__name__)

# 파일로 보존하는 런타임 상태 필드
PERSISTED_FIELDS = ("page_token", "no_comment_count", "continuation_count", "sleep_mode")

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class LiveSettings:
    """댓글 수집 설정 + 대화 지속 상태"""
    enabled: bool = False
    comment_source: str = SOURCE_API  # "api" | "push"
    session_id: str = ""  # YouTube 라이브(영상) ID
    api_key: str = ""
    socket_url: str = ""
    page_token: str = ""
    no_comment_count: int = 0
    continuation_count: int = 0
    sleep_mode: bool = False
    continuity_mode_enabled: bool = False
    system_prompt: str = ""


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _load_character_prompt(character_path: Optional[Path] = None) -> str:
    """config/character.txt 내용 로드. 없으면 빈 문자열."""
    p = character_path or (_project_root() / "config" / "character.txt")
    if not p.exists():
        return ""
    try:
        return p.read_text(encoding="utf-8").replace("\0", "").strip()
    except OSError as e:
        logger.warning("캐릭터 파일 로드 실패 %s: %s", p, e)
        return ""


def load_settings(character_path: Optional[Path] = None) -> LiveSettings:
    """환경 변수에서 설정 로드 (.env는 호출 측에서 load_dotenv로 먼저 읽어 둘 것)."""
    system_prompt = (os.environ.get("SYSTEM_PROMPT") or "").strip()
    if not system_prompt:
        system_prompt = _load_character_prompt(character_path)
    return LiveSettings(
        enabled=_env_flag("YOUTUBE_MODE", True),
        comment_source=normalize_source(os.environ.get("YOUTUBE_COMMENT_SOURCE") or SOURCE_API),
        session_id=(os.environ.get("YOUTUBE_LIVE_ID") or "").strip(),
        api_key=(os.environ.get("YOUTUBE_API_KEY") or "").strip(),
        socket_url=(os.environ.get("YOUTUBE_WEBSOCKET_URL") or "").strip(),
        continuity_mode_enabled=_env_flag("CONVERSATION_CONTINUITY_MODE", False),
        system_prompt=system_prompt,
    )


def _is_valid_state_value(value: Any, expected: type) -> bool:
    # bool은 int의 하위 타입이라 카운터 필드에서 따로 거름
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool) and value >= 0
    return isinstance(value, expected)


class SettingsStore:
    """
    LiveSettings 공유 저장소. 컨트롤러·수집 클라이언트·대화 지속 엔진이 같은 인스턴스를 참조.
    트랜잭션 격리 없음: get()은 항상 최신 스냅샷, update()는 지정 필드만 덮어씀.
    """

    def __init__(self, settings: Optional[LiveSettings] = None, state_path: Optional[Path] = None):
        self._settings = settings or LiveSettings()
        self.state_path = Path(state_path) if state_path else None
        self._field_names = {f.name for f in fields(LiveSettings)}
        self._load_state()

    def _load_state(self) -> None:
        if self.state_path is None or not self.state_path.exists():
            return
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("상태 파일 로드 실패 %s: %s", self.state_path, e)
            return
        if not isinstance(data, dict):
            return
        defaults = LiveSettings()
        restored = {}
        for key in PERSISTED_FIELDS:
            if key not in data:
                continue
            if _is_valid_state_value(data[key], type(getattr(defaults, key))):
                restored[key] = data[key]
            else:
                logger.warning("상태 파일 값 무시 %s=%r", key, data[key])
        if restored:
            self._settings = replace(self._settings, **restored)
            logger.info("런타임 상태 복원: %s", restored)

    def _save_state(self) -> None:
        if self.state_path is None:
            return
        data = {k: getattr(self._settings, k) for k in PERSISTED_FIELDS}
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning("상태 파일 저장 실패 %s: %s", self.state_path, e)

    def get(self) -> LiveSettings:
        """현재 설정 스냅샷 (복사본)."""
        return replace(self._settings)

    def update(self, **changes: Any) -> LiveSettings:
        """지정 필드만 부분 병합. 알 수 없는 키는 ConfigurationError."""
        unknown = set(changes) - self._field_names
        if unknown:
            raise ConfigurationError(f"알 수 없는 설정 키: {', '.join(sorted(unknown))}")
        if "comment_source" in changes:
            changes["comment_source"] = normalize_source(changes["comment_source"])
        self._settings = replace(self._settings, **changes)
        if any(k in PERSISTED_FIELDS for k in changes):
            self._save_state()
        return self.get()

    def as_dict(self) -> dict:
        """로그/디버그용 dict (api_key 마스킹)."""
        data = asdict(self._settings)
        if data.get("api_key"):
            data["api_key"] = "***"
        return data
