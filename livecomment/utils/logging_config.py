"""
로깅 설정.

콘솔은 WARNING 이상, logs/ 아래에 통합(app.log)·에러(error.log) 로그와
수집·대화 지속·컨트롤러 로그를 각각 나눠 기록합니다.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Tuple

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# 파일 이름 -> 기록할 logger name prefix
CATEGORY_LOGS: Dict[str, Tuple[str, ...]] = {
    "chat.log": ("livecomment.chat", "websockets", "httpx"),
    "ai.log": ("livecomment.ai", "openai"),
    "ingestion.log": ("livecomment.ingestion",),
}

# 외부 라이브러리 로거 (NOISY_LOG_LEVEL로 억제)
NOISY_LOGGERS = ("websockets", "httpx", "httpcore", "openai")


class _PrefixFilter(logging.Filter):
    def __init__(self, prefixes: Tuple[str, ...]):
        super().__init__()
        self._prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        return (record.name or "").startswith(self._prefixes)


def _level_from_env(name: str, default: int) -> int:
    value = (os.environ.get(name) or "").upper()
    level = logging.getLevelName(value) if value else default
    return level if isinstance(level, int) else default


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=int(os.environ.get("LOG_MAX_MB", "10")) * 1024 * 1024,
        backupCount=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: Optional[Path] = None) -> Path:
    """
    루트 로거를 재설정

    Args:
        log_dir: 로그 디렉터리 (None이면 프로젝트 루트의 logs/)

    Returns:
        실제 사용한 로그 디렉터리
    """
    log_dir = Path(log_dir) if log_dir else Path(__file__).resolve().parents[2] / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(_level_from_env("LOG_CONSOLE_LEVEL", logging.WARNING))
    console.setFormatter(formatter)
    root.addHandler(console)

    root.addHandler(_file_handler(log_dir / "app.log", logging.INFO, formatter))
    root.addHandler(_file_handler(log_dir / "error.log", logging.ERROR, formatter))
    for filename, prefixes in CATEGORY_LOGS.items():
        handler = _file_handler(log_dir / filename, logging.DEBUG, formatter)
        handler.addFilter(_PrefixFilter(prefixes))
        root.addHandler(handler)

    noisy_level = _level_from_env("NOISY_LOG_LEVEL", logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    return log_dir
