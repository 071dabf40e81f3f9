"""댓글 수집 컨트롤러 모듈"""

from .scheduler import PeriodicJob, Scheduler
from .controller import DEFAULT_TICK_INTERVAL, IngestionController, ProcessingState

__all__ = [
    "PeriodicJob",
    "Scheduler",
    "DEFAULT_TICK_INTERVAL",
    "IngestionController",
    "ProcessingState",
]
