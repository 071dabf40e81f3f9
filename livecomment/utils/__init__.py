"""유틸리티 모듈"""
from .logging_config import setup_logging
from .settings import LiveSettings, SettingsStore, load_settings

__all__ = ["LiveSettings", "SettingsStore", "load_settings", "setup_logging"]
