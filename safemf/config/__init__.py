#!filepath: safemf/config/__init__.py
from .app_config import AppConfig
from .engine_config import EngineConfig
from .log_config import LogConfig
from .params_config import ParamsConfig

__all__ = ["AppConfig", "EngineConfig", "LogConfig", "ParamsConfig"]
