#!filepath: safemf/config/app_config.py
from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from safemf.config.engine_config import EngineConfig
from safemf.config.log_config import LogConfig
from safemf.config.params_config import ParamsConfig
from safemf.utils.logger import logs

DEFAULT_CONFIG = Path(__file__).with_name("base.yml")


class AppConfig(BaseModel):
    log: LogConfig = Field(default_factory=LogConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    params: ParamsConfig = Field(default_factory=ParamsConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "AppConfig":
        """
        加载 YAML 配置 + .env
        - .env is read from the current working directory (if present)
        - default YAML: the packaged safemf/config/base.yml
        """
        load_dotenv(os.path.join(os.getcwd(), ".env"))

        path = DEFAULT_CONFIG if path is None else Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        engine = raw.setdefault("engine", {}) or {}
        if engine.get("library_path") is None and os.getenv("LIBMF_PATH"):
            engine["library_path"] = os.getenv("LIBMF_PATH")
        raw["engine"] = engine

        cfg = cls(**raw)
        logs.debug(f"[Config] loaded {path}")
        return cfg
