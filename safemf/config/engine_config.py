#!filepath: safemf/config/engine_config.py
from typing import Optional

from pydantic import BaseModel


class EngineConfig(BaseModel):
    # None → $LIBMF_PATH → ctypes.util.find_library("mf")
    library_path: Optional[str] = None
