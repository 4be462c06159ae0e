#!filepath: safemf/__init__.py

from .utils.logger import Logging, logs, init_logging
from .utils.errors import (
    Error,
    IoError,
    ParameterError,
    UnknownError,
    ModelDisposedError,
    ModelInUseError,
    MatrixBorrowedError,
)
from .engine import Engine, Loss, NativeEngine, default_engine
from .matrix import ProblemView, SparseMatrix
from .model import Model
from .params import ParameterSnapshot, Params
from .config.app_config import AppConfig

# alias 简化调用
Matrix = SparseMatrix

__version__ = "0.1.0"

__all__ = [
    "logs", "Logging", "init_logging",
    "Error", "IoError", "ParameterError", "UnknownError",
    "ModelDisposedError", "ModelInUseError", "MatrixBorrowedError",
    "Engine", "NativeEngine", "default_engine", "Loss",
    "SparseMatrix", "Matrix", "ProblemView",
    "Params", "ParameterSnapshot",
    "Model",
    "AppConfig",
]
