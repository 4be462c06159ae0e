#!filepath: safemf/engine/__init__.py
from .base import Engine
from .bindings import Loss, MfModel, MfNode, MfParameter, MfProblem, NODE_DTYPE
from .native import NativeEngine, default_engine, resolve_library_path

__all__ = [
    "Engine",
    "NativeEngine",
    "default_engine",
    "resolve_library_path",
    "Loss",
    "MfModel",
    "MfNode",
    "MfParameter",
    "MfProblem",
    "NODE_DTYPE",
]
