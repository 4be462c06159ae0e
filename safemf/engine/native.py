#!filepath: safemf/engine/native.py
from __future__ import annotations

import ctypes
import ctypes.util
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from safemf.engine.base import Engine
from safemf.engine.bindings import (
    MfModelPtr,
    MfParameter,
    MfProblem,
)
from safemf.utils.logger import logs

LIBRARY_ENV = "LIBMF_PATH"

_ProblemPtr = ctypes.POINTER(MfProblem)


def resolve_library_path(library_path: str | Path | None = None) -> str:
    """
    Locate the LIBMF shared library.

    Order:
    1) explicit ``library_path``
    2) ``$LIBMF_PATH``
    3) ``ctypes.util.find_library("mf")``
    """
    if library_path is None:
        library_path = os.getenv(LIBRARY_ENV)

    if library_path is not None:
        path = Path(library_path)
        if not path.exists():
            raise FileNotFoundError(f"LIBMF library not found: {path}")
        return str(path)

    found = ctypes.util.find_library("mf")
    if found is None:
        raise FileNotFoundError(
            f"LIBMF library not found; set {LIBRARY_ENV} or install libmf"
        )
    return found


class NativeEngine(Engine):
    """
    LIBMF through ctypes.

    Every entry point gets explicit argtypes/restype; nothing is called
    with ctypes' default int conversion.
    """

    def __init__(self, library_path: str | Path | None = None):
        self.library_path = resolve_library_path(library_path)
        self._lib = ctypes.CDLL(self.library_path)
        self._declare()
        logs.debug(f"[Engine] loaded {self.library_path}")

    def _declare(self) -> None:
        lib = self._lib
        problem = _ProblemPtr
        model = MfModelPtr

        sigs = {
            "mf_get_default_param": ([], MfParameter),
            "mf_save_model": ([model, ctypes.c_char_p], ctypes.c_int),
            "mf_load_model": ([ctypes.c_char_p], model),
            "mf_destroy_model": ([ctypes.POINTER(model)], None),
            "mf_train": ([problem, MfParameter], model),
            "mf_train_on_disk": ([ctypes.c_char_p, MfParameter], model),
            "mf_train_with_validation": ([problem, problem, MfParameter], model),
            "mf_train_with_validation_on_disk": (
                [ctypes.c_char_p, ctypes.c_char_p, MfParameter],
                model,
            ),
            "mf_cross_validation": ([problem, ctypes.c_int, MfParameter], ctypes.c_double),
            "mf_cross_validation_on_disk": (
                [ctypes.c_char_p, ctypes.c_int, MfParameter],
                ctypes.c_double,
            ),
            "mf_predict": ([model, ctypes.c_int, ctypes.c_int], ctypes.c_float),
            "calc_rmse": ([problem, model], ctypes.c_double),
            "calc_mae": ([problem, model], ctypes.c_double),
            "calc_gkl": ([problem, model], ctypes.c_double),
            "calc_logloss": ([problem, model], ctypes.c_double),
            "calc_accuracy": ([problem, model], ctypes.c_double),
            "calc_mpr": ([problem, model, ctypes.c_bool], ctypes.c_double),
            "calc_auc": ([problem, model, ctypes.c_bool], ctypes.c_double),
        }

        for name, (argtypes, restype) in sigs.items():
            fn = getattr(lib, name)
            fn.argtypes = argtypes
            fn.restype = restype

    # ---------- parameters ----------
    def get_default_parameters(self) -> MfParameter:
        return self._lib.mf_get_default_param()

    # ---------- training ----------
    def train(self, problem, param):
        return self._lib.mf_train(ctypes.byref(problem), param)

    def train_with_validation(self, train, valid, param):
        return self._lib.mf_train_with_validation(
            ctypes.byref(train), ctypes.byref(valid), param
        )

    def cross_validate(self, problem, folds, param):
        return self._lib.mf_cross_validation(ctypes.byref(problem), folds, param)

    def train_on_disk(self, path, param):
        return self._lib.mf_train_on_disk(path, param)

    def train_with_validation_on_disk(self, train_path, valid_path, param):
        return self._lib.mf_train_with_validation_on_disk(train_path, valid_path, param)

    def cross_validate_on_disk(self, path, folds, param):
        return self._lib.mf_cross_validation_on_disk(path, folds, param)

    # ---------- model ----------
    def predict(self, handle, row, col):
        return self._lib.mf_predict(handle, row, col)

    def save_model(self, handle, path):
        return self._lib.mf_save_model(handle, path)

    def load_model(self, path):
        return self._lib.mf_load_model(path)

    def destroy_model(self, handle):
        # mf_destroy_model(mf_model **) writes NULL back through the pointer
        self._lib.mf_destroy_model(ctypes.byref(handle))

    # ---------- statistics ----------
    def rmse(self, problem, handle):
        return self._lib.calc_rmse(ctypes.byref(problem), handle)

    def mae(self, problem, handle):
        return self._lib.calc_mae(ctypes.byref(problem), handle)

    def gkl(self, problem, handle):
        return self._lib.calc_gkl(ctypes.byref(problem), handle)

    def logloss(self, problem, handle):
        return self._lib.calc_logloss(ctypes.byref(problem), handle)

    def accuracy(self, problem, handle):
        return self._lib.calc_accuracy(ctypes.byref(problem), handle)

    def mpr(self, problem, handle, transpose):
        return self._lib.calc_mpr(ctypes.byref(problem), handle, transpose)

    def auc(self, problem, handle, transpose):
        return self._lib.calc_auc(ctypes.byref(problem), handle, transpose)


@lru_cache(maxsize=None)
@logs.catch(msg="cannot load LIBMF", log_time=False)
def _cached_engine(library_path: Optional[str]) -> NativeEngine:
    return NativeEngine(library_path)


def default_engine(library_path: str | Path | None = None) -> NativeEngine:
    """
    Process-wide NativeEngine per library path (the library is loaded once).
    """
    key = None if library_path is None else str(library_path)
    return _cached_engine(key)
