#!filepath: safemf/model.py
from __future__ import annotations

import ctypes
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from safemf.engine.base import Engine
from safemf.engine.bindings import C_INT_MAX, Loss, MfModelPtr, problem_struct
from safemf.engine.native import default_engine
from safemf.matrix import SparseMatrix
from safemf.utils.errors import (
    IoError,
    ModelDisposedError,
    ModelInUseError,
    UnknownError,
)
from safemf.utils.logger import logs
from safemf.utils.path import encode_path

_FLOAT32 = np.dtype(np.float32)


class _FactorBuffer:
    """
    Read-only array exporter over engine-owned factor memory.

    numpy keeps the exporter as the array's ``base``; the exporter keeps
    the owning Model, so the handle outlives every view derived from it.
    """

    def __init__(self, owner: "Model", address: int, length: int):
        self.owner = owner
        self.__array_interface__ = {
            "version": 3,
            "shape": (length,),
            "typestr": _FLOAT32.str,
            "data": (address, True),
        }


class Model:
    """
    Trained model handle (exclusive owner of ONE native model)

    Lifecycle:
    - created by Params.fit* or Model.load, never with a NULL handle
    - close() / context exit / garbage collection destroys it exactly once
    - after close() every call raises ModelDisposedError

    Factor views (p_factors, q_factors, p, q, p_iter, q_iter) alias the
    engine's buffers without copying. close() refuses to run while any
    of them is alive.
    """

    def __init__(self, handle: MfModelPtr, engine: Engine):
        if not handle:
            raise UnknownError()
        self._handle: Optional[MfModelPtr] = handle
        self._engine = engine
        self._views: "weakref.WeakSet[_FactorBuffer]" = weakref.WeakSet()
        self._calls = 0
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # persistence
    # ---------------------------------------------------------
    @classmethod
    def load(cls, path: str | Path, engine: Engine | None = None) -> "Model":
        engine = engine if engine is not None else default_engine()
        handle = engine.load_model(encode_path(path))
        if not handle:
            logs.error(f"[Model] cannot load model from {path}")
            raise IoError()
        logs.debug(f"[Model] loaded model from {path}")
        return cls(handle, engine)

    def save(self, path: str | Path) -> None:
        raw = encode_path(path)
        with self._in_flight() as handle:
            status = self._engine.save_model(handle, raw)
        if status != 0:
            logs.error(f"[Model] cannot save model to {path} (status={status})")
            raise IoError()
        logs.debug(f"[Model] saved model to {path}")

    # ---------------------------------------------------------
    # scalar accessors (read-through, never cached)
    # ---------------------------------------------------------
    def rows(self) -> int:
        return self._require().contents.m

    def columns(self) -> int:
        return self._require().contents.n

    def factors(self) -> int:
        return self._require().contents.k

    def bias(self) -> float:
        return self._require().contents.b

    def loss(self) -> Loss:
        code = self._require().contents.fun
        try:
            return Loss(code)
        except ValueError:
            raise UnknownError(f"unknown loss code reported by engine: {code}") from None

    def predict(self, row: int, col: int) -> float:
        """
        Engine prediction; indices outside the trained shape yield bias().
        """
        row = _c_int(row)
        col = _c_int(col)
        with self._in_flight() as handle:
            return float(self._engine.predict(handle, row, col))

    # ---------------------------------------------------------
    # factor views
    # ---------------------------------------------------------
    def p_factors(self) -> np.ndarray:
        """Row factors, flat, length rows() * factors()."""
        model = self._require().contents
        return self._factor_view(model.P, model.m, model.k)

    def q_factors(self) -> np.ndarray:
        """Column factors, flat, length columns() * factors()."""
        model = self._require().contents
        return self._factor_view(model.Q, model.n, model.k)

    def p(self, row_index: int) -> Optional[np.ndarray]:
        return _chunk(self.p_factors(), self.rows(), self.factors(), row_index)

    def q(self, column_index: int) -> Optional[np.ndarray]:
        return _chunk(self.q_factors(), self.columns(), self.factors(), column_index)

    def p_iter(self) -> Iterator[np.ndarray]:
        yield from _chunks(self.p_factors(), self.rows(), self.factors())

    def q_iter(self) -> Iterator[np.ndarray]:
        yield from _chunks(self.q_factors(), self.columns(), self.factors())

    def _factor_view(self, pointer, count: int, k: int) -> np.ndarray:
        # dimensions and pointer come from the same MfModel read
        if count < 0 or k < 0:
            raise UnknownError(f"engine reported negative shape {count}x{k}")
        length = count * k
        if length == 0:
            empty = np.empty(0, dtype=_FLOAT32)
            empty.flags.writeable = False
            return empty
        if not pointer:
            raise UnknownError("engine reported factors without a buffer")

        address = ctypes.cast(pointer, ctypes.c_void_p).value
        buffer = _FactorBuffer(self, address, length)
        with self._lock:
            self._views.add(buffer)
        return np.asarray(buffer)

    # ---------------------------------------------------------
    # evaluation
    # ---------------------------------------------------------
    def rmse(self, data: SparseMatrix) -> float:
        return self._statistic("rmse", data)

    def mae(self, data: SparseMatrix) -> float:
        return self._statistic("mae", data)

    def gkl(self, data: SparseMatrix) -> float:
        return self._statistic("gkl", data)

    def logloss(self, data: SparseMatrix) -> float:
        return self._statistic("logloss", data)

    def accuracy(self, data: SparseMatrix) -> float:
        return self._statistic("accuracy", data)

    def mpr(self, data: SparseMatrix, transpose: bool = False) -> float:
        return self._statistic("mpr", data, bool(transpose))

    def auc(self, data: SparseMatrix, transpose: bool = False) -> float:
        return self._statistic("auc", data, bool(transpose))

    def _statistic(self, name: str, data: SparseMatrix, *extra) -> float:
        with self._in_flight() as handle, data.borrow() as view:
            value = getattr(self._engine, name)(problem_struct(view), handle, *extra)
        return float(value)

    # ---------------------------------------------------------
    # disposal
    # ---------------------------------------------------------
    @property
    def closed(self) -> bool:
        return self._handle is None

    def close(self) -> None:
        """
        Destroy the native model. Idempotent; the handle is poisoned after.
        """
        with self._lock:
            if self._handle is None:
                return
            if self._calls:
                raise ModelInUseError(
                    f"[Model] {self._calls} engine call(s) still running on this model"
                )
            if len(self._views):
                raise ModelInUseError(
                    f"[Model] {len(self._views)} factor view(s) still reference this model"
                )
            handle, self._handle = self._handle, None
            self._engine.destroy_model(handle)
            if handle:
                raise UnknownError("engine did not release the model handle")
        logs.debug("[Model] native model destroyed")

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if getattr(self, "_handle", None) is not None:
            self.close()

    def __copy__(self):
        raise TypeError("Model owns a native handle and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("Model owns a native handle and cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("Model owns a native handle and cannot be pickled; use save()")

    def __repr__(self) -> str:
        if self._handle is None:
            return "Model(closed)"
        return (
            f"Model(rows={self.rows()}, columns={self.columns()}, "
            f"factors={self.factors()}, bias={self.bias():.6g})"
        )

    def _require(self) -> MfModelPtr:
        handle = self._handle
        if handle is None:
            raise ModelDisposedError("[Model] model handle has been disposed")
        return handle

    @contextmanager
    def _in_flight(self) -> Iterator[MfModelPtr]:
        """
        Lend the handle to one engine call; close() is refused until it returns.
        """
        with self._lock:
            handle = self._require()
            self._calls += 1
        try:
            yield handle
        finally:
            with self._lock:
                self._calls -= 1


def _c_int(index: int) -> int:
    index = int(index)
    if not -C_INT_MAX - 1 <= index <= C_INT_MAX:
        raise ValueError(f"index exceeds 32-bit range, got {index}")
    return index


def _chunk(buffer: np.ndarray, count: int, k: int, index: int) -> Optional[np.ndarray]:
    if not 0 <= index < count:
        return None
    return buffer[index * k:(index + 1) * k]


def _chunks(buffer: np.ndarray, count: int, k: int) -> Iterator[np.ndarray]:
    for index in range(count):
        yield buffer[index * k:(index + 1) * k]
