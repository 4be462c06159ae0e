# tests/conftest.py
from __future__ import annotations

import ctypes
import json
import math
import os
import threading
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pytest
from loguru import logger

from safemf import Params, SparseMatrix
from safemf.engine.base import Engine
from safemf.engine.bindings import (
    NODE_DTYPE,
    MfModel,
    MfModelPtr,
    MfParameter,
)

# LIBMF's mf_get_default_param()
ENGINE_DEFAULTS = dict(
    fun=0,
    k=8,
    nr_threads=12,
    nr_bins=20,
    nr_iters=20,
    lambda_p1=0.0,
    lambda_p2=0.1,
    lambda_q1=0.0,
    lambda_q2=0.1,
    eta=0.1,
    alpha=1.0,
    c=0.0001,
    do_nmf=False,
    quiet=False,
    copy_data=True,
)

_FloatPtr = ctypes.POINTER(ctypes.c_float)


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


class FakeEngine(Engine):
    """
    numpy stand-in for LIBMF honoring the same C contract.

    - handles are real ctypes POINTER(MfModel) with P/Q buffers owned here
    - destroy_model() NULLs the caller's pointer in place
    - every call is recorded in ``calls`` as (name, details)
    """

    def __init__(self):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.live: Dict[int, Tuple[MfModel, np.ndarray, np.ndarray]] = {}
        self.destroyed = 0
        self.fail_train = False
        self.cv_value = 0.25
        self.save_status = 0
        self.leave_handle = False
        # rmse() blocks on this event when set, to simulate a long native call
        self.hold: Optional[threading.Event] = None
        self.entered = threading.Event()

    # ---------- helpers ----------
    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def _record(self, name: str, **details) -> None:
        self.calls.append((name, details))

    @staticmethod
    def _nodes(problem) -> np.ndarray:
        if problem.nnz == 0:
            return np.empty(0, dtype=NODE_DTYPE)
        address = ctypes.cast(problem.R, ctypes.c_void_p).value
        raw = (ctypes.c_char * (problem.nnz * NODE_DTYPE.itemsize)).from_address(address)
        return np.frombuffer(raw, dtype=NODE_DTYPE).copy()

    def _make_model(self, fun, m, n, k, b, P, Q) -> MfModelPtr:
        P = np.ascontiguousarray(P, dtype=np.float32)
        Q = np.ascontiguousarray(Q, dtype=np.float32)
        model = MfModel(
            fun=fun,
            m=m,
            n=n,
            k=k,
            b=b,
            P=P.ctypes.data_as(_FloatPtr) if P.size else _FloatPtr(),
            Q=Q.ctypes.data_as(_FloatPtr) if Q.size else _FloatPtr(),
        )
        self.live[ctypes.addressof(model)] = (model, P, Q)
        return ctypes.pointer(model)

    def _train_nodes(self, nodes: np.ndarray, m: int, n: int, param) -> MfModelPtr:
        if self.fail_train:
            return MfModelPtr()
        k = param.k
        b = float(nodes["r"].mean()) if len(nodes) else math.nan
        P = (np.arange(m * k, dtype=np.float32) + 1) * 0.01
        Q = (np.arange(n * k, dtype=np.float32) + 1) * 0.02
        return self._make_model(param.fun, m, n, k, b, P, Q)

    def _buffers(self, handle) -> Tuple[MfModel, np.ndarray, np.ndarray]:
        return self.live[ctypes.addressof(handle.contents)]

    def _predict(self, handle, u: int, v: int) -> float:
        model, P, Q = self._buffers(handle)
        if u < 0 or u >= model.m or v < 0 or v >= model.n:
            return model.b
        k = model.k
        return float(np.dot(P[u * k:(u + 1) * k], Q[v * k:(v + 1) * k]) + model.b)

    # ---------- contract ----------
    def get_default_parameters(self):
        self._record("get_default_parameters")
        return MfParameter(**ENGINE_DEFAULTS)

    def train(self, problem, param):
        self._record("train", m=problem.m, n=problem.n, nnz=problem.nnz, k=param.k)
        return self._train_nodes(self._nodes(problem), problem.m, problem.n, param)

    def train_with_validation(self, train, valid, param):
        self._record(
            "train_with_validation",
            m=train.m, n=train.n, nnz=train.nnz, valid_nnz=valid.nnz,
        )
        return self._train_nodes(self._nodes(train), train.m, train.n, param)

    def cross_validate(self, problem, folds, param):
        self._record("cross_validate", nnz=problem.nnz, folds=folds)
        return self.cv_value

    def _read_disk(self, path: bytes) -> np.ndarray:
        data = np.loadtxt(os.fsdecode(path), ndmin=2)
        nodes = np.empty(len(data), dtype=NODE_DTYPE)
        nodes["u"] = data[:, 0]
        nodes["v"] = data[:, 1]
        nodes["r"] = data[:, 2]
        return nodes

    def train_on_disk(self, path, param):
        self._record("train_on_disk", path=path)
        nodes = self._read_disk(path)
        return self._train_nodes(
            nodes, int(nodes["u"].max()) + 1, int(nodes["v"].max()) + 1, param
        )

    def train_with_validation_on_disk(self, train_path, valid_path, param):
        self._record("train_with_validation_on_disk", path=train_path, valid=valid_path)
        nodes = self._read_disk(train_path)
        return self._train_nodes(
            nodes, int(nodes["u"].max()) + 1, int(nodes["v"].max()) + 1, param
        )

    def cross_validate_on_disk(self, path, folds, param):
        self._record("cross_validate_on_disk", path=path, folds=folds)
        return self.cv_value

    def predict(self, handle, row, col):
        self._record("predict", row=row, col=col)
        return self._predict(handle, row, col)

    def save_model(self, handle, path):
        self._record("save_model", path=path)
        if self.save_status:
            return self.save_status
        model, P, Q = self._buffers(handle)
        payload = dict(
            fun=model.fun, m=model.m, n=model.n, k=model.k, b=model.b,
            P=P.tolist(), Q=Q.tolist(),
        )
        try:
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh)
        except OSError:
            return 1
        return 0

    def load_model(self, path):
        self._record("load_model", path=path)
        if not os.path.isfile(path):
            return MfModelPtr()
        with open(path, "r", encoding="utf-8") as fh:
            p = json.load(fh)
        return self._make_model(p["fun"], p["m"], p["n"], p["k"], p["b"], p["P"], p["Q"])

    def destroy_model(self, handle):
        self._record("destroy_model")
        self.destroyed += 1
        if self.leave_handle:
            return
        self.live.pop(ctypes.addressof(handle.contents), None)
        ctypes.memset(ctypes.addressof(handle), 0, ctypes.sizeof(handle))

    def _errors(self, problem, handle) -> np.ndarray:
        nodes = self._nodes(problem)
        preds = np.array(
            [self._predict(handle, int(u), int(v)) for u, v in zip(nodes["u"], nodes["v"])],
            dtype=np.float64,
        )
        return preds - nodes["r"].astype(np.float64)

    def rmse(self, problem, handle):
        self._record("rmse", nnz=problem.nnz)
        self.entered.set()
        if self.hold is not None:
            self.hold.wait(timeout=5)
        err = self._errors(problem, handle)
        return float(np.sqrt(np.mean(err ** 2))) if len(err) else 0.0

    def mae(self, problem, handle):
        self._record("mae", nnz=problem.nnz)
        err = self._errors(problem, handle)
        return float(np.mean(np.abs(err))) if len(err) else 0.0

    def gkl(self, problem, handle):
        self._record("gkl", nnz=problem.nnz)
        return 0.005

    def logloss(self, problem, handle):
        self._record("logloss", nnz=problem.nnz)
        return 0.2

    def accuracy(self, problem, handle):
        self._record("accuracy", nnz=problem.nnz)
        return 1.0

    def mpr(self, problem, handle, transpose):
        self._record("mpr", nnz=problem.nnz, transpose=transpose)
        return 0.0

    def auc(self, problem, handle, transpose):
        self._record("auc", nnz=problem.nnz, transpose=transpose)
        return 1.0


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def data() -> SparseMatrix:
    m = SparseMatrix()
    m.push(0, 0, 1.0)
    m.push(1, 0, 2.0)
    m.push(1, 1, 1.0)
    return m


@pytest.fixture
def params(engine) -> Params:
    return Params(engine).quiet(True)


@pytest.fixture
def model(params, data):
    m = params.fit(data)
    yield m
    if not m.closed:
        m.close()
