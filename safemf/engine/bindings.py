#!filepath: safemf/engine/bindings.py
"""
ctypes layouts of the LIBMF C interface (FINAL / FROZEN)

These structures mirror ``mf.h`` byte for byte. They are the ONLY place
where the memory layout of the engine is described; every other module
goes through them.
"""
from __future__ import annotations

import ctypes
from enum import IntEnum

import numpy as np


class Loss(IntEnum):
    """
    Loss functions understood by the engine.

    Values are the engine's integer codes and MUST NOT be renumbered.
    """

    # real-valued matrix factorization
    REAL_L2 = 0
    REAL_L1 = 1
    REAL_KL = 2
    # binary matrix factorization
    BINARY_LOG = 5
    BINARY_L2 = 6
    BINARY_L1 = 7
    # one-class matrix factorization
    ONE_CLASS_ROW = 10
    ONE_CLASS_COL = 11
    ONE_CLASS_L2 = 12

    @classmethod
    def parse(cls, value) -> "Loss":
        """
        Accept a member, an integer code or a member name (case-insensitive).
        Unknown codes raise ValueError.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown loss function: {value!r}") from None
        if isinstance(value, bool):
            raise ValueError(f"unknown loss function: {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"unknown loss function: {value!r}") from None


class MfNode(ctypes.Structure):
    _fields_ = [
        ("u", ctypes.c_int),
        ("v", ctypes.c_int),
        ("r", ctypes.c_float),
    ]


class MfProblem(ctypes.Structure):
    _fields_ = [
        ("m", ctypes.c_int),
        ("n", ctypes.c_int),
        ("nnz", ctypes.c_longlong),
        ("R", ctypes.POINTER(MfNode)),
    ]


class MfParameter(ctypes.Structure):
    _fields_ = [
        ("fun", ctypes.c_int),
        ("k", ctypes.c_int),
        ("nr_threads", ctypes.c_int),
        ("nr_bins", ctypes.c_int),
        ("nr_iters", ctypes.c_int),
        ("lambda_p1", ctypes.c_float),
        ("lambda_p2", ctypes.c_float),
        ("lambda_q1", ctypes.c_float),
        ("lambda_q2", ctypes.c_float),
        ("eta", ctypes.c_float),
        ("alpha", ctypes.c_float),
        ("c", ctypes.c_float),
        ("do_nmf", ctypes.c_bool),
        ("quiet", ctypes.c_bool),
        ("copy_data", ctypes.c_bool),
    ]


class MfModel(ctypes.Structure):
    _fields_ = [
        ("fun", ctypes.c_int),
        ("m", ctypes.c_int),
        ("n", ctypes.c_int),
        ("k", ctypes.c_int),
        ("b", ctypes.c_float),
        ("P", ctypes.POINTER(ctypes.c_float)),
        ("Q", ctypes.POINTER(ctypes.c_float)),
    ]


MfModelPtr = ctypes.POINTER(MfModel)

# numpy record type with the exact layout of MfNode (int32, int32, float32)
NODE_DTYPE = np.dtype(
    [("u", np.int32), ("v", np.int32), ("r", np.float32)],
    align=True,
)
assert NODE_DTYPE.itemsize == ctypes.sizeof(MfNode)

C_INT_MAX = int(np.iinfo(np.int32).max)


def problem_struct(view) -> MfProblem:
    """
    Materialize a ProblemView as the engine's ``mf_problem``.

    The returned struct aliases ``view.data``; it is only valid while the
    view (and the matrix behind it) is alive.
    """
    return MfProblem(
        m=view.rows,
        n=view.cols,
        nnz=view.nnz,
        R=view.data.ctypes.data_as(ctypes.POINTER(MfNode)),
    )
