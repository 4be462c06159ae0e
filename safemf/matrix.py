#!filepath: safemf/matrix.py
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from safemf.engine.bindings import C_INT_MAX, NODE_DTYPE
from safemf.utils.errors import MatrixBorrowedError


# ============================================================
# Problem View (BORROWED / READ-ONLY)
# ============================================================
@dataclass(frozen=True)
class ProblemView:
    """
    Borrowed description of a SparseMatrix for ONE engine call.

    Semantics:
    - ``data`` aliases the matrix storage (zero-copy, read-only)
    - rows / cols are derived from the entries at borrow time
    - MUST NOT outlive the ``SparseMatrix.borrow()`` block that produced it
    """
    rows: int
    cols: int
    nnz: int
    data: np.ndarray


class SparseMatrix:
    """
    Append-only builder of (row, col, value) observations.

    Entries are stored contiguously with the engine's node layout, in
    append order. Problem bounds are never cached: they are recomputed
    from the current entries on every borrow.
    """

    _MIN_CAPACITY = 16

    def __init__(self, capacity: int = 0):
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self._data = np.empty(capacity, dtype=NODE_DTYPE)
        self._len = 0
        self._borrows = 0
        self._lock = threading.Lock()

    @classmethod
    def with_capacity(cls, capacity: int) -> "SparseMatrix":
        """Empty matrix pre-sized for ``capacity`` entries."""
        return cls(capacity)

    # ---------------------------------------------------------
    # mutation
    # ---------------------------------------------------------
    def push(self, row: int, col: int, value: float) -> None:
        """
        Append one entry.

        Negative (or int32-overflowing) indices are a caller bug and raise
        ValueError immediately.
        """
        row = int(row)
        col = int(col)
        _check_index("row", row)
        _check_index("column", col)

        with self._lock:
            self._ensure_unborrowed()
            self._reserve(self._len + 1)
            self._data[self._len] = (row, col, value)
            self._len += 1

    def extend(self, rows, cols, values) -> None:
        """
        Append many entries at once (all-or-nothing).
        """
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        values = np.asarray(values, dtype=np.float32).ravel()

        if not (len(rows) == len(cols) == len(values)):
            raise ValueError(
                f"length mismatch: rows={len(rows)} cols={len(cols)} values={len(values)}"
            )
        if len(rows) == 0:
            return
        if rows.min() < 0 or rows.max() >= C_INT_MAX:
            raise ValueError("row index must be a non-negative 32-bit integer")
        if cols.min() < 0 or cols.max() >= C_INT_MAX:
            raise ValueError("column index must be a non-negative 32-bit integer")

        with self._lock:
            self._ensure_unborrowed()
            start = self._len
            end = start + len(rows)
            self._reserve(end)
            block = self._data[start:end]
            block["u"] = rows
            block["v"] = cols
            block["r"] = values
            self._len = end

    # ---------------------------------------------------------
    # inspection
    # ---------------------------------------------------------
    def __len__(self) -> int:
        return self._len

    @property
    def nnz(self) -> int:
        return self._len

    @property
    def rows(self) -> int:
        return _bound(self._entries()["u"])

    @property
    def cols(self) -> int:
        return _bound(self._entries()["v"])

    def entries(self) -> np.ndarray:
        """Read-only record array (u, v, r) over the current entries."""
        return self._entries()

    def __iter__(self) -> Iterator[tuple[int, int, float]]:
        for u, v, r in self._entries().tolist():
            yield u, v, r

    def __repr__(self) -> str:
        return f"SparseMatrix(rows={self.rows}, cols={self.cols}, nnz={self.nnz})"

    # ---------------------------------------------------------
    # engine boundary
    # ---------------------------------------------------------
    def to_problem_view(self) -> ProblemView:
        entries = self._entries()
        return ProblemView(
            rows=_bound(entries["u"]),
            cols=_bound(entries["v"]),
            nnz=len(entries),
            data=entries,
        )

    @contextmanager
    def borrow(self) -> Iterator[ProblemView]:
        """
        Lend a ProblemView; push/extend are rejected until the block exits.
        """
        with self._lock:
            self._borrows += 1
        try:
            yield self.to_problem_view()
        finally:
            with self._lock:
                self._borrows -= 1

    # ---------------------------------------------------------
    # internals
    # ---------------------------------------------------------
    def _entries(self) -> np.ndarray:
        view = self._data[: self._len]
        view.flags.writeable = False
        return view

    def _ensure_unborrowed(self) -> None:
        if self._borrows:
            raise MatrixBorrowedError(
                "[Matrix] cannot modify matrix while a problem view is borrowed"
            )

    def _reserve(self, needed: int) -> None:
        if needed <= len(self._data):
            return
        capacity = max(needed, 2 * len(self._data), self._MIN_CAPACITY)
        grown = np.empty(capacity, dtype=NODE_DTYPE)
        grown[: self._len] = self._data[: self._len]
        self._data = grown


def _check_index(name: str, index: int) -> None:
    if index < 0:
        raise ValueError(f"{name} index must be non-negative, got {index}")
    # rows/cols = max index + 1 must still fit a C int
    if index >= C_INT_MAX:
        raise ValueError(f"{name} index exceeds 32-bit range, got {index}")


def _bound(indices: np.ndarray) -> int:
    if len(indices) == 0:
        return 0
    return int(indices.max()) + 1
