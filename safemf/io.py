#!filepath: safemf/io.py
"""
Loading observations into a SparseMatrix.

The on-disk text format is the engine's own: one ``row col value`` triple
per line, whitespace separated. It is what Params.fit_disk() reads.
"""
from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow.parquet as pq
from scipy import sparse

from safemf.matrix import SparseMatrix
from safemf.utils.errors import IoError
from safemf.utils.logger import logs

TEXT_COLUMNS = ["row", "col", "value"]


def from_frame(
    df: pd.DataFrame,
    row: str = "row",
    col: str = "col",
    value: str = "value",
) -> SparseMatrix:
    missing = [c for c in (row, col, value) if c not in df.columns]
    if missing:
        raise KeyError(f"Missing required columns: {missing}")

    matrix = SparseMatrix.with_capacity(len(df))
    matrix.extend(
        df[row].to_numpy(dtype=np.int64),
        df[col].to_numpy(dtype=np.int64),
        df[value].to_numpy(dtype=np.float32),
    )
    return matrix


def from_coo(coo) -> SparseMatrix:
    """
    scipy.sparse matrix → SparseMatrix (explicit zeros are kept).
    """
    coo = sparse.coo_matrix(coo)
    matrix = SparseMatrix.with_capacity(coo.nnz)
    matrix.extend(coo.row, coo.col, coo.data)
    return matrix


def read_parquet(
    path: str | Path,
    row: str = "row",
    col: str = "col",
    value: str = "value",
) -> SparseMatrix:
    path = Path(path)
    if not path.exists():
        raise IoError()
    table = pq.read_table(path, columns=[row, col, value])
    logs.info(f"[IO] read {table.num_rows} entries from {path}")
    return from_frame(table.to_pandas(), row=row, col=col, value=value)


def read_text(path: str | Path) -> SparseMatrix:
    path = Path(path)
    if not path.exists():
        raise IoError()
    if path.stat().st_size == 0:
        return SparseMatrix()
    df = pd.read_csv(
        path,
        sep=r"\s+",
        header=None,
        names=TEXT_COLUMNS,
        dtype={"row": np.int64, "col": np.int64, "value": np.float32},
    )
    logs.info(f"[IO] read {len(df)} entries from {path}")
    return from_frame(df)


def write_text(matrix: SparseMatrix, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    entries = matrix.entries()
    df = pd.DataFrame(
        {
            "row": entries["u"],
            "col": entries["v"],
            "value": entries["r"],
        }
    )
    df.to_csv(path, sep=" ", header=False, index=False)
    logs.debug(f"[IO] wrote {len(df)} entries to {path}")
    return path
