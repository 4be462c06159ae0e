#!filepath: safemf/params.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

from safemf.engine.base import Engine
from safemf.config.app_config import AppConfig
from safemf.engine.bindings import C_INT_MAX, Loss, MfParameter, problem_struct
from safemf.engine.native import default_engine
from safemf.matrix import SparseMatrix
from safemf.model import Model
from safemf.utils.errors import ParameterError, UnknownError
from safemf.utils.logger import logs
from safemf.utils.path import require_file
from safemf.utils.timer import Timer

DEFAULT_BINS = 25

_INT_FIELDS = ("factors", "threads", "bins", "iterations")


# ============================================================
# Parameter Snapshot (VALIDATED / FROZEN)
# ============================================================
@dataclass(frozen=True)
class ParameterSnapshot:
    """
    Immutable, validated parameters for exactly one engine call.
    """
    loss: Loss
    factors: int
    threads: int
    bins: int
    iterations: int
    lambda_p1: float
    lambda_p2: float
    lambda_q1: float
    lambda_q2: float
    learning_rate: float
    alpha: float
    c: float
    nmf: bool
    quiet: bool
    copy_data: bool

    @classmethod
    def from_struct(cls, param: MfParameter) -> "ParameterSnapshot":
        return cls(
            loss=Loss.parse(param.fun),
            factors=param.k,
            threads=param.nr_threads,
            bins=param.nr_bins,
            iterations=param.nr_iters,
            lambda_p1=param.lambda_p1,
            lambda_p2=param.lambda_p2,
            lambda_q1=param.lambda_q1,
            lambda_q2=param.lambda_q2,
            learning_rate=param.eta,
            alpha=param.alpha,
            c=param.c,
            nmf=bool(param.do_nmf),
            quiet=bool(param.quiet),
            copy_data=bool(param.copy_data),
        )

    def to_struct(self) -> MfParameter:
        return MfParameter(
            fun=int(self.loss),
            k=self.factors,
            nr_threads=self.threads,
            nr_bins=self.bins,
            nr_iters=self.iterations,
            lambda_p1=self.lambda_p1,
            lambda_p2=self.lambda_p2,
            lambda_q1=self.lambda_q1,
            lambda_q2=self.lambda_q2,
            eta=self.learning_rate,
            alpha=self.alpha,
            c=self.c,
            do_nmf=self.nmf,
            quiet=self.quiet,
            copy_data=self.copy_data,
        )


def _check(snapshot: ParameterSnapshot) -> None:
    """
    Ordered parameter checks; the first failing check wins.
    """
    p = snapshot

    if p.factors < 1:
        raise ParameterError("number of factors must be greater than zero")

    if p.threads < 1:
        raise ParameterError("number of threads must be greater than zero")

    if p.bins < 1 or p.bins < p.threads:
        raise ParameterError("number of bins must be greater than number of threads")

    if p.iterations < 1:
        raise ParameterError("number of iterations must be greater than zero")

    # written as "not >=" so that NaN is rejected too
    if not all(
        x >= 0
        for x in (p.lambda_p1, p.lambda_p2, p.lambda_q1, p.lambda_q2)
    ):
        raise ParameterError("regularization coefficient must be non-negative")

    if not p.learning_rate > 0:
        raise ParameterError("learning rate must be greater than zero")

    if p.loss is Loss.REAL_KL and not p.nmf:
        raise ParameterError("nmf must be set when using generalized KL-divergence")

    if not p.alpha >= 0:
        raise ParameterError("alpha must be a non-negative number")


# ============================================================
# Params (MUTABLE BUILDER)
# ============================================================
class Params:
    """
    Fluent builder for training parameters.

    Usage:
        model = Params().factors(16).iterations(30).quiet(True).fit(data)

    Setters only store. All checks happen in validate(), which every
    training call runs before touching the engine.
    """

    def __init__(self, engine: Engine | None = None):
        self._engine = engine if engine is not None else default_engine()
        defaults = ParameterSnapshot.from_struct(self._engine.get_default_parameters())
        self._values: Dict[str, Any] = asdict(defaults)
        self._values["bins"] = DEFAULT_BINS
        self._timer = Timer()

    @classmethod
    def from_config(cls, cfg, engine: Engine | None = None) -> "Params":
        """
        Build from an AppConfig or a bare ParamsConfig; None fields keep
        the defaults. An AppConfig also selects the engine library unless
        ``engine`` is given.
        """
        if isinstance(cfg, AppConfig):
            if engine is None:
                engine = default_engine(cfg.engine.library_path)
            cfg = cfg.params
        params = cls(engine)
        for name, value in cfg.model_dump(exclude_none=True).items():
            getattr(params, name)(value)
        return params

    # ---------------------------------------------------------
    # setters
    # ---------------------------------------------------------
    def loss(self, value: Loss | int | str) -> "Params":
        """Sets the loss function (unknown codes raise ValueError)."""
        self._values["loss"] = Loss.parse(value)
        return self

    def factors(self, value: int) -> "Params":
        """Sets the number of latent factors."""
        self._values["factors"] = int(value)
        return self

    def threads(self, value: int) -> "Params":
        """Sets the number of threads."""
        self._values["threads"] = int(value)
        return self

    def bins(self, value: int) -> "Params":
        """Sets the number of bins."""
        self._values["bins"] = int(value)
        return self

    def iterations(self, value: int) -> "Params":
        """Sets the number of iterations."""
        self._values["iterations"] = int(value)
        return self

    def lambda_p1(self, value: float) -> "Params":
        """Sets the L1-regularization parameter for P."""
        self._values["lambda_p1"] = float(value)
        return self

    def lambda_p2(self, value: float) -> "Params":
        """Sets the L2-regularization parameter for P."""
        self._values["lambda_p2"] = float(value)
        return self

    def lambda_q1(self, value: float) -> "Params":
        """Sets the L1-regularization parameter for Q."""
        self._values["lambda_q1"] = float(value)
        return self

    def lambda_q2(self, value: float) -> "Params":
        """Sets the L2-regularization parameter for Q."""
        self._values["lambda_q2"] = float(value)
        return self

    def learning_rate(self, value: float) -> "Params":
        """Sets the learning rate."""
        self._values["learning_rate"] = float(value)
        return self

    def alpha(self, value: float) -> "Params":
        """Sets the importance of negative entries."""
        self._values["alpha"] = float(value)
        return self

    def c(self, value: float) -> "Params":
        """Sets the desired value of negative entries."""
        self._values["c"] = float(value)
        return self

    def nmf(self, value: bool) -> "Params":
        """Sets whether to perform non-negative MF (NMF)."""
        self._values["nmf"] = bool(value)
        return self

    def quiet(self, value: bool) -> "Params":
        """Sets whether the engine stays silent on stdout."""
        self._values["quiet"] = bool(value)
        return self

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"Params({body})"

    # ---------------------------------------------------------
    # validation
    # ---------------------------------------------------------
    def validate(self) -> ParameterSnapshot:
        """
        Returns the snapshot the engine will actually receive.

        Integers must fit a C int; floats are checked after narrowing to
        float32, so e.g. a learning rate that rounds to 0.0 is rejected.
        """
        try:
            for name in _INT_FIELDS:
                _check_c_int(name, self._values[name])
            narrowed = ParameterSnapshot(**self._values).to_struct()
            snapshot = ParameterSnapshot.from_struct(narrowed)
            _check(snapshot)
        except ParameterError as e:
            logs.warning(f"[Params] invalid parameters: {e.reason}")
            raise
        return snapshot

    # ---------------------------------------------------------
    # training
    # ---------------------------------------------------------
    def fit(self, data: SparseMatrix) -> Model:
        """Fits a model."""
        param = self.validate().to_struct()
        with data.borrow() as view, self._timer.measure("fit"):
            handle = self._engine.train(problem_struct(view), param)
        self._log_call("fit", view)
        return self._wrap(handle, "fit")

    def fit_eval(self, train_set: SparseMatrix, eval_set: SparseMatrix) -> Model:
        """Fits a model, reporting progress on a held-out set."""
        param = self.validate().to_struct()
        with train_set.borrow() as tr, eval_set.borrow() as va, self._timer.measure("fit_eval"):
            handle = self._engine.train_with_validation(
                problem_struct(tr), problem_struct(va), param
            )
        self._log_call("fit_eval", tr)
        return self._wrap(handle, "fit_eval")

    def cross_validate(self, data: SparseMatrix, folds: int) -> float:
        """Performs k-fold cross-validation and returns the average error."""
        param = self.validate().to_struct()
        folds = _check_folds(folds)
        with data.borrow() as view, self._timer.measure("cross_validate"):
            avg_error = self._engine.cross_validate(problem_struct(view), folds, param)
        self._log_call("cross_validate", view)
        return _cv_result(avg_error)

    # ---------- on disk ----------
    def fit_disk(self, path: str | Path) -> Model:
        """Fits a model from a ``row col value`` text file."""
        param = self.validate().to_struct()
        raw = require_file(path)
        with self._timer.measure("fit_disk"):
            handle = self._engine.train_on_disk(raw, param)
        logs.info(f"[Params] fit_disk {path} took {self._timer.durations['fit_disk']:.3f}s")
        return self._wrap(handle, "fit_disk")

    def fit_eval_disk(self, train_path: str | Path, eval_path: str | Path) -> Model:
        param = self.validate().to_struct()
        tr = require_file(train_path)
        va = require_file(eval_path)
        with self._timer.measure("fit_eval_disk"):
            handle = self._engine.train_with_validation_on_disk(tr, va, param)
        logs.info(
            f"[Params] fit_eval_disk {train_path} "
            f"took {self._timer.durations['fit_eval_disk']:.3f}s"
        )
        return self._wrap(handle, "fit_eval_disk")

    def cross_validate_disk(self, path: str | Path, folds: int) -> float:
        param = self.validate().to_struct()
        folds = _check_folds(folds)
        raw = require_file(path)
        avg_error = self._engine.cross_validate_on_disk(raw, folds, param)
        return _cv_result(avg_error)

    # ---------------------------------------------------------
    # internals
    # ---------------------------------------------------------
    def _wrap(self, handle, call: str) -> Model:
        if not handle:
            logs.error(f"[Params] engine returned no model from {call}")
            raise UnknownError()
        return Model(handle, self._engine)

    def _log_call(self, call: str, view) -> None:
        logs.info(
            f"[Params] {call} rows={view.rows} cols={view.cols} nnz={view.nnz} "
            f"took {self._timer.durations.get(call, 0.0):.3f}s"
        )


def _check_c_int(name: str, value: int) -> None:
    if not -C_INT_MAX - 1 <= value <= C_INT_MAX:
        raise ParameterError(f"{name} must fit a 32-bit integer, got {value}")


def _check_folds(folds: int) -> int:
    folds = int(folds)
    _check_c_int("folds", folds)
    if folds < 2:
        raise ParameterError("number of folds must be greater than one")
    return folds


def _cv_result(avg_error: float) -> float:
    # the engine reports some failures as exactly 0.0
    if avg_error == 0.0:
        logs.error("[Params] cross-validation returned 0.0, treated as engine failure")
        raise UnknownError()
    return float(avg_error)

