#!filepath: safemf/engine/base.py
from __future__ import annotations

from abc import ABC, abstractmethod

from safemf.engine.bindings import MfModelPtr, MfParameter, MfProblem


class Engine(ABC):
    """
    Native factorization engine contract (FINAL / FROZEN)

    Semantics:
    - Every method is synchronous and blocks until the engine returns
    - Handles are ``POINTER(MfModel)``; a NULL handle is the failure sentinel
    - Paths are already-encoded bytes without NUL
    - Problems are borrowed for the duration of ONE call

    The engine does NOT validate parameters in a user-actionable way.
    Callers MUST validate before calling.
    """

    @abstractmethod
    def get_default_parameters(self) -> MfParameter:
        raise NotImplementedError

    # ---------- training ----------
    @abstractmethod
    def train(self, problem: MfProblem, param: MfParameter) -> MfModelPtr:
        raise NotImplementedError

    @abstractmethod
    def train_with_validation(
        self, train: MfProblem, valid: MfProblem, param: MfParameter
    ) -> MfModelPtr:
        raise NotImplementedError

    @abstractmethod
    def cross_validate(
        self, problem: MfProblem, folds: int, param: MfParameter
    ) -> float:
        raise NotImplementedError

    @abstractmethod
    def train_on_disk(self, path: bytes, param: MfParameter) -> MfModelPtr:
        raise NotImplementedError

    @abstractmethod
    def train_with_validation_on_disk(
        self, train_path: bytes, valid_path: bytes, param: MfParameter
    ) -> MfModelPtr:
        raise NotImplementedError

    @abstractmethod
    def cross_validate_on_disk(
        self, path: bytes, folds: int, param: MfParameter
    ) -> float:
        raise NotImplementedError

    # ---------- model ----------
    @abstractmethod
    def predict(self, handle: MfModelPtr, row: int, col: int) -> float:
        raise NotImplementedError

    @abstractmethod
    def save_model(self, handle: MfModelPtr, path: bytes) -> int:
        raise NotImplementedError

    @abstractmethod
    def load_model(self, path: bytes) -> MfModelPtr:
        raise NotImplementedError

    @abstractmethod
    def destroy_model(self, handle: MfModelPtr) -> None:
        """
        Free the model and set ``handle`` to NULL in place.
        """
        raise NotImplementedError

    # ---------- statistics ----------
    @abstractmethod
    def rmse(self, problem: MfProblem, handle: MfModelPtr) -> float:
        raise NotImplementedError

    @abstractmethod
    def mae(self, problem: MfProblem, handle: MfModelPtr) -> float:
        raise NotImplementedError

    @abstractmethod
    def gkl(self, problem: MfProblem, handle: MfModelPtr) -> float:
        raise NotImplementedError

    @abstractmethod
    def logloss(self, problem: MfProblem, handle: MfModelPtr) -> float:
        raise NotImplementedError

    @abstractmethod
    def accuracy(self, problem: MfProblem, handle: MfModelPtr) -> float:
        raise NotImplementedError

    @abstractmethod
    def mpr(self, problem: MfProblem, handle: MfModelPtr, transpose: bool) -> float:
        raise NotImplementedError

    @abstractmethod
    def auc(self, problem: MfProblem, handle: MfModelPtr, transpose: bool) -> float:
        raise NotImplementedError
