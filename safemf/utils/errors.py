#!filepath: safemf/utils/errors.py
"""
Error taxonomy (FINAL)

Recoverable errors derive from :class:`Error`:
- IoError         a path could not be read/written by the engine
- ParameterError  a hyperparameter violated an invariant (raised before any engine call)
- UnknownError    the engine returned a failure sentinel

Programmer errors (caller bugs) are NOT part of the taxonomy and derive
from RuntimeError directly.
"""


class Error(RuntimeError):
    """Base class for every recoverable safemf error."""


class IoError(Error):
    def __init__(self, message: str = "cannot open file"):
        super().__init__(message)


class ParameterError(Error):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __eq__(self, other):
        return isinstance(other, ParameterError) and other.reason == self.reason

    def __hash__(self):
        return hash((ParameterError, self.reason))


class UnknownError(Error):
    def __init__(self, message: str = "unknown error"):
        super().__init__(message)


# ============================================================
# Programmer errors
# ============================================================
class ModelDisposedError(RuntimeError):
    """Raised when a Model is used after close()."""


class ModelInUseError(RuntimeError):
    """Raised when a Model is closed while factor views derived from it are alive."""


class MatrixBorrowedError(RuntimeError):
    """Raised when a SparseMatrix is mutated while a problem view is borrowed."""
