"""errors.py - what a borrow checker would have rejected.

a compiler refuses these programs before they run. here the guards
raise at the moment the forbidden thing is attempted, before it
takes effect.
"""


class CaptureError(Exception):
    """base for every capture rule violation."""


class ClosureConsumedError(CaptureError):
    """a single-use closure was called a second time."""


class ClosureReleasedError(CaptureError):
    """a closure was called after it was dropped."""


class UseAfterMoveError(CaptureError):
    """a moved-from value was used."""


class BorrowError(CaptureError):
    """an alias conflicts with a borrow held by a live closure."""


class NotMutableError(BorrowError):
    """a mutating closure was called without being declared mut."""


class BoundError(CaptureError, TypeError):
    """a closure does not implement the bound a higher-order routine asks for."""
