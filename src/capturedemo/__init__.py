"""capturedemo: closures that capture by reference, by mutable reference, and by value."""

from capturedemo.analysis import Capture, CaptureMode, infer_captures
from capturedemo.closure import Closure, Kind, classify, closure, require, watch
from capturedemo.demo import DEMOS, apply, apply_to_3, as_input, capture, run
from capturedemo.errors import (
    BorrowError, BoundError, CaptureError, ClosureConsumedError,
    ClosureReleasedError, NotMutableError, UseAfterMoveError,
)
from capturedemo.owned import Box, Owned, Ref, String, borrow, borrow_mut, drop

__all__ = [
    "Capture", "CaptureMode", "infer_captures",
    "Closure", "Kind", "classify", "closure", "require", "watch",
    "DEMOS", "apply", "apply_to_3", "as_input", "capture", "run",
    "BorrowError", "BoundError", "CaptureError", "ClosureConsumedError",
    "ClosureReleasedError", "NotMutableError", "UseAfterMoveError",
    "Box", "Owned", "Ref", "String", "borrow", "borrow_mut", "drop",
]
