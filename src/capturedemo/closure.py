"""closure.py - closures tagged with what they are allowed to do.

a Closure wraps a Python function, reads its body once, and fixes its
kind for good:

    Fn      only reads what it captured. call it any number of times.
    FnMut   mutates what it captured. must be declared mut=True to be
            called directly, and holds its variables exclusively while
            alive.
    FnOnce  consumes what it captured. one call, then it is spent.

values captured by move are taken out of the enclosing routine at
construction: the closure gets its own cell, the outer binding is left
moved-from.
"""

import types
from contextlib import contextmanager
from enum import Enum

from capturedemo import owned
from capturedemo.analysis import CaptureMode, infer_captures
from capturedemo.errors import (
    BoundError, ClosureConsumedError, ClosureReleasedError, NotMutableError,
)
from capturedemo.log import debug, span, warn


class Kind(Enum):
    FN = "Fn"
    FN_MUT = "FnMut"
    FN_ONCE = "FnOnce"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def from_modes(cls, modes) -> "Kind":
        """the kind a closure gets from its most restrictive capture."""
        strictest = max(modes, default=CaptureMode.REF)
        if strictest is CaptureMode.MOVE:
            return cls.FN_ONCE
        if strictest is CaptureMode.MUT:
            return cls.FN_MUT
        return cls.FN

    def satisfies(self, bound: "Kind") -> bool:
        """Fn works wherever FnMut or FnOnce is asked for, FnMut wherever FnOnce is."""
        return self.rank <= bound.rank

    def describe(self) -> str:
        return {
            Kind.FN: "read-only, repeatable",
            Kind.FN_MUT: "exclusive-mutating, repeatable",
            Kind.FN_ONCE: "consuming, single-use",
        }[self]

    def __str__(self):
        return self.value


_RANK = {Kind.FN: 0, Kind.FN_MUT: 1, Kind.FN_ONCE: 2}

# lists handed out by watch(). every new Closure is appended to each.
_watchers: list[list] = []


@contextmanager
def watch():
    """collect every closure built inside the block."""
    seen = []
    _watchers.append(seen)
    try:
        yield seen
    finally:
        _watchers.remove(seen)


class Closure:
    """a function plus the capture rules its body implies."""

    def __init__(self, fn, mut: bool = False, name: str = None):
        if not isinstance(fn, types.FunctionType):
            raise TypeError(f"closure() needs a Python function, got {type(fn).__name__}")
        self.name = name or ("closure" if fn.__name__ == "<lambda>" else fn.__name__)
        self.mut = mut
        self.consumed = False
        self.released = False
        self._cells = {}

        with span("build", subsystem="closure", closure=self.name):
            self.captures = infer_captures(fn)
            try:
                self._fn = self._bind(fn)
            except Exception:
                owned.release_loans(self)
                raise
            # a copied value never makes the closure single-use
            self.kind = Kind.from_modes(
                c.mode for c in self.captures.values() if not c.copied)

        debug("closure", f"`{self.name}` is {self.kind}: {self.kind.describe()}",
              kind=self.kind.value, mut=mut)
        for seen in _watchers:
            seen.append(self)

    def _bind(self, fn):
        """rebuild fn with cells that follow each capture's mode."""
        code = fn.__code__
        cells = list(fn.__closure__ or ())
        for i, var in enumerate(code.co_freevars):
            cell = cells[i]
            mode = self.captures[var].mode
            try:
                value = cell.cell_contents
            except ValueError:  # not assigned yet, e.g. a closure naming itself
                value = None

            if mode is CaptureMode.MOVE:
                if isinstance(value, owned.Owned):
                    value.name = var
                    value = value.move(into=self.name)
                else:
                    self.captures[var].copied = True
                cells[i] = types.CellType(value)
            else:
                mut = mode is CaptureMode.MUT
                owned.lend(cell, self, var, mut=mut)
                if isinstance(value, owned.Owned):
                    value.name = var
                    owned.lend(value, self, var, mut=mut)
            self._cells[var] = cells[i]

        bound = types.FunctionType(
            code, fn.__globals__, fn.__name__, fn.__defaults__, tuple(cells) or None,
        )
        bound.__kwdefaults__ = fn.__kwdefaults__
        bound.__qualname__ = fn.__qualname__
        bound.__doc__ = fn.__doc__
        return bound

    # -- state --

    def slot(self, name: str):
        """the cell this closure reads `name` from."""
        if name not in self._cells:
            raise KeyError(f"`{self.name}` does not capture `{name}`")
        return self._cells[name]

    @property
    def alive(self) -> bool:
        return not (self.consumed or self.released)

    # -- calling --

    def _check_callable(self):
        if self.released:
            message = f"use of dropped closure `{self.name}`"
            warn("closure", message, closure=self.name)
            raise ClosureReleasedError(message)
        if self.consumed:
            message = f"use of moved value: `{self.name}` was already consumed by a call"
            warn("closure", message, closure=self.name)
            raise ClosureConsumedError(message)

    def _invoke(self, args, kwargs):
        if self.kind is Kind.FN_ONCE:
            self.consumed = True
        owned.enter(self)
        try:
            return self._fn(*args, **kwargs)
        finally:
            owned.leave(self)
            if self.consumed:
                owned.release_loans(self)

    def __call__(self, *args, **kwargs):
        self._check_callable()
        if self.kind is Kind.FN_MUT and not self.mut:
            message = (f"cannot borrow `{self.name}` as mutable, "
                       f"it mutates what it captured and must be declared mut")
            warn("closure", message, closure=self.name)
            raise NotMutableError(message)
        return self._invoke(args, kwargs)

    def call_once(self, *args, **kwargs):
        """call by value: the closure is given away and spent afterwards.

        any kind can be called this way, which is why FnOnce is the
        loosest bound.
        """
        self._check_callable()
        try:
            return self._invoke(args, kwargs)
        finally:
            self.consumed = True
            owned.release_loans(self)

    def release(self):
        """give back every borrow. the closure cannot be called after this."""
        if self.released:
            return
        n = owned.release_loans(self)
        self.released = True
        debug("closure", f"`{self.name}` released {n} borrow(s)", closure=self.name)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()
        return False

    def __repr__(self):
        parts = [self.name, str(self.kind)]
        parts += [f"{n}={c.mode.name}" for n, c in self.captures.items()]
        parts.append("live" if self.alive else ("consumed" if self.consumed else "released"))
        return f"<Closure {' '.join(parts)}>"


def closure(fn=None, *, mut: bool = False, name: str = None):
    """wrap fn as a Closure. works bare, called, or as a decorator:

        print_ = closure(lambda: print(color))

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1
    """
    if fn is None:
        return lambda f: closure(f, mut=mut, name=name)
    if isinstance(fn, Closure):
        return fn
    return Closure(fn, mut=mut, name=name)


def classify(fn) -> Kind:
    """the kind Closure(fn) would get, without moving or borrowing anything."""
    cells = dict(zip(fn.__code__.co_freevars, fn.__closure__ or ()))
    modes = []
    for name, cap in infer_captures(fn).items():
        if cap.mode is CaptureMode.MOVE:
            try:
                value = cells[name].cell_contents
            except ValueError:
                value = None
            if not isinstance(value, owned.Owned):
                continue  # a copy
        modes.append(cap.mode)
    return Kind.from_modes(modes)


def _refuse_bound(name: str, kind: Kind, bound: Kind):
    message = (f"expected a closure that implements the `{bound}` trait, "
               f"but `{name}` only implements `{kind}`")
    warn("closure", message, closure=name, bound=bound.value)
    raise BoundError(message)


def require(f, bound: Kind) -> Closure:
    """check f implements bound. plain functions are checked before they
    are wrapped, so a refused one keeps hold of everything it captured."""
    if isinstance(f, Closure):
        if not f.kind.satisfies(bound):
            _refuse_bound(f.name, f.kind, bound)
        return f
    if not isinstance(f, types.FunctionType):
        raise TypeError(f"closure() needs a Python function, got {type(f).__name__}")
    kind = classify(f)
    if not kind.satisfies(bound):
        _refuse_bound("closure" if f.__name__ == "<lambda>" else f.__name__, kind, bound)
    return Closure(f)
