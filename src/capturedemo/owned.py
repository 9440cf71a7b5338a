"""owned.py - single-owner values and the borrow registry.

an Owned handle is the only way to reach its value. moving it hands
the value to a new handle and leaves the old one empty; every later
touch of the old one raises. closures lend slots (their captured cells,
and any Owned value inside them) through the registry here, and the
registry refuses aliases that would conflict with those loans.
"""

from dataclasses import dataclass, field

from capturedemo.errors import BorrowError, UseAfterMoveError
from capturedemo.log import warn


# ============================================================
# BORROW REGISTRY
# ============================================================

@dataclass
class Loan:
    """every closure currently borrowing one slot."""
    slot: object
    name: str
    mut_holder: object = None
    shared_holders: list = field(default_factory=list)

    def holders(self) -> list:
        if self.mut_holder is not None:
            return [self.mut_holder]
        return list(self.shared_holders)


# id(slot) -> Loan. the Loan keeps the slot alive, so ids are never reused.
_loans: dict[int, Loan] = {}

# closures currently executing, innermost last.
_running: list = []


def _holder_name(holder) -> str:
    return getattr(holder, "name", repr(holder))


def lend(slot, holder, name: str, mut: bool = False):
    """register a loan of slot to holder. raises BorrowError on conflict."""
    loan = _loans.get(id(slot))
    if loan is not None:
        others = [h for h in loan.holders() if h is not holder]
        if mut and others:
            _refuse(f"cannot borrow `{name}` as mutable because it is also "
                    f"borrowed by `{_holder_name(others[0])}`", name)
        if not mut and loan.mut_holder is not None and loan.mut_holder is not holder:
            _refuse(f"cannot borrow `{name}` as immutable because it is also "
                    f"borrowed as mutable by `{_holder_name(loan.mut_holder)}`", name)
    else:
        loan = Loan(slot=slot, name=name)
        _loans[id(slot)] = loan

    if mut:
        loan.mut_holder = holder
    elif holder not in loan.shared_holders:
        loan.shared_holders.append(holder)


def release_loans(holder) -> int:
    """drop every loan held by holder. returns how many slots it let go."""
    released = 0
    for key in list(_loans):
        loan = _loans[key]
        touched = False
        if loan.mut_holder is holder:
            loan.mut_holder = None
            touched = True
        if holder in loan.shared_holders:
            loan.shared_holders.remove(holder)
            touched = True
        if touched:
            released += 1
        if loan.mut_holder is None and not loan.shared_holders:
            del _loans[key]
    return released


def clear_loans():
    """forget every loan. tests and fresh runs start here."""
    _loans.clear()
    _running.clear()


def active_loans() -> list[Loan]:
    return list(_loans.values())


def enter(holder):
    """mark holder as executing. accesses from inside it pass its own loans."""
    _running.append(holder)


def leave(holder):
    if _running and _running[-1] is holder:
        _running.pop()


def current():
    return _running[-1] if _running else None


def _refuse(message: str, name: str):
    warn("borrow", message, binding=name)
    raise BorrowError(message)


def _check_access(handle, write: bool):
    """guard every read or write of an Owned value."""
    if handle._moved:
        message = f"use of moved value: `{handle.name}`"
        if handle._moved_into:
            message += f" (moved into `{handle._moved_into}`)"
        warn("owned", message, binding=handle.name)
        raise UseAfterMoveError(message)

    loan = _loans.get(id(handle))
    if loan is None:
        return
    running = current()
    if loan.mut_holder is not None and loan.mut_holder is not running:
        _refuse(f"cannot use `{handle.name}` because it is mutably borrowed "
                f"by `{_holder_name(loan.mut_holder)}`", handle.name)
    if write and any(h is not running for h in loan.shared_holders):
        holder = next(h for h in loan.shared_holders if h is not running)
        _refuse(f"cannot mutate `{handle.name}` because it is borrowed "
                f"by `{_holder_name(holder)}`", handle.name)


# ============================================================
# OWNED VALUES
# ============================================================

class Owned:
    """a value with exactly one owner. not copyable, only movable."""

    def __init__(self, value, name: str = ""):
        self._value = value
        self._moved = False
        self._moved_into = ""
        self.name = name or type(self).__name__.lower()

    @property
    def moved(self) -> bool:
        return self._moved

    def get(self):
        _check_access(self, write=False)
        return self._value

    def set(self, value):
        """overwrite the value in place. needs exclusive access."""
        _check_access(self, write=True)
        old, self._value = self._value, value
        return old

    def take(self):
        """move the value out. this handle is unusable afterwards."""
        _check_access(self, write=True)
        value = self._value
        self._value = None
        self._moved = True
        return value

    def move(self, into: str = "", name: str = ""):
        """transfer ownership to a fresh handle of the same type."""
        moved_name = name or self.name
        value = self.take()
        self._moved_into = into
        return self._rebuild(value, moved_name)

    def _rebuild(self, value, name: str):
        return type(self)(value, name=name)

    def __copy__(self):
        raise TypeError(f"`{self.name}` is not copyable, move it instead")

    def __deepcopy__(self, memo):
        raise TypeError(f"`{self.name}` is not copyable, move it instead")

    def __repr__(self):
        if self._moved:
            return f"<{type(self).__name__} {self.name} (moved)>"
        return f"{type(self).__name__}({self._value!r})"


class Box(Owned):
    """a heap value. prints as the value it holds."""

    def __str__(self):
        return str(self.get())

    def __format__(self, spec):
        return format(self.get(), spec)


class String(Owned):
    """an owned, growable text buffer."""

    def __init__(self, value: str = "", name: str = ""):
        super().__init__(str(value), name=name)

    def push_str(self, text: str):
        _check_access(self, write=True)
        self._value += text

    def as_str(self) -> str:
        return self.get()

    def len(self) -> int:
        return len(self.get())

    def __str__(self):
        return self.get()

    def __format__(self, spec):
        return format(self.get(), spec)


def drop(value):
    """release value now.

    Owned handles are moved and become unusable. closures give back
    their borrows. anything else is a copy and dropping it does nothing.
    """
    if isinstance(value, Owned):
        value.take()
        return
    release = getattr(value, "release", None)
    if callable(release):
        release()


# ============================================================
# OUTER ALIASES
# ============================================================

class Ref:
    """an alias formed by the enclosing routine."""

    def __init__(self, slot, name: str, mut: bool):
        self._slot = slot
        self.name = name
        self.mut = mut

    def get(self):
        if isinstance(self._slot, Owned):
            return self._slot.get()
        return self._slot.cell_contents

    def set(self, value):
        if not self.mut:
            _refuse(f"cannot assign through a shared reference to `{self.name}`", self.name)
        if isinstance(self._slot, Owned):
            self._slot.set(value)
        else:
            self._slot.cell_contents = value

    def __repr__(self):
        prefix = "&mut " if self.mut else "&"
        return f"{prefix}{self.name}"


def _resolve(target, name):
    if isinstance(target, Owned):
        if target.moved:
            _check_access(target, write=False)
        return target, name or target.name
    if name is None:
        raise TypeError("borrowing through a closure needs the captured variable's name")
    return target.slot(name), name


def borrow(target, name: str = None) -> Ref:
    """shared alias of an Owned, or of a variable captured by a closure."""
    slot, label = _resolve(target, name)
    loan = _loans.get(id(slot))
    if loan is not None and loan.mut_holder is not None and loan.mut_holder is not current():
        _refuse(f"cannot borrow `{label}` as immutable because it is also "
                f"borrowed as mutable by `{_holder_name(loan.mut_holder)}`", label)
    return Ref(slot, label, mut=False)


def borrow_mut(target, name: str = None) -> Ref:
    """exclusive alias. refused while any live closure borrows the slot."""
    slot, label = _resolve(target, name)
    loan = _loans.get(id(slot))
    if loan is not None:
        others = [h for h in loan.holders() if h is not current()]
        if others and loan.mut_holder is not None:
            _refuse(f"cannot borrow `{label}` as mutable more than once at a time, "
                    f"`{_holder_name(others[0])}` still holds it", label)
        if others:
            _refuse(f"cannot borrow `{label}` as mutable because it is also "
                    f"borrowed as immutable by `{_holder_name(others[0])}`", label)
    return Ref(slot, label, mut=True)
