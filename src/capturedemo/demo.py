"""demo.py - the demonstrations.

each routine builds closures with a different capture discipline and
calls them. the commented-out lines are the ones a borrow checker
refuses; uncomment one and the guard raises instead.
"""

from capturedemo.closure import Kind, closure, require
from capturedemo.log import debug, demo_span
from capturedemo.owned import Box, String, drop


def capture():
    color = "green"

    # reads `color` only, so it borrows it. callable as often as you like.
    with closure(lambda: print(f"`color`: {color}"), name="print") as print_:
        print_()
        print_()

    count = 0

    # rebinds `count`, so it holds it by mutable reference. calling it
    # changes its own state, which is why it has to be declared mut.
    @closure(mut=True)
    def inc():
        nonlocal count
        count += 1
        print(f"`count`: {count}")

    inc()
    inc()

    # from capturedemo.owned import borrow_mut
    # reborrow = borrow_mut(inc, "count")
    # ^ try it: `count` is still borrowed by `inc`
    drop(inc)

    # not copyable
    movable = Box(3)

    # drop() takes its argument by value, so `movable` moves into the
    # closure right here. the closure can run once.
    @closure
    def consume():
        print(f"`movable`: {movable}")
        drop(movable)

    consume()
    # consume()
    # ^ try it: `movable` is already gone


def apply(f, bound: Kind = Kind.FN_ONCE):
    """take f by value and call it once. any closure will do.

    pass bound=Kind.FN or Kind.FN_MUT to see which closures stop fitting.
    """
    f = require(f, bound)
    f.call_once()


def apply_to_3(f) -> int:
    """call f(3). f must only read what it captured."""
    c = require(f, Kind.FN)
    try:
        result = c(3)
    finally:
        if c is not f:
            c.release()
    if not isinstance(result, int) or isinstance(result, bool):
        raise TypeError(f"`{c.name}` must return an int, got {type(result).__name__}")
    return result


def as_input():
    greeting = "hello"
    # not copyable
    farewell = String("goodbye")

    # `greeting` is only read: by reference. push_str() changes
    # `farewell` in place: by mutable reference.
    @closure
    def diary():
        print(f"I said {greeting}.")

        farewell.push_str("!!!")
        print(f"Then I screamed {farewell}.")
        print("Now I can sleep. zzzzz")

        # drop(farewell)
        # ^ try it: `farewell` is now captured by value, `diary` turns FnOnce

    apply(diary)

    double = closure(lambda x: 2 * x, name="double")

    print(f"3 doubled: {apply_to_3(double)}")


# name -> (routine, one-line description)
DEMOS = {
    "capture": (capture, "capture by reference, by mutable reference, and by value"),
    "as_input": (as_input, "closures passed to apply() and apply_to_3()"),
}


def resolve(names=None) -> list[str]:
    """validate demo names. None means all, in order."""
    if not names:
        return list(DEMOS)
    unknown = [n for n in names if n not in DEMOS]
    if unknown:
        raise ValueError(f"unknown demo: {', '.join(unknown)} (one of {', '.join(DEMOS)})")
    return list(names)


def run(names=None):
    """run the named demos in order, each inside its own span."""
    for name in resolve(names):
        fn, _ = DEMOS[name]
        with demo_span(name):
            debug("demo", f"running {name}")
            fn()
