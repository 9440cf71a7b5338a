#!/usr/bin/env python3
"""
Try It
Every line the demos leave commented out, run on purpose.
"""

from capturedemo import (
    Box, CaptureError, Kind, String, apply, apply_to_3, borrow_mut, closure, drop,
)


def attempt(label, fn):
    try:
        fn()
    except CaptureError as e:
        print(f"  [{label}] refused: {type(e).__name__}: {e}")
    else:
        print(f"  [{label}] allowed")


def demo():
    print("=" * 60)
    print("TRY IT")
    print("What a borrow checker refuses, refused at run time.")
    print("=" * 60)

    # --- reborrow while `inc` is alive ---
    count = 0

    @closure(mut=True)
    def inc():
        nonlocal count
        count += 1

    inc()
    print(f"\n[{inc.name}] {inc.kind}: {inc.kind.describe()}")
    attempt("reborrow count", lambda: borrow_mut(inc, "count"))
    drop(inc)
    attempt("reborrow count after drop", lambda: borrow_mut(inc, "count"))

    # --- calling a single-use closure twice ---
    movable = Box(3)

    @closure
    def consume():
        print(f"  `movable`: {movable}")
        drop(movable)

    print(f"\n[{consume.name}] {consume.kind}: {consume.kind.describe()}")
    consume()
    attempt("consume again", consume)
    attempt("touch movable", movable.get)

    # --- diary with drop(farewell) ---
    farewell = String("goodbye")

    @closure
    def diary():
        farewell.push_str("!!!")
        print(f"  Then I screamed {farewell}.")
        drop(farewell)

    print(f"\n[{diary.name}] {diary.kind}: {diary.kind.describe()}")
    for name, cap in diary.captures.items():
        print(f"  {name}: {cap.mode.describe()} (line {cap.line}, {cap.reason})")

    # --- FnOnce swapped for Fn in apply() ---
    attempt("apply with an Fn bound", lambda: apply(diary, bound=Kind.FN))
    apply(diary)

    # --- a mutating closure where Fn is required ---
    total = 0

    @closure(mut=True)
    def add(x):
        nonlocal total
        total += x
        return total

    attempt("apply_to_3(add)", lambda: apply_to_3(add))
    print()


if __name__ == "__main__":
    demo()
