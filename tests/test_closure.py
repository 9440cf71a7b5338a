"""tests for closure classification and the runtime guards."""

import pytest

from capturedemo.analysis import CaptureMode
from capturedemo.closure import Closure, Kind, classify, closure, require, watch
from capturedemo.errors import (
    BorrowError, BoundError, ClosureConsumedError, ClosureReleasedError,
    NotMutableError, UseAfterMoveError,
)
from capturedemo.owned import Box, String, active_loans, borrow, borrow_mut, drop


class TestKind:

    def test_from_modes(self):
        assert Kind.from_modes([]) is Kind.FN
        assert Kind.from_modes([CaptureMode.REF]) is Kind.FN
        assert Kind.from_modes([CaptureMode.REF, CaptureMode.MUT]) is Kind.FN_MUT
        assert Kind.from_modes([CaptureMode.MUT, CaptureMode.MOVE]) is Kind.FN_ONCE

    def test_satisfies(self):
        assert Kind.FN.satisfies(Kind.FN)
        assert Kind.FN.satisfies(Kind.FN_MUT)
        assert Kind.FN.satisfies(Kind.FN_ONCE)
        assert Kind.FN_MUT.satisfies(Kind.FN_ONCE)
        assert not Kind.FN_MUT.satisfies(Kind.FN)
        assert not Kind.FN_ONCE.satisfies(Kind.FN_MUT)
        assert not Kind.FN_ONCE.satisfies(Kind.FN)

    def test_str(self):
        assert str(Kind.FN_ONCE) == "FnOnce"


class TestByReference:

    def test_repeatable(self, capsys):
        color = "green"
        print_ = closure(lambda: print(f"`color`: {color}"), name="print")
        assert print_.kind is Kind.FN
        for _ in range(3):
            print_()
        assert capsys.readouterr().out == "`color`: green\n" * 3
        assert color == "green"

    def test_shared_alias_allowed(self):
        color = "green"
        print_ = closure(lambda: print(color), name="print")
        assert borrow(print_, "color").get() == "green"

    def test_exclusive_alias_refused(self):
        color = "green"
        print_ = closure(lambda: print(color), name="print")
        with pytest.raises(BorrowError, match="borrowed as immutable by `print`"):
            borrow_mut(print_, "color")

    def test_outer_owned_cannot_mutate_while_read(self):
        s = String("a")
        reader = closure(lambda: s.as_str(), name="reader")
        assert reader() == "a"
        with pytest.raises(BorrowError):
            s.push_str("b")
        assert s.as_str() == "a"
        reader.release()
        s.push_str("b")
        assert s.as_str() == "ab"


class TestByMutableReference:

    def test_counts(self, capsys):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1
            print(f"`count`: {count}")

        assert inc.kind is Kind.FN_MUT
        inc()
        inc()
        inc()
        assert count == 3
        assert capsys.readouterr().out == "`count`: 1\n`count`: 2\n`count`: 3\n"

    def test_must_be_declared_mut(self):
        count = 0

        @closure
        def inc():
            nonlocal count
            count += 1

        with pytest.raises(NotMutableError):
            inc()
        assert count == 0

    def test_reborrow_refused_while_alive(self):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        inc()
        with pytest.raises(BorrowError, match="more than once"):
            borrow_mut(inc, "count")
        with pytest.raises(BorrowError):
            borrow(inc, "count")

    def test_reborrow_allowed_after_drop(self):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        inc()
        inc()
        drop(inc)
        reborrow = borrow_mut(inc, "count")
        assert reborrow.get() == 2
        reborrow.set(10)
        assert count == 10

    def test_second_mutating_closure_refused(self):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        with pytest.raises(BorrowError, match="borrowed by `inc`"):
            @closure(mut=True)
            def dec():
                nonlocal count
                count -= 1

    def test_failed_build_leaves_no_loans(self):
        count = 0
        s = String("x")

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        with pytest.raises(BorrowError):
            @closure(mut=True)
            def both():
                nonlocal count
                s.push_str("y")
                count += 1

        assert [loan.name for loan in active_loans()] == ["count"]

    def test_owned_value_locked_from_outside(self, capsys):
        farewell = String("goodbye")

        @closure
        def diary():
            farewell.push_str("!!!")
            print(f"Then I screamed {farewell}.")

        with pytest.raises(BorrowError, match="mutably borrowed by `diary`"):
            farewell.as_str()
        diary.call_once()
        assert capsys.readouterr().out == "Then I screamed goodbye!!!.\n"
        assert farewell.as_str() == "goodbye!!!"


class TestByValue:

    def test_single_use(self, capsys):
        movable = Box(3)

        @closure
        def consume():
            print(f"`movable`: {movable}")
            drop(movable)

        assert consume.kind is Kind.FN_ONCE
        consume()
        assert capsys.readouterr().out == "`movable`: 3\n"
        with pytest.raises(ClosureConsumedError):
            consume()
        assert capsys.readouterr().out == ""

    def test_outer_binding_is_moved(self):
        movable = Box(3)

        @closure
        def consume():
            drop(movable)

        with pytest.raises(UseAfterMoveError, match="moved into `consume`"):
            movable.get()
        with pytest.raises(UseAfterMoveError):
            borrow(movable)
        assert consume.alive

    def test_copy_values_are_copied(self):
        n = 5

        @closure
        def show():
            drop(n)
            return n

        assert show.captures["n"].mode is CaptureMode.MOVE
        assert show.captures["n"].copied
        assert show.kind is Kind.FN
        assert show() == 5
        assert show() == 5
        assert n == 5

    def test_moving_a_borrowed_value_refused(self):
        movable = Box(3)
        reader = closure(lambda: print(movable), name="reader")

        with pytest.raises(BorrowError):
            @closure
            def consume():
                drop(movable)

        assert reader.alive
        assert movable.get() == 3


class TestLifecycle:

    def test_with_block_releases(self):
        color = "green"
        with closure(lambda: color, name="peek") as peek:
            assert peek() == "green"
            assert len(active_loans()) == 1
        assert active_loans() == []
        with pytest.raises(ClosureReleasedError):
            peek()

    def test_release_is_idempotent(self):
        c = closure(lambda: None)
        c.release()
        c.release()
        assert c.released
        assert not c.alive

    def test_call_once_ignores_mut_and_spends(self):
        log = []

        @closure
        def push():
            log.append(1)

        assert push.kind is Kind.FN_MUT
        push.call_once()
        assert log == [1]
        assert push.consumed
        with pytest.raises(ClosureConsumedError):
            push.call_once()

    def test_only_functions(self):
        with pytest.raises(TypeError):
            Closure(print)

    def test_closure_passes_through_closure(self):
        c = closure(lambda: None)
        assert closure(c) is c

    def test_repr(self):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        assert repr(inc) == "<Closure inc FnMut count=MUT live>"

    def test_watch_collects(self):
        with watch() as seen:
            a = closure(lambda: 1, name="a")
            b = closure(lambda: 2, name="b")
        closure(lambda: 3, name="c")
        assert seen == [a, b]


class TestRequire:

    def test_wraps_plain_functions(self):
        c = require(lambda x: x, Kind.FN)
        assert isinstance(c, Closure)

    def test_refuses_weaker_closure(self):
        count = 0

        @closure(mut=True)
        def inc():
            nonlocal count
            count += 1

        with pytest.raises(BoundError, match="implements the `Fn` trait"):
            require(inc, Kind.FN)
        assert require(inc, Kind.FN_MUT) is inc

    def test_bound_error_is_type_error(self):
        assert issubclass(BoundError, TypeError)

    def test_refused_plain_function_keeps_its_captures(self):
        movable = Box(3)
        with pytest.raises(BoundError, match="only implements `FnOnce`"):
            require(lambda: drop(movable), Kind.FN)
        assert not movable.moved
        assert movable.get() == 3
        assert active_loans() == []

    def test_refused_plain_function_borrows_nothing(self):
        log = []
        with pytest.raises(BoundError):
            require(lambda: log.append(1), Kind.FN)
        assert active_loans() == []
        log.append(2)
        assert log == [2]


class TestClassify:

    def test_matches_built_closure(self):
        color = "green"
        count = 0
        movable = Box(1)

        def bump():
            nonlocal count
            count += 1

        assert classify(lambda: color) is Kind.FN
        assert classify(bump) is Kind.FN_MUT
        assert classify(lambda: drop(movable)) is Kind.FN_ONCE
        assert classify(bump) is closure(bump, mut=True).kind

    def test_moved_copy_stays_fn(self):
        n = 3
        assert classify(lambda: drop(n)) is Kind.FN

    def test_moves_nothing(self):
        movable = Box(3)
        classify(lambda: drop(movable))
        assert not movable.moved
        assert active_loans() == []
