"""analysis.py - decide how a closure captures each outer variable.

reads the closure's body once, at construction, and picks the least
restrictive mode every use of a free variable allows:

    only read                      -> REF   (by reference)
    rebound, or mutated in place   -> MUT   (by mutable reference)
    dropped, deleted, taken        -> MOVE  (by value)

uses the stdlib ast module on the defining file. when the source is
gone (exec, the REPL) it falls back to bytecode, which can see
rebinding but nothing else.
"""

import ast
import dis
import linecache
from collections import deque
from dataclasses import dataclass
from enum import IntEnum

from capturedemo.log import debug, warn


class CaptureMode(IntEnum):
    REF = 1
    MUT = 2
    MOVE = 3

    def describe(self) -> str:
        return {
            CaptureMode.REF: "by reference",
            CaptureMode.MUT: "by mutable reference",
            CaptureMode.MOVE: "by value",
        }[self]


@dataclass
class Capture:
    """how one free variable is captured, and the use that decided it."""
    name: str
    mode: CaptureMode = CaptureMode.REF
    line: int = 0
    reason: str = "read"
    copied: bool = False  # moved, but the value was a copy


# methods that change their receiver in place
MUTATING_METHODS = frozenset({
    "push_str", "push", "append", "extend", "insert", "pop", "popitem",
    "remove", "clear", "update", "add", "discard", "setdefault", "sort",
    "reverse", "set", "write",
})

# methods that move their receiver's value out
CONSUMING_METHODS = frozenset({"take", "move", "into_inner"})

# functions that take ownership of their argument
CONSUMING_FUNCTIONS = frozenset({"drop"})


def infer_captures(fn) -> dict[str, Capture]:
    """one Capture per free variable of fn, keyed by name."""
    code = fn.__code__
    free = code.co_freevars
    if not free:
        return {}

    node = function_node(fn)
    if node is None:
        warn("analysis", f"no source for `{fn.__name__}`, reading bytecode instead",
             function=fn.__qualname__)
        return _from_bytecode(code)

    captures = _from_ast(node, free)
    debug("analysis", f"`{fn.__name__}` captures " + ", ".join(
        f"{c.name} {c.mode.describe()}" for c in captures.values()))
    return captures


# ============================================================
# SOURCE LOOKUP
# ============================================================

_trees: dict[tuple, ast.Module] = {}


def _module_tree(filename: str):
    lines = linecache.getlines(filename)
    if not lines:
        return None
    key = (filename, hash("".join(lines)))
    tree = _trees.get(key)
    if tree is None:
        try:
            tree = ast.parse("".join(lines), filename=filename)
        except SyntaxError:
            return None
        _trees[key] = tree
    return tree


def _arg_names(args: ast.arguments) -> list[str]:
    return [a.arg for a in args.posonlyargs + args.args]


def function_node(fn):
    """the Lambda or FunctionDef node that compiled into fn, or None."""
    code = fn.__code__
    tree = _module_tree(code.co_filename)
    if tree is None:
        return None

    wanted_args = list(code.co_varnames[:code.co_argcount])
    is_lambda = code.co_name == "<lambda>"

    for node in ast.walk(tree):
        if is_lambda and isinstance(node, ast.Lambda):
            if node.lineno == code.co_firstlineno and _arg_names(node.args) == wanted_args:
                return node
        elif not is_lambda and isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if node.name != code.co_name:
                continue
            first = min([node.lineno] + [d.lineno for d in node.decorator_list])
            if code.co_firstlineno in (first, node.lineno):
                return node
    return None


# ============================================================
# BODY WALK
# ============================================================

def _parents(root) -> dict:
    parents = {}
    for parent in ast.walk(root):
        for child in ast.iter_child_nodes(parent):
            parents[child] = parent
    return parents


def _call_name(func) -> str:
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return ""


def classify_use(name_node: ast.Name, parents: dict) -> tuple[CaptureMode, str]:
    """capture mode one occurrence of a name requires, and why."""
    if isinstance(name_node.ctx, ast.Del):
        return CaptureMode.MOVE, "deleted"
    if isinstance(name_node.ctx, ast.Store):
        return CaptureMode.MUT, "rebound"

    parent = parents.get(name_node)

    if isinstance(parent, ast.Attribute) and parent.value is name_node:
        if isinstance(parent.ctx, (ast.Store, ast.Del)):
            return CaptureMode.MUT, f"assigns .{parent.attr}"
        grand = parents.get(parent)
        if isinstance(grand, ast.Call) and grand.func is parent:
            if parent.attr in CONSUMING_METHODS:
                return CaptureMode.MOVE, f"calls .{parent.attr}()"
            if parent.attr in MUTATING_METHODS:
                return CaptureMode.MUT, f"calls .{parent.attr}()"
        return CaptureMode.REF, "read"

    if isinstance(parent, ast.Subscript) and parent.value is name_node:
        if isinstance(parent.ctx, (ast.Store, ast.Del)):
            return CaptureMode.MUT, "assigns an item"
        return CaptureMode.REF, "read"

    if isinstance(parent, ast.Call) and name_node in parent.args:
        fname = _call_name(parent.func)
        if fname in CONSUMING_FUNCTIONS:
            return CaptureMode.MOVE, f"passed to {fname}()"

    return CaptureMode.REF, "read"


# nodes that open a scope of their own
_SCOPES = (
    ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef,
    ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp,
)


def _own_nodes(scope):
    """descendants of scope that are not inside a nested scope."""
    todo = list(ast.iter_child_nodes(scope))
    while todo:
        node = todo.pop()
        yield node
        if not isinstance(node, _SCOPES):
            todo.extend(ast.iter_child_nodes(node))


def _local_names(scope) -> set[str]:
    """names a nested scope binds for itself, hiding the outer ones."""
    if isinstance(scope, (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)):
        return {n.id for gen in scope.generators
                for n in ast.walk(gen.target) if isinstance(n, ast.Name)}

    bound = set()
    if not isinstance(scope, ast.ClassDef):
        a = scope.args
        bound.update(x.arg for x in a.posonlyargs + a.args + a.kwonlyargs)
        bound.update(x.arg for x in (a.vararg, a.kwarg) if x is not None)
    if isinstance(scope, ast.Lambda):
        return bound

    declared = set()
    for node in _own_nodes(scope):
        if isinstance(node, (ast.Nonlocal, ast.Global)):
            declared.update(node.names)
        elif isinstance(node, ast.Name) and not isinstance(node.ctx, ast.Load):
            bound.add(node.id)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            bound.add(node.name)
    return bound - declared


def _uses(root, names):
    """every Name in root that refers to one of names from root's scope."""
    todo = deque((child, frozenset()) for child in ast.iter_child_nodes(root))
    while todo:
        node, hidden = todo.popleft()
        if isinstance(node, _SCOPES):
            hidden = hidden | _local_names(node)
        elif isinstance(node, ast.Name) and node.id in names and node.id not in hidden:
            yield node
        todo.extend((child, hidden) for child in ast.iter_child_nodes(node))


def _from_ast(node, free) -> dict[str, Capture]:
    captures = {name: Capture(name=name, line=node.lineno) for name in free}
    parents = _parents(node)
    seen = set()

    for child in _uses(node, captures):
        mode, reason = classify_use(child, parents)
        current = captures[child.id]
        if child.id not in seen or mode > current.mode:
            current.mode = mode
            current.line = child.lineno
            current.reason = reason
            seen.add(child.id)
    return captures


def _from_bytecode(code) -> dict[str, Capture]:
    captures = {name: Capture(name=name, line=code.co_firstlineno) for name in code.co_freevars}
    for ins in dis.get_instructions(code):
        if ins.opname in ("STORE_DEREF", "DELETE_DEREF") and ins.argval in captures:
            cap = captures[ins.argval]
            cap.mode = CaptureMode.MUT
            cap.reason = "rebound"
            if ins.positions and ins.positions.lineno:
                cap.line = ins.positions.lineno
    return captures
