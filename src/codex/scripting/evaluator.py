"""Sandboxed interpreter for story scripts.

Story code is written in a small subset of Python syntax. Source is parsed
with :mod:`ast` and the tree is walked directly; nothing is handed to
``eval`` or ``exec``. Supported statements are assignment (including ``+=``
style), ``if``/``elif``/``else``, ``for``, ``while``, ``def``, ``return``,
``global``, ``pass``, ``break`` and ``continue``. Mappings support attribute
access (``s.gold``) as well as subscripts, which is how the section and
ephemeral scopes are reached. ``true``, ``false`` and ``nil`` are accepted as
aliases of ``True``, ``False`` and ``None``.
"""
from __future__ import annotations

import ast
import operator
import textwrap
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Set, Tuple

from codex.core.rng import RNG
from codex.core.types import Value
from codex.scripting.bridge import ParseMode
from codex.scripting.errors import ScriptError

_MAX_LOOP_ITERATIONS = 10_000
_MAX_CALL_DEPTH = 64

_CONSTANTS: Dict[str, Any] = {"true": True, "false": False, "nil": None}

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES: Tuple[type, ...] = (
    ast.Module,
    ast.Expression,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.If,
    ast.For,
    ast.While,
    ast.Return,
    ast.FunctionDef,
    ast.arguments,
    ast.arg,
    ast.Pass,
    ast.Break,
    ast.Continue,
    ast.Global,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.BinOp,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Constant,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.List,
    ast.Tuple,
    ast.Dict,
    ast.JoinedStr,
    ast.FormattedValue,
    *_BINARY_OPS.keys(),
    *_COMPARE_OPS.keys(),
)

# Runtime failures from Python operators and builtins that become ScriptErrors.
_RUNTIME_ERRORS = (ArithmeticError, TypeError, ValueError, LookupError, AttributeError)


@dataclass(slots=True)
class ScriptFunction:
    """A function defined by story code with ``def``."""

    name: str
    params: List[str]
    defaults: List[Any]
    body: List[ast.stmt]


@dataclass(slots=True)
class _Frame:
    locals: Dict[str, Any] | None = None
    global_names: Set[str] = field(default_factory=set)


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        super().__init__()
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class ExpressionEngine:
    """Script engine backed by an AST walker with a single global table."""

    def __init__(self, *, rng: RNG | None = None) -> None:
        self._globals: Dict[str, Any] = {}
        self._rng = rng or RNG()
        self._parsed: Dict[Tuple[str, str], ast.AST] = {}
        self._depth = 0
        self._builtins: Dict[str, Callable[..., Any]] = {
            "abs": abs,
            "bool": bool,
            "choice": self._rng.choice,
            "float": float,
            "int": int,
            "keys": lambda mapping: list(mapping.keys()),
            "len": len,
            "max": max,
            "min": min,
            "random": self._rng.randint,
            "range": _bounded_range,
            "roll": self._rng.roll,
            "round": round,
            "sorted": sorted,
            "str": self.to_text,
            "sum": sum,
        }

    # ------------------------------------------------------------------ bridge

    def check(self, code: str, mode: ParseMode = "exec") -> None:
        self._parse(code, mode)

    def execute(self, code: str) -> Any:
        tree = self._parse(code, "exec")
        assert isinstance(tree, ast.Module)
        return self._guard(lambda: self._run_body(tree.body, _Frame()))

    def evaluate(self, expression: str) -> Any:
        tree = self._parse(expression, "eval")
        assert isinstance(tree, ast.Expression)
        return self._guard(lambda: self._eval(tree.body, _Frame()))

    def get_global(self, name: str) -> Any:
        return self._globals.get(name)

    def has_global(self, name: str) -> bool:
        return name in self._globals

    def set_global(self, name: str, value: Value) -> None:
        if name in _CONSTANTS:
            raise ScriptError(f"'{name}' is a constant and cannot be assigned.")
        self._globals[name] = value

    def delete_global(self, name: str) -> None:
        self._globals.pop(name, None)

    def call_named(self, name: str, *args: Value) -> Any:
        target = self._globals.get(name)
        if isinstance(target, ScriptFunction):
            return self._guard(lambda: self._call_function(target, list(args)))
        if name in self._builtins:
            return self._guard(lambda: self._builtins[name](*args))
        raise ScriptError(f"'{name}' is not a function.")

    def get_all_globals(self) -> Dict[str, Value]:
        return {
            name: value
            for name, value in self._globals.items()
            if not isinstance(value, ScriptFunction)
        }

    def to_text(self, value: Any) -> str:
        if value is True:
            return "true"
        if value is False:
            return "false"
        if value is None:
            return "nil"
        if isinstance(value, list):
            return "[" + ", ".join(self.to_text(item) for item in value) + "]"
        if isinstance(value, dict):
            pairs = ", ".join(f"{key}: {self.to_text(item)}" for key, item in value.items())
            return "{" + pairs + "}"
        if isinstance(value, ScriptFunction):
            return f"<function {value.name}>"
        return str(value)

    # ----------------------------------------------------------------- parsing

    def _parse(self, code: str, mode: ParseMode) -> ast.AST:
        source = textwrap.dedent(code).strip()
        cache_key = (mode, source)
        cached = self._parsed.get(cache_key)
        if cached is not None:
            return cached
        try:
            tree = ast.parse(source, mode=mode)
        except SyntaxError as exc:
            raise ScriptError(f"Syntax error in {source!r}: {exc.msg} (line {exc.lineno})") from exc
        for node in ast.walk(tree):
            self._validate_node(node, source)
        self._parsed[cache_key] = tree
        return tree

    @staticmethod
    def _validate_node(node: ast.AST, source: str) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            raise ScriptError(f"Unsupported syntax {type(node).__name__} in {source!r}.")
        if isinstance(node, ast.Constant) and not (
            node.value is None or isinstance(node.value, (bool, int, float, str))
        ):
            raise ScriptError(f"Unsupported literal {node.value!r} in {source!r}.")
        if isinstance(node, ast.FunctionDef):
            args = node.args
            if node.decorator_list or args.vararg or args.kwarg or args.kwonlyargs or args.posonlyargs:
                raise ScriptError(f"Function '{node.name}' may only take plain positional parameters.")
        if isinstance(node, ast.Dict) and any(key is None for key in node.keys):
            raise ScriptError(f"Mapping unpacking is not supported in {source!r}.")
        if isinstance(node, ast.Call) and not isinstance(node.func, ast.Name):
            raise ScriptError(f"Only named functions can be called in {source!r}.")

    # --------------------------------------------------------------- execution

    def _guard(self, action: Callable[[], Any]) -> Any:
        try:
            return action()
        except _Return as signal:
            return signal.value
        except (_Break, _Continue) as exc:
            raise ScriptError("'break' and 'continue' are only valid inside loops.") from exc
        except RecursionError as exc:
            raise ScriptError("Script recursion is too deep.") from exc
        except _RUNTIME_ERRORS as exc:
            raise ScriptError(f"{type(exc).__name__}: {exc}") from exc

    def _run_body(self, body: List[ast.stmt], frame: _Frame) -> Any:
        result = None
        for statement in body:
            result = self._exec(statement, frame)
        return result

    def _exec(self, node: ast.stmt, frame: _Frame) -> Any:
        if isinstance(node, ast.Expr):
            return self._eval(node.value, frame)
        if isinstance(node, ast.Assign):
            value = self._eval(node.value, frame)
            for target in node.targets:
                self._assign(target, value, frame)
            return None
        if isinstance(node, ast.AugAssign):
            current = self._eval(_as_load(node.target), frame)
            operand = self._eval(node.value, frame)
            self._assign(node.target, _BINARY_OPS[type(node.op)](current, operand), frame)
            return None
        if isinstance(node, ast.If):
            branch = node.body if self._eval(node.test, frame) else node.orelse
            return self._run_body(branch, frame)
        if isinstance(node, ast.For):
            self._exec_for(node, frame)
            return None
        if isinstance(node, ast.While):
            self._exec_while(node, frame)
            return None
        if isinstance(node, ast.FunctionDef):
            function = ScriptFunction(
                name=node.name,
                params=[arg.arg for arg in node.args.args],
                defaults=[self._eval(default, frame) for default in node.args.defaults],
                body=node.body,
            )
            self._store_name(node.name, function, frame)
            return None
        if isinstance(node, ast.Return):
            raise _Return(self._eval(node.value, frame) if node.value is not None else None)
        if isinstance(node, ast.Global):
            frame.global_names.update(node.names)
            return None
        if isinstance(node, ast.Break):
            raise _Break()
        if isinstance(node, ast.Continue):
            raise _Continue()
        if isinstance(node, ast.Pass):
            return None
        raise ScriptError(f"Unsupported statement {type(node).__name__}.")

    def _exec_for(self, node: ast.For, frame: _Frame) -> None:
        iterable = self._eval(node.iter, frame)
        if isinstance(iterable, dict):
            items = list(iterable.keys())
        elif isinstance(iterable, (list, str)):
            items = list(iterable)
        else:
            raise ScriptError(f"Cannot loop over {self.to_text(iterable)}.")
        if len(items) > _MAX_LOOP_ITERATIONS:
            raise ScriptError("Loop exceeds the iteration limit.")
        for item in items:
            self._assign(node.target, item, frame)
            try:
                self._run_body(node.body, frame)
            except _Break:
                break
            except _Continue:
                continue
        else:
            self._run_body(node.orelse, frame)

    def _exec_while(self, node: ast.While, frame: _Frame) -> None:
        iterations = 0
        while self._eval(node.test, frame):
            iterations += 1
            if iterations > _MAX_LOOP_ITERATIONS:
                raise ScriptError("Loop exceeds the iteration limit.")
            try:
                self._run_body(node.body, frame)
            except _Break:
                break
            except _Continue:
                continue
        else:
            self._run_body(node.orelse, frame)

    def _assign(self, target: ast.expr, value: Any, frame: _Frame) -> None:
        if isinstance(target, ast.Name):
            self._store_name(target.id, value, frame)
            return
        if isinstance(target, ast.Attribute):
            container = self._eval(target.value, frame)
            if not isinstance(container, dict):
                raise ScriptError(f"Cannot set '{target.attr}' on {self.to_text(container)}.")
            container[target.attr] = value
            return
        if isinstance(target, ast.Subscript):
            container = self._eval(target.value, frame)
            key = self._eval(target.slice, frame)
            if isinstance(container, dict):
                if not isinstance(key, str):
                    raise ScriptError("Mapping keys must be strings.")
                container[key] = value
                return
            if isinstance(container, list) and isinstance(key, int):
                container[key] = value
                return
            raise ScriptError(f"Cannot assign into {self.to_text(container)}.")
        raise ScriptError(f"Unsupported assignment target {type(target).__name__}.")

    def _store_name(self, name: str, value: Any, frame: _Frame) -> None:
        if name in _CONSTANTS:
            raise ScriptError(f"'{name}' is a constant and cannot be assigned.")
        if frame.locals is not None and name not in frame.global_names:
            frame.locals[name] = value
        else:
            self._globals[name] = value

    def _lookup(self, name: str, frame: _Frame) -> Any:
        if frame.locals is not None and name not in frame.global_names and name in frame.locals:
            return frame.locals[name]
        if name in self._globals:
            return self._globals[name]
        if name in _CONSTANTS:
            return _CONSTANTS[name]
        raise ScriptError(f"name '{name}' is not defined")

    def _call_function(self, function: ScriptFunction, args: List[Any]) -> Any:
        params = function.params
        if len(args) > len(params):
            raise ScriptError(f"{function.name}() takes {len(params)} arguments but {len(args)} were given.")
        missing = len(params) - len(args)
        if missing > len(function.defaults):
            raise ScriptError(f"{function.name}() is missing required arguments.")
        if missing:
            args = args + function.defaults[len(function.defaults) - missing :]
        if self._depth >= _MAX_CALL_DEPTH:
            raise ScriptError("Script recursion is too deep.")
        frame = _Frame(locals=dict(zip(params, args)))
        self._depth += 1
        try:
            self._run_body(function.body, frame)
        except _Return as signal:
            return signal.value
        except (_Break, _Continue) as exc:
            raise ScriptError("'break' and 'continue' are only valid inside loops.") from exc
        finally:
            self._depth -= 1
        return None

    # ------------------------------------------------------------- expressions

    def _eval(self, node: ast.expr, frame: _Frame) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            value = self._lookup(node.id, frame)
            if isinstance(value, ScriptFunction):
                raise ScriptError(f"Function '{node.id}' can only be called, not used as a value.")
            return value
        if isinstance(node, ast.Attribute):
            container = self._eval(node.value, frame)
            if not isinstance(container, dict):
                raise ScriptError(f"Cannot read '{node.attr}' from {self.to_text(container)}.")
            return container.get(node.attr)
        if isinstance(node, ast.Subscript):
            container = self._eval(node.value, frame)
            key = self._eval(node.slice, frame)
            if isinstance(container, dict):
                return container.get(key)
            return container[key]
        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower, frame) if node.lower is not None else None,
                self._eval(node.upper, frame) if node.upper is not None else None,
                self._eval(node.step, frame) if node.step is not None else None,
            )
        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(element, frame) for element in node.elts]
        if isinstance(node, ast.Dict):
            result: Dict[str, Any] = {}
            for key_node, value_node in zip(node.keys, node.values):
                assert key_node is not None
                key = self._eval(key_node, frame)
                if not isinstance(key, str):
                    raise ScriptError("Mapping keys must be strings.")
                result[key] = self._eval(value_node, frame)
            return result
        if isinstance(node, ast.BoolOp):
            return self._eval_bool_op(node, frame)
        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, frame)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            return +operand
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, frame)
            right = self._eval(node.right, frame)
            return _BINARY_OPS[type(node.op)](left, right)
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, frame)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, frame)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            branch = node.body if self._eval(node.test, frame) else node.orelse
            return self._eval(branch, frame)
        if isinstance(node, ast.Call):
            return self._eval_call(node, frame)
        if isinstance(node, ast.JoinedStr):
            return "".join(self._eval_fstring_part(part, frame) for part in node.values)
        raise ScriptError(f"Unsupported expression {type(node).__name__}.")

    def _eval_bool_op(self, node: ast.BoolOp, frame: _Frame) -> Any:
        value: Any = None
        for operand in node.values:
            value = self._eval(operand, frame)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    def _eval_call(self, node: ast.Call, frame: _Frame) -> Any:
        assert isinstance(node.func, ast.Name)
        name = node.func.id
        args = [self._eval(arg, frame) for arg in node.args]
        try:
            target = self._lookup(name, frame)
        except ScriptError:
            target = None
        if isinstance(target, ScriptFunction):
            return self._call_function(target, args)
        if target is None and name in self._builtins:
            return self._builtins[name](*args)
        raise ScriptError(f"'{name}' is not a function.")

    def _eval_fstring_part(self, part: ast.expr, frame: _Frame) -> str:
        if isinstance(part, ast.Constant):
            return str(part.value)
        assert isinstance(part, ast.FormattedValue)
        value = self._eval(part.value, frame)
        if part.format_spec is not None:
            spec = self._eval(part.format_spec, frame)
            return format(value, spec)
        return self.to_text(value)


def _as_load(target: ast.expr) -> ast.expr:
    """Return a copy of an assignment target usable for reading."""
    if isinstance(target, ast.Name):
        return ast.Name(id=target.id, ctx=ast.Load())
    if isinstance(target, ast.Attribute):
        return ast.Attribute(value=target.value, attr=target.attr, ctx=ast.Load())
    if isinstance(target, ast.Subscript):
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())
    raise ScriptError(f"Unsupported assignment target {type(target).__name__}.")


def _bounded_range(*args: int) -> List[int]:
    values = range(*args)
    if len(values) > _MAX_LOOP_ITERATIONS:
        raise ScriptError("range() exceeds the iteration limit.")
    return list(values)
