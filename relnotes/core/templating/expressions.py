# relnotes/core/templating/expressions.py
"""
Compiles the small expressions templates embed in helper arguments.

Predicates (``{{#filter workItems "this.fields['System.WorkItemType'] == 'Bug'"}}``),
the ``eval`` helper and custom helper bodies all go through this module.
Expressions use Python expression syntax and run in one of two modes:

* restricted (default): the expression is parsed with ``ast`` and checked
  against a whitelist when it is compiled. Only literals, the bound names,
  attribute/subscript lookups, operators, conditional expressions and calls
  to ``SAFE_FUNCTIONS`` or whitelisted methods are accepted. Attribute access
  on a mapping reads the key, so ``this.fields`` and ``this["fields"]`` are
  the same lookup. Missing keys and lookups on ``None`` evaluate to ``None``.
* unsafe: the expression is compiled with the built-in ``compile`` and run
  with full interpreter privilege. Only enable it for templates and helper
  files you trust as much as the code running the render.
"""
import ast
import builtins
import datetime
import json
import operator
import os
import re
import textwrap
from collections.abc import Mapping
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple

import structlog

from relnotes.exceptions import ExpressionError

log = structlog.get_logger(__name__)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _today() -> datetime.date:
    return datetime.date.today()


def _env(name: Any) -> Optional[str]:
    return os.environ.get(str(name)) if name else None


SAFE_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "len": len, "str": str, "int": int, "float": float, "bool": bool,
    "abs": abs, "min": min, "max": max, "round": round,
    "any": any, "all": all, "sorted": sorted,
    "now": _now, "today": _today, "env": _env,
}

_STRING_METHODS = frozenset({
    "lower", "upper", "title", "capitalize", "strip", "lstrip", "rstrip",
    "startswith", "endswith", "split", "rsplit", "splitlines", "replace",
    "find", "rfind", "count", "join", "zfill", "isdigit", "isalpha", "isalnum",
})
_MAPPING_METHODS = frozenset({"get", "keys", "values", "items"})
_SEQUENCE_METHODS = frozenset({"count", "index"})
_DATE_METHODS = frozenset({"isoformat", "strftime", "weekday", "isoweekday", "date", "timestamp"})

SAFE_METHODS: Tuple[Tuple[type, FrozenSet[str]], ...] = (
    (str, _STRING_METHODS),
    (Mapping, _MAPPING_METHODS),
    (list, _SEQUENCE_METHODS),
    (tuple, _SEQUENCE_METHODS),
    (datetime.date, _DATE_METHODS),
)

_ALLOWED_NODES = (
    ast.Expression, ast.Constant, ast.Name, ast.Load,
    ast.Attribute, ast.Subscript, ast.Slice,
    ast.BoolOp, ast.And, ast.Or,
    ast.UnaryOp, ast.Not, ast.USub, ast.UAdd,
    ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
    ast.IfExp, ast.Call, ast.keyword,
    ast.List, ast.Tuple, ast.Set, ast.Dict,
    ast.JoinedStr, ast.FormattedValue,
)

_BINARY_OPERATORS = {
    ast.Add: operator.add, ast.Sub: operator.sub, ast.Mult: operator.mul,
    ast.Div: operator.truediv, ast.FloorDiv: operator.floordiv, ast.Mod: operator.mod,
}
_UNARY_OPERATORS = {ast.Not: operator.not_, ast.USub: operator.neg, ast.UAdd: operator.pos}
_COMPARISONS = {
    ast.Eq: operator.eq, ast.NotEq: operator.ne,
    ast.Lt: operator.lt, ast.LtE: operator.le, ast.Gt: operator.gt, ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b, ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_, ast.IsNot: operator.is_not,
}
_CONVERSIONS = {ord("s"): str, ord("r"): repr, ord("a"): ascii}


def allowed_methods(value: Any) -> FrozenSet[str]:
    names: FrozenSet[str] = frozenset()
    for value_type, methods in SAFE_METHODS:
        if isinstance(value, value_type):
            names = names | methods
    return names


def unsafe_namespace(**names: Any) -> Dict[str, Any]:
    """Globals for code run in unsafe mode: builtins plus a few stdlib modules."""
    namespace: Dict[str, Any] = {
        "__builtins__": builtins,
        "datetime": datetime,
        "json": json,
        "os": os,
        "re": re,
    }
    namespace.update(names)
    return namespace


class _RestrictedExpressionValidator(ast.NodeVisitor):
    """Rejects anything outside the restricted grammar before evaluation."""

    def __init__(self, source: str, names: Iterable[str]):
        self.source = source
        self.names = frozenset(names)

    def _reject(self, message: str):
        raise ExpressionError(f"{message} in expression {self.source!r}", expression=self.source)

    def generic_visit(self, node: ast.AST):
        if not isinstance(node, _ALLOWED_NODES):
            self._reject(f"'{type(node).__name__}' is not allowed")
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name):
        if node.id not in self.names and node.id not in SAFE_FUNCTIONS:
            self._reject(f"unknown name '{node.id}'")

    def visit_Attribute(self, node: ast.Attribute):
        if node.attr.startswith("_"):
            self._reject(f"access to '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call):
        if isinstance(node.func, ast.Name):
            if node.func.id not in SAFE_FUNCTIONS:
                self._reject(f"call to '{node.func.id}' is not allowed")
        elif not isinstance(node.func, ast.Attribute):
            self._reject("only named functions and methods can be called")
        if any(isinstance(arg, ast.Starred) for arg in node.args) or any(kw.arg is None for kw in node.keywords):
            self._reject("argument unpacking is not allowed")
        self.generic_visit(node)


class _RestrictedExpressionEvaluator(ast.NodeVisitor):
    """Walks a validated expression tree and computes its value."""

    def __init__(self, names: Dict[str, Any]):
        self.names = names

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in self.names:
            return self.names[node.id]
        return SAFE_FUNCTIONS[node.id]

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        target = self.visit(node.value)
        if target is None:
            return None
        if isinstance(target, Mapping):
            if node.attr in target:
                return target[node.attr]
            if node.attr in _MAPPING_METHODS:
                return getattr(target, node.attr)
            return None
        if node.attr in allowed_methods(target):
            return getattr(target, node.attr)
        value = getattr(target, node.attr, None)
        if callable(value):
            raise ExpressionError(f"method '{node.attr}' is not available on {type(target).__name__}")
        return value

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        target = self.visit(node.value)
        if target is None:
            return None
        key = self.visit(node.slice)
        try:
            return target[key]
        except (KeyError, IndexError, TypeError):
            return None

    def visit_Slice(self, node: ast.Slice) -> slice:
        lower = self.visit(node.lower) if node.lower else None
        upper = self.visit(node.upper) if node.upper else None
        step = self.visit(node.step) if node.step else None
        return slice(lower, upper, step)

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        value = None
        for operand in node.values:
            value = self.visit(operand)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        return _UNARY_OPERATORS[type(node.op)](self.visit(node.operand))

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        return _BINARY_OPERATORS[type(node.op)](self.visit(node.left), self.visit(node.right))

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for comparison, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not _COMPARISONS[type(comparison)](left, right):
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Call(self, node: ast.Call) -> Any:
        if isinstance(node.func, ast.Name):
            function = SAFE_FUNCTIONS[node.func.id]
        else:
            target = self.visit(node.func.value)
            if node.func.attr not in allowed_methods(target):
                raise ExpressionError(f"method '{node.func.attr}' is not available on {type(target).__name__}")
            function = getattr(target, node.func.attr)
        args = [self.visit(arg) for arg in node.args]
        kwargs = {kw.arg: self.visit(kw.value) for kw in node.keywords}
        return function(*args, **kwargs)

    def visit_List(self, node: ast.List) -> list:
        return [self.visit(element) for element in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.visit(element) for element in node.elts)

    def visit_Set(self, node: ast.Set) -> set:
        return {self.visit(element) for element in node.elts}

    def visit_Dict(self, node: ast.Dict) -> dict:
        return {self.visit(key): self.visit(value) for key, value in zip(node.keys, node.values)}

    def visit_JoinedStr(self, node: ast.JoinedStr) -> str:
        return "".join(str(self.visit(part)) for part in node.values)

    def visit_FormattedValue(self, node: ast.FormattedValue) -> str:
        value = self.visit(node.value)
        if node.conversion in _CONVERSIONS:
            value = _CONVERSIONS[node.conversion](value)
        spec = self.visit(node.format_spec) if node.format_spec else ""
        return format(value, spec)


class Expression:
    """
    An expression compiled once against a fixed set of parameter names.

    ``evaluate(**values)`` binds those names and returns the expression's
    value. Any failure while evaluating is raised as ``ExpressionError`` with
    the expression text attached so template authors can find it.
    """

    def __init__(self, source: str, names: Iterable[str] = ("this",), allow_unsafe_code: bool = False):
        self.source = source.strip()
        self.names = tuple(names)
        self.allow_unsafe_code = allow_unsafe_code
        if not self.source:
            raise ExpressionError("empty expression", expression=source)
        try:
            if allow_unsafe_code:
                self._code = compile(self.source, "<expression>", "eval")
            else:
                self._tree = ast.parse(self.source, mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"invalid expression {self.source!r}: {e.msg}", expression=self.source) from e
        if not allow_unsafe_code:
            _RestrictedExpressionValidator(self.source, self.names).visit(self._tree)
        log.debug("expression_compiled", expression=self.source, unsafe=allow_unsafe_code)

    def evaluate(self, **values: Any) -> Any:
        bound = {name: values.get(name) for name in self.names}
        try:
            if self.allow_unsafe_code:
                return eval(self._code, unsafe_namespace(**bound))
            return _RestrictedExpressionEvaluator(bound).visit(self._tree)
        except ExpressionError as e:
            if e.expression is None:
                e.expression = self.source
            raise
        except Exception as e:
            raise ExpressionError(
                f"expression {self.source!r} failed: {type(e).__name__}: {e}", expression=self.source
            ) from e

    def __repr__(self) -> str:
        mode = "unsafe" if self.allow_unsafe_code else "restricted"
        return f"Expression({self.source!r}, {mode})"


def single_return_expression(body: str) -> str:
    """
    Returns the expression text of a body consisting of one ``return`` statement
    (a leading docstring is allowed). Restricted mode accepts nothing else.
    """
    body = textwrap.dedent(body).strip()
    try:
        tree = ast.parse(body)
    except SyntaxError as e:
        raise ExpressionError(f"invalid body {body!r}: {e.msg}", expression=body) from e
    statements = tree.body
    if statements and isinstance(statements[0], ast.Expr) and isinstance(getattr(statements[0].value, "value", None), str):
        statements = statements[1:]
    if len(statements) != 1 or not isinstance(statements[0], ast.Return) or statements[0].value is None:
        raise ExpressionError(
            f"restricted expressions must be a single 'return <expression>', got {body!r}; "
            "enable allow_unsafe_code for full function bodies",
            expression=body,
        )
    return ast.get_source_segment(body, statements[0].value)


def compile_unsafe_function(source: str, name: str) -> Callable[..., Any]:
    """Executes a ``def`` block in a fresh namespace and returns the function it defines."""
    namespace = unsafe_namespace()
    try:
        exec(compile(source, f"<{name}>", "exec"), namespace)
    except SyntaxError as e:
        raise ExpressionError(f"invalid code for '{name}': {e.msg} (line {e.lineno})", expression=source) from e
    except Exception as e:
        raise ExpressionError(f"defining '{name}' failed: {type(e).__name__}: {e}", expression=source) from e
    function = namespace.get(name)
    if not callable(function):
        raise ExpressionError(f"code does not define a function named '{name}'", expression=source)
    return function
