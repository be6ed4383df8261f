# relnotes/core/templating/predicates.py
"""
Turns the predicate argument of ``filter``, ``reduce`` and ``some`` into a
callable ``(item, index, collection) -> bool``.
"""
import ast
import re
import textwrap
from typing import Any, Callable, Optional, Sequence, Union

import structlog

from relnotes.exceptions import ExpressionError
from relnotes.util import is_truthy
from .expressions import Expression, compile_unsafe_function, single_return_expression

log = structlog.get_logger(__name__)

PredicateFunction = Callable[[Any, Optional[int], Optional[Sequence[Any]]], bool]

# Names visible inside a predicate. ``array`` is the older name for ``collection``.
PREDICATE_NAMES = ("item", "index", "collection", "array", "this")

_FUNCTION_HEADER = re.compile(r"^(?:def\s+\w*\s*\([^)]*\)\s*(?:->\s*[^:]+)?:|lambda\b[^:]*:)")
_RETURN_KEYWORD = re.compile(r"\breturn\b")


def _has_return_statement(body: str) -> bool:
    try:
        ast.parse(body, mode="eval")
        return False
    except SyntaxError:
        pass
    try:
        tree = ast.parse(body)
    except SyntaxError:
        # Let compilation report the error; only the keyword decides the prefix.
        return bool(_RETURN_KEYWORD.search(body))
    return any(isinstance(node, ast.Return) for node in ast.walk(tree))


def predicate_body(expression: str) -> str:
    """
    Normalises predicate text into a function body.

    A leading ``def name(...):`` or ``lambda ...:`` header is dropped, and a
    bare expression gets a ``return`` in front so it becomes its own result.
    """
    body = expression.strip()
    header = _FUNCTION_HEADER.match(body)
    if header:
        body = textwrap.dedent(body[header.end():].lstrip(" \t")).strip()
    if not _has_return_statement(body):
        body = f"return {body}"
    return body


class CompiledPredicate:
    """
    A predicate compiled from text; ``item`` is also bound as ``this``.

    Results follow template truthiness (``util.is_truthy``), so an empty list
    or mapping counts as a match.
    """

    def __init__(self, source: str, allow_unsafe_code: bool = False):
        self.source = source
        self.body = predicate_body(source)
        self.allow_unsafe_code = allow_unsafe_code
        if allow_unsafe_code:
            function_source = "def compiled_predicate(item, index=None, collection=None, array=None, this=None):\n"
            function_source += textwrap.indent(self.body, "    ")
            self._function = compile_unsafe_function(function_source, "compiled_predicate")
        else:
            self._expression = Expression(single_return_expression(self.body), PREDICATE_NAMES)

    def __call__(self, item: Any, index: Optional[int] = None, collection: Optional[Sequence[Any]] = None) -> bool:
        if not self.allow_unsafe_code:
            return is_truthy(self._expression.evaluate(item=item, index=index, collection=collection, array=collection, this=item))
        try:
            return is_truthy(self._function(item, index, collection, array=collection, this=item))
        except Exception as e:
            raise ExpressionError(
                f"predicate {self.source!r} failed: {type(e).__name__}: {e}", expression=self.source
            ) from e

    def __repr__(self) -> str:
        return f"CompiledPredicate({self.source!r})"


def compile_predicate(predicate: Union[str, Callable[..., Any]], allow_unsafe_code: bool = False) -> Callable[..., Any]:
    """
    Returns ``predicate`` unchanged when it is already callable, otherwise
    compiles it. Strings are recompiled on every call; nothing is cached.
    """
    if callable(predicate):
        return predicate
    if not isinstance(predicate, str):
        raise ExpressionError(f"predicate must be an expression string or a callable, got {type(predicate).__name__}")
    log.debug("compiling_predicate", predicate=predicate, unsafe=allow_unsafe_code)
    return CompiledPredicate(predicate, allow_unsafe_code=allow_unsafe_code)
