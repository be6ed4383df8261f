# relnotes/core/templating/custom_helpers.py
"""
Loads user-supplied helper functions.

Helpers arrive either as raw source text holding top-level ``def`` blocks::

    def shortSha(sha):
        return sha[:7]

    def date():
        return today().isoformat()

or as ``HelperDefinition`` records. In restricted mode each helper body must
be a single ``return <expression>`` (see ``expressions``); with unsafe code
enabled each block is executed as ordinary Python.
"""
import ast
import functools
import inspect
import re
import textwrap
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from relnotes.exceptions import ExpressionError, HelperDefinitionError
from .expressions import Expression, compile_unsafe_function, single_return_expression
from .helpers import receiver_of, split_options
from .predicates import predicate_body

log = structlog.get_logger(__name__)

_DEFINITION_HEADER = re.compile(r"^def[ \t]+([A-Za-z_]\w*)[ \t]*\(", re.MULTILINE)

# Parameters filled from the pybars call rather than from template arguments.
RECEIVER_PARAMETER = "this"
OPTIONS_PARAMETER = "options"


@dataclass(frozen=True)
class HelperDefinition:
    """A custom helper given as structured data instead of source text."""
    name: str
    params: Tuple[str, ...] = ()
    body: str = ""


def split_definition_blocks(source: str) -> List[Tuple[str, str]]:
    """
    Cuts source text into ``(name, block)`` pairs, one per top-level ``def``.

    A block runs from its header to the next top-level ``def`` or the end of
    the text. Text before the first header belongs to no helper and is ignored.
    """
    text = textwrap.dedent(source)
    headers = list(_DEFINITION_HEADER.finditer(text))
    blocks = []
    for position, header in enumerate(headers):
        end = headers[position + 1].start() if position + 1 < len(headers) else len(text)
        blocks.append((header.group(1), text[header.start():end].rstrip()))
    return blocks


def _definition_from_block(name: str, block: str) -> HelperDefinition:
    try:
        tree = ast.parse(block)
    except SyntaxError as e:
        raise HelperDefinitionError(
            f"custom helper '{name}' is not valid Python: {e.msg} (line {e.lineno})", helper_name=name
        ) from e
    function_node = tree.body[0]
    if not isinstance(function_node, ast.FunctionDef):
        raise HelperDefinitionError(f"custom helper '{name}' is not a plain function definition", helper_name=name)
    if len(tree.body) > 1:
        log.warning("custom_helper_trailing_statements_ignored", helper=name, statements=len(tree.body) - 1)
    arguments = function_node.args
    if arguments.vararg or arguments.kwarg or arguments.kwonlyargs or arguments.defaults:
        raise HelperDefinitionError(
            f"custom helper '{name}' may only declare plain positional parameters in restricted mode",
            helper_name=name,
        )
    params = tuple(arg.arg for arg in arguments.posonlyargs + arguments.args)
    statements = function_node.body
    body_source = "\n".join(ast.get_source_segment(block, statement) for statement in statements)
    return HelperDefinition(name=name, params=params, body=body_source)


class ExpressionHelper:
    """A restricted-mode custom helper: one expression over its parameters."""

    def __init__(self, definition: HelperDefinition):
        self.__name__ = definition.name
        self.definition = definition
        self.positional = tuple(p for p in definition.params if p not in (RECEIVER_PARAMETER, OPTIONS_PARAMETER))
        names = definition.params + (RECEIVER_PARAMETER,)
        body = predicate_body(definition.body)
        self.expression = Expression(single_return_expression(body), names)

    def __call__(self, *args: Any, this: Any = None, options: Any = None) -> Any:
        values = dict(zip(self.positional, args))
        values[RECEIVER_PARAMETER] = this
        values[OPTIONS_PARAMETER] = options
        return self.expression.evaluate(**values)

    def __repr__(self) -> str:
        return f"ExpressionHelper({self.__name__!r})"


def _compile_definition(definition: HelperDefinition, allow_unsafe_code: bool) -> Callable[..., Any]:
    try:
        if not allow_unsafe_code:
            return ExpressionHelper(definition)
        body = definition.body if definition.body.strip() else "return None"
        source = f"def {definition.name}({', '.join(definition.params)}):\n" + textwrap.indent(textwrap.dedent(body), "    ")
        return compile_unsafe_function(source, definition.name)
    except ExpressionError as e:
        raise HelperDefinitionError(f"custom helper '{definition.name}' failed to compile: {e}", helper_name=definition.name) from e


def _compile_block(name: str, block: str, allow_unsafe_code: bool) -> Callable[..., Any]:
    if not allow_unsafe_code:
        return _compile_definition(_definition_from_block(name, block), allow_unsafe_code=False)
    try:
        return compile_unsafe_function(block, name)
    except ExpressionError as e:
        raise HelperDefinitionError(f"custom helper '{name}' failed to compile: {e}", helper_name=name) from e


def load_custom_helpers(
    source: Union[str, Iterable[HelperDefinition], None],
    allow_unsafe_code: bool = False,
) -> Dict[str, Callable[..., Any]]:
    """
    Compiles custom helpers into ``{name: function}``.

    Empty or missing source gives an empty mapping. A helper that fails to
    compile raises ``HelperDefinitionError``; when two helpers share a name
    the later one wins.
    """
    loaded: Dict[str, Callable[..., Any]] = {}
    if not source:
        return loaded
    if isinstance(source, str):
        if not source.strip():
            return loaded
        for name, block in split_definition_blocks(source):
            function = _compile_block(name, block, allow_unsafe_code)
            loaded[getattr(function, "__name__", name)] = function
    else:
        for definition in source:
            function = _compile_definition(definition, allow_unsafe_code)
            loaded[definition.name] = function
    log.debug("custom_helpers_loaded", names=sorted(loaded), unsafe=allow_unsafe_code)
    return loaded


def _call_plan(function: Callable[..., Any]) -> Tuple[bool, Sequence[str], int, bool, bool]:
    parameters = inspect.signature(function).parameters
    var_positional = any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in parameters.values())
    positional_kinds = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    positional = [
        p for p in parameters.values()
        if p.kind in positional_kinds and p.name not in (RECEIVER_PARAMETER, OPTIONS_PARAMETER)
    ]
    required = sum(1 for p in positional if p.default is inspect.Parameter.empty)
    accepts_this = RECEIVER_PARAMETER in parameters
    accepts_options = OPTIONS_PARAMETER in parameters
    return var_positional, [p.name for p in positional], required, accepts_this, accepts_options


def as_template_helper(function: Callable[..., Any]) -> Callable[..., Any]:
    """
    Adapts a plain function to the pybars ``helper(this, [options,] *args)`` call.

    The receiver and block options are passed as the keyword arguments
    ``this`` and ``options`` when the function declares them. Surplus template
    arguments are dropped and missing ones are passed as ``None``.
    """
    var_positional, positional_names, required, accepts_this, accepts_options = _call_plan(function)

    @functools.wraps(function)
    def helper(this: Any, *args: Any) -> Any:
        options, values = split_options(args)
        extras: Dict[str, Any] = {}
        if accepts_this:
            extras[RECEIVER_PARAMETER] = receiver_of(this)
        if accepts_options:
            extras[OPTIONS_PARAMETER] = options
        if var_positional:
            return function(*values, **extras)
        values = values[:len(positional_names)]
        values = values + (None,) * (required - len(values))
        return function(**dict(zip(positional_names, values)), **extras)

    return helper


def custom_template_helpers(
    source: Union[str, Iterable[HelperDefinition], None],
    allow_unsafe_code: bool = False,
) -> Dict[str, Callable[..., Any]]:
    """Loads custom helpers and adapts each one for registration with pybars."""
    return {
        name: as_template_helper(function)
        for name, function in load_custom_helpers(source, allow_unsafe_code=allow_unsafe_code).items()
    }
