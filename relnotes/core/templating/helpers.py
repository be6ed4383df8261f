# relnotes/core/templating/helpers.py
"""
Built-in Handlebars helpers for release-note templates.

pybars calls simple helpers as ``helper(this, *args)`` and block helpers as
``helper(this, options, *args)``, where ``options["fn"]`` renders the main
block and ``options["inverse"]`` renders the ``{{else}}`` block.

Three families are provided:

* dynamic code: ``eval``, ``safe``, ``escape``, ``env``
* collections: ``filter``, ``reduce``
* conditions: ``eq``, ``ne``, ``lt``, ``gt``, ``lte``, ``gte``, ``contains``,
  ``startsWith``, ``endsWith``, ``match``, ``some``, ``and``, ``or``

Each family is built per render call by a ``*_helpers()`` function, so no
registry outlives a render.
"""
import functools
import os
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import pybars  # type: ignore
import structlog

from relnotes.exceptions import ExpressionError
from relnotes.util import as_collection, is_collection, is_falsy, is_truthy
from .expressions import Expression
from .predicates import compile_predicate

log = structlog.get_logger(__name__)

HelperOptions = Dict[str, Any]

_HTML_ESCAPES = {
    "&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;",
    "'": "&#x27;", "`": "&#x60;", "=": "&#x3D;",
}
_HTML_ESCAPE_PATTERN = re.compile("[&<>\"'`=]")
_CONTAINER_TYPES = (Mapping, list, tuple, set)


def is_block_options(value: Any) -> bool:
    return isinstance(value, dict) and "fn" in value and "inverse" in value


def split_options(args: Sequence[Any], arity: Optional[int] = None) -> Tuple[Optional[HelperOptions], Tuple[Any, ...]]:
    """
    Separates the pybars block options from the positional helper arguments.

    With ``arity`` the arguments are padded with ``None`` or truncated to
    exactly that many values, so a template passing too few or too many
    arguments still reaches the helper.
    """
    options = None
    values = []
    for value in args:
        if options is None and is_block_options(value):
            options = value
        else:
            values.append(value)
    if arity is not None:
        values = (values + [None] * arity)[:arity]
    return options, tuple(values)


def receiver_of(this: Any) -> Any:
    # pybars wraps the receiver in a Scope inside #each blocks.
    if isinstance(this, pybars.Scope):
        return this.get("this")
    return this


def render_branch(options: HelperOptions, branch: str, receiver: Any) -> "pybars.strlist":
    """Renders the ``fn`` or ``inverse`` continuation against ``receiver``."""
    output = pybars.strlist()
    continuation = options.get(branch)
    if continuation is not None:
        rendered = continuation(receiver)
        if rendered is not None:
            output.grow(rendered)
    return output


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def escape_expression(value: Any) -> str:
    """Handlebars-compatible HTML escaping."""
    return _HTML_ESCAPE_PATTERN.sub(lambda match: _HTML_ESCAPES[match.group(0)], _as_text(value))


# --- dynamic code helpers ---

def eval_helper(this: Any, *args: Any, allow_unsafe_code: bool = False) -> Any:
    _, (expression,) = split_options(args, arity=1)
    if is_falsy(expression):
        return None
    compiled = Expression(str(expression), ("this",), allow_unsafe_code=allow_unsafe_code)
    return compiled.evaluate(this=receiver_of(this))


def safe_helper(this: Any, *args: Any) -> "pybars.strlist":
    _, (text,) = split_options(args, arity=1)
    return pybars.strlist([_as_text(text)])


def escape_helper(this: Any, *args: Any) -> "pybars.strlist":
    # Returned as a strlist so pybars does not escape the result a second time.
    _, (text,) = split_options(args, arity=1)
    return pybars.strlist([escape_expression(text)])


def env_helper(this: Any, *args: Any) -> Optional[str]:
    _, (name,) = split_options(args, arity=1)
    if is_falsy(name):
        return None
    return os.environ.get(str(name))


def dynamic_code_helpers(allow_unsafe_code: bool = False) -> Dict[str, Callable[..., Any]]:
    return {
        "eval": functools.partial(eval_helper, allow_unsafe_code=allow_unsafe_code),
        "safe": safe_helper,
        "escape": escape_helper,
        "env": env_helper,
    }


# --- collection helpers ---

def filter_helper(this: Any, *args: Any, allow_unsafe_code: bool = False) -> Any:
    """
    ``{{#filter items "predicate"}}...{{else}}...{{/filter}}``

    Renders the block once per matching element, in order. A single
    non-list value is tested on its own. Used as a subexpression, returns the
    matching elements as a list.
    """
    options, (context, predicate) = split_options(args, arity=2)
    test = compile_predicate(predicate, allow_unsafe_code=allow_unsafe_code)

    if options is None:
        if is_falsy(context):
            return []
        items = as_collection(context)
        return [item for index, item in enumerate(items) if test(item, index, items)]

    if is_falsy(context):
        return render_branch(options, "inverse", context)

    if is_collection(context):
        retained = [item for index, item in enumerate(context) if test(item, index, context)]
        if retained:
            output = pybars.strlist()
            for item in retained:
                output.grow(render_branch(options, "fn", item))
            return output
    elif test(context, None, None):
        return render_branch(options, "fn", context)

    return render_branch(options, "inverse", this)


def reduce_helper(this: Any, *args: Any, allow_unsafe_code: bool = False) -> Any:
    """
    ``{{#reduce items "predicate"}}{{#each this}}...{{/each}}{{/reduce}}``

    Despite the name this is a filter: the block renders once, with the list
    of matching elements as its receiver, or the ``{{else}}`` block renders
    when nothing matches.
    """
    options, (context, predicate) = split_options(args, arity=2)
    test = compile_predicate(predicate, allow_unsafe_code=allow_unsafe_code)

    if is_falsy(context):
        retained = []
    else:
        items = as_collection(context)
        retained = [item for index, item in enumerate(items) if test(item, index, items)]

    if options is None:
        return retained
    if retained:
        return render_branch(options, "fn", retained)
    return render_branch(options, "inverse", this)


def collection_helpers(allow_unsafe_code: bool = False) -> Dict[str, Callable[..., Any]]:
    return {
        "filter": functools.partial(filter_helper, allow_unsafe_code=allow_unsafe_code),
        "reduce": functools.partial(reduce_helper, allow_unsafe_code=allow_unsafe_code),
    }


# --- condition helpers ---

def condition_helper(arity: Optional[int] = None):
    """
    Wraps a plain test into a pybars helper.

    As a simple helper or subexpression the boolean outcome is returned; used
    as a block (``{{#eq a b}}yes{{else}}no{{/eq}}``) the matching branch is
    rendered against the current receiver.
    """
    def decorator(test: Callable[..., bool]) -> Callable[..., Any]:
        @functools.wraps(test)
        def helper(this: Any, *args: Any) -> Any:
            options, values = split_options(args, arity=arity)
            outcome = test(*values)
            if options is None:
                return outcome
            return render_branch(options, "fn" if outcome else "inverse", this)
        return helper
    return decorator


def _strictly_equal(v1: Any, v2: Any) -> bool:
    # Containers are equal only when they are the same object.
    if isinstance(v1, _CONTAINER_TYPES) or isinstance(v2, _CONTAINER_TYPES):
        return v1 is v2
    # True == 1 in Python; templates expect booleans and numbers to stay distinct.
    if isinstance(v1, bool) or isinstance(v2, bool):
        return type(v1) is type(v2) and v1 == v2
    return v1 == v2


def _ordered(compare: Callable[[Any, Any], bool], v1: Any, v2: Any) -> bool:
    if v1 is None or v2 is None:
        return False
    try:
        return compare(v1, v2)
    except TypeError:
        pass
    try:
        return compare(float(v1), float(v2))
    except (TypeError, ValueError):
        return False


@condition_helper(arity=2)
def eq(v1: Any, v2: Any) -> bool:
    return _strictly_equal(v1, v2)


@condition_helper(arity=2)
def ne(v1: Any, v2: Any) -> bool:
    return not _strictly_equal(v1, v2)


@condition_helper(arity=2)
def lt(v1: Any, v2: Any) -> bool:
    return _ordered(lambda a, b: a < b, v1, v2)


@condition_helper(arity=2)
def gt(v1: Any, v2: Any) -> bool:
    return _ordered(lambda a, b: a > b, v1, v2)


@condition_helper(arity=2)
def lte(v1: Any, v2: Any) -> bool:
    return _ordered(lambda a, b: a <= b, v1, v2)


@condition_helper(arity=2)
def gte(v1: Any, v2: Any) -> bool:
    return _ordered(lambda a, b: a >= b, v1, v2)


@condition_helper(arity=2)
def contains(v1: Any, v2: Any) -> bool:
    if is_falsy(v1) or is_falsy(v2):
        return False
    if is_collection(v1):
        return v2 in v1
    return _as_text(v2) in _as_text(v1)


@condition_helper(arity=2)
def starts_with(v1: Any, v2: Any) -> bool:
    if is_falsy(v1) or is_falsy(v2):
        return False
    return _as_text(v1).startswith(_as_text(v2))


@condition_helper(arity=2)
def ends_with(v1: Any, v2: Any) -> bool:
    if is_falsy(v1) or is_falsy(v2):
        return False
    return _as_text(v1).endswith(_as_text(v2))


@condition_helper(arity=2)
def match(v1: Any, v2: Any) -> bool:
    if is_falsy(v1) or is_falsy(v2):
        return False
    if isinstance(v2, re.Pattern):
        pattern = v2
    else:
        try:
            pattern = re.compile(_as_text(v2))
        except re.error as e:
            raise ExpressionError(f"invalid regular expression {v2!r}: {e}", expression=_as_text(v2)) from e
    return pattern.search(_as_text(v1)) is not None


@condition_helper()
def all_truthy(*values: Any) -> bool:
    return all(is_truthy(value) for value in values)


@condition_helper()
def any_truthy(*values: Any) -> bool:
    return any(is_truthy(value) for value in values)


def some_helper(this: Any, *args: Any, allow_unsafe_code: bool = False) -> Any:
    """``{{#some items "predicate"}}`` renders its block if any element matches."""
    options, (context, predicate) = split_options(args, arity=2)
    if is_falsy(context):
        found = False
    else:
        test = compile_predicate(predicate, allow_unsafe_code=allow_unsafe_code)
        items = as_collection(context)
        found = any(test(item, index, items) for index, item in enumerate(items))

    if options is None:
        return found
    return render_branch(options, "fn" if found else "inverse", this)


def condition_helpers(allow_unsafe_code: bool = False) -> Dict[str, Callable[..., Any]]:
    return {
        "eq": eq,
        "ne": ne,
        "lt": lt,
        "gt": gt,
        "lte": lte,
        "gte": gte,
        "contains": contains,
        "startsWith": starts_with,
        "endsWith": ends_with,
        "match": match,
        "some": functools.partial(some_helper, allow_unsafe_code=allow_unsafe_code),
        "and": all_truthy,
        "or": any_truthy,
    }


def builtin_helpers(allow_unsafe_code: bool = False) -> Dict[str, Callable[..., Any]]:
    """All built-in helpers, registered dynamic code first, then collections, then conditions."""
    helpers: Dict[str, Callable[..., Any]] = {}
    helpers.update(dynamic_code_helpers(allow_unsafe_code))
    helpers.update(collection_helpers(allow_unsafe_code))
    helpers.update(condition_helpers(allow_unsafe_code))
    return helpers
