import math
from typing import Any, List

import structlog

log = structlog.get_logger(__name__)
utf8_bom = "\ufeff"

def strip_utf8_bom(text: str) -> str:
    # removes the utf-8 byte order mark from decoded text if present.
    if text.startswith(utf8_bom):
        return text[len(utf8_bom):]
    return text

def is_collection(value: Any) -> bool:
    # lists and tuples are collections; strings and mappings are scalars.
    return isinstance(value, (list, tuple))

def as_collection(value: Any) -> List[Any]:
    # wraps a scalar into a single-element list.
    if is_collection(value):
        return list(value)
    return [value]

def is_falsy(value: Any) -> bool:
    """
    Falsiness as template helpers see it: None, False, numeric zero, NaN and
    the empty string. Collections and mappings never count as falsy, even when
    empty, so an empty work item list still reaches the "no match" branch with
    the surrounding context intact.
    """
    if value is None or isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0 or math.isnan(value)
    if isinstance(value, str):
        return not value
    return False

def is_truthy(value: Any) -> bool:
    return not is_falsy(value)
