# relnotes/core/templating/context_builder.py
"""
Builds the context dictionary release-note templates are rendered against.
"""
from typing import Any, Dict, Iterable, List, Optional

import structlog

log = structlog.get_logger(__name__)

# Templates written for older releases of the task use ``widetail`` for work
# items and ``csdetail`` for commits. Both names stay bound to the same lists.
WORK_ITEM_FIELDS = ("workItems", "widetail")
COMMIT_FIELDS = ("commits", "csdetail")


def _as_list(items: Optional[Iterable[Any]]) -> List[Any]:
    if not items:
        return []
    return list(items)


def build_template_context(
    work_items: Optional[Iterable[Any]] = None,
    commits: Optional[Iterable[Any]] = None,
    build_details: Any = None,
    release_details: Any = None,
    compare_release_details: Any = None,
    empty_set_text: Optional[str] = "",
) -> Dict[str, Any]:
    """Constructs the context passed to the Handlebars template; missing collections become empty lists."""
    work_item_list = _as_list(work_items)
    commit_list = _as_list(commits)

    template_context: Dict[str, Any] = {
        "buildDetails": build_details,
        "releaseDetails": release_details,
        "compareReleaseDetails": compare_release_details,
        "emptySetText": empty_set_text,
    }
    for field_name in WORK_ITEM_FIELDS:
        template_context[field_name] = work_item_list
    for field_name in COMMIT_FIELDS:
        template_context[field_name] = commit_list

    log.debug(
        "template_context_prepared",
        work_items=len(work_item_list),
        commits=len(commit_list),
        has_build=build_details is not None,
        has_release=release_details is not None,
        has_compare_release=compare_release_details is not None,
    )
    return template_context
