# relnotes/core/templating/renderer.py
"""
Contains the TemplateRenderer class, which compiles a release-note template,
assembles the helper map and context for one render, and renders it.
"""
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Union

import pybars  # type: ignore
import structlog

from relnotes.config.settings import RenderSettings
from relnotes.exceptions import ReleaseNotesError, TemplateError

from .context_builder import build_template_context
from .custom_helpers import HelperDefinition, custom_template_helpers
from .helpers import builtin_helpers

log = structlog.get_logger(__name__)

CustomHelperSource = Union[str, Iterable[HelperDefinition], None]


class TemplateRenderer:
    """Renders release-note templates with the built-in and custom helpers."""

    def __init__(self, settings: Optional[RenderSettings] = None):
        self.settings = settings or RenderSettings()
        self.handlebars_compiler = pybars.Compiler()

    def compile(self, lines: Sequence[str]) -> Callable[..., Any]:
        """Joins the template lines with newlines and compiles the result."""
        if isinstance(lines, str):
            lines = lines.split("\n")
        template_text = "\n".join(lines)
        try:
            compiled_template = self.handlebars_compiler.compile(template_text)
        except Exception as e:
            log.error("template_compilation_failed", lines=len(lines), error=str(e))
            raise TemplateError(f"Failed to compile release notes template: {e}") from e
        log.debug("template_compiled_successfully", lines=len(lines))
        return compiled_template

    def build_helpers(self, custom_helpers: CustomHelperSource = None) -> Dict[str, Callable[..., Any]]:
        """
        Builds a fresh helper map: dynamic code, collection and condition
        helpers, then custom helpers, each overriding earlier names.
        """
        allow_unsafe_code = self.settings.allow_unsafe_code
        registered_helpers = builtin_helpers(allow_unsafe_code)
        custom = custom_template_helpers(custom_helpers, allow_unsafe_code=allow_unsafe_code)
        shadowed = sorted(set(custom) & set(registered_helpers))
        if shadowed:
            log.info("custom_helpers_shadow_builtins", names=shadowed)
        registered_helpers.update(custom)
        return registered_helpers

    def render(
        self,
        lines: Sequence[str],
        work_items: Optional[Iterable[Any]] = None,
        commits: Optional[Iterable[Any]] = None,
        build_details: Any = None,
        release_details: Any = None,
        compare_release_details: Any = None,
        empty_set_text: Optional[str] = None,
        custom_helpers: CustomHelperSource = None,
    ) -> str:
        """Renders the template; the output is returned exactly as produced, untrimmed."""
        if empty_set_text is None:
            empty_set_text = self.settings.empty_set_text
        compiled_template = self.compile(lines)
        helpers = self.build_helpers(custom_helpers)
        template_context = build_template_context(
            work_items, commits, build_details, release_details, compare_release_details, empty_set_text,
        )

        log.info(
            "rendering_release_notes",
            helpers=len(helpers),
            unsafe_code=self.settings.allow_unsafe_code,
        )
        try:
            rendered = compiled_template(template_context, helpers=helpers)
        except ReleaseNotesError as e:
            log.error("release_notes_render_failed", error_type=type(e).__name__, error=str(e))
            raise
        except Exception as e:
            log.error("template_rendering_error_occurred", error_type=type(e).__name__, error=str(e), exc_info=True)
            raise TemplateError(f"Release notes render failed: {type(e).__name__}: {e}") from e
        output = str(rendered)
        log.debug("template_rendered_successfully", characters=len(output))
        return output


def render_release_notes(
    lines: Sequence[str],
    work_items: Optional[Iterable[Any]] = None,
    commits: Optional[Iterable[Any]] = None,
    build_details: Any = None,
    release_details: Any = None,
    compare_release_details: Any = None,
    empty_set_text: Optional[str] = None,
    custom_helpers: CustomHelperSource = None,
    settings: Optional[RenderSettings] = None,
) -> str:
    """Renders ``lines`` with a renderer built for this call only."""
    return TemplateRenderer(settings).render(
        lines,
        work_items=work_items,
        commits=commits,
        build_details=build_details,
        release_details=release_details,
        compare_release_details=compare_release_details,
        empty_set_text=empty_set_text,
        custom_helpers=custom_helpers,
    )
