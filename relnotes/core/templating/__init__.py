# relnotes/core/templating/__init__.py
"""
Templating module for relnotes.

Provides the TemplateRenderer and render_release_notes entry points, the
helper registry builders, and the predicate / custom helper compilers they use.
"""
from .renderer import TemplateRenderer, render_release_notes
from .context_builder import build_template_context
from .custom_helpers import HelperDefinition, load_custom_helpers
from .helpers import builtin_helpers
from .predicates import compile_predicate

__all__ = [
    "TemplateRenderer",
    "render_release_notes",
    "build_template_context",
    "HelperDefinition",
    "load_custom_helpers",
    "builtin_helpers",
    "compile_predicate",
]
