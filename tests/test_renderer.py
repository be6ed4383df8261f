# tests/test_renderer.py
"""End-to-end tests for rendering release notes with pybars."""

import datetime

import pytest

from relnotes.config.settings import RenderSettings
from relnotes.core.templating import TemplateRenderer, build_template_context, render_release_notes
from relnotes.exceptions import TemplateError

SECTIONED_TEMPLATE = [
    "### Features ###",
    "{{#filter widetail \"item['fields']['System.WorkItemType'] == 'Backlog Item'\"}}",
    "* **{{lookup fields \"System.WorkItemType\"}}** {{lookup fields \"System.Title\"}} (#{{id}})",
    "{{else}}",
    "{{emptySetText}}",
    "{{/filter}}",
    "### Bugs ###",
    "{{#filter widetail \"item['fields']['System.WorkItemType'] == 'Bug'\"}}",
    "* **{{lookup fields \"System.WorkItemType\"}}** {{lookup fields \"System.Title\"}} (#{{id}})",
    "{{else}}",
    "{{emptySetText}}",
    "{{/filter}}",
    "### Tasks ###",
    "{{#filter widetail \"item['fields']['System.WorkItemType'] == 'Task'\"}}",
    "* **{{lookup fields \"System.WorkItemType\"}}** {{lookup fields \"System.Title\"}} (#{{id}})",
    "{{else}}",
    "{{emptySetText}}",
    "{{/filter}}",
]


def content_lines(text):
    return [line.strip() for line in text.split("\n") if line.strip()]


class TestBuildTemplateContext:
    """The context dictionary templates see."""

    def test_aliases_share_the_same_lists(self, work_items):
        context = build_template_context(work_items, [{"id": "abc"}], {"id": 1})
        assert context["workItems"] is context["widetail"]
        assert context["commits"] is context["csdetail"]
        assert context["buildDetails"] == {"id": 1}

    def test_missing_collections_are_empty_lists(self):
        context = build_template_context()
        assert context["workItems"] == [] and context["commits"] == []
        assert context["releaseDetails"] is None
        assert context["emptySetText"] == ""


class TestRenderReleaseNotes:
    """Rendering templates against release data."""

    def test_build_number_and_eval_date(self, build_details):
        lines = ["*** Release {{buildDetails.buildNumber}} ***: {{buildDetails.id}} {{eval \"today().isoformat()\"}}"]
        output = render_release_notes(lines, build_details=build_details)
        assert output == f"*** Release 20200101.1 ***: 345 {datetime.date.today().isoformat()}"
        assert "{{" not in output

    def test_eval_unsafe_mode(self, build_details):
        lines = ["{{eval \"datetime.date.today().strftime('%Y')\"}}"]
        settings = RenderSettings(allow_unsafe_code=True)
        output = render_release_notes(lines, build_details=build_details, settings=settings)
        assert output == str(datetime.date.today().year)

    def test_filter_sections(self, work_items):
        output = render_release_notes(SECTIONED_TEMPLATE, work_items=work_items, empty_set_text="No Entries")
        assert content_lines(output) == [
            "### Features ###",
            "* **Backlog Item** Backlog item one (#2)",
            "### Bugs ###",
            "* **Bug** Bug number 1 (#34)",
            "* **Bug** Bug number 2 (#35)",
            "### Tasks ###",
            "No Entries",
        ]

    def test_boolean_combination_per_item(self, work_items):
        lines = [
            "{{#each workItems}}",
            "{{#if (and (eq (lookup fields \"System.WorkItemType\") \"Bug\") (contains (lookup fields \"System.Title\") \"number 2\"))}}",
            "* {{id}}",
            "{{/if}}",
            "{{/each}}",
        ]
        output = render_release_notes(lines, work_items=work_items)
        assert content_lines(output) == ["* 35"]

    def test_reduce_renders_block_once(self, work_items):
        lines = ["{{#reduce workItems \"item['id'] > 10\"}}[{{#each this}}{{id}};{{/each}}]{{else}}none{{/reduce}}"]
        assert render_release_notes(lines, work_items=work_items) == "[34;35;]"

    def test_both_collection_names_are_bound(self, work_items):
        lines = ["{{#each workItems}}{{id}},{{/each}}|{{#each widetail}}{{id}},{{/each}}|{{#each csdetail}}{{id}}{{/each}}"]
        output = render_release_notes(lines, work_items=work_items, commits=[{"id": "abc123"}])
        assert output == "34,35,2,|34,35,2,|abc123"

    def test_absent_work_items_reach_else_branch(self):
        lines = ["{{#filter workItems \"item['id'] > 0\"}}x{{else}}{{emptySetText}}{{/filter}}"]
        assert render_release_notes(lines, empty_set_text="Nothing new") == "Nothing new"

    def test_output_is_not_trimmed(self):
        assert render_release_notes(["", "text", ""]) == "\ntext\n"

    def test_escape_is_applied_once(self):
        lines = ["{{escape buildDetails.sourceBranch}}|{{safe buildDetails.sourceBranch}}"]
        output = render_release_notes(lines, build_details={"sourceBranch": "a<b"})
        assert output == "a&lt;b|a<b"

    def test_empty_set_text_defaults_to_settings(self):
        renderer = TemplateRenderer(RenderSettings(empty_set_text="n/a"))
        assert renderer.render(["{{emptySetText}}"]) == "n/a"

    def test_custom_helpers_render(self, build_details):
        source = "def shout(text):\n    return text.upper()\n\ndef shortSha(sha):\n    return sha[:7]\n"
        lines = ["{{shout buildDetails.sourceBranch}} {{shortSha \"0123456789\"}}"]
        output = render_release_notes(lines, build_details=build_details, custom_helpers=source)
        assert output == "REFS/HEADS/MAIN 0123456"

    def test_custom_helpers_override_builtins(self):
        output = render_release_notes(["{{eq 1 2}}"], custom_helpers="def eq(a, b):\n    return 'custom'\n")
        assert output == "custom"

    def test_unsafe_custom_block_helper(self, work_items):
        source = (
            "def bugs(items, options):\n"
            "    kept = [i for i in items if i['fields']['System.WorkItemType'] == 'Bug']\n"
            "    return ''.join(''.join(options['fn'](i)) for i in kept)\n"
        )
        settings = RenderSettings(allow_unsafe_code=True)
        output = render_release_notes(
            ["{{#bugs workItems}}[{{id}}]{{/bugs}}"], work_items=work_items, custom_helpers=source, settings=settings,
        )
        assert output == "[34][35]"

    def test_renders_are_independent(self):
        renderer = TemplateRenderer()
        first = renderer.render(["{{label}}"], custom_helpers="def label():\n    return 'one'\n")
        second = renderer.render(["{{#if label}}set{{else}}unset{{/if}}"])
        assert first == "one"
        assert second == "unset"

    def test_mismatched_block_close_raises(self):
        with pytest.raises(TemplateError, match="compile"):
            render_release_notes(["{{#each workItems}}x{{/if}}"])

    def test_bad_predicate_raises(self, work_items):
        with pytest.raises(TemplateError):
            render_release_notes(["{{#filter workItems \"item[\"}}x{{/filter}}"], work_items=work_items)
