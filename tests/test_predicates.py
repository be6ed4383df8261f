# tests/test_predicates.py
"""Tests for predicate compilation used by filter, reduce and some."""

import pytest

from relnotes.core.templating.predicates import CompiledPredicate, compile_predicate, predicate_body
from relnotes.exceptions import ExpressionError

BUG = {"id": 34, "fields": {"System.WorkItemType": "Bug"}}
TASK = {"id": 2, "fields": {"System.WorkItemType": "Task"}}


class TestPredicateBody:
    """Normalising predicate text into a function body."""

    @pytest.mark.parametrize("expression, expected", [
        ("item.id > 3", "return item.id > 3"),
        ("return item.id > 3", "return item.id > 3"),
        ("  item.id > 3  ", "return item.id > 3"),
        ("def keep(item, index, collection): return item.id > 3", "return item.id > 3"),
        ("lambda item, index, collection: item.id > 3", "return item.id > 3"),
        ("item.title != 'return'", "return item.title != 'return'"),
        ("'return' in item.tags", "return 'return' in item.tags"),
    ])
    def test_bodies(self, expression, expected):
        assert predicate_body(expression) == expected

    def test_multiline_def_is_dedented(self):
        source = "def keep(item):\n    return item.id > 3"
        assert predicate_body(source) == "return item.id > 3"


class TestCompilePredicate:
    """compile_predicate in restricted and unsafe mode."""

    @pytest.mark.parametrize("expression", [
        "this.fields['System.WorkItemType'] == 'Bug'",
        "return this.fields['System.WorkItemType'] == 'Bug'",
        "item.fields['System.WorkItemType'] == 'Bug'",
        "lambda item, index, collection: item['fields']['System.WorkItemType'] == 'Bug'",
    ])
    def test_expression_with_and_without_return_agree(self, expression):
        test = compile_predicate(expression)
        assert test(BUG, 0, [BUG, TASK]) is True
        assert test(TASK, 1, [BUG, TASK]) is False

    def test_index_and_collection_are_bound(self):
        items = [BUG, TASK]
        test = compile_predicate("index == len(collection) - 1 and array[index] == item")
        assert [test(item, index, items) for index, item in enumerate(items)] == [False, True]

    def test_scalar_call_has_no_index_or_collection(self):
        test = compile_predicate("index is None and collection is None and this == 'x'")
        assert test("x", None, None) is True

    def test_callables_are_returned_unchanged(self):
        def keep(item, index, collection):
            return True
        assert compile_predicate(keep) is keep

    def test_strings_are_recompiled_each_call(self):
        first = compile_predicate("item.id > 3")
        second = compile_predicate("item.id > 3")
        assert isinstance(first, CompiledPredicate)
        assert first is not second

    def test_syntax_error_raises(self):
        with pytest.raises(ExpressionError):
            compile_predicate("item.id >")

    def test_non_string_predicate_raises(self):
        with pytest.raises(ExpressionError, match="NoneType"):
            compile_predicate(None)

    def test_multiple_statements_need_unsafe_code(self):
        source = "kind = item['fields']['System.WorkItemType']\nreturn kind == 'Bug'"
        with pytest.raises(ExpressionError, match="allow_unsafe_code"):
            compile_predicate(source)
        test = compile_predicate(source, allow_unsafe_code=True)
        assert test(BUG, 0, [BUG]) is True
        assert test(TASK, 0, [TASK]) is False

    def test_unsafe_runtime_errors_are_wrapped(self):
        test = compile_predicate("item['missing']", allow_unsafe_code=True)
        with pytest.raises(ExpressionError, match="KeyError"):
            test(BUG, 0, [BUG])

    def test_return_inside_a_string_is_not_a_statement(self):
        test = compile_predicate("this.fields['System.Title'] != 'return'")
        assert test({"fields": {"System.Title": "Bug number 1"}}) is True
        assert test({"fields": {"System.Title": "return"}}) is False

    @pytest.mark.parametrize("allow_unsafe_code", [False, True])
    @pytest.mark.parametrize("item, expected", [
        ({"relations": []}, True),
        ({"relations": {}}, True),
        ({"relations": ["parent"]}, True),
        ({"relations": None}, False),
        ({"relations": 0}, False),
        ({"relations": ""}, False),
    ])
    def test_results_follow_template_truthiness(self, allow_unsafe_code, item, expected):
        expression = "item['relations']" if allow_unsafe_code else "item.relations"
        test = compile_predicate(expression, allow_unsafe_code=allow_unsafe_code)
        assert test(item, 0, [item]) is expected
