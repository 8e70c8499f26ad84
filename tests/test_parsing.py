"""
Unit tests for JSON extraction, repair and contract validation.
"""
import json

import pytest

from agents.errors import ContractViolationError, UnparsableResponseError
from agents.parsing import (
    extract_json,
    find_balanced_object,
    repair_json_text,
    validate_contract,
)


class TestExtractJson:
    """Tests for extract_json."""

    def test_plain_json(self):
        assert extract_json('{"a": 1, "b": [1, 2]}') == {"a": 1, "b": [1, 2]}

    def test_json_with_surrounding_prose(self):
        text = 'Here is the architecture you asked for:\n{"sitemap": []}\nLet me know!'
        assert extract_json(text) == {"sitemap": []}

    def test_fenced_json_block(self):
        text = "Sure.\n```json\n{\"a\": {\"b\": true}}\n```\nDone."
        assert extract_json(text) == {"a": {"b": True}}

    def test_unlabelled_fence(self):
        text = "```\n[1, 2, 3]\n```"
        assert extract_json(text) == [1, 2, 3]

    def test_braces_inside_strings_do_not_end_object(self):
        text = 'prefix {"css": "body { color: red; }", "n": 1} suffix'
        assert extract_json(text) == {"css": "body { color: red; }", "n": 1}

    def test_trailing_comma_repaired(self):
        assert extract_json('{"a":1,}') == {"a": 1}

    def test_single_quotes_repaired(self):
        assert extract_json("{'a':1}") == {"a": 1}

    def test_python_literals_repaired(self):
        assert extract_json("{'ok': True, 'missing': None, 'off': False}") == {
            "ok": True,
            "missing": None,
            "off": False,
        }

    def test_repair_inside_prose(self):
        text = "Result: {'pages': ['home', 'about',],} hope this helps"
        assert extract_json(text) == {"pages": ["home", "about"]}

    def test_idempotent_on_own_output(self):
        samples = [
            '{"a":1,}',
            "{'a': {'b': [1, 2]}}",
            'Text before ```json\n{"x": "y"}\n``` after',
            '{"nested": {"list": [true, null, 1.5]}}',
        ]
        for raw in samples:
            first = extract_json(raw)
            assert extract_json(json.dumps(first)) == first

    def test_empty_text_raises(self):
        with pytest.raises(UnparsableResponseError):
            extract_json("   ")

    def test_no_json_raises_with_raw_text(self):
        raw = "I'm sorry, I can't help with that."
        with pytest.raises(UnparsableResponseError) as exc_info:
            extract_json(raw)
        assert exc_info.value.raw_text == raw
        assert exc_info.value.kind == "unparsable_response"


class TestRepairHelpers:
    """Tests for the low-level repair helpers."""

    def test_find_balanced_object_none_without_brace(self):
        assert find_balanced_object("no json here") is None

    def test_find_balanced_object_unbalanced(self):
        assert find_balanced_object('{"a": {"b": 1}') is None

    def test_repair_keeps_commas_inside_strings(self):
        assert repair_json_text('{"a": "x, }"}') == '{"a": "x, }"}'

    def test_repair_escapes_double_quotes_in_single_quoted(self):
        repaired = repair_json_text("{'quote': 'say \"hi\"'}")
        assert json.loads(repaired) == {"quote": 'say "hi"'}

    def test_repair_leaves_words_in_strings(self):
        assert json.loads(repair_json_text('{"word": "True"}')) == {"word": "True"}


class TestValidateContract:
    """Tests for validate_contract."""

    def test_missing_path_without_default(self):
        with pytest.raises(ContractViolationError) as exc_info:
            validate_contract({}, ["a.b"])
        assert exc_info.value.path == "a.b"
        assert "a.b" in str(exc_info.value)

    def test_nested_default_backfilled(self):
        assert validate_contract({}, ["a.b"], {"a": {"b": 0}}) == {"a": {"b": 0}}

    def test_flat_default_backfilled(self):
        assert validate_contract({"a": {}}, ["a.b"], {"a.b": []}) == {"a": {"b": []}}

    def test_input_not_mutated(self):
        parsed = {"a": {}}
        result = validate_contract(parsed, ["a.b"], {"a.b": 1})
        assert parsed == {"a": {}}
        assert result == {"a": {"b": 1}}

    def test_defaults_are_copied(self):
        defaults = {"items": []}
        result = validate_contract({}, ["items"], defaults)
        result["items"].append(1)
        assert defaults == {"items": []}

    def test_present_fields_untouched(self):
        parsed = {"a": {"b": "kept"}, "extra": 1}
        assert validate_contract(parsed, ["a.b"], {"a.b": "default"}) == parsed

    def test_first_missing_path_named(self):
        with pytest.raises(ContractViolationError) as exc_info:
            validate_contract({"sitemap": []}, ["sitemap", "navigation.primary", "seo"])
        assert exc_info.value.path == "navigation.primary"

    def test_non_object_response(self):
        with pytest.raises(ContractViolationError):
            validate_contract([1, 2], ["a"], {"a": 1})

    def test_intermediate_not_object(self):
        with pytest.raises(ContractViolationError):
            validate_contract({"a": "text"}, ["a.b"], {"a.b": 1})

    def test_field_type_mismatch(self):
        with pytest.raises(ContractViolationError) as exc_info:
            validate_contract({"sitemap": {}}, ["sitemap"], field_types={"sitemap": "array"})
        assert exc_info.value.path == "sitemap"

    def test_bool_is_not_a_number(self):
        with pytest.raises(ContractViolationError):
            validate_contract({"count": True}, ["count"], field_types={"count": "number"})

    def test_field_type_match(self):
        parsed = {"sitemap": [], "count": 3, "name": "x"}
        result = validate_contract(
            parsed,
            ["sitemap"],
            field_types={"sitemap": "array", "count": "number", "name": "string"},
        )
        assert result == parsed
