import pytest

from funnel_builder.llm.json_recovery import (
    JSONRecoveryError,
    coerce_to_number,
    coerce_to_string,
    coerce_to_string_list,
    extract_pricing,
    parse_json_with_recovery,
)


def test_parses_fenced_json():
    text = 'Here you go:\n```json\n{"title": "Hello", "items": [1, 2]}\n```'
    assert parse_json_with_recovery(text) == {"title": "Hello", "items": [1, 2]}


def test_fixes_trailing_commas_and_unquoted_keys():
    assert parse_json_with_recovery('{title: "Hi", "items": [1, 2,],}') == {"title": "Hi", "items": [1, 2]}


def test_extracts_object_from_prose():
    text = 'Sure! {"message": "ok"} Let me know if you need more.'
    assert parse_json_with_recovery(text) == {"message": "ok"}


def test_truncated_array_is_closed():
    assert parse_json_with_recovery('{"slides": [{"title": "One"}') == {"slides": [{"title": "One"}]}


@pytest.mark.parametrize("text", ["", "   ", "no json here at all"])
def test_unrecoverable_text_raises(text):
    with pytest.raises(JSONRecoveryError):
        parse_json_with_recovery(text)


def test_coerce_to_string_handles_nullish_and_objects():
    assert coerce_to_string("  hi ") == "hi"
    assert coerce_to_string("[object Object]") is None
    assert coerce_to_string({"text": "inner"}) == "inner"
    assert coerce_to_string(["a", None, "b"]) == "a\n\nb"
    assert coerce_to_string(3) == "3"


def test_coerce_to_string_list_splits_markdown_lists():
    assert coerce_to_string_list("- one\n- two\n3. three") == ["one", "two", "three"]
    assert coerce_to_string_list('["a", "b"]') == ["a", "b"]
    assert coerce_to_string_list(["a", "", None, "b"], max_items=1) == ["a"]


def test_coerce_to_number_understands_currency():
    assert coerce_to_number("$1,997") == 1997.0
    assert coerce_to_number("2.5k") == 2500.0
    assert coerce_to_number("free") is None
    assert coerce_to_number(True) is None


def test_extract_pricing_reads_nested_and_flat_shapes():
    assert extract_pricing({"pricing": {"regular": "$2,000", "webinar": "997"}}) == {
        "regular": 2000.0,
        "webinar": 997.0,
    }
    assert extract_pricing({"price": 500}) == {"regular": 500.0, "webinar": None}
    assert extract_pricing(None) == {"regular": None, "webinar": None}
