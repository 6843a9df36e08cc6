import json

import pytest

from datachat.llm_gate import validate_schema
from datachat.llm_schemas import ANALYSIS_RESULT_SCHEMA
from datachat.response_parser import FALLBACK_INSIGHT, extract_json_object, parse_ai_response, strip_code_fence


def test_fenced_json_with_language_tag() -> None:
    result = parse_ai_response('```json\n{"message":"ok","reformulated_query":"Q"}\n```')
    assert result.model_dump() == {
        "message": "ok",
        "reformulated_query": "Q",
        "insights": [],
        "metrics": {},
        "recommendations": [],
    }


def test_fenced_json_without_language_tag() -> None:
    result = parse_ai_response('```\n{"message": "ok"}\n```')
    assert result.message == "ok"
    assert result.reformulated_query is None


def test_plain_prose_falls_back_to_raw_text() -> None:
    result = parse_ai_response("no json here")
    assert result.message == "no json here"
    assert result.insights == [FALLBACK_INSIGHT]
    assert result.reformulated_query is None
    assert result.metrics == {}
    assert result.recommendations == []


def test_full_reply_maps_every_field(full_reply, full_reply_text) -> None:
    result = parse_ai_response(full_reply_text)
    assert result.model_dump() == full_reply


def test_json_surrounded_by_prose_is_extracted() -> None:
    raw = 'Sure! Here is the analysis:\n{"message": "Total is 10 LEI", "insights": ["a"]}\nHope it helps {:'
    result = parse_ai_response(raw)
    assert result.message == "Total is 10 LEI"
    assert result.insights == ["a"]


def test_object_without_message_is_not_accepted() -> None:
    raw = '{"insights": ["x"]}'
    result = parse_ai_response(raw)
    assert result.message == raw
    assert result.insights == [FALLBACK_INSIGHT]


def test_lenient_field_coercion() -> None:
    raw = json.dumps(
        {
            "message": "m",
            "reformulated_query": "   ",
            "insights": "single insight",
            "recommendations": ["r", None, 3],
            "metrics": {"count": 12, "share": "4.5%", "missing": None},
        }
    )
    result = parse_ai_response(raw)
    assert result.reformulated_query is None
    assert result.insights == ["single insight"]
    assert result.recommendations == ["r", "3"]
    assert result.metrics == {"count": "12", "share": "4.5%"}


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "{",
        "}",
        "{not json}",
        "```json\n{broken\n```",
        '{"message": 5}',
        "[1, 2, 3]",
        '"just a string"',
        "null",
        "{" * 5000,
        "1" * 5000,
        'Here: {"message": "x", "n": ' + "9" * 5000 + "}",
        '{"message": "x", "metrics": [1, 2]}',
    ],
)
def test_parser_is_total(raw) -> None:
    result = parse_ai_response(raw)
    assert isinstance(result.message, str)
    validate_schema(result.model_dump(), ANALYSIS_RESULT_SCHEMA)


def test_none_is_treated_as_empty_text() -> None:
    result = parse_ai_response(None)
    assert result.message == ""
    assert result.insights == [FALLBACK_INSIGHT]


def test_strip_code_fence() -> None:
    assert strip_code_fence('  ```json\n{"a": 1}\n```  ') == '{"a": 1}'
    assert strip_code_fence("```python\nprint(1)\n```") == "print(1)"
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'


def test_extract_json_object_takes_outermost_balanced_span() -> None:
    text = 'prefix {"a": {"b": 1}, "c": "}"} middle {"d": 2} suffix'
    assert extract_json_object(text) == '{"a": {"b": 1}, "c": "}"}'


def test_extract_json_object_handles_escaped_quotes() -> None:
    text = 'x {"a": "say \\"}\\" now"} y'
    assert extract_json_object(text) == '{"a": "say \\"}\\" now"}'


def test_extract_json_object_without_balanced_span() -> None:
    assert extract_json_object("no braces") is None
    assert extract_json_object('{"a": 1') is None


def test_oversized_integer_literal_falls_back_to_plain_text() -> None:
    raw = '{"message": "x", "n": ' + "9" * 5000 + "}"
    result = parse_ai_response(raw)
    assert result.message == raw
    assert result.insights == [FALLBACK_INSIGHT]
