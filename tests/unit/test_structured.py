from __future__ import annotations

import pytest

from lcoder.errors import InvalidStructuredOutput
from lcoder.memory.schema import Plan, Review
from lcoder.structured import EMPTY_OBJECT, contains_json, extract_json, parse_structured


def test_extract_json_ignores_commentary_and_fences() -> None:
    raw = 'Sure, here it is:\n```json\n{"goal": "x", "steps": []}\n```\nAnything else?'
    assert extract_json(raw) == '{"goal": "x", "steps": []}'


def test_extract_json_skips_braces_inside_strings() -> None:
    raw = 'prefix {"summary": "use {braces} and \\"quotes\\"", "score": 8} suffix {"other": 1}'
    assert extract_json(raw) == '{"summary": "use {braces} and \\"quotes\\"", "score": 8}'


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"a": "{ unbalanced"}', '{"a": "{ unbalanced"}'),
        ('{"a": "} early close"} tail', '{"a": "} early close"}'),
        ('say {"a": "x\\""} done', '{"a": "x\\""}'),
        ('```\n{"nested": {"b": [1, {"c": 2}]}}\n```', '{"nested": {"b": [1, {"c": 2}]}}'),
    ],
)
def test_extract_json_string_awareness(raw: str, expected: str) -> None:
    assert extract_json(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["```\n```", "```json\n```", "{", "}{", 'text {"a": "unterminated string}', "{}", "{ } and {x}"],
)
def test_extract_json_result_is_balanced_or_sentinel(raw: str) -> None:
    result = extract_json(raw)

    assert result == EMPTY_OBJECT or (result.startswith("{") and result.endswith("}"))
    if "{" not in raw:
        assert result == EMPTY_OBJECT


@pytest.mark.parametrize("raw", [None, "", "   ", "no json here", '{"unterminated": 1', "```\n```"])
def test_extract_json_returns_empty_object_sentinel(raw: str | None) -> None:
    assert extract_json(raw) == EMPTY_OBJECT


def test_contains_json_precheck() -> None:
    assert contains_json("text {1} text")
    assert not contains_json("nothing")
    assert not contains_json(None)
    assert not contains_json("only an opening { brace")


def test_parse_plan_accepts_camel_case_and_loose_numbers() -> None:
    raw = """Thinking about it...
{
  "goal": "Add login",
  "Complexity": "high",
  "estimatedTime": "1 hour",
  "steps": [
    {"order": "1", "description": "Create model", "type": "code",
     "files": ["src/user.py"], "dependencies": [], "estimatedMinutes": "15 minutes"},
    {"order": 2, "description": "Write tests", "type": "test",
     "files": "tests/test_user.py", "dependencies": ["1", "step one"]},
  ]
}"""
    plan = parse_structured(raw, Plan)

    assert plan.goal == "Add login"
    assert plan.complexity == "high"
    assert plan.estimated_time == "1 hour"
    first, second = plan.steps
    assert first.order == 1
    assert first.estimated_minutes == 15
    assert second.files == ["tests/test_user.py"]
    assert second.dependencies == [1]
    assert second.estimated_minutes == 5
    assert not second.completed


def test_parse_plan_accepts_self_dependency() -> None:
    raw = '{"goal": "Bootstrap", "steps": [{"order": 1, "description": "Init", "dependencies": [1]}]}'

    plan = parse_structured(raw, Plan)

    assert plan.steps[0].dependencies == [1]


def test_parse_review_tolerates_smart_quotes_and_optional_fields() -> None:
    raw = (
        "{“approved”: “yes”, “score”: “8/10”, "
        '"issues": [{"severity": "blocker", "message": "odd", "line": "n/a"}], '
        '"suggestions": ["rename x"], "summary": "fine"}'
    )
    review = parse_structured(raw, Review)

    assert review.approved is True
    assert review.score == 8
    assert review.issues[0].severity == "blocker"
    assert review.issues[0].line is None
    assert review.unknown_count == 1
    assert review.critical_count == 0


def test_parse_structured_reports_missing_object() -> None:
    with pytest.raises(InvalidStructuredOutput) as excinfo:
        parse_structured("I could not produce a plan.", Plan, context="plan")

    assert "no JSON object found" in str(excinfo.value)
    assert excinfo.value.raw == "I could not produce a plan."


def test_parse_structured_rejects_empty_object() -> None:
    with pytest.raises(InvalidStructuredOutput, match="empty object"):
        parse_structured("{ }", Review)


def test_invalid_json_error_carries_bounded_preview() -> None:
    candidate = "{" + '"summary": "' + "x" * 800 + '" "broken": }'
    with pytest.raises(InvalidStructuredOutput) as excinfo:
        parse_structured(candidate, Review)

    error = excinfo.value
    assert "not valid JSON" in str(error)
    assert len(error.preview) == 503
    assert error.preview.endswith("...")
    assert "Extracted JSON:" in str(error)
