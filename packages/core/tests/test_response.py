"""Tests for response text extraction and result parsing."""

import json

import pytest

from codeguardian_core.response import ParseResult, extract_response_text, parse_review_result

TEXT = json.dumps({"issues": [{"id": "CQ-4.05", "path": "src/App.jsx", "line": 12, "message": "m", "suggestion": "s"}]})

SHAPES = {
    "gemini_candidates": {"candidates": [{"content": {"parts": [{"text": TEXT}], "role": "model"}}]},
    "output_text": {"output_text": TEXT},
    "output_blocks": {
        "output": [
            {"type": "reasoning", "summary": []},
            {"type": "message", "content": [{"type": "output_text", "text": TEXT}]},
        ]
    },
    "chat_completion": {"choices": [{"message": {"role": "assistant", "content": TEXT}}]},
}


class TestExtractResponseText:
    @pytest.mark.parametrize("shape", sorted(SHAPES))
    def test_every_known_shape_yields_the_same_text(self, shape):
        assert extract_response_text(SHAPES[shape]) == TEXT

    @pytest.mark.parametrize("data", [{}, {"unexpected": "shape"}, None, "text", [], {"candidates": []}])
    def test_unrecognised_shape_yields_empty_string(self, data):
        assert extract_response_text(data) == ""

    @pytest.mark.parametrize(
        "data",
        [
            {"candidates": ["x"]},
            {"candidates": [None]},
            {"candidates": [{"content": "text"}]},
            {"candidates": [{"content": {"parts": "text"}}]},
            {"choices": ["x"]},
            {"choices": [{"message": "x"}]},
            {"choices": [{"message": None}]},
            {"output": [{"type": "message", "content": 42}]},
        ],
    )
    def test_malformed_elements_yield_empty_string(self, data):
        assert extract_response_text(data) == ""

    def test_malformed_candidates_fall_through_to_chat(self):
        data = {"candidates": ["x"], "choices": [{"message": {"content": TEXT}}]}
        assert extract_response_text(data) == TEXT

    def test_gemini_parts_joined_with_newline(self):
        data = {"candidates": [{"content": {"parts": [{"text": "a"}, {"inline_data": {}}, {"text": "b"}]}}]}
        assert extract_response_text(data) == "a\nb"

    def test_blank_output_text_falls_through(self):
        data = {"output_text": "   ", "choices": [{"message": {"content": "from chat"}}]}
        assert extract_response_text(data) == "from chat"

    def test_candidates_take_priority_over_chat(self):
        data = {
            "candidates": [{"content": {"parts": [{"text": "gemini"}]}}],
            "choices": [{"message": {"content": "chat"}}],
        }
        assert extract_response_text(data) == "gemini"

    def test_output_blocks_ignore_non_text_content(self):
        data = {"output": [{"type": "message", "content": [{"type": "refusal", "refusal": "no"}]}]}
        assert extract_response_text(data) == ""

    def test_null_chat_content_is_not_a_match(self):
        assert extract_response_text({"choices": [{"message": {"content": None}}]}) == ""


class TestParseReviewResult:
    def test_valid_object(self):
        result = parse_review_result(TEXT)
        assert result.ok
        assert result.issues[0]["path"] == "src/App.jsx"

    def test_invalid_json_defaults_to_empty_issues(self):
        result = parse_review_result("not json at all")
        assert not result.ok
        assert result.value == {"issues": []}
        assert result.error

    def test_empty_text_is_an_empty_result(self):
        result = parse_review_result("")
        assert result.ok
        assert result.issues == []

    def test_strips_markdown_fence(self):
        assert len(parse_review_result(f"```json\n{TEXT}\n```").issues) == 1

    def test_preserves_code_fences_inside_values(self):
        payload = json.dumps({"issues": [{"suggestion": "Use:\n```js\nfoo()\n```"}]})
        result = parse_review_result(f"```json\n{payload}\n```")
        assert "```js" in result.issues[0]["suggestion"]

    def test_bare_list_is_the_issues_list(self):
        result = parse_review_result('[{"path": "a.js", "line": 1}]')
        assert result.value == {"issues": [{"path": "a.js", "line": 1}]}

    def test_object_without_issues_list_normalised(self):
        result = parse_review_result('{"summary": "fine", "issues": "none"}')
        assert result.issues == []
        assert result.value["summary"] == "fine"

    def test_scalar_json_is_an_error(self):
        result = parse_review_result("42")
        assert not result.ok
        assert result.value == {"issues": []}

    def test_default_parse_result(self):
        assert ParseResult().value == {"issues": []}
        assert ParseResult().value is not ParseResult().value
