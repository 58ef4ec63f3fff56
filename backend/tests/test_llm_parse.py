import pytest

from news_analyzer.exceptions import InvalidResponse
from news_analyzer.services.llm_parser import (
    extract_root_json,
    loads_lenient,
    parse_classification,
    split_tags,
)


class TestExtraction:
    def test_fenced_json(self):
        content = '```json\n{"summary": "Rates rise", "confidence": 0.7}\n```'
        result = parse_classification(content)

        assert result.summary == "Rates rise"
        assert result.confidence == 0.7

    def test_prose_around_json(self):
        content = 'Here is the result: {"summary": "Text with } brace", "keywords": ["a"]} Hope it helps.'
        result = parse_classification(content)

        assert result.summary == "Text with } brace"
        assert result.keywords == frozenset({"a"})

    def test_root_json_ignores_brackets_in_strings(self):
        text = 'x {"a": "[not] {an} array", "b": [1, 2]} y'
        assert extract_root_json(text) == '{"a": "[not] {an} array", "b": [1, 2]}'

    def test_no_json(self):
        with pytest.raises(InvalidResponse):
            parse_classification("I cannot classify this article.")

    def test_empty_content(self):
        with pytest.raises(InvalidResponse):
            parse_classification("   ")

    def test_trailing_commas_and_comments(self):
        assert loads_lenient('{"a": 1,\n  // note\n "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_malformed_json(self):
        with pytest.raises(InvalidResponse):
            parse_classification('{"summary": "unterminated}')

    def test_chat_envelope_as_content(self):
        envelope = (
            '{"choices": [{"message": {"content": '
            '"{\\"summary\\": \\"Wrapped\\", \\"is_soft_news\\": true}"}}]}'
        )
        result = parse_classification(envelope)

        assert result.summary == "Wrapped"
        assert result.is_soft_news is True


class TestNormalisation:
    def test_complete_result(self):
        content = """{
            "summary": "Central bank raises rates",
            "is_soft_news": false,
            "industry_type": "Finance",
            "news_type": "Policy",
            "confidence": 0.85,
            "keywords": ["rates", "central bank", "rates"]
        }"""
        result = parse_classification(content)

        assert result.is_soft_news is False
        assert result.industry_type == "Finance"
        assert result.news_type == "Policy"
        assert result.keywords == frozenset({"rates", "central bank"})

    def test_confidence_is_clamped(self):
        assert parse_classification('{"summary": "s", "confidence": 7}').confidence == 1.0
        assert parse_classification('{"summary": "s", "confidence": -2}').confidence == 0.0
        assert parse_classification('{"summary": "s"}').confidence == 0.0

    def test_keywords_as_delimited_string(self):
        result = parse_classification('{"summary": "s", "keywords": "AI，chips、 export; policy"}')
        assert result.keywords == frozenset({"AI", "chips", "export", "policy"})

    def test_tag_lists_merge(self):
        content = '{"summary": "s", "industries": ["Tech"], "industry_type": "Finance/Tech", "types": ["Deal"]}'
        result = parse_classification(content)

        assert result.industry_type == "Finance, Tech"
        assert result.news_type == "Deal"

    def test_string_booleans(self):
        assert parse_classification('{"summary": "s", "is_soft_news": "yes"}').is_soft_news is True
        assert parse_classification('{"summary": "s", "is_soft_news": "false"}').is_soft_news is False

    def test_missing_summary(self):
        with pytest.raises(InvalidResponse):
            parse_classification('{"industry_type": "Finance"}')

    def test_blank_summary(self):
        with pytest.raises(InvalidResponse):
            parse_classification('{"summary": "   "}')

    def test_news_list_shape(self):
        content = '{"has_news": true, "news_list": [{"summary": "First item", "types": ["Market"]}, {"summary": "Second"}]}'
        result = parse_classification(content)

        assert result.summary == "First item"
        assert result.news_type == "Market"

    def test_empty_news_list(self):
        with pytest.raises(InvalidResponse):
            parse_classification('{"has_news": false, "news_list": []}')

    def test_top_level_array(self):
        assert parse_classification('[{"summary": "From array"}]').summary == "From array"


def test_split_tags():
    assert split_tags("Finance, Tech｜Energy / Retail\\Media") == ["Finance", "Tech", "Energy", "Retail", "Media"]
