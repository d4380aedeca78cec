"""Unit tests for the CSS content tokenizer."""
from __future__ import annotations

import css_tokenizer as css


def significant(source: str):
    return [token for token in css.tokenize(source) if not isinstance(token, css.WhitespaceToken)]


class TestPreprocess:
    """Tests for input normalization."""

    def test_newlines_normalized(self):
        assert css.preprocess("a\r\nb\rc\fd") == [0x61, 0x0A, 0x62, 0x0A, 0x63, 0x0A, 0x64]

    def test_nul_replaced(self):
        assert css.preprocess("\x00") == [css.REPLACEMENT]


class TestTokenize:
    """Tests for token production."""

    def test_string(self):
        tokens = css.tokenize('"hello"')
        assert len(tokens) == 1
        assert isinstance(tokens[0], css.StringToken)
        assert tokens[0].value == "hello"

    def test_single_quoted_string(self):
        assert css.tokenize("'hi'")[0].value == "hi"

    def test_escape_in_string(self):
        tokens = css.tokenize('"\\41 b"')
        assert tokens[0].value == "Ab"

    def test_unterminated_string_is_bad(self):
        tokens = css.tokenize('"abc\nrest')
        assert isinstance(tokens[0], css.BadStringToken)

    def test_attr_function(self):
        tokens = css.tokenize("attr(title)")
        assert [type(t) for t in tokens] == [css.FunctionToken, css.IdentToken, css.CloseParenToken]
        assert tokens[0].value == "attr"
        assert tokens[1].value == "title"

    def test_alternative_text_delimiter(self):
        tokens = significant('"x" / "alt"')
        assert isinstance(tokens[1], css.DelimToken)
        assert tokens[1].value == "/"
        assert tokens[2].value == "alt"

    def test_numbers(self):
        dimension, percentage, number = significant("12px 50% 3.5")
        assert isinstance(dimension, css.DimensionToken)
        assert (dimension.value, dimension.unit) == (12, "px")
        assert isinstance(percentage, css.PercentageToken)
        assert percentage.value == 50
        assert isinstance(number, css.NumberToken)
        assert number.value == 3.5
        assert number.type == "number"

    def test_unquoted_url(self):
        tokens = css.tokenize("url(image.png)")
        assert isinstance(tokens[0], css.URLToken)
        assert tokens[0].value == "image.png"

    def test_quoted_url_is_function(self):
        tokens = css.tokenize('url("image.png")')
        assert isinstance(tokens[0], css.FunctionToken)
        assert tokens[1].value == "image.png"

    def test_comments_skipped(self):
        tokens = css.tokenize("/* note */ident")
        assert isinstance(tokens[-1], css.IdentToken)
        assert tokens[-1].value == "ident"

    def test_hash_id(self):
        token = css.tokenize("#main")[0]
        assert isinstance(token, css.HashToken)
        assert token.value == "main"
        assert token.type == "id"

    def test_grouping_mirrors(self):
        assert css.OpenParenToken().mirror == ")"
        assert css.CloseCurlyToken().mirror == "{"

    def test_string_forms(self):
        assert str(css.WhitespaceToken()) == "WS"
        assert str(css.DelimToken(ord("/"))) == "DELIM(/)"
        assert css.WhitespaceToken().to_source() == " "

    def test_empty_input(self):
        assert css.tokenize("") == []
