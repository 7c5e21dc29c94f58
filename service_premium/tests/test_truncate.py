"""
Unit tests for HTML-aware truncation.
"""

import pytest

from service_premium.app.preview.truncate import plain_text_preview, strip_tags, truncate_html
from shared.errors import ValidationError


class TestTruncateHtml:
    """Test cases for truncate_html."""

    def test_closes_open_tags_in_reverse_order(self):
        assert truncate_html("<p>Hello <b>world</b></p>", 8) == "<p>Hello <b>wo</b></p>"

    def test_fraction_budget(self):
        assert truncate_html("<p>abcdefghij</p>", 0.5) == "<p>abcde</p>"

    def test_fraction_is_floored(self):
        assert truncate_html("<p>abc</p>", 0.5) == "<p>a</p>"

    def test_full_budget_returns_input(self):
        html = "<div><p>One</p><p>Two</p></div>"
        assert truncate_html(html, 1.0) == html

    def test_budget_larger_than_text(self):
        html = "<em>short</em>"
        assert truncate_html(html, 500) == html

    def test_zero_budget(self):
        assert truncate_html("<p>text</p>", 0) == ""

    def test_markup_does_not_count(self):
        html = '<a href="https://example.com/a/very/long/url">link</a> tail'
        assert truncate_html(html, 4) == '<a href="https://example.com/a/very/long/url">link</a>'

    def test_void_elements_are_not_closed(self):
        assert truncate_html("<p>ab<br>cd<img src='x.png'>ef</p>", 4) == "<p>ab<br>cd</p>"

    def test_self_closing_elements_are_not_closed(self):
        assert truncate_html("<p>ab<span/>cdef</p>", 3) == "<p>ab<span/>c</p>"

    def test_closed_elements_are_not_reclosed(self):
        assert truncate_html("<p><b>bold</b> and more</p>", 6) == "<p><b>bold</b> a</p>"

    def test_nested_same_name_elements(self):
        assert truncate_html("<div>a<div>b<div>cd</div></div></div>", 3) == "<div>a<div>b<div>c</div></div></div>"

    def test_tag_names_are_case_insensitive(self):
        assert truncate_html("<P>Hello <B>world</B></P>", 8) == "<P>Hello <B>wo</b></p>"

    def test_tags_inside_comments_are_ignored(self):
        assert truncate_html("<p><!-- <b> -->text</p>", 6) == "<p><!-- <b> -->te</p>"

    def test_cut_inside_comment_terminates_it(self):
        result = truncate_html("<p><!-- <b> -->text</p>", 2)

        assert result == "<p><!-- <b> ---></p>"
        assert "</b>" not in result

    def test_plain_text(self):
        assert truncate_html("no markup here", 2) == "no"

    @pytest.mark.parametrize("budget", [-1, 1.5, -0.1, "10", None, True])
    def test_invalid_budget(self, budget):
        with pytest.raises(ValidationError):
            truncate_html("<p>text</p>", budget)


class TestPlainTextPreview:
    """Test cases for plain_text_preview."""

    def test_strips_markup_and_appends_ellipsis(self):
        assert plain_text_preview("<p>Hello <b>world</b></p>", 7) == "Hello w..."

    def test_short_text_still_gets_ellipsis(self):
        assert plain_text_preview("<p>Hi</p>", 300) == "Hi..."

    def test_negative_length(self):
        with pytest.raises(ValidationError):
            plain_text_preview("text", -1)

    def test_strip_tags(self):
        assert strip_tags("<h1>Title</h1><p>Body</p>") == "TitleBody"
