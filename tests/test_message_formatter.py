"""
Tests for agent and visitor message rendering.
"""

from widget_runtime.services.message_formatter import format_message, format_visitor_message


class TestFormatMessage:

    def test_plain_text_is_escaped(self):
        html = format_message("<script>alert(1)</script> & more")

        assert html == "<p>&lt;script&gt;alert(1)&lt;/script&gt; &amp; more</p>"

    def test_markdown_link_opens_in_new_context(self):
        html = format_message("See [our docs](https://example.com/docs) for details")

        assert '<a href="https://example.com/docs" target="_blank" rel="noopener noreferrer">our docs</a>' in html

    def test_bare_url_is_linked_without_trailing_punctuation(self):
        html = format_message("Visit https://example.com.")

        assert '<a href="https://example.com" target="_blank" rel="noopener noreferrer">https://example.com</a>.' in html

    def test_unsafe_scheme_is_not_linked(self):
        html = format_message("[click](javascript:alert(1))")

        assert "<a " not in html
        assert "click" in html

    def test_link_color(self):
        html = format_message("https://example.com", link_color="#112233")

        assert 'style="color: #112233; text-decoration: underline;"' in html

    def test_bold(self):
        assert format_message("This is **important**") == "<p>This is <strong>important</strong></p>"

    def test_lists_and_paragraphs(self):
        html = format_message("Options:\n\n- One\n- Two\n\n1. First\n2. Second")

        assert html == (
            "<p>Options:</p>"
            "<ul><li>One</li><li>Two</li></ul>"
            "<ol><li>First</li><li>Second</li></ol>"
        )

    def test_line_breaks_within_paragraph(self):
        assert format_message("line one\nline two") == "<p>line one<br>line two</p>"


class TestFormatVisitorMessage:

    def test_markup_is_not_interpreted(self):
        html = format_visitor_message("**hi** <b>there</b> https://example.com")

        assert "<strong>" not in html
        assert "<a " not in html
        assert "&lt;b&gt;" in html
