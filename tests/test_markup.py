"""
Markup Helper Tests
===================
Tests for HTML flattening, speech normalization and markdown conversion.
"""

import pytest

from chapterflow.content.markup import (
    html_to_lines,
    normalize_for_speech,
    prepare_for_provider,
    sanitize_sentence,
    simple_md_to_html,
    strip_html,
)
from chapterflow.errors import ContentTooShortError


class TestHtml:
    """HTML flattening."""

    def test_strip_html(self):
        assert strip_html("<p>Xin&nbsp;chào</p>\n<p>thế   giới</p>") == "Xin chào thế giới"

    def test_html_to_lines_keeps_breaks(self):
        text = "<p>Dòng một.</p><p>Dòng hai.</p>Ba<br>Bốn"
        assert html_to_lines(text).split("\n") == ["Dòng một.", "Dòng hai.", "Ba", "Bốn"]

    def test_html_to_lines_drops_blank_lines(self):
        assert html_to_lines("<p>  </p><p>Một</p><br><br>") == "Một"


class TestSpeechNormalization:
    """Punctuation inside words is removed before providers see the text."""

    def test_numbers_and_dashes(self):
        assert normalize_for_speech("Giá 1.000 đồng, A-B") == "Giá 1000 đồng, AB"

    def test_trailing_period_and_comma_kept(self):
        assert normalize_for_speech("Hết chương. Tiếp,") == "Hết chương. Tiếp,"

    def test_short_lines_dropped(self):
        assert normalize_for_speech("a\n-\nxin chào") == "xin chào"

    def test_prepare_for_provider(self):
        html = "<p>" + "Lâm Phong bước vào đại điện, ánh mắt lạnh lùng. " * 3 + "</p>"
        text = prepare_for_provider(html)
        assert "<p>" not in text
        assert len(text) >= 50

    def test_prepare_for_provider_rejects_short_content(self):
        with pytest.raises(ContentTooShortError):
            prepare_for_provider("<p>Ngắn quá.</p>")


class TestSanitizeSentence:
    def test_removes_unsafe_characters(self):
        assert sanitize_sentence('“Hắn nói: \'đi\'” <b>/*|~`') == "Hắn nói: đi b"


class TestMarkdown:
    """Provider markdown to reader HTML."""

    def test_bold_and_italic(self):
        assert simple_md_to_html("**Đậm** và *nghiêng*") == "<strong>Đậm</strong> và <em>nghiêng</em>"

    def test_paragraph_breaks(self):
        assert simple_md_to_html("Một\n\nHai") == "Một<br><br>Hai"

    def test_text_fence_removed(self):
        assert simple_md_to_html("```textNội dung") == "Nội dung"
