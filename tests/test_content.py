"""
Unit tests for content normalization.
"""

import pytest

from media_ledger.core.content import (
    PlainText,
    Segment,
    SegmentList,
    SubtitleDocument,
    normalize_content,
    segments_from_dicts,
)

SRT = (
    "1\r\n"
    "00:00:01,000 --> 00:00:02,500\r\n"
    "Hello   there\r\n"
    "\r\n"
    "2\r\n"
    "00:00:03,000 --> 00:00:04,000\r\n"
    "General Kenobi\r\n"
    "You are a bold one\r\n"
)


class TestNormalizeContent:
    """Test each content case normalizes to collapsed plain text."""

    def test_plain_text(self):
        assert normalize_content(PlainText("  hello \n\t world  ")) == "hello world"

    def test_bare_string_is_plain_text(self):
        assert normalize_content(" a  b ") == "a b"

    def test_none_is_empty(self):
        assert normalize_content(None) == ""

    def test_segments_joined_with_spaces(self):
        content = SegmentList(segments=(
            Segment(" first ", 0.0, 1.0),
            Segment(""),
            Segment("second\nline", 1.0, 2.0),
        ))
        assert normalize_content(content) == "first second line"

    def test_subtitles_drop_indices_and_timecodes(self):
        assert normalize_content(SubtitleDocument(SRT)) == "Hello there General Kenobi You are a bold one"

    def test_subtitle_text_containing_digits_is_kept(self):
        srt = "1\n00:00:01,000 --> 00:00:02,000\n42 is the answer\n"
        assert normalize_content(SubtitleDocument(srt)) == "42 is the answer"

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            normalize_content(123)


class TestSegmentsFromDicts:
    """Test building segments from job output."""

    def test_skips_non_dicts_and_handles_missing_text(self):
        segments = segments_from_dicts([
            {"text": " a ", "start": 0, "end": 1},
            {"text": None},
            "junk",
            {"text": "b"},
        ])
        assert len(segments.segments) == 3
        assert normalize_content(segments) == "a b"

    def test_empty_input(self):
        assert segments_from_dicts(None).segments == ()
