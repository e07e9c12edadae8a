"""
Unit tests for usage estimation.

Covers transcription token math, the shared text-cost formula and the
UsageEstimator facade.
"""

import itertools
from dataclasses import replace

import pytest

from media_ledger.core.content import PlainText, SubtitleDocument
from media_ledger.core.errors import EstimationUnavailable
from media_ledger.core.estimator import (
    RunItem,
    UsageEstimator,
    count_targets,
    estimate_from_content,
    estimate_from_duration_fallback,
    estimate_item,
    estimate_run,
    estimate_with_fallback,
)
from media_ledger.core.manifest import DEFAULT_MANIFEST, SUMMARIZATION_POLICY, TRANSLATION_POLICY
from media_ledger.core.token_counter import MAX_SYNTHETIC_CHARS, synthetic_chars_from_duration


class TestTranscriptionEstimate:
    """Test per-item and per-run media token estimates."""

    def test_sub_second_item_costs_one_token(self):
        assert estimate_item(0.4, "deepgram_nova3") == 1

    def test_minutes_at_rate(self):
        assert estimate_item(125, "deepgram_nova3") == 50
        assert estimate_item(60, "deepgram_whisper") == 30
        assert estimate_item(61, "deepgram_nova3") == 25

    def test_unknown_model_is_free(self):
        assert estimate_item(125, "unknown_model") == 0
        assert estimate_item(125, None) == 0

    def test_missing_duration_is_free(self):
        assert estimate_item(None, "deepgram_nova3") == 0
        assert estimate_item(0, "deepgram_nova3") == 0

    def test_run_sums_items_with_model_fallback(self):
        items = [
            RunItem(61),
            RunItem(30, model_id="deepgram_whisper"),
            RunItem(0.4),
        ]
        assert estimate_run(items, "deepgram_nova3") == 25 + 15 + 1

    def test_run_total_independent_of_order(self):
        items = [
            RunItem(61),
            RunItem(30, model_id="deepgram_whisper"),
            RunItem(0.4),
            RunItem(600, model_id="upliftai_scribe_mini"),
        ]
        expected = estimate_run(items, "deepgram_nova3")
        for permutation in itertools.permutations(items):
            assert estimate_run(permutation, "deepgram_nova3") == expected

    def test_overheads(self):
        manifest = replace(DEFAULT_MANIFEST, per_item_overhead=2, per_run_overhead=3)
        items = [RunItem(60), RunItem(60)]
        assert estimate_run(items, "deepgram_nova3", manifest) == (24 + 2) * 2 + 3

    def test_empty_run(self):
        assert estimate_run([], "deepgram_nova3") == 0


class TestTextEstimate:
    """Test the text-cost formula for translation and summarization."""

    def test_translation_formula(self):
        usage = estimate_from_content("a" * 400, 2, TRANSLATION_POLICY)
        # base 100 units; input 100 + 120 + 40 per target; output ceil(100 * 1.1)
        assert usage.input_units == 260 * 2
        assert usage.output_units == 110 * 2
        assert usage.billable_units == 740

    def test_output_ratio_rounds_exactly(self):
        usage = estimate_from_content("a" * 40, 1, TRANSLATION_POLICY)
        assert usage.output_units == 11

    def test_summarization_formula(self):
        usage = estimate_from_content("a" * 400, 1, SUMMARIZATION_POLICY)
        assert usage.input_units == 100 + 160
        assert usage.output_units == 110

    def test_cost_linear_in_targets(self):
        text = PlainText("The quick brown fox jumps over the lazy dog. " * 20)
        one = estimate_from_content(text, 1, TRANSLATION_POLICY)
        for n in range(1, 6):
            usage = estimate_from_content(text, n, TRANSLATION_POLICY)
            assert usage.input_units == n * one.input_units
            assert usage.output_units == n * one.output_units

    def test_zero_targets_cost_nothing(self):
        usage = estimate_from_content("some text", 0, TRANSLATION_POLICY)
        assert usage.billable_units == 0

    def test_duration_fallback_matches_equivalent_text(self):
        assert synthetic_chars_from_duration(60, TRANSLATION_POLICY) == 750
        from_duration = estimate_from_duration_fallback(60, 2, TRANSLATION_POLICY)
        from_text = estimate_from_content("x" * 750, 2, TRANSLATION_POLICY)
        assert from_duration == from_text

    def test_huge_duration_capped_at_max_transcript(self):
        assert synthetic_chars_from_duration(1e30, TRANSLATION_POLICY) == MAX_SYNTHETIC_CHARS
        assert synthetic_chars_from_duration(10 ** 400, TRANSLATION_POLICY) == 0
        usage = estimate_from_duration_fallback(1e30, 1, TRANSLATION_POLICY)
        assert usage == estimate_from_content("x" * MAX_SYNTHETIC_CHARS, 1, TRANSLATION_POLICY)

    def test_text_preferred_over_duration(self):
        usage = estimate_with_fallback("a" * 400, 3600, 1, TRANSLATION_POLICY)
        assert usage == estimate_from_content("a" * 400, 1, TRANSLATION_POLICY)

    def test_whitespace_only_text_uses_duration(self):
        usage = estimate_with_fallback("   \n ", 60, 1, TRANSLATION_POLICY)
        assert usage == estimate_from_duration_fallback(60, 1, TRANSLATION_POLICY)

    def test_nothing_to_estimate_from(self):
        with pytest.raises(EstimationUnavailable):
            estimate_with_fallback(None, None, 1, TRANSLATION_POLICY)
        with pytest.raises(EstimationUnavailable):
            estimate_with_fallback("", float("nan"), 1, TRANSLATION_POLICY)

    def test_count_targets_dedupes_and_drops_blanks(self):
        assert count_targets(["en", "fr", "en", "", " ", None]) == 2
        assert count_targets(None) == 0


class TestUsageEstimator:
    """Test the end-to-end estimator facade."""

    def setup_method(self):
        self.estimator = UsageEstimator(DEFAULT_MANIFEST)

    def test_transcription(self):
        estimate = self.estimator.transcription([RunItem(125)], "deepgram_nova3")
        assert estimate.media_tokens == 50
        assert estimate.billable_units == 125
        assert estimate.usd_cents == 25
        assert estimate.usd_formatted == "$0.25"
        assert estimate.debug_breakdown["pricing_version"] == DEFAULT_MANIFEST.version

    def test_transcription_unknown_when_duration_missing(self):
        assert self.estimator.transcription([RunItem(60), RunItem(None)], "deepgram_nova3") is None
        assert self.estimator.transcription([], "deepgram_nova3") is None

    def test_transcription_for_records_resolves_durations(self):
        records = [
            {"media": {"meta": {"durationSeconds": 125}}, "durationSeconds": 999},
            {"media": {"duration": "nan"}, "results": {"mediaMeta": {"durationSeconds": 125}}},
        ]
        from_records = self.estimator.transcription_for_records(records, "deepgram_nova3")
        direct = self.estimator.transcription([RunItem(125), RunItem(125)], "deepgram_nova3")
        assert from_records == direct
        assert self.estimator.transcription_for_records([{"media": {}}], "deepgram_nova3") is None

    def test_run_item_from_record(self):
        item = RunItem.from_record({"durationSeconds": 30, "modelId": "deepgram_nova3"})
        assert item == RunItem(30.0, "deepgram_nova3")
        assert RunItem.from_record({}) == RunItem(None, None)

    def test_translation(self):
        estimate = self.estimator.translation("a" * 400, ["en", "fr"])
        assert estimate.billable_units == 740
        # 740 units at 4000 cents per 1M = 2.96 cents
        assert estimate.usd_cents == 3
        assert estimate.media_tokens == 6
        assert estimate.debug_breakdown["source"] == "content"

    def test_translation_from_subtitles(self):
        srt = "1\n00:00:01,000 --> 00:00:02,000\n" + "a" * 400 + "\n"
        estimate = self.estimator.translation(SubtitleDocument(srt), ["en"])
        assert estimate.input_units == 260

    def test_translation_without_targets(self):
        estimate = self.estimator.translation("hello", [])
        assert estimate.media_tokens == 0

    def test_translation_unknown(self):
        assert self.estimator.translation("", ["en"]) is None

    def test_summarization_duration_fallback(self):
        estimate = self.estimator.summarization(None, duration_seconds=60)
        assert estimate.debug_breakdown["source"] == "duration"
        assert estimate.input_units == 188 + 160
        assert estimate.output_units == 207

    def test_summarization_unknown(self):
        assert self.estimator.summarization(None) is None

    def test_text_estimates_for_records(self):
        record = {"audio": {"durationSeconds": 60}}
        assert self.estimator.summarization_for_record(record) == self.estimator.summarization(None, 60)
        assert self.estimator.translation_for_record(record, ["en"]) == self.estimator.translation(None, ["en"], 60)
        assert self.estimator.translation_for_record({}, ["en"], content="a" * 400) is not None
        assert self.estimator.summarization_for_record({"media": {}}) is None

    def test_huge_duration_still_estimates(self):
        estimate = self.estimator.summarization(None, duration_seconds=1e30)
        assert estimate.input_units == 250_000 + 160
        assert estimate.output_units == 275_000
        assert estimate.media_tokens > 0
        assert self.estimator.translation(None, ["en"], duration_seconds=1e300) is not None
        assert self.estimator.summarization(None, duration_seconds=10 ** 400) is None
