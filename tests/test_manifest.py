"""
Unit tests for the pricing manifest.
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from media_ledger.core.manifest import (
    DEFAULT_MANIFEST,
    SUMMARIZATION_POLICY,
    TRANSLATION_POLICY,
    BillingModel,
    CurrencyPolicy,
    PricingManifest,
    TextCostPolicy,
    export_manifest,
)


class TestDefaultManifest:
    """Test the built-in rate table."""

    def test_version_and_rates(self):
        assert DEFAULT_MANIFEST.version == "v1_2026-02-14"
        assert DEFAULT_MANIFEST.tokens_per_usd == 200
        assert DEFAULT_MANIFEST.tokens_per_minute("deepgram_nova3") == 24
        assert DEFAULT_MANIFEST.tokens_per_minute("deepgram_whisper") == 30
        assert DEFAULT_MANIFEST.tokens_per_minute("upliftai_scribe") == 18
        assert DEFAULT_MANIFEST.tokens_per_minute("upliftai_scribe_mini") == 12

    def test_unknown_model(self):
        assert DEFAULT_MANIFEST.get_model("nope") is None
        assert DEFAULT_MANIFEST.get_model(None) is None
        assert DEFAULT_MANIFEST.tokens_per_minute("nope") == 0

    def test_text_policies(self):
        assert TRANSLATION_POLICY.prompt_overhead == 120
        assert TRANSLATION_POLICY.per_target_overhead == 40
        assert SUMMARIZATION_POLICY.prompt_overhead == 160
        assert SUMMARIZATION_POLICY.per_target_overhead == 0
        assert DEFAULT_MANIFEST.translation.output_ratio == Decimal("1.1")

    def test_currency_effective_rate(self):
        assert DEFAULT_MANIFEST.currency.effective_cents_per_million == 4000
        assert CurrencyPolicy(base_vendor_cents_per_million=100, markup_multiplier=3).effective_cents_per_million == 300

    def test_manifest_is_immutable(self):
        with pytest.raises(Exception):
            DEFAULT_MANIFEST.version = "v2"


class TestManifestValidation:
    """Test that invalid rate tables are rejected."""

    def test_quantum_range(self):
        with pytest.raises(ValueError, match="quantum_seconds"):
            replace(DEFAULT_MANIFEST, quantum_seconds=0)
        with pytest.raises(ValueError, match="quantum_seconds"):
            replace(DEFAULT_MANIFEST, quantum_seconds=61)

    def test_min_billable_range(self):
        with pytest.raises(ValueError, match="min_billable_seconds"):
            replace(DEFAULT_MANIFEST, min_billable_seconds=3601)
        assert replace(DEFAULT_MANIFEST, min_billable_seconds=0).min_billable_seconds == 0

    def test_empty_version(self):
        with pytest.raises(ValueError, match="version"):
            PricingManifest(version=" ", models=())

    def test_duplicate_model_ids(self):
        model = BillingModel(id="m", label="M", tokens_per_minute=1)
        with pytest.raises(ValueError, match="unique"):
            PricingManifest(version="v", models=(model, model))

    def test_negative_rate(self):
        with pytest.raises(ValueError):
            BillingModel(id="m", label="M", tokens_per_minute=-1)

    @pytest.mark.parametrize("kwargs", [
        {"output_ratio": Decimal("3.1")},
        {"output_ratio": Decimal("0.05")},
        {"words_per_minute": 59},
        {"chars_per_word": Decimal("2.4")},
        {"chars_per_word": Decimal("10.5")},
        {"chars_per_unit": 0},
    ])
    def test_text_policy_ranges(self, kwargs):
        with pytest.raises(ValueError):
            TextCostPolicy(**kwargs)


class TestExportManifest:
    """Test the public manifest payload."""

    def test_payload_shape(self):
        payload = export_manifest(DEFAULT_MANIFEST)
        assert payload["pricingVersion"] == "v1_2026-02-14"
        assert payload["tokensPerUsd"] == 200
        assert payload["quantumSeconds"] == 1
        assert payload["minBillableSeconds"] == 1
        assert payload["perItemOverhead"] == 0
        assert payload["perRunOverhead"] == 0
        assert {"id": "deepgram_nova3", "label": "Deepgram Nova-3", "tokensPerMinute": 24} in payload["models"]
        assert payload["packs"] == [{"id": "pack_2000", "label": "2000 media tokens", "tokens": 2000, "usd": 10}]
