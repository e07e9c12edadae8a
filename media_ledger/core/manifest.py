"""
Pricing manifest and rate tables.

Holds the versioned, immutable rates and rounding parameters shared by the
client-side estimator and the server-side ledger.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class BillingModel:
    """Per-minute media token rate for a transcription model."""
    id: str
    label: str
    tokens_per_minute: int

    def __post_init__(self):
        """Validate the model rate."""
        if not self.id or not self.id.strip():
            raise ValueError("model id cannot be empty")
        if self.tokens_per_minute < 0:
            raise ValueError(f"tokens_per_minute for {self.id} cannot be negative")


@dataclass(frozen=True)
class TokenPack:
    """Purchasable bundle of media tokens."""
    id: str
    label: str
    tokens: int
    usd: int


@dataclass(frozen=True)
class TextCostPolicy:
    """Knobs for text-based (LLM) cost estimation.

    One downstream request is billed per target language; summarization uses a
    single request and no per-target overhead.
    """
    chars_per_unit: int = 4
    prompt_overhead: int = 120
    per_target_overhead: int = 40
    output_ratio: Decimal = Decimal("1.1")
    words_per_minute: int = 150
    chars_per_word: Decimal = Decimal("5.0")

    def __post_init__(self):
        """Validate estimation knobs stay in their supported ranges."""
        if self.chars_per_unit < 1:
            raise ValueError("chars_per_unit must be >= 1")
        if self.prompt_overhead < 0:
            raise ValueError("prompt_overhead cannot be negative")
        if self.per_target_overhead < 0:
            raise ValueError("per_target_overhead cannot be negative")
        if not Decimal("0.1") <= Decimal(self.output_ratio) <= Decimal("3.0"):
            raise ValueError("output_ratio must be between 0.1 and 3.0")
        if self.words_per_minute < 60:
            raise ValueError("words_per_minute must be >= 60")
        if not Decimal("2.5") <= Decimal(self.chars_per_word) <= Decimal("10.0"):
            raise ValueError("chars_per_word must be between 2.5 and 10.0")


@dataclass(frozen=True)
class CurrencyPolicy:
    """Vendor price and markup used to turn LLM units into USD."""
    base_vendor_cents_per_million: int = 200  # $2.00 per 1M units
    markup_multiplier: int = 20

    def __post_init__(self):
        """Validate currency parameters."""
        if self.base_vendor_cents_per_million < 0:
            raise ValueError("base_vendor_cents_per_million cannot be negative")
        if self.markup_multiplier < 1:
            raise ValueError("markup_multiplier must be >= 1")

    @property
    def effective_cents_per_million(self) -> int:
        """Sell price in cents per 1M units."""
        return self.base_vendor_cents_per_million * self.markup_multiplier


TRANSLATION_POLICY = TextCostPolicy()
SUMMARIZATION_POLICY = TextCostPolicy(prompt_overhead=160, per_target_overhead=0)


@dataclass(frozen=True)
class PricingManifest:
    """Versioned pricing table.

    Never mutated in place: publishing new rates means constructing a new
    manifest with a new version string.
    """
    version: str
    models: Tuple[BillingModel, ...]
    tokens_per_usd: int = 200
    quantum_seconds: int = 1
    min_billable_seconds: int = 1
    per_item_overhead: int = 0
    per_run_overhead: int = 0
    packs: Tuple[TokenPack, ...] = ()
    translation: TextCostPolicy = TRANSLATION_POLICY
    summarization: TextCostPolicy = SUMMARIZATION_POLICY
    currency: CurrencyPolicy = field(default_factory=CurrencyPolicy)

    def __post_init__(self):
        """Validate rounding parameters and model uniqueness."""
        if not self.version or not self.version.strip():
            raise ValueError("version cannot be empty")
        if self.tokens_per_usd < 0:
            raise ValueError("tokens_per_usd cannot be negative")
        if not 1 <= self.quantum_seconds <= 60:
            raise ValueError("quantum_seconds must be between 1 and 60")
        if not 0 <= self.min_billable_seconds <= 3600:
            raise ValueError("min_billable_seconds must be between 0 and 3600")
        ids = [m.id for m in self.models]
        if len(ids) != len(set(ids)):
            raise ValueError("model ids must be unique")

    def get_model(self, model_id: Optional[str]) -> Optional[BillingModel]:
        """Get a billing model by id.

        Unknown ids return None rather than raising: an unpriced model
        estimates to zero tokens.
        """
        wanted = str(model_id or "")
        for model in self.models:
            if model.id == wanted:
                return model
        return None

    def tokens_per_minute(self, model_id: Optional[str]) -> int:
        """Rate for a model, 0 when the model is unknown."""
        model = self.get_model(model_id)
        return model.tokens_per_minute if model else 0


# Built-in manifest. Pass a different manifest explicitly to estimate
# against other rates.
DEFAULT_MANIFEST = PricingManifest(
    version="v1_2026-02-14",
    models=(
        BillingModel(id="deepgram_nova3", label="Deepgram Nova-3", tokens_per_minute=24),
        BillingModel(id="deepgram_whisper", label="Deepgram Whisper", tokens_per_minute=30),
        BillingModel(id="upliftai_scribe", label="UpliftAI Scribe", tokens_per_minute=18),
        BillingModel(id="upliftai_scribe_mini", label="UpliftAI Scribe Mini", tokens_per_minute=12),
    ),
    tokens_per_usd=200,
    quantum_seconds=1,
    min_billable_seconds=1,
    per_item_overhead=0,
    per_run_overhead=0,
    packs=(
        TokenPack(id="pack_2000", label="2000 media tokens", tokens=2000, usd=10),
    ),
)


def export_manifest(manifest: PricingManifest = DEFAULT_MANIFEST) -> dict:
    """Public manifest payload consumed by the UI and remote estimators."""
    return {
        "pricingVersion": manifest.version,
        "tokensPerUsd": manifest.tokens_per_usd,
        "quantumSeconds": manifest.quantum_seconds,
        "minBillableSeconds": manifest.min_billable_seconds,
        "perItemOverhead": manifest.per_item_overhead,
        "perRunOverhead": manifest.per_run_overhead,
        "models": [
            {"id": m.id, "label": m.label, "tokensPerMinute": m.tokens_per_minute}
            for m in manifest.models
        ],
        "packs": [
            {"id": p.id, "label": p.label, "tokens": p.tokens, "usd": p.usd}
            for p in manifest.packs
        ],
    }
