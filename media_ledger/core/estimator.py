"""
Usage estimation for transcription, translation and summarization runs.

Pure functions over an explicit PricingManifest. The client and the server
run the same functions, so both sides produce identical numbers.
"""

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from .content import Content, normalize_content
from .currency import CurrencyConverter, format_usd_from_cents
from .errors import EstimationUnavailable
from .manifest import DEFAULT_MANIFEST, PricingManifest, TextCostPolicy
from .quantizer import billable_seconds, ceil_div
from .resolver import resolve_duration_seconds
from .token_counter import TextUsage, approx_units_from_duration, approx_units_from_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunItem:
    """One media item in a transcription run."""
    duration_seconds: Optional[float]
    model_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RunItem":
        """Item for a raw job record; the duration comes from the first usable source."""
        model_id = record.get("modelId") if isinstance(record, Mapping) else None
        return cls(
            duration_seconds=resolve_duration_seconds(record),
            model_id=str(model_id) if model_id else None,
        )


@dataclass(frozen=True)
class UsageEstimate:
    """Estimated cost of one run. Recomputed on every request, never stored."""
    input_units: int
    output_units: int
    billable_units: int
    usd_cents: int
    media_tokens: int
    debug_breakdown: Dict[str, Any] = field(default_factory=dict)

    @property
    def usd_formatted(self) -> str:
        return format_usd_from_cents(self.usd_cents)


# --------------------
# Transcription
# --------------------

def estimate_item(
    duration_seconds: Optional[float],
    model_id: Optional[str],
    manifest: PricingManifest = DEFAULT_MANIFEST
) -> int:
    """Estimate media tokens for one item.

    tokens = ceil(billable_seconds * tokens_per_minute / 60) + per_item_overhead

    Unknown models and zero-length media cost 0 tokens.
    """
    rate = manifest.tokens_per_minute(model_id)
    if not rate:
        return 0

    seconds = billable_seconds(duration_seconds, manifest.quantum_seconds, manifest.min_billable_seconds)
    if not seconds:
        return 0

    return max(0, ceil_div(seconds * rate, 60) + manifest.per_item_overhead)


def estimate_run(
    items: Iterable[RunItem],
    default_model_id: Optional[str],
    manifest: PricingManifest = DEFAULT_MANIFEST
) -> int:
    """Estimate media tokens for a run of items.

    Items without their own model use the run's model. The total is a plain
    sum plus per-run overhead, so item order never changes it.
    """
    total = 0
    for item in items or ():
        total += estimate_item(item.duration_seconds, item.model_id or default_model_id, manifest)
    return max(0, total + manifest.per_run_overhead)


# --------------------
# Text-cost (translation / summarization)
# --------------------

def count_targets(target_langs: Optional[Sequence[str]]) -> int:
    """Number of distinct, non-empty target language codes."""
    seen = set()
    for lang in target_langs or ():
        code = str(lang or "").strip()
        if code:
            seen.add(code)
    return len(seen)


def _text_usage(base_input_units: int, target_count: int, policy: TextCostPolicy, source: str):
    """The one cost formula shared by the content and duration paths."""
    breakdown = {
        "base_input_units": base_input_units,
        "prompt_overhead": policy.prompt_overhead,
        "per_target_overhead": policy.per_target_overhead,
        "output_ratio": str(policy.output_ratio),
        "target_count": target_count,
        "source": source,
    }

    if target_count <= 0 or base_input_units + policy.prompt_overhead <= 0:
        return TextUsage(input_units=0, output_units=0), breakdown

    per_target_input = max(0, base_input_units + policy.prompt_overhead + policy.per_target_overhead)
    per_target_output = max(0, int(
        (Decimal(base_input_units) * Decimal(policy.output_ratio)).to_integral_value(rounding=ROUND_CEILING)
    ))

    breakdown["per_target_input"] = per_target_input
    breakdown["per_target_output"] = per_target_output

    return TextUsage(
        input_units=per_target_input * target_count,
        output_units=per_target_output * target_count,
    ), breakdown


def estimate_from_content(
    content: Union[Content, str, None],
    target_count: int,
    policy: TextCostPolicy
) -> TextUsage:
    """Estimate LLM units for a run over existing text content.

    Each target is billed as an independent request, so cost is linear in
    target_count.
    """
    usage, _ = _estimate_from_content(content, target_count, policy)
    return usage


def _estimate_from_content(content, target_count, policy):
    text = normalize_content(content)
    return _text_usage(approx_units_from_text(text, policy), target_count, policy, "content")


def estimate_from_duration_fallback(
    duration_seconds: Optional[float],
    target_count: int,
    policy: TextCostPolicy
) -> TextUsage:
    """Estimate LLM units from media duration when no text exists yet.

    A synthetic transcript length (words per minute x chars per word) feeds
    the same formula as estimate_from_content.
    """
    usage, _ = _estimate_from_duration(duration_seconds, target_count, policy)
    return usage


def _estimate_from_duration(duration_seconds, target_count, policy):
    base = approx_units_from_duration(duration_seconds, policy)
    return _text_usage(base, target_count, policy, "duration")


def estimate_with_fallback(
    content: Union[Content, str, None],
    duration_seconds: Optional[float],
    target_count: int,
    policy: TextCostPolicy
) -> TextUsage:
    """Use the text when it normalizes to something, the duration otherwise."""
    usage, _ = _estimate_with_fallback(content, duration_seconds, target_count, policy)
    return usage


def _estimate_with_fallback(content, duration_seconds, target_count, policy):
    if normalize_content(content):
        return _estimate_from_content(content, target_count, policy)
    if not _has_duration(duration_seconds):
        raise EstimationUnavailable("No transcript text and no media duration")
    return _estimate_from_duration(duration_seconds, target_count, policy)


def _has_duration(duration_seconds) -> bool:
    if duration_seconds is None:
        return False
    try:
        value = float(duration_seconds)
    except (TypeError, ValueError, OverflowError):
        return False
    return math.isfinite(value) and value > 0


# --------------------
# Facade
# --------------------

class UsageEstimator:
    """Estimates runs end to end, including USD and media token conversion.

    Missing inputs never raise out of this class: an estimate that cannot be
    produced is returned as None ("unknown").
    """

    def __init__(self, manifest: PricingManifest = DEFAULT_MANIFEST):
        self.manifest = manifest
        self.converter = CurrencyConverter(manifest)

    def transcription(
        self,
        items: Sequence[RunItem],
        default_model_id: Optional[str]
    ) -> Optional[UsageEstimate]:
        """Estimate a transcription run; unknown if any item lacks a duration."""
        items = list(items or ())
        try:
            if not items:
                raise EstimationUnavailable("No media items")
            for item in items:
                if not _has_duration(item.duration_seconds):
                    raise EstimationUnavailable("Media duration is unknown")
        except EstimationUnavailable as e:
            logger.debug("Transcription estimate unavailable: %s", e)
            return None

        seconds = sum(
            billable_seconds(i.duration_seconds, self.manifest.quantum_seconds,
                             self.manifest.min_billable_seconds)
            for i in items
        )
        tokens = estimate_run(items, default_model_id, self.manifest)
        return UsageEstimate(
            input_units=seconds,
            output_units=0,
            billable_units=seconds,
            usd_cents=self.converter.usd_cents_from_media_tokens(tokens),
            media_tokens=tokens,
            debug_breakdown={
                "billable_seconds": seconds,
                "item_count": len(items),
                "default_model_id": default_model_id,
                "pricing_version": self.manifest.version,
            },
        )

    def translation(
        self,
        content: Union[Content, str, None],
        target_langs: Sequence[str],
        duration_seconds: Optional[float] = None
    ) -> Optional[UsageEstimate]:
        """Estimate a translation run across the given target languages."""
        return self._text_run(content, duration_seconds, count_targets(target_langs),
                              self.manifest.translation)

    def summarization(
        self,
        content: Union[Content, str, None],
        duration_seconds: Optional[float] = None
    ) -> Optional[UsageEstimate]:
        """Estimate a summarization run (a single downstream request)."""
        return self._text_run(content, duration_seconds, 1, self.manifest.summarization)

    def transcription_for_records(
        self,
        records: Iterable[Mapping[str, Any]],
        default_model_id: Optional[str]
    ) -> Optional[UsageEstimate]:
        """Estimate a transcription run straight from raw job records."""
        return self.transcription([RunItem.from_record(r) for r in records or ()], default_model_id)

    def translation_for_record(
        self,
        record: Mapping[str, Any],
        target_langs: Sequence[str],
        content: Union[Content, str, None] = None
    ) -> Optional[UsageEstimate]:
        """Translation estimate for a job record; its resolved duration is the fallback."""
        return self.translation(content, target_langs, resolve_duration_seconds(record))

    def summarization_for_record(
        self,
        record: Mapping[str, Any],
        content: Union[Content, str, None] = None
    ) -> Optional[UsageEstimate]:
        return self.summarization(content, resolve_duration_seconds(record))

    def _text_run(self, content, duration_seconds, target_count, policy) -> Optional[UsageEstimate]:
        try:
            usage, breakdown = _estimate_with_fallback(content, duration_seconds, target_count, policy)
        except EstimationUnavailable as e:
            logger.debug("Text estimate unavailable: %s", e)
            return None

        cents = self.converter.usd_cents_from_tokens(usage.billable_units)
        breakdown["pricing_version"] = self.manifest.version
        breakdown["effective_cents_per_million"] = self.converter.effective_cents_per_million
        return UsageEstimate(
            input_units=usage.input_units,
            output_units=usage.output_units,
            billable_units=usage.billable_units,
            usd_cents=cents,
            media_tokens=self.converter.media_tokens_from_usd_cents(cents),
            debug_breakdown=breakdown,
        )
