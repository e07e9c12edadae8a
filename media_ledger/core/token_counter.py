"""
Text unit counting for LLM-backed steps.

Approximates downstream LLM units from text length, or from media duration
when no transcript exists yet.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from .manifest import TextCostPolicy
from .quantizer import ceil_div

# Upper bound on the synthetic transcript length derived from a duration.
MAX_SYNTHETIC_CHARS = 1_000_000


@dataclass(frozen=True)
class TextUsage:
    """Estimated LLM units for one run.

    Input units are billed once per downstream request; output units are the
    expected generated length.
    """
    input_units: int
    output_units: int

    @property
    def billable_units(self) -> int:
        """Total units billed (input + output)."""
        return self.input_units + self.output_units


def approx_units_from_chars(char_count: int, policy: TextCostPolicy) -> int:
    """ceil(chars / chars_per_unit); never under-counts."""
    return ceil_div(char_count, max(1, policy.chars_per_unit))


def approx_units_from_text(text: str, policy: TextCostPolicy) -> int:
    """Approximate input units for already-normalized text."""
    return approx_units_from_chars(len(text or ""), policy)


def synthetic_chars_from_duration(duration_seconds: float, policy: TextCostPolicy) -> int:
    """Expected transcript length for a duration.

    words = seconds * wpm / 60, chars = round_half_up(words * chars_per_word),
    capped at MAX_SYNTHETIC_CHARS.
    """
    if duration_seconds is None:
        return 0
    try:
        seconds = float(duration_seconds)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(seconds) or seconds <= 0:
        return 0

    words = Decimal(repr(seconds)) * Decimal(policy.words_per_minute) / Decimal(60)
    raw_chars = words * Decimal(policy.chars_per_word)
    if raw_chars >= MAX_SYNTHETIC_CHARS:
        return MAX_SYNTHETIC_CHARS
    chars = raw_chars.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return min(max(0, int(chars)), MAX_SYNTHETIC_CHARS)


def approx_units_from_duration(duration_seconds: float, policy: TextCostPolicy) -> int:
    """Approximate input units for a transcript that does not exist yet."""
    return approx_units_from_chars(synthetic_chars_from_duration(duration_seconds, policy), policy)
