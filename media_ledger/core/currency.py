"""
Currency conversion between LLM units, USD cents and media tokens.

All conversions round UP so the platform never undercharges. The math is
integer-only, so arbitrarily large amounts convert exactly.
"""

from decimal import Decimal

from .manifest import DEFAULT_MANIFEST, PricingManifest
from .quantizer import ceil_div

_ONE_MILLION = 1_000_000
_CENTS_PER_USD = 100


class CurrencyConverter:
    """Converts estimated costs using one manifest's currency parameters.

    Every method is total: zero, negative or missing input yields 0.
    """

    def __init__(self, manifest: PricingManifest = DEFAULT_MANIFEST):
        self.manifest = manifest

    @property
    def effective_cents_per_million(self) -> int:
        return self.manifest.currency.effective_cents_per_million

    def usd_cents_from_tokens(self, billable_units: int) -> int:
        """cents = ceil(units * effective_cents_per_million / 1,000,000)."""
        units = _non_negative_int(billable_units)
        return ceil_div(units * self.effective_cents_per_million, _ONE_MILLION)

    def media_tokens_from_usd_cents(self, cents: int) -> int:
        """media tokens = ceil(cents * tokens_per_usd / 100)."""
        amount = _non_negative_int(cents)
        return ceil_div(amount * self.manifest.tokens_per_usd, _CENTS_PER_USD)

    def usd_cents_from_media_tokens(self, media_tokens: int) -> int:
        """Display value of a media-token amount, ceil(tokens * 100 / tokens_per_usd)."""
        tokens = _non_negative_int(media_tokens)
        return ceil_div(tokens * _CENTS_PER_USD, self.manifest.tokens_per_usd)


def format_usd_from_cents(cents: int) -> str:
    """Format integer cents as "$D.CC"."""
    amount = _non_negative_int(cents)
    return f"${amount // 100}.{amount % 100:02d}"


def _non_negative_int(value) -> int:
    try:
        number = Decimal(str(value))
    except ArithmeticError:
        return 0
    if not number.is_finite() or number <= 0:
        return 0
    return int(number)
