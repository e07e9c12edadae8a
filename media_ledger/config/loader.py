"""
Configuration management and loading.

Loads a pricing manifest from YAML so rates can be published without a code
change. A new rate table is a new file with a new version string.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Set

import yaml

from ..core.manifest import (
    SUMMARIZATION_POLICY,
    TRANSLATION_POLICY,
    BillingModel,
    CurrencyPolicy,
    PricingManifest,
    TextCostPolicy,
    TokenPack,
)

_TOP_LEVEL_KEYS = {
    'version', 'tokens_per_usd', 'quantum_seconds', 'min_billable_seconds',
    'per_item_overhead', 'per_run_overhead', 'models', 'packs',
    'translation', 'summarization', 'currency',
}
_INT_TOP_LEVEL_KEYS = (
    'tokens_per_usd', 'quantum_seconds', 'min_billable_seconds',
    'per_item_overhead', 'per_run_overhead',
)
_MODEL_KEYS = {'id', 'label', 'tokens_per_minute'}
_PACK_KEYS = {'id', 'label', 'tokens', 'usd'}
_TEXT_POLICY_INT_KEYS = {'chars_per_unit', 'prompt_overhead', 'per_target_overhead', 'words_per_minute'}
_TEXT_POLICY_DECIMAL_KEYS = {'output_ratio', 'chars_per_word'}
_CURRENCY_KEYS = {'base_vendor_cents_per_million', 'markup_multiplier'}


def load_pricing_manifest(path: str) -> PricingManifest:
    """Load and validate a pricing manifest from a YAML file.

    Strict validation: unknown keys, missing required keys and wrongly typed
    values are rejected so a typo cannot silently change billing.

    Args:
        path: Path to YAML manifest file

    Returns:
        Validated PricingManifest

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the manifest is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Pricing manifest file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in manifest file {path}: {e}")

    if not raw_config:
        raise ValueError("Manifest file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Manifest must be a mapping")

    return parse_pricing_manifest(raw_config)


def parse_pricing_manifest(raw_config: Dict[str, Any]) -> PricingManifest:
    """Build a PricingManifest from already-parsed YAML/JSON data.

    Raises:
        ValueError: If the manifest is invalid
    """
    _reject_unknown(raw_config, _TOP_LEVEL_KEYS, "manifest")

    if 'version' not in raw_config:
        raise ValueError("Missing required 'version'")
    version = raw_config['version']
    if not isinstance(version, str) or not version.strip():
        raise ValueError("'version' must be a non-empty string")

    if 'models' not in raw_config:
        raise ValueError("Missing required 'models' section")
    models = _parse_list(raw_config['models'], "models", _parse_model)
    packs = _parse_list(raw_config.get('packs', []), "packs", _parse_pack)

    scalars = {}
    for key in _INT_TOP_LEVEL_KEYS:
        if key in raw_config:
            scalars[key] = _require_int(raw_config[key], key)

    return PricingManifest(
        version=version.strip(),
        models=tuple(models),
        packs=tuple(packs),
        translation=_parse_text_policy(raw_config.get('translation'), "translation", TRANSLATION_POLICY),
        summarization=_parse_text_policy(raw_config.get('summarization'), "summarization", SUMMARIZATION_POLICY),
        currency=_parse_currency(raw_config.get('currency')),
        **scalars
    )


def _parse_list(data: Any, path: str, parse_item) -> List:
    if not isinstance(data, list):
        raise ValueError(f"'{path}' must be a list")
    return [parse_item(item, f"{path}[{i}]") for i, item in enumerate(data)]


def _parse_model(data: Any, path: str) -> BillingModel:
    """Parse one transcription model entry.

    Raises:
        ValueError: If the entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")
    _reject_unknown(data, _MODEL_KEYS, path)
    _require_keys(data, {'id', 'tokens_per_minute'}, path)

    model_id = str(data['id'])
    return BillingModel(
        id=model_id,
        label=str(data.get('label') or model_id),
        tokens_per_minute=_require_int(data['tokens_per_minute'], f"{path}.tokens_per_minute"),
    )


def _parse_pack(data: Any, path: str) -> TokenPack:
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")
    _reject_unknown(data, _PACK_KEYS, path)
    _require_keys(data, {'id', 'tokens', 'usd'}, path)

    pack_id = str(data['id'])
    return TokenPack(
        id=pack_id,
        label=str(data.get('label') or pack_id),
        tokens=_require_int(data['tokens'], f"{path}.tokens"),
        usd=_require_int(data['usd'], f"{path}.usd"),
    )


def _parse_text_policy(data: Any, path: str, defaults: TextCostPolicy) -> TextCostPolicy:
    """Parse a text-cost section; omitted knobs keep their defaults."""
    if data is None:
        return defaults
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    _reject_unknown(data, _TEXT_POLICY_INT_KEYS | _TEXT_POLICY_DECIMAL_KEYS, path)

    values = {}
    for key in _TEXT_POLICY_INT_KEYS & set(data):
        values[key] = _require_int(data[key], f"{path}.{key}")
    for key in _TEXT_POLICY_DECIMAL_KEYS & set(data):
        values[key] = _require_decimal(data[key], f"{path}.{key}")

    fields = {
        'chars_per_unit': defaults.chars_per_unit,
        'prompt_overhead': defaults.prompt_overhead,
        'per_target_overhead': defaults.per_target_overhead,
        'output_ratio': defaults.output_ratio,
        'words_per_minute': defaults.words_per_minute,
        'chars_per_word': defaults.chars_per_word,
    }
    fields.update(values)
    return TextCostPolicy(**fields)


def _parse_currency(data: Any) -> CurrencyPolicy:
    if data is None:
        return CurrencyPolicy()
    if not isinstance(data, dict):
        raise ValueError("'currency' must be a dictionary")
    _reject_unknown(data, _CURRENCY_KEYS, "currency")
    return CurrencyPolicy(**{
        key: _require_int(value, f"currency.{key}") for key, value in data.items()
    })


def _reject_unknown(data: Dict, allowed: Set[str], path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {sorted(unknown_keys)}")


def _require_keys(data: Dict, required: Set[str], path: str) -> None:
    missing = required - set(data.keys())
    if missing:
        raise ValueError(f"Missing required keys in {path}: {sorted(missing)}")


def _require_int(value: Any, path: str) -> int:
    # bool is an int subclass; "true" is never a valid rate
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _require_decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{path}' must be a number")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")
    if not number.is_finite():
        raise ValueError(f"'{path}' must be a number")
    return number
