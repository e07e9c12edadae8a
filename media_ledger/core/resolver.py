"""
Ordered value resolution across the shapes job records arrive in.

A media item may carry its duration in several places depending on which
step produced it. Resolution walks an explicit, prioritized list of named
sources and returns the first valid value.
"""

import math
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Priority order is part of the contract: earlier sources win.
DURATION_SOURCES: Tuple[str, ...] = (
    "media.durationSeconds",
    "media.duration",
    "media.meta.durationSeconds",
    "media.meta.duration",
    "media.urlMeta.durationSeconds",
    "media.audio.durationSeconds",
    "durationSeconds",
    "audio.durationSeconds",
    "urlMeta.durationSeconds",
    "results.transcriptMeta.durationSeconds",
    "results.mediaMeta.durationSeconds",
)


def lookup_path(source: Any, path: str) -> Any:
    """Follow a dotted path through nested mappings; None when any hop is missing."""
    current = source
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def resolve_first(
    source: Any,
    candidates: Sequence[str],
    coerce: Callable[[Any], Optional[T]]
) -> Optional[T]:
    """Return the first candidate value that coerces to a valid result.

    Args:
        source: Nested mapping to search
        candidates: Dotted paths in priority order
        coerce: Converts a raw value, returning None when it is not usable

    Returns:
        The first coerced value, or None when no candidate yields one
    """
    for path in candidates:
        raw = lookup_path(source, path)
        if raw is None:
            continue
        value = coerce(raw)
        if value is not None:
            return value
    return None


def positive_seconds(raw: Any) -> Optional[float]:
    """Coerce to a finite, positive float."""
    if isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def resolve_duration_seconds(item: Mapping[str, Any]) -> Optional[float]:
    """Duration of a media item from the first source in DURATION_SOURCES that has one."""
    return resolve_first(item, DURATION_SOURCES, positive_seconds)
