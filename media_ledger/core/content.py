"""
Transcript content shapes and their normalization to plain text.

Content reaches the estimator as one of three named cases. Each case has its
own normalization rule; all of them end in a single whitespace-collapsed
string.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union


class ContentKind(Enum):
    """Named content cases."""
    TEXT = "text"
    SEGMENTS = "segments"
    SUBTITLES = "subtitles"


@dataclass(frozen=True)
class PlainText:
    """Free text, e.g. an edited transcript."""
    text: str
    kind = ContentKind.TEXT


@dataclass(frozen=True)
class Segment:
    """One timed transcript segment."""
    text: str
    start: Optional[float] = None
    end: Optional[float] = None


@dataclass(frozen=True)
class SegmentList:
    """Timed segments as produced by a transcription job."""
    segments: Tuple[Segment, ...]
    kind = ContentKind.SEGMENTS


@dataclass(frozen=True)
class SubtitleDocument:
    """An SRT subtitle document."""
    srt: str
    kind = ContentKind.SUBTITLES


Content = Union[PlainText, SegmentList, SubtitleDocument]

_WHITESPACE = re.compile(r"\s+")
_INDEX_LINE = re.compile(r"^\d+$")
_TIMECODE_LINE = re.compile(r"^\d{2}:\d{2}:\d{2},\d{3}\s+-->\s+\d{2}:\d{2}:\d{2},\d{3}")


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def _text_to_plain(content: PlainText) -> str:
    return normalize_whitespace(content.text)


def _segments_to_plain(content: SegmentList) -> str:
    parts = [normalize_whitespace(s.text) for s in content.segments]
    return normalize_whitespace(" ".join(p for p in parts if p))


def _subtitles_to_plain(content: SubtitleDocument) -> str:
    raw = (content.srt or "").replace("\r\n", "\n")
    kept = []
    for line in raw.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if _INDEX_LINE.match(stripped):
            continue
        if _TIMECODE_LINE.match(stripped):
            continue
        kept.append(stripped)
    return normalize_whitespace(" ".join(kept))


_NORMALIZERS: Dict[ContentKind, Callable[..., str]] = {
    ContentKind.TEXT: _text_to_plain,
    ContentKind.SEGMENTS: _segments_to_plain,
    ContentKind.SUBTITLES: _subtitles_to_plain,
}


def normalize_content(content: Union[Content, str, None]) -> str:
    """Normalize any content case to a whitespace-collapsed plain string.

    A bare string is treated as plain text and None as empty content.

    Raises:
        TypeError: If the value is not one of the content cases
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return normalize_whitespace(content)
    kind = getattr(content, "kind", None)
    if not isinstance(kind, ContentKind):
        raise TypeError(f"Unsupported content type: {type(content).__name__}")
    return _NORMALIZERS[kind](content)


def segments_from_dicts(items) -> SegmentList:
    """Build a SegmentList from job output dictionaries ({text, start, end})."""
    segments = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        segments.append(Segment(
            text="" if text is None else str(text),
            start=item.get("start"),
            end=item.get("end"),
        ))
    return SegmentList(segments=tuple(segments))
