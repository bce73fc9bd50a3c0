"""Corpus source helpers: turn user-supplied transcripts into timed segments.

Supported inputs:
  .json   list of ``{"text", "offset"|"offsetMs", "duration"|"durationMs"}`` objects
          (milliseconds, as produced by caption fetchers)
  other   plain text; sentences get evenly spread, estimated timestamps
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from vidask.errors import EmptyInputError
from vidask.models import TimedSegment

logger = logging.getLogger(__name__)

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]+")
_WORDS_PER_MINUTE = 150
_MIN_DURATION_S = 60.0


def parse_manual_transcript(text: str, duration_s: float | None = None) -> list[TimedSegment]:
    """Split plain *text* into sentence segments with estimated timing.

    Total duration defaults to an estimate at 150 words/minute (at least 60 s)
    and is spread evenly across sentences.

    Raises:
        EmptyInputError: If *text* is empty or whitespace-only.
    """
    if not text or not text.strip():
        raise EmptyInputError("Transcript text cannot be empty")

    sentences = [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]
    tail = _SENTENCE_RE.sub("", text).strip()
    if tail:
        # Trailing words without terminal punctuation.
        sentences.append(tail)

    words = len(text.split())
    total_s = duration_s or max(words / _WORDS_PER_MINUTE * 60, _MIN_DURATION_S)
    per_sentence_ms = total_s * 1000 / len(sentences)

    return [
        TimedSegment(
            text=sentence,
            offset_ms=round(i * per_sentence_ms),
            duration_ms=round(per_sentence_ms),
        )
        for i, sentence in enumerate(sentences)
    ]


def load_segments(path: Path) -> list[TimedSegment]:
    """Load transcript segments from *path* (JSON segment list or plain text).

    Raises:
        FileNotFoundError: If *path* does not exist.
        EmptyInputError: If the file holds no transcript text.
        ValueError: If a JSON file is not a list of segment objects.
    """
    if not path.exists():
        raise FileNotFoundError(f"Transcript file not found: {path}")

    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() != ".json":
        return parse_manual_transcript(raw)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in transcript file '{path}': {exc}") from exc

    if not isinstance(data, list):
        raise ValueError(f"Transcript file '{path}' must contain a JSON list of segments")

    segments = [_segment_from_dict(item, i) for i, item in enumerate(data)]
    if not any(s.text.strip() for s in segments):
        raise EmptyInputError(f"Transcript file '{path}' contains no text")

    logger.info("Loaded %d segments from %s", len(segments), path)
    return segments


def _segment_from_dict(item: object, position: int) -> TimedSegment:
    if not isinstance(item, dict) or "text" not in item:
        raise ValueError(f"Segment #{position} must be an object with a 'text' field")
    try:
        offset = int(item.get("offsetMs", item.get("offset", 0)) or 0)
        duration = int(item.get("durationMs", item.get("duration", 0)) or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Segment #{position} has a non-numeric offset/duration") from exc
    if offset < 0 or duration < 0:
        raise ValueError(f"Segment #{position} has a negative offset/duration")
    return TimedSegment(text=str(item["text"]), offset_ms=offset, duration_ms=duration)
