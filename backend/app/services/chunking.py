"""Structure-aware chapter segmentation.

Splits chapter text that does not fit the model budget into ordered,
non-overlapping segments.

Strategy:
- Fast path: text that already fits is returned unchanged as one segment
- Primary unit: paragraph (blank-line separated), packed greedily
- Fallback: a paragraph that alone exceeds the budget is split by lines
- A single line over budget is emitted on its own (best effort, never dropped)

Packing is greedy first-fit: a segment is closed as soon as the next
paragraph would overflow it, even if a later paragraph would have fit.
"""

from __future__ import annotations

from app.core.logging import get_logger
from app.services.token_budget import estimate_tokens

logger = get_logger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"
LINE_SEPARATOR = "\n"


def split_content(content: str, max_tokens: int) -> list[str]:
    """Split ``content`` into segments of at most ``max_tokens`` estimated tokens.

    Args:
        content: Full chapter text.
        max_tokens: Content-only token budget per segment.

    Returns:
        Ordered list of segments, never empty. Segment boundaries are
        trimmed of surrounding whitespace; nothing else is altered.
    """
    if estimate_tokens(content) <= max_tokens:
        return [content]

    paragraph_segments = _pack(content.split(PARAGRAPH_SEPARATOR), PARAGRAPH_SEPARATOR, max_tokens)

    segments: list[str] = []
    for segment in paragraph_segments:
        if estimate_tokens(segment) <= max_tokens:
            segments.append(segment)
            continue
        # Oversized single paragraph: fall back to line granularity
        segments.extend(_pack(segment.split(LINE_SEPARATOR), LINE_SEPARATOR, max_tokens))

    logger.debug(
        "content_split",
        segments=len(segments),
        max_tokens=max_tokens,
        estimated_tokens=estimate_tokens(content),
    )
    return segments or [content.strip()]


def _pack(pieces: list[str], separator: str, max_tokens: int) -> list[str]:
    """Greedily join ``pieces`` with ``separator`` into budget-sized segments."""
    segments: list[str] = []
    current = ""

    for piece in pieces:
        candidate = f"{current}{separator}{piece}" if current else piece
        if current and estimate_tokens(candidate) > max_tokens:
            if current.strip():
                segments.append(current.strip())
            current = piece
        else:
            current = candidate

    if current.strip():
        segments.append(current.strip())

    return segments
