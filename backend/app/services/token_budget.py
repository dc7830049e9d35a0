"""Heuristic token estimation and context budget arithmetic.

No real tokenizer is used: the estimate only has to be cheap, deterministic
and conservative enough that prompts sized by it fit the model context.

Per-character cost:
- ASCII whitespace or ASCII punctuation: 0.25
- any other ASCII character: 0.3
- any non-ASCII character (CJK, accented letters, emoji, ...): 1.5
"""

from __future__ import annotations

import math
import string

from app.schemas.analysis import LLMConfig

# Output reserve used when the model config does not set one.
FALLBACK_OUTPUT_RESERVE = 4096

_ASCII_LIGHT = frozenset(string.whitespace + string.punctuation)


def estimate_tokens(text: str) -> int:
    """Estimate the model token cost of ``text``, rounded up."""
    score = 0.0
    for ch in text:
        if not ch.isascii():
            score += 1.5
        elif ch in _ASCII_LIGHT:
            score += 0.25
        else:
            score += 0.3
    return math.ceil(score)


def available_tokens(
    context_limit: int,
    output_reserve: int | None,
    template_overhead: int = 0,
) -> int:
    """Tokens left for content after the output reserve and prompt overhead.

    Saturates at zero instead of going negative.
    """
    reserve = FALLBACK_OUTPUT_RESERVE if output_reserve is None else output_reserve
    return max(0, context_limit - template_overhead - reserve)


def content_budget(config: LLMConfig, template_overhead: int = 0) -> int:
    """``available_tokens`` applied to a model configuration."""
    return available_tokens(config.max_context_tokens, config.max_output_tokens, template_overhead)
