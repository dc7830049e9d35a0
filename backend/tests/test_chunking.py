"""Tests for app.services.chunking (budget-driven chapter segmentation).

CJK characters cost exactly 1.5 tokens and "\\n" 0.25, so the traces
below use them to keep every estimate exact:
    "你好" = 3, "你好\\n\\n你好" = 6.5 -> 7, "你好\\n\\n你好\\n\\n你好" = 10.
"""

from __future__ import annotations

from app.services.chunking import _pack, split_content
from app.services.token_budget import estimate_tokens

P = "你好"
LONG_P = "你好你好"  # 6 tokens


def _normalized(text: str) -> str:
    return "".join(text.split())


# -- split_content ---------------------------------------------------------


class TestFastPath:

    def test_fitting_content_returned_unchanged(self):
        content = "  A short chapter.\n\nWith two paragraphs.  "
        assert split_content(content, 1000) == [content]

    def test_exact_budget_fits(self):
        assert split_content(P, 3) == [P]


class TestParagraphPacking:

    def test_greedy_packing_trace(self):
        content = f"{P}\n\n{P}\n\n{P}"
        assert split_content(content, 7) == [f"{P}\n\n{P}", P]

    def test_greedy_closes_segment_on_first_overflow(self):
        """A segment is closed as soon as the next paragraph overflows it."""
        content = f"{P}\n\n{LONG_P}\n\n{P}"
        assert split_content(content, 7) == [P, LONG_P, P]

    def test_every_segment_within_budget(self):
        paragraphs = [f"Paragraph {i} " + "word " * (i % 7 + 3) for i in range(40)]
        content = "\n\n".join(paragraphs)
        segments = split_content(content, 40)
        assert len(segments) > 1
        assert all(estimate_tokens(s) <= 40 for s in segments)

    def test_segments_reconstruct_content(self):
        paragraphs = [f"第{i}段。" + "Alice ran. " * (i % 5 + 1) for i in range(25)]
        content = "\n\n".join(paragraphs)
        segments = split_content(content, 30)
        assert _normalized("".join(segments)) == _normalized(content)

    def test_no_empty_segments_from_blank_runs(self):
        content = f"\n\n\n\n{P}\n\n\n\n{P}"
        segments = split_content(content, 3)
        assert segments == [P, P]
        assert all(s.strip() for s in segments)


class TestLineFallback:

    def test_oversized_paragraph_split_by_lines(self):
        content = f"{P}\n{P}\n{P}"
        assert split_content(content, 4) == [P, P, P]

    def test_lines_packed_greedily(self):
        # "你好\n你好" = 6.25 -> 7
        content = f"{P}\n{P}\n{P}"
        assert split_content(content, 7) == [f"{P}\n{P}", P]

    def test_single_line_over_budget_is_kept_whole(self):
        content = "你好你好你好"  # 9 tokens, no separator to split on
        assert split_content(content, 4) == [content]

    def test_fallback_only_for_oversized_paragraphs(self):
        content = f"{P}\n\n{P}\n{P}\n{P}"
        assert split_content(content, 7) == [P, f"{P}\n{P}", P]


class TestTermination:

    def test_zero_budget_still_terminates(self):
        content = f"{P}\n\n{P}"
        assert split_content(content, 0) == [P, P]

    def test_whitespace_only_content(self):
        assert split_content("\n\n  \n\n", 0) == [""]


# -- _pack -----------------------------------------------------------------


class TestPack:

    def test_skips_blank_segments(self):
        assert _pack(["", "  ", ""], "\n\n", 10) == []

    def test_strips_segment_edges(self):
        assert _pack([" a ", " b "], "\n", 100) == ["a \n b"]
