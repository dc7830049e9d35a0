"""Prompts for the book-level summary reduction.

Chapter analyses are reduced group by group, then the group summaries are
reduced into the final summary. All levels share the same output schema,
whose fields depend on the dimensions enabled for the novel.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence

from app.schemas.analysis import AnalysisDimension

# Summary field contributed by each dimension; emotion has no book-level field
_SUMMARY_FIELDS: dict[AnalysisDimension, tuple[str, object]] = {
    AnalysisDimension.CHARACTERS: (
        "character_arcs",
        [{"name": "character name", "arc": "how the character develops"}],
    ),
    AnalysisDimension.PLOT: ("overall_plot", "overview of the whole plot"),
    AnalysisDimension.THEMES: ("themes", ["theme 1", "theme 2"]),
    AnalysisDimension.FORESHADOWING: ("themes", ["theme 1", "theme 2"]),
    AnalysisDimension.WRITING_TECHNIQUE: ("writing_style", "overall assessment of the writing style"),
    AnalysisDimension.RHETORIC: ("writing_style", "overall assessment of the writing style"),
    AnalysisDimension.WORLDBUILDING: ("worldbuilding", "summary of the world"),
}


def _summary_schema(dimensions: Iterable[AnalysisDimension]) -> dict[str, object]:
    fields: dict[str, object] = {}
    for dim in dimensions:
        if dim in _SUMMARY_FIELDS:
            name, example = _SUMMARY_FIELDS[dim]
            fields[name] = example
    return dict(sorted(fields.items()))


def summary_fields(dimensions: Iterable[AnalysisDimension]) -> list[str]:
    """Summary field names for ``dimensions``, deduplicated and sorted."""
    return list(_summary_schema(dimensions))


def summary_json_schema(dimensions: Iterable[AnalysisDimension]) -> str:
    return json.dumps(_summary_schema(dimensions), ensure_ascii=False, indent=2)


def build_group_summary_prompt(
    chapter_summaries: Sequence[tuple[int, str]],
    dimensions: Iterable[AnalysisDimension],
) -> str:
    """Reduce several chapters' analyses (zero-based index, JSON) into one summary."""
    sections = [
        "You are a seasoned literary critic. Read the analyses of the following chapters",
        "and integrate them into one coherent report for this stretch of the novel. Look for",
        "how things evolve across chapters and for the threads running beneath them.",
        "Respond in JSON.\n",
        "## Chapter analyses\n",
    ]
    for index, summary in chapter_summaries:
        sections.append(f"### Chapter {index + 1}\n{summary}\n")
    sections += ["## Output JSON structure\n", summary_json_schema(dimensions)]
    return "\n".join(sections)


def build_final_summary_prompt(
    group_summaries: Sequence[str],
    dimensions: Iterable[AnalysisDimension],
) -> str:
    """Reduce part summaries into one summary of the whole book."""
    sections = [
        "You are a seasoned literary critic. Below are summary analyses of the successive",
        "parts of a novel. Merge them into the final in-depth analysis of the whole book,",
        "bringing out the main line, its development and the book's artistic character.",
        "Respond in JSON.\n",
    ]
    for i, summary in enumerate(group_summaries):
        sections.append(f"## Part {i + 1} summary\n{summary}\n")
    sections += ["## Output JSON structure\n", summary_json_schema(dimensions)]
    return "\n".join(sections)


def build_manual_summary_prompt(
    chapter_summaries: Sequence[tuple[int, str]],
    dimensions: Iterable[AnalysisDimension],
) -> str:
    """Single prompt over every analyzed chapter, for pasting into a chat UI by hand."""
    sections = [
        "You are a seasoned literary critic. Read the combined data of ALL analyzed chapters",
        "below and distill from it one definitive overview of the whole novel.",
        "Return strictly JSON, with no other explanatory text.\n",
    ]
    for index, summary in chapter_summaries:
        sections.append(f"## Chapter {index + 1}\n{summary}\n")
    sections += ["## Output JSON structure\n", summary_json_schema(dimensions)]
    return "\n".join(sections)
