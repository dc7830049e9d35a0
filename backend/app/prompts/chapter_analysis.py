"""Prompts for chapter and segment analysis.

Every analysis prompt follows the same structure:
[ROLE] Literary critic persona + JSON-only instruction
[CHAPTER] Title (and segment position) + text
[DIMENSIONS] One instruction block per requested dimension
[OUTPUT] JSON schema restricted to the requested dimensions
"""

from __future__ import annotations

import json
from collections.abc import Iterable

from app.schemas.analysis import DIMENSION_INFO, AnalysisDimension, ordered_dimensions

DIMENSION_INSTRUCTIONS: dict[AnalysisDimension, str] = {
    AnalysisDimension.CHARACTERS: (
        "List every character who appears in this chapter. For each one, judge their weight "
        "in the story (protagonist / supporting / minor) and summarize the personality and key "
        "actions they show here. Focus on the web of relationships: label each relationship, "
        "and note whether it shifts or turns in this chapter."
    ),
    AnalysisDimension.PLOT: (
        "Summarize where the story goes in this chapter in your own words. Trace the causal "
        "chain of the key events: what drives each one and what it leads to. Name the core "
        "conflict and the open questions the author leaves at the end."
    ),
    AnalysisDimension.FORESHADOWING: (
        "Find the setups the author plants here: details that look incidental but may matter "
        "later. If something in this chapter pays off an earlier setup, point it out. Mark the "
        "turning points and say whether the chapter ends on a hook."
    ),
    AnalysisDimension.WRITING_TECHNIQUE: (
        "Analyze the narrative strategy: which person and how much access to the characters' "
        "minds? Does the timeline move (flashback, interleaving, prolepsis)? Look at pacing: "
        "where the text slows into detailed scene and where it jumps ahead in summary, and "
        "what that rhythm achieves."
    ),
    AnalysisDimension.RHETORIC: (
        "Identify the rhetorical devices that stand out (fresh metaphors, vivid "
        "personification, forceful parallelism) and quote the most representative example "
        "for each. Characterize the overall language style and quote at most 3 memorable lines."
    ),
    AnalysisDimension.EMOTION: (
        "Describe the emotional texture of the chapter. What is the overall tone, and how "
        "does feeling flow and change as events unfold? Mark the changes scene by scene and "
        "explain how the author builds the atmosphere."
    ),
    AnalysisDimension.THEMES: (
        "Draw out the deeper themes the chapter touches (love, power, solitude, growth, "
        "death, freedom, ...). What values does the author convey through plot and "
        "characters? Is there social critique or philosophical reflection?"
    ),
    AnalysisDimension.WORLDBUILDING: (
        "Record the world elements introduced or developed here: places, organizations, "
        "factions, social rules, supernatural laws, important items. Pay attention to power "
        "structures and social relations."
    ),
}

DIMENSION_SCHEMAS: dict[AnalysisDimension, dict] = {
    AnalysisDimension.CHARACTERS: {
        "characters": [
            {
                "name": "character name",
                "role": "protagonist/supporting/minor",
                "traits": ["trait"],
                "actions": "what they do in this chapter",
            }
        ],
        "relationships": [
            {
                "from": "character A",
                "to": "character B",
                "relation_type": "type",
                "description": "description",
                "change": "how it changed, or null",
            }
        ],
        "insights": "overall reading of how characters are drawn in this chapter",
    },
    AnalysisDimension.PLOT: {
        "summary": "plot summary",
        "key_events": [{"event": "event", "cause": "cause or null", "effect": "effect or null"}],
        "conflicts": ["conflict"],
        "suspense": ["open question"],
        "insights": "reading of the narrative strategy and plot construction",
    },
    AnalysisDimension.FORESHADOWING: {
        "setups": [{"content": "setup", "chapter_ref": None}],
        "callbacks": [{"content": "payoff", "chapter_ref": "chapter X"}],
        "turning_points": ["turning point"],
        "cliffhangers": ["hook"],
        "insights": "assessment of the foreshadowing craft and narrative tension",
    },
    AnalysisDimension.WRITING_TECHNIQUE: {
        "narrative_perspective": "point of view",
        "time_sequence": "handling of time",
        "pacing": "pacing",
        "structural_notes": "structure",
        "insights": "overall assessment of the technique, strengths or weaknesses",
    },
    AnalysisDimension.RHETORIC: {
        "devices": [{"name": "device", "example": "quoted example"}],
        "language_style": "language style",
        "notable_quotes": ["quote"],
        "insights": "appreciation of the chapter's use of language",
    },
    AnalysisDimension.EMOTION: {
        "overall_tone": "overall tone",
        "emotion_arc": [{"segment": "scene", "emotion": "emotion", "intensity": "high/medium/low"}],
        "atmosphere_techniques": ["technique"],
        "insights": "reading of the emotional expression",
    },
    AnalysisDimension.THEMES: {
        "motifs": ["motif"],
        "values": ["value"],
        "social_commentary": "social issue or null",
        "insights": "comment on thematic depth",
    },
    AnalysisDimension.WORLDBUILDING: {
        "locations": [{"name": "place", "description": "description"}],
        "organizations": [{"name": "organization", "description": "description"}],
        "power_systems": ["power system"],
        "items": [{"name": "item", "description": "description"}],
        "rules": ["rule"],
        "insights": "assessment of the worldbuilding",
    },
}


def analysis_json_schema(dimensions: Iterable[AnalysisDimension]) -> str:
    """JSON skeleton the model must fill, one key per requested dimension."""
    schema = {dim.value: DIMENSION_SCHEMAS[dim] for dim in ordered_dimensions(list(dimensions))}
    return json.dumps(schema, ensure_ascii=False, indent=2)


def _dimension_sections(dimensions: Iterable[AnalysisDimension]) -> list[str]:
    sections = ["## Analysis dimensions\n"]
    for dim in ordered_dimensions(list(dimensions)):
        display_name, _ = DIMENSION_INFO[dim]
        sections.append(f"### {display_name}\n{DIMENSION_INSTRUCTIONS[dim]}\n")
    return sections


def build_chapter_prompt(title: str, content: str, dimensions: Iterable[AnalysisDimension]) -> str:
    """Prompt for analyzing a whole chapter in one call."""
    dimensions = list(dimensions)
    sections = [
        "You are a seasoned literary critic and scholar of the novel with a sharp eye for text.",
        "Read the following chapter closely and write an insightful literary analysis.",
        "Ground every point in textual evidence and avoid generalities. Each dimension has an "
        "insights field: put your deepest observations there.",
        "Respond in JSON.\n",
        f"## Chapter: {title}\n",
        f"{content}\n",
        *_dimension_sections(dimensions),
        "## Output JSON structure\n",
        analysis_json_schema(dimensions),
    ]
    return "\n".join(sections)


def build_segment_prompt(
    title: str,
    segment: str,
    segment_index: int,
    total_segments: int,
    dimensions: Iterable[AnalysisDimension],
) -> str:
    """Prompt for one segment of a chapter too long for a single call.

    ``segment_index`` is zero-based; the prompt shows it one-based.
    """
    dimensions = list(dimensions)
    sections = [
        "You are a seasoned literary critic. Analyze the following excerpt of a novel chapter; "
        "note that it is only one part of the full chapter.",
        "Ground the analysis in textual evidence. Respond in JSON.\n",
        f"## Chapter: {title} (part {segment_index + 1} of {total_segments})\n",
        f"{segment}\n",
        *_dimension_sections(dimensions),
        "## Output JSON structure\n",
        analysis_json_schema(dimensions),
    ]
    return "\n".join(sections)
