"""Merge per-segment analyses of one chapter into a single ChapterAnalysis.

Used only when a chapter had to be segmented. Each dimension has its own rule:

- characters: characters deduplicated by name, relationships by (from, to);
  the first occurrence wins even if later ones differ, and duplicates
  inside a single segment collapse as well
- plot, foreshadowing, rhetoric, emotion, worldbuilding: observation lists
  are concatenated in segment order, narrative scalars are space-joined
- writing_technique, themes: holistic judgments, the last segment that
  produced one replaces the accumulated value outright

Insights of accumulating dimensions are the distinct non-empty insight
strings of all segments, space-joined in order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, assert_never

from app.schemas.analysis import (
    AnalysisDimension,
    ChapterAnalysis,
    CharactersAnalysis,
    EmotionAnalysis,
    ForeshadowingAnalysis,
    PlotAnalysis,
    RhetoricAnalysis,
    WorldbuildingAnalysis,
)

HOLISTIC_DIMENSIONS = frozenset({AnalysisDimension.WRITING_TECHNIQUE, AnalysisDimension.THEMES})


def merge_segment_analyses(segments: Sequence[ChapterAnalysis]) -> ChapterAnalysis:
    """Fold segment analyses, in order, into one chapter analysis.

    Input analyses are never mutated.
    """
    merged = ChapterAnalysis()
    insights: dict[AnalysisDimension, list[str | None]] = {}
    for segment in segments:
        for dimension in AnalysisDimension:
            incoming = getattr(segment, dimension.value)
            if incoming is None:
                continue
            # The first record is folded into an empty one so its own duplicates collapse
            current = getattr(merged, dimension.value)
            if current is None:
                current = type(incoming)()
            setattr(merged, dimension.value, _merge_dimension(dimension, current, incoming))
            if dimension not in HOLISTIC_DIMENSIONS:
                insights.setdefault(dimension, []).append(incoming.insights)

    for dimension, texts in insights.items():
        getattr(merged, dimension.value).insights = join_insights(texts)
    return merged


def _merge_dimension(dimension: AnalysisDimension, current: Any, incoming: Any) -> Any:
    match dimension:
        case AnalysisDimension.CHARACTERS:
            return _merge_characters(current, incoming)
        case AnalysisDimension.PLOT:
            return _merge_plot(current, incoming)
        case AnalysisDimension.FORESHADOWING:
            return _merge_foreshadowing(current, incoming)
        case AnalysisDimension.RHETORIC:
            return _merge_rhetoric(current, incoming)
        case AnalysisDimension.EMOTION:
            return _merge_emotion(current, incoming)
        case AnalysisDimension.WORLDBUILDING:
            return _merge_worldbuilding(current, incoming)
        case AnalysisDimension.WRITING_TECHNIQUE | AnalysisDimension.THEMES:
            return incoming.model_copy(deep=True)
        case _:
            assert_never(dimension)


# --- Text helpers ---


def join_text(current: str, incoming: str) -> str:
    """Join two narrative fragments with a single space, skipping empties."""
    if not incoming:
        return current
    if not current:
        return incoming
    return f"{current} {incoming}"


def join_insights(insights: Iterable[str | None]) -> str | None:
    """Space-join the distinct non-empty insights, first occurrence order."""
    distinct: list[str] = []
    for text in insights:
        if text and text not in distinct:
            distinct.append(text)
    return " ".join(distinct) or None


# --- Per-dimension rules ---


def _merge_characters(current: CharactersAnalysis, incoming: CharactersAnalysis) -> CharactersAnalysis:
    characters = list(current.characters)
    seen_names = {c.name for c in characters}
    for character in incoming.characters:
        if character.name not in seen_names:
            seen_names.add(character.name)
            characters.append(character.model_copy(deep=True))

    relationships = list(current.relationships)
    seen_pairs = {(r.from_, r.to) for r in relationships}
    for relationship in incoming.relationships:
        key = (relationship.from_, relationship.to)
        if key not in seen_pairs:
            seen_pairs.add(key)
            relationships.append(relationship.model_copy(deep=True))

    return CharactersAnalysis(characters=characters, relationships=relationships)


def _merge_plot(current: PlotAnalysis, incoming: PlotAnalysis) -> PlotAnalysis:
    return PlotAnalysis(
        summary=join_text(current.summary, incoming.summary),
        key_events=[*current.key_events, *incoming.key_events],
        conflicts=[*current.conflicts, *incoming.conflicts],
        suspense=[*current.suspense, *incoming.suspense],
    )


def _merge_foreshadowing(
    current: ForeshadowingAnalysis, incoming: ForeshadowingAnalysis
) -> ForeshadowingAnalysis:
    return ForeshadowingAnalysis(
        setups=[*current.setups, *incoming.setups],
        callbacks=[*current.callbacks, *incoming.callbacks],
        turning_points=[*current.turning_points, *incoming.turning_points],
        cliffhangers=[*current.cliffhangers, *incoming.cliffhangers],
    )


def _merge_rhetoric(current: RhetoricAnalysis, incoming: RhetoricAnalysis) -> RhetoricAnalysis:
    return RhetoricAnalysis(
        devices=[*current.devices, *incoming.devices],
        language_style=join_text(current.language_style, incoming.language_style),
        notable_quotes=[*current.notable_quotes, *incoming.notable_quotes],
    )


def _merge_emotion(current: EmotionAnalysis, incoming: EmotionAnalysis) -> EmotionAnalysis:
    return EmotionAnalysis(
        overall_tone=join_text(current.overall_tone, incoming.overall_tone),
        emotion_arc=[*current.emotion_arc, *incoming.emotion_arc],
        atmosphere_techniques=[*current.atmosphere_techniques, *incoming.atmosphere_techniques],
    )


def _merge_worldbuilding(
    current: WorldbuildingAnalysis, incoming: WorldbuildingAnalysis
) -> WorldbuildingAnalysis:
    return WorldbuildingAnalysis(
        locations=[*current.locations, *incoming.locations],
        organizations=[*current.organizations, *incoming.organizations],
        power_systems=[*current.power_systems, *incoming.power_systems],
        items=[*current.items, *incoming.items],
        rules=[*current.rules, *incoming.rules],
    )
