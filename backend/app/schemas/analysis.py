"""Pydantic schemas for chapter analysis and novel summaries.

A ChapterAnalysis holds one optional sub-record per AnalysisDimension.
The JSON shape of every model here is exactly what the prompts in
app.prompts ask the model to emit, so responses validate directly.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ── Dimensions ──────────────────────────────────────────────────────────


class AnalysisDimension(StrEnum):
    """One analytical facet that can be requested and merged independently."""

    CHARACTERS = "characters"
    PLOT = "plot"
    FORESHADOWING = "foreshadowing"
    WRITING_TECHNIQUE = "writing_technique"
    RHETORIC = "rhetoric"
    EMOTION = "emotion"
    THEMES = "themes"
    WORLDBUILDING = "worldbuilding"


DEFAULT_DIMENSIONS: frozenset[AnalysisDimension] = frozenset(
    {
        AnalysisDimension.CHARACTERS,
        AnalysisDimension.PLOT,
        AnalysisDimension.FORESHADOWING,
        AnalysisDimension.WRITING_TECHNIQUE,
    }
)

# (display name, description)
DIMENSION_INFO: dict[AnalysisDimension, tuple[str, str]] = {
    AnalysisDimension.CHARACTERS: (
        "Characters",
        "Cast, personality traits, relationships between characters and how they shift",
    ),
    AnalysisDimension.PLOT: (
        "Plot",
        "Chapter summary, key event sequence, causal chains, conflicts and suspense",
    ),
    AnalysisDimension.FORESHADOWING: (
        "Foreshadowing & Turns",
        "Setups and callbacks, turning points, cliffhangers",
    ),
    AnalysisDimension.WRITING_TECHNIQUE: (
        "Writing Technique",
        "Narrative perspective, time handling, pacing, structure",
    ),
    AnalysisDimension.RHETORIC: (
        "Rhetoric & Language",
        "Rhetorical devices with examples, language style, notable quotes",
    ),
    AnalysisDimension.EMOTION: (
        "Emotion & Atmosphere",
        "Overall tone, emotional arc, atmosphere techniques",
    ),
    AnalysisDimension.THEMES: (
        "Themes",
        "Motifs, values expressed, social or philosophical commentary",
    ),
    AnalysisDimension.WORLDBUILDING: (
        "Worldbuilding",
        "Locations, organizations, power systems, items and world rules",
    ),
}


def ordered_dimensions(dimensions: Iterable[AnalysisDimension]) -> list[AnalysisDimension]:
    """Deduplicate and sort dimensions into declaration order."""
    selected = set(dimensions)
    return [d for d in AnalysisDimension if d in selected]


# ── Base ────────────────────────────────────────────────────────────────


class AnalysisModel(BaseModel):
    """Lenient base for model-produced records.

    Unknown keys are ignored and explicit nulls fall back to field defaults,
    since models routinely emit ``null`` for fields they have nothing to say about.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# ── Characters ──────────────────────────────────────────────────────────


class CharacterProfile(AnalysisModel):
    name: str
    role: str = ""
    traits: list[str] = Field(default_factory=list)
    actions: str = ""


class Relationship(AnalysisModel):
    from_: str = Field(..., alias="from")
    to: str
    relation_type: str = ""
    description: str = ""
    change: str | None = None


class CharactersAnalysis(AnalysisModel):
    characters: list[CharacterProfile] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    insights: str | None = None


# ── Plot ────────────────────────────────────────────────────────────────


class KeyEvent(AnalysisModel):
    event: str
    cause: str | None = None
    effect: str | None = None


class PlotAnalysis(AnalysisModel):
    summary: str = ""
    key_events: list[KeyEvent] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    suspense: list[str] = Field(default_factory=list)
    insights: str | None = None


# ── Foreshadowing ───────────────────────────────────────────────────────


class ForeshadowItem(AnalysisModel):
    content: str
    chapter_ref: str | None = None


class ForeshadowingAnalysis(AnalysisModel):
    setups: list[ForeshadowItem] = Field(default_factory=list)
    callbacks: list[ForeshadowItem] = Field(default_factory=list)
    turning_points: list[str] = Field(default_factory=list)
    cliffhangers: list[str] = Field(default_factory=list)
    insights: str | None = None


# ── Writing technique ───────────────────────────────────────────────────


class WritingTechniqueAnalysis(AnalysisModel):
    narrative_perspective: str = ""
    time_sequence: str = ""
    pacing: str = ""
    structural_notes: str = ""
    insights: str | None = None


# ── Rhetoric ────────────────────────────────────────────────────────────


class RhetoricalDevice(AnalysisModel):
    name: str
    example: str = ""


class RhetoricAnalysis(AnalysisModel):
    devices: list[RhetoricalDevice] = Field(default_factory=list)
    language_style: str = ""
    notable_quotes: list[str] = Field(default_factory=list)
    insights: str | None = None


# ── Emotion ─────────────────────────────────────────────────────────────


class EmotionPoint(AnalysisModel):
    segment: str = ""
    emotion: str = ""
    intensity: str = ""


class EmotionAnalysis(AnalysisModel):
    overall_tone: str = ""
    emotion_arc: list[EmotionPoint] = Field(default_factory=list)
    atmosphere_techniques: list[str] = Field(default_factory=list)
    insights: str | None = None


# ── Themes ──────────────────────────────────────────────────────────────


class ThemesAnalysis(AnalysisModel):
    motifs: list[str] = Field(default_factory=list)
    values: list[str] = Field(default_factory=list)
    social_commentary: str | None = None
    insights: str | None = None


# ── Worldbuilding ───────────────────────────────────────────────────────


class WorldElement(AnalysisModel):
    name: str
    description: str = ""


class WorldbuildingAnalysis(AnalysisModel):
    locations: list[WorldElement] = Field(default_factory=list)
    organizations: list[WorldElement] = Field(default_factory=list)
    power_systems: list[str] = Field(default_factory=list)
    items: list[WorldElement] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    insights: str | None = None


# ── Chapter analysis ────────────────────────────────────────────────────


class ChapterAnalysis(AnalysisModel):
    """Analysis of one chapter; a missing sub-record means not requested or not produced."""

    characters: CharactersAnalysis | None = None
    plot: PlotAnalysis | None = None
    foreshadowing: ForeshadowingAnalysis | None = None
    writing_technique: WritingTechniqueAnalysis | None = None
    rhetoric: RhetoricAnalysis | None = None
    emotion: EmotionAnalysis | None = None
    themes: ThemesAnalysis | None = None
    worldbuilding: WorldbuildingAnalysis | None = None

    def present_dimensions(self) -> list[AnalysisDimension]:
        return [d for d in AnalysisDimension if getattr(self, d.value) is not None]

    def to_json(self) -> str:
        """Compact JSON as stored and as embedded in summary prompts."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ── Novel summary ───────────────────────────────────────────────────────


class CharacterArc(AnalysisModel):
    name: str
    arc: str = ""


class NovelSummary(AnalysisModel):
    """Book-level summary; populated fields depend on the enabled dimensions."""

    overall_plot: str | None = None
    character_arcs: list[CharacterArc] | None = None
    themes: list[str] | None = None
    writing_style: str | None = None
    worldbuilding: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ── Model configuration ─────────────────────────────────────────────────

DEFAULT_OUTPUT_TOKENS = 8192


class LLMConfig(BaseModel):
    """Connection and budget settings for an OpenAI-compatible chat endpoint."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o"
    max_context_tokens: int = Field(128_000, gt=0)
    max_output_tokens: int | None = DEFAULT_OUTPUT_TOKENS
    temperature: float = 0.7
