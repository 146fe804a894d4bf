"""Story length tiers, spice levels, author styles and other generation constants."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class StoryLength(IntEnum):
  SHORT_STORY = 0
  NOVELLA = 1
  SLOW_BURN = 2


class SpiceLevel(IntEnum):
  TEASE = 0
  STEAMY = 1
  SPICY_HOT = 2


@dataclass(frozen=True)
class LengthTier:
  """Fixed outline shape and prose target for one story length."""

  label: str
  chapter_count: int
  plot_points_per_chapter: int
  pages_per_plot_point: float
  word_target: str
  total_pages: int

  @property
  def page_description(self) -> str:
    return f"{self.pages_per_plot_point:g} pages ({self.word_target})"


LENGTH_TIERS: dict[StoryLength, LengthTier] = {
  StoryLength.SHORT_STORY: LengthTier(label="Short story", chapter_count=5, plot_points_per_chapter=3, pages_per_plot_point=1.5, word_target="400-500 words", total_pages=20),
  StoryLength.NOVELLA: LengthTier(label="Novella", chapter_count=10, plot_points_per_chapter=4, pages_per_plot_point=1.75, word_target="500-600 words", total_pages=50),
  StoryLength.SLOW_BURN: LengthTier(label="Slow burn", chapter_count=20, plot_points_per_chapter=5, pages_per_plot_point=2.0, word_target="500-700 words", total_pages=100),
}

SPICE_LABELS: dict[SpiceLevel, str] = {SpiceLevel.TEASE: "Tease", SpiceLevel.STEAMY: "Steamy", SpiceLevel.SPICY_HOT: "Spicy hot"}

# Prose runs hotter as explicitness rises.
TEMPERATURE_BY_SPICE: dict[SpiceLevel, float] = {SpiceLevel.TEASE: 0.7, SpiceLevel.STEAMY: 0.8, SpiceLevel.SPICY_HOT: 0.85}
OUTLINE_TEMPERATURE = 0.5
METADATA_TEMPERATURE = 0.2
QUIRK_TEMPERATURE = 0.9
VIDEO_PROMPT_TEMPERATURE = 0.7

AUTHOR_STYLES: tuple[str, ...] = ("Nicholas Sparks", "Stephanie Meyer", "Colleen Hoover", "Sally Rooney", "Jane Austen")

NOVEL_FORMULAS: tuple[str, ...] = (
  "Hero's Journey: Ordinary World -> Call to Adventure -> Refusal -> Meeting the Mentor -> Crossing the Threshold -> Tests, Allies and Enemies -> Ordeal -> Reward -> The Road Back -> Resurrection -> Return with Elixir",
  "Save the Cat Beat Sheet: Opening Image -> Theme Stated -> Setup -> Catalyst -> Debate -> Break into Two -> B Story -> Fun and Games -> Midpoint -> Bad Guys Close In -> All Is Lost -> Dark Night of the Soul -> Break into Three -> Finale -> Final Image",
  "Scene and Sequel: Goal -> Conflict -> Disaster -> Reaction -> Dilemma -> Decision (repeat)",
)

# Trailing prose window handed to each plot-point prompt.
CONTEXT_WINDOW_CHARS = 8000
# Rough characters per generated plot point; only used to guess a resume point without a counter.
AVERAGE_PLOT_POINT_CHARS = 500

WRITING_QUIRK_COUNT = 4

# Share of job progress reserved for chapter prose.
CONTENT_PROGRESS_START = 40.0
CONTENT_PROGRESS_SPAN = 60.0


def get_length_tier(story_length: int) -> LengthTier:
  """Return the tier for a persisted story-length value."""
  try:
    return LENGTH_TIERS[StoryLength(story_length)]
  except ValueError as exc:
    raise ValueError(f"Invalid story length: {story_length}. Must be 0, 1, or 2.") from exc


def get_spice_level(spice_level: int) -> SpiceLevel:
  try:
    return SpiceLevel(spice_level)
  except ValueError as exc:
    raise ValueError(f"Invalid spice level: {spice_level}. Must be 0, 1, or 2.") from exc


def get_author_style(style: int) -> str:
  if style < 0 or style >= len(AUTHOR_STYLES):
    raise ValueError(f"Invalid author style: {style}. Must be between 0 and {len(AUTHOR_STYLES) - 1}.")
  return AUTHOR_STYLES[style]
