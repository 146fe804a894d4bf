"""Outline engine: generate, parse and validate chapter outlines."""

from __future__ import annotations

import logging
import random
import re

from app.ai.gateway import GenerationGateway
from app.generation.constants import NOVEL_FORMULAS, OUTLINE_TEMPERATURE, LengthTier, get_author_style, get_length_tier, get_spice_level
from app.generation.errors import OutlineCountMismatchError, OutlineParseError
from app.generation.models import OutlineChapter, UserPrompt
from app.generation.prompts import format_outline, outline_system_prompt, outline_user_prompt, regenerate_system_prompt, regenerate_user_prompt

_CHAPTER_HEADER_RE = re.compile(r"^Chapter\s+\d+:\s*(.+)$", re.IGNORECASE)
_DASH_BULLET_RE = re.compile(r"^-\s*")
_GLYPH_BULLET_RE = re.compile(r"^[•*]\s+")
_EMPHASIS_RE = re.compile(r"\*\*|__")
_HEADING_RE = re.compile(r"^#+\s*")

logger = logging.getLogger(__name__)


def _clean_line(raw_line: str) -> str:
  """Drop markdown emphasis and heading markers that models wrap around outline lines."""
  line = _EMPHASIS_RE.sub("", raw_line.strip())
  return _HEADING_RE.sub("", line).strip()


def parse_outline_text(text: str) -> list[OutlineChapter]:
  """Parse `Chapter N: Title` headers and their bullet lines into chapters.

  Lines before the first header (a preamble sentence) and any other non-bullet lines are ignored.
  Raises `OutlineParseError` when no chapter header is found.
  """
  chapters: list[OutlineChapter] = []
  current: OutlineChapter | None = None

  for raw_line in text.splitlines():
    line = _clean_line(raw_line)
    if not line:
      continue

    header = _CHAPTER_HEADER_RE.match(line)
    if header:
      if current is not None:
        chapters.append(current)
      current = OutlineChapter(name=header.group(1).strip(), plot_points=[])
      continue

    if current is None:
      continue

    if line.startswith("-"):
      point = _DASH_BULLET_RE.sub("", line, count=1).strip()
    elif _GLYPH_BULLET_RE.match(line):
      point = _GLYPH_BULLET_RE.sub("", line, count=1).strip()
    else:
      continue
    if point:
      current.plot_points.append(point)

  if current is not None:
    chapters.append(current)

  if not chapters:
    raise OutlineParseError()
  return chapters


def validate_outline_counts(chapters: list[OutlineChapter], tier: LengthTier, *, expected_chapters: int | None = None) -> None:
  """Raise `OutlineCountMismatchError` unless the outline matches the tier exactly."""
  expected = tier.chapter_count if expected_chapters is None else expected_chapters
  if len(chapters) != expected:
    raise OutlineCountMismatchError(expected=expected, actual=len(chapters))
  for index, chapter in enumerate(chapters):
    if len(chapter.plot_points) != tier.plot_points_per_chapter:
      raise OutlineCountMismatchError(expected=tier.plot_points_per_chapter, actual=len(chapter.plot_points), chapter_number=index + 1)


class OutlineEngine:
  """Produce tier-conformant outlines through the generation gateway."""

  def __init__(self, gateway: GenerationGateway, *, rng: random.Random | None = None) -> None:
    self._gateway = gateway
    self._rng = rng or random.Random()

  def _pick_formula(self) -> str:
    return self._rng.choice(NOVEL_FORMULAS)

  async def generate_outline(self, user_prompt: UserPrompt) -> list[OutlineChapter]:
    """Generate a complete outline for a new story."""
    tier = get_length_tier(user_prompt.story_length)
    spice = get_spice_level(user_prompt.spice_level)
    formula = self._pick_formula()
    system_prompt = outline_system_prompt(tier=tier, spice=spice, author_style=get_author_style(user_prompt.style), formula=formula)
    prompt = outline_user_prompt(prompt=user_prompt.prompt, tags=user_prompt.tags, tier=tier)

    def _parse(text: str) -> list[OutlineChapter]:
      chapters = parse_outline_text(text)
      validate_outline_counts(chapters, tier)
      return chapters

    logger.info("Generating outline tier=%s chapters=%d plot_points=%d formula=%s", tier.label, tier.chapter_count, tier.plot_points_per_chapter, formula.split(":", 1)[0])
    chapters = await self._gateway.generate_parsed(prompt, _parse, system_prompt=system_prompt, temperature=OUTLINE_TEMPERATURE, operation="generate_outline")
    logger.info("Generated outline with %d chapters", len(chapters))
    return chapters

  async def regenerate_outline_suffix(self, existing: list[OutlineChapter], user_prompt: UserPrompt, insertion_index: int) -> list[OutlineChapter]:
    """Keep chapters before `insertion_index` and regenerate the rest with the new direction."""
    tier = get_length_tier(user_prompt.story_length)
    if insertion_index < 0 or insertion_index >= tier.chapter_count:
      raise ValueError(f"Insertion chapter index {insertion_index} is outside the {tier.chapter_count}-chapter outline.")
    if insertion_index > len(existing):
      raise ValueError(f"Insertion chapter index {insertion_index} is past the {len(existing)} existing chapters.")

    preserved = list(existing[:insertion_index])
    new_count = tier.chapter_count - insertion_index
    spice = get_spice_level(user_prompt.spice_level)
    formula = self._pick_formula()
    system_prompt = regenerate_system_prompt(tier=tier, spice=spice, author_style=get_author_style(user_prompt.style), formula=formula, existing_outline=format_outline(existing), insertion_index=insertion_index)
    prompt = regenerate_user_prompt(prompt=user_prompt.prompt, tags=user_prompt.tags, new_chapter_count=new_count, insertion_index=insertion_index)

    def _parse(text: str) -> list[OutlineChapter]:
      chapters = parse_outline_text(text)
      validate_outline_counts(chapters, tier, expected_chapters=new_count)
      return chapters

    logger.info("Regenerating outline from chapter %d (%d preserved, %d new)", insertion_index + 1, len(preserved), new_count)
    regenerated = await self._gateway.generate_parsed(prompt, _parse, system_prompt=system_prompt, temperature=OUTLINE_TEMPERATURE, operation="regenerate_outline")
    combined = preserved + regenerated
    if len(combined) != tier.chapter_count:
      raise OutlineCountMismatchError(expected=tier.chapter_count, actual=len(combined))
    return combined
