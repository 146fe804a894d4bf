"""Metadata engine: derive story-level metadata from an outline in parallel."""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, Field

from app.ai.gateway import GenerationGateway
from app.generation.constants import METADATA_TEMPERATURE
from app.generation.models import OutlineChapter
from app.generation.prompts import METADATA_SYSTEM_PROMPT, explicit_flag_prompt, format_outline, tags_prompt, target_audience_prompt, title_prompt, trigger_warnings_prompt
from app.jobs.models import StoryMetadata

logger = logging.getLogger(__name__)


class TitleDescription(BaseModel):
  title: str = Field(min_length=1, description="A compelling, concise title for the story")
  description: str = Field(min_length=1, description="A 2-sentence description that entices readers")


class StoryTags(BaseModel):
  tags: list[str] = Field(min_length=5, max_length=8, description="5-8 lowercase tags for genre, tropes, setting and mood")


class TriggerWarnings(BaseModel):
  trigger_warnings: list[str] = Field(min_length=0, max_length=5, description="Content warnings that actually apply; may be empty")


class ExplicitFlag(BaseModel):
  is_sexually_explicit: bool = Field(description="True only for graphic sexual descriptions")


class TargetAudience(BaseModel):
  target_audience: list[str] = Field(min_length=1, max_length=3, description="Reader audiences this story suits")


class MetadataEngine:
  """Run the independent metadata sub-tasks concurrently and merge them."""

  def __init__(self, gateway: GenerationGateway) -> None:
    self._gateway = gateway

  async def generate_metadata(self, outline_text: str) -> StoryMetadata:
    """Return merged metadata; any sub-task failure fails the whole call."""

    def _call(prompt: str, schema: type[BaseModel], operation: str):
      return self._gateway.generate_structured(prompt, schema, system_prompt=METADATA_SYSTEM_PROMPT, temperature=METADATA_TEMPERATURE, operation=operation)

    logger.info("Generating story metadata from %d-char outline", len(outline_text))
    title, tags, warnings, explicit, audience = await asyncio.gather(
      _call(title_prompt(outline_text), TitleDescription, "metadata_title"),
      _call(tags_prompt(outline_text), StoryTags, "metadata_tags"),
      _call(trigger_warnings_prompt(outline_text), TriggerWarnings, "metadata_trigger_warnings"),
      _call(explicit_flag_prompt(outline_text), ExplicitFlag, "metadata_explicit_flag"),
      _call(target_audience_prompt(outline_text), TargetAudience, "metadata_target_audience"),
    )

    metadata = StoryMetadata(
      title=title.title.strip(),
      description=title.description.strip(),
      # Lower-cased only; duplicates are kept as returned.
      tags=[tag.strip().lower() for tag in tags.tags],
      trigger_warnings=[warning.strip().lower() for warning in warnings.trigger_warnings],
      is_sexually_explicit=explicit.is_sexually_explicit,
      target_audience=[item.strip() for item in audience.target_audience],
    )
    logger.info("Generated metadata title=%r tags=%d warnings=%d explicit=%s", metadata.title, len(metadata.tags), len(metadata.trigger_warnings), metadata.is_sexually_explicit)
    return metadata

  async def generate_metadata_for_outline(self, chapters: list[OutlineChapter]) -> StoryMetadata:
    return await self.generate_metadata(format_outline(chapters))
