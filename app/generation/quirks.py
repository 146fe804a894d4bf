"""Writing quirk selection for a story."""

from __future__ import annotations

import logging
import random

from pydantic import BaseModel, Field

from app.ai.gateway import GenerationGateway
from app.generation.constants import QUIRK_TEMPERATURE, WRITING_QUIRK_COUNT, get_author_style
from app.generation.models import OutlineChapter, UserPrompt
from app.generation.prompts import format_outline, writing_quirks_prompt

logger = logging.getLogger(__name__)


class WritingQuirks(BaseModel):
  quirks: list[str] = Field(min_length=WRITING_QUIRK_COUNT, max_length=WRITING_QUIRK_COUNT, description="Each formatted 'Title - Description'")


class WritingQuirkPicker:
  """Generate candidate quirks and pick one at random."""

  def __init__(self, gateway: GenerationGateway, *, rng: random.Random | None = None) -> None:
    self._gateway = gateway
    self._rng = rng or random.Random()

  async def pick_quirk(self, settings: UserPrompt, chapters: list[OutlineChapter]) -> str:
    prompt = writing_quirks_prompt(story_prompt=settings.prompt, outline_text=format_outline(chapters), author_style=get_author_style(settings.style), count=WRITING_QUIRK_COUNT)
    result = await self._gateway.generate_structured(prompt, WritingQuirks, temperature=QUIRK_TEMPERATURE, operation="writing_quirks")
    quirk = self._rng.choice(result.quirks).strip()
    logger.info("Selected writing quirk %r", quirk)
    return quirk
