"""Turn a featured quote into a cinematic text-to-video prompt."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from app.ai.errors import EmptyGenerationError
from app.ai.gateway import GenerationGateway
from app.generation.constants import VIDEO_PROMPT_TEMPERATURE
from app.generation.models import OutlineChapter

logger = logging.getLogger(__name__)

QuotePosition = Literal["beginning", "middle", "end"]

VIDEO_PROMPT_MAX_CHARS = 500
LEADING_CONTEXT_CHARS = 2000
PARTIAL_QUOTE_CHARS = 50

_WRAPPING_QUOTES_RE = re.compile(r"^[\"']|[\"']$")

ENHANCER_SYSTEM_PROMPT = """You are a professional cinematic prompt engineer creating artistic visual content for consenting adult audiences. Transform story quotes into tasteful, cinematic video prompts that focus on emotional storytelling and artistic expression.

CONTENT APPROACH:
- Focus on emotional connection, facial expressions and atmospheric storytelling.
- Use elegant, sophisticated language that conveys emotion without explicit detail.

PROMPT REQUIREMENTS:
- Create detailed, information-dense cinematic prompts (maximum 500 characters).
- Include character appearances when they are mentioned in the story context.
- Use professional film terminology: [Close-up], [Wide shot], [Soft focus].
- Avoid explicit physical descriptions; describe faces, emotions and atmosphere instead.

EXAMPLE:
Quote: "His eyes met hers across the crowded room"
Video: "[Wide shot] Elegant ballroom with crystal chandeliers, [Close-up] intense eye contact between attractive man and woman. Golden warm lighting, sophisticated romantic tension, cinematic depth of field focusing on emotional connection across crowded dance floor."
"""


@dataclass(frozen=True)
class QuoteLocation:
  content_before_quote: str
  position: QuotePosition


@dataclass(frozen=True)
class VideoPromptContext:
  """Story context available when enhancing a quote."""

  quote_text: str
  chapter_content: str = ""
  context_sentence: str | None = None
  sequence_title: str | None = None
  chapters: list[OutlineChapter] = field(default_factory=list)


def locate_quote(chapter_content: str, quote_text: str) -> QuoteLocation:
  """Find the quote inside the chapter and return the prose leading up to it.

  Matching is case-insensitive. Long quotes that are not found verbatim are retried using their
  first 50 characters. A quote that cannot be found at all yields the chapter's last 2000
  characters with position "end".
  """
  if not chapter_content or not quote_text:
    return QuoteLocation(content_before_quote=chapter_content or "", position="beginning")

  haystack = chapter_content.lower()
  index = haystack.find(quote_text.lower())
  if index == -1 and len(quote_text) > PARTIAL_QUOTE_CHARS:
    index = haystack.find(quote_text[:PARTIAL_QUOTE_CHARS].lower())

  if index == -1:
    logger.warning("Quote not found in chapter content; using trailing context (quote=%r)", quote_text[:100])
    return QuoteLocation(content_before_quote=chapter_content[-LEADING_CONTEXT_CHARS:], position="end")

  ratio = index / len(chapter_content)
  if ratio < 0.33:
    position: QuotePosition = "beginning"
  elif ratio < 0.66:
    position = "middle"
  else:
    position = "end"
  return QuoteLocation(content_before_quote=chapter_content[:index].strip(), position=position)


def clean_video_prompt(text: str, limit: int = VIDEO_PROMPT_MAX_CHARS) -> str:
  """Trim, drop wrapping quotes and clip to `limit` characters with a `...` suffix."""
  cleaned = _WRAPPING_QUOTES_RE.sub("", text.strip())
  if len(cleaned) > limit:
    cleaned = cleaned[: limit - 3] + "..."
  if not cleaned:
    raise EmptyGenerationError("AI returned empty prompt - cannot proceed with video generation")
  return cleaned


def _format_story_outline(chapters: list[OutlineChapter], title: str | None) -> str:
  if not chapters:
    return ""
  body = "\n".join(f"## Chapter {index + 1}: {chapter.name}\n" + "\n".join(f"- {point}" for point in chapter.plot_points) for index, chapter in enumerate(chapters))
  return f"<story_outline>\n# Story Description\n{title or 'A romantic story'}\n\n{body}\n</story_outline>"


def build_enhancer_prompt(context: VideoPromptContext) -> str:
  location = locate_quote(context.chapter_content, context.quote_text) if context.chapter_content else QuoteLocation("", "beginning")
  leading = location.content_before_quote
  if len(leading) > LEADING_CONTEXT_CHARS:
    leading = "..." + leading[-LEADING_CONTEXT_CHARS:]

  sections = [
    "Transform this story quote into a tasteful, artistic cinematic video prompt for consenting adult viewers:",
    f'QUOTE: "{context.quote_text}"',
  ]
  if context.context_sentence:
    sections.append(f"CONTEXT: {context.context_sentence}")
  sections.append(f"QUOTE POSITION: This quote appears at the {location.position} of the chapter.")
  outline = _format_story_outline(context.chapters, context.sequence_title)
  if outline:
    sections.append(outline)
  if leading:
    sections.append(f"<story_content_leading_to_quote>\n{leading}\n</story_content_leading_to_quote>")
  sections.append(
    "Create a sophisticated cinematic video prompt that captures the emotional essence of this moment. Focus on facial expressions, lighting and atmosphere. "
    "Think about who the story is written for and make the scene appeal to them.\n\n"
    "IMPORTANT: Return a dense, detailed cinematic description without any prefix. Keep the total prompt under 500 characters."
  )
  return "\n\n".join(sections)


class VideoPromptEnhancer:
  """Generate the cinematic prompt sent to the video capability."""

  def __init__(self, gateway: GenerationGateway) -> None:
    self._gateway = gateway

  async def enhance(self, context: VideoPromptContext) -> str:
    prompt = build_enhancer_prompt(context)
    logger.info("Enhancing video prompt for quote (%d chars of prompt)", len(prompt))
    enhanced = await self._gateway.generate_parsed(prompt, clean_video_prompt, system_prompt=ENHANCER_SYSTEM_PROMPT, temperature=VIDEO_PROMPT_TEMPERATURE, operation="enhance_video_prompt")
    logger.info("Enhanced video prompt: %s", enhanced)
    return enhanced
