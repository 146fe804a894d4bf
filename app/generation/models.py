"""Msgspec models for the JSON blobs stored on sequences and jobs."""

from __future__ import annotations

from typing import Annotated, Any

import msgspec
from msgspec import structs

from app.storage.errors import MalformedPayloadError

StoryLengthValue = Annotated[int, msgspec.Meta(ge=0, le=2)]
SpiceLevelValue = Annotated[int, msgspec.Meta(ge=0, le=2)]
AuthorStyleValue = Annotated[int, msgspec.Meta(ge=0, le=4)]
ChapterIndexValue = Annotated[int, msgspec.Meta(ge=0)]


class OutlineChapter(msgspec.Struct, rename={"plot_points": "plotPoints"}):
  """One outline chapter: a title and its ordered plot points."""

  name: str
  plot_points: list[str]


class UserPrompt(msgspec.Struct, kw_only=True):
  """One entry of a sequence's user prompt history."""

  prompt: str
  tags: list[str] = msgspec.field(default_factory=list)
  spice_level: SpiceLevelValue = 0
  story_length: StoryLengthValue = 0
  insertion_chapter_index: ChapterIndexValue = 0
  style: AuthorStyleValue = 0
  processed: bool = False
  # Epoch milliseconds.
  processed_at: float | None = None


class LegacyPreferences(msgspec.Struct, kw_only=True, rename="camel"):
  """Preference form stored on jobs created before prompt history existed."""

  spice_level: SpiceLevelValue = 0
  story_length: StoryLengthValue = 0
  style: AuthorStyleValue = 0
  custom_setting: str | None = None
  selected_settings: list[str] = msgspec.field(default_factory=list)
  custom_plot: str | None = None
  selected_plots: list[str] = msgspec.field(default_factory=list)
  custom_themes: str | None = None
  selected_themes: list[str] = msgspec.field(default_factory=list)
  tags: list[str] = msgspec.field(default_factory=list)

  def to_user_prompt(self) -> UserPrompt:
    """Fold the form fields into a single free-text prompt."""
    parts: list[str] = []
    setting = self.custom_setting or ", ".join(self.selected_settings)
    if setting:
      parts.append(f"Setting: {setting}")
    plot = self.custom_plot or ", ".join(self.selected_plots)
    if plot:
      parts.append(f"Plot: {plot}")
    themes = self.custom_themes or ", ".join(self.selected_themes)
    if themes:
      parts.append(f"Themes: {themes}")
    return UserPrompt(prompt="\n".join(parts), tags=list(self.tags or self.selected_themes), spice_level=self.spice_level, story_length=self.story_length, style=self.style)


def _convert(payload: Any, type_: Any, label: str) -> Any:
  try:
    return msgspec.convert(payload, type=type_)
  except msgspec.ValidationError as exc:
    raise MalformedPayloadError(f"Malformed {label}: {exc}") from exc


def decode_outline(payload: Any) -> list[OutlineChapter]:
  """Decode a persisted outline; a null column means no outline yet."""
  if payload is None:
    return []
  return _convert(payload, list[OutlineChapter], "outline")


def encode_outline(chapters: list[OutlineChapter]) -> list[dict[str, Any]]:
  return msgspec.to_builtins(chapters)


def decode_prompt_history(payload: Any) -> list[UserPrompt]:
  if payload is None:
    return []
  return _convert(payload, list[UserPrompt], "user prompt history")


def encode_prompt_history(prompts: list[UserPrompt]) -> list[dict[str, Any]]:
  return msgspec.to_builtins(prompts)


def flag_prompt_processed(history: list[UserPrompt], index: int, *, processed_at_ms: float) -> list[UserPrompt]:
  """Return a copy of `history` with entry `index` flagged as processed."""
  if index < 0 or index >= len(history):
    raise ValueError(f"Invalid prompt index {index}")
  updated = list(history)
  updated[index] = structs.replace(history[index], processed=True, processed_at=processed_at_ms)
  return updated


def decode_job_preferences(payload: Any) -> UserPrompt | None:
  """Decode a job's embedded preferences, accepting either the prompt or the legacy form shape."""
  if payload is None:
    return None
  if not isinstance(payload, dict):
    raise MalformedPayloadError(f"Malformed job preferences: expected an object, got {type(payload).__name__}")
  if "prompt" in payload:
    return _convert(payload, UserPrompt, "job preferences")
  legacy = _convert(payload, LegacyPreferences, "job preferences")
  return legacy.to_user_prompt()


def decode_outline_snapshot(payload: Any) -> list[OutlineChapter]:
  """Decode a job's legacy `story_outline` snapshot (`{"chapters": [...]}` or a bare list)."""
  if payload is None:
    return []
  if isinstance(payload, dict):
    payload = payload.get("chapters")
  return decode_outline(payload)
