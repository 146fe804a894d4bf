from __future__ import annotations

import pytest

from app.generation.models import OutlineChapter, UserPrompt, decode_job_preferences, decode_outline, decode_prompt_history, encode_outline, flag_prompt_processed
from app.jobs.models import JobRecord, SequenceRecord
from app.services.outlines import MissingStorySettingsError, first_unprocessed_prompt, resolve_outline, resolve_story_settings
from app.storage.errors import MalformedPayloadError
from tests.fakes import make_outline


class FakeOutlineEngine:
  def __init__(self) -> None:
    self.generated: list[UserPrompt] = []
    self.regenerated: list[tuple[int, int]] = []

  async def generate_outline(self, user_prompt: UserPrompt) -> list[OutlineChapter]:
    self.generated.append(user_prompt)
    return make_outline(5, 3)

  async def regenerate_outline_suffix(self, existing: list[OutlineChapter], user_prompt: UserPrompt, insertion_index: int) -> list[OutlineChapter]:
    self.regenerated.append((len(existing), insertion_index))
    return existing[:insertion_index] + [OutlineChapter(name="Regenerated", plot_points=["a", "b", "c"])] * (5 - insertion_index)


def _job(**overrides) -> JobRecord:
  return JobRecord(id="job-1", chapter_id="ch-1", status="processing", sequence_id="seq-1", **overrides)


@pytest.mark.anyio
async def test_first_unprocessed_prompt_generates_a_new_outline() -> None:
  history = [UserPrompt(prompt="first", processed=True), UserPrompt(prompt="second"), UserPrompt(prompt="third")]
  engine = FakeOutlineEngine()
  resolution = await resolve_outline(SequenceRecord(id="seq-1", user_prompt_history=history), _job(), engine)

  assert resolution.source == "new"
  assert resolution.processed_prompt_index == 1
  assert [prompt.prompt for prompt in engine.generated] == ["second"]


@pytest.mark.anyio
async def test_existing_outline_with_new_prompt_is_regenerated_from_insertion_index() -> None:
  history = [UserPrompt(prompt="first", processed=True), UserPrompt(prompt="twist", insertion_chapter_index=3)]
  engine = FakeOutlineEngine()
  resolution = await resolve_outline(SequenceRecord(id="seq-1", chapters=make_outline(5, 3), user_prompt_history=history), _job(), engine)

  assert resolution.source == "regenerated"
  assert engine.regenerated == [(5, 3)]
  assert [chapter.name for chapter in resolution.chapters][2:4] == ["Title 3", "Regenerated"]


@pytest.mark.anyio
async def test_existing_outline_without_pending_prompt_is_reused() -> None:
  engine = FakeOutlineEngine()
  resolution = await resolve_outline(SequenceRecord(id="seq-1", chapters=make_outline(5, 3), user_prompt_history=[UserPrompt(prompt="p", processed=True)]), _job(), engine)
  assert resolution.source == "existing"
  assert resolution.was_generated is False
  assert engine.generated == [] and engine.regenerated == []


@pytest.mark.anyio
async def test_job_snapshot_is_adopted_when_the_sequence_has_nothing() -> None:
  snapshot = {"chapters": encode_outline(make_outline(5, 3))}
  resolution = await resolve_outline(SequenceRecord(id="seq-1"), _job(story_outline=snapshot), FakeOutlineEngine())
  assert resolution.source == "snapshot"
  assert resolution.processed_prompt_index is None
  assert resolution.chapters == make_outline(5, 3)


@pytest.mark.anyio
async def test_no_outline_and_no_prompt_fails() -> None:
  with pytest.raises(ValueError, match="no outline and no unprocessed prompt"):
    await resolve_outline(SequenceRecord(id="seq-1"), _job(), FakeOutlineEngine())


def test_story_settings_prefer_latest_prompt_then_job_preferences() -> None:
  history = [UserPrompt(prompt="old", story_length=2), UserPrompt(prompt="new", story_length=1, processed=True)]
  assert resolve_story_settings(SequenceRecord(id="s", user_prompt_history=history), _job()).prompt == "new"

  legacy = {"spiceLevel": 2, "storyLength": 1, "customSetting": "Coastal town", "selectedThemes": ["second chances"]}
  settings = resolve_story_settings(SequenceRecord(id="s"), _job(user_preferences=legacy))
  assert settings.story_length == 1
  assert settings.spice_level == 2
  assert "Setting: Coastal town" in settings.prompt
  assert settings.tags == ["second chances"]

  with pytest.raises(MissingStorySettingsError):
    resolve_story_settings(SequenceRecord(id="s"), _job())


def test_flag_prompt_processed_copies_history() -> None:
  history = [UserPrompt(prompt="a"), UserPrompt(prompt="b")]
  updated = flag_prompt_processed(history, 1, processed_at_ms=1700000000000.0)
  assert updated[1].processed is True
  assert updated[1].processed_at == 1700000000000.0
  assert history[1].processed is False
  assert first_unprocessed_prompt(updated) == (0, history[0])


def test_persisted_blobs_are_decoded_with_their_schema() -> None:
  assert decode_outline([{"name": "One", "plotPoints": ["a"]}]) == [OutlineChapter(name="One", plot_points=["a"])]
  assert decode_prompt_history(None) == []
  with pytest.raises(MalformedPayloadError):
    decode_prompt_history([{"prompt": "x", "spice_level": 7}])
  with pytest.raises(MalformedPayloadError):
    decode_outline([{"name": "missing plot points"}])
  assert decode_job_preferences({"prompt": "p", "story_length": 2}).story_length == 2
