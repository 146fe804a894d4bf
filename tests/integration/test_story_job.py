from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from dataclasses import replace

import pytest

from app.ai.embeddings import EMBEDDING_DIMENSIONS, EmbeddingClient
from app.ai.gateway import GenerationGateway
from app.generation.content import ContentEngine
from app.generation.metadata import MetadataEngine
from app.generation.models import UserPrompt
from app.generation.outline import OutlineEngine
from app.generation.quirks import WritingQuirkPicker
from app.jobs.dispatch import JobProcessorRegistry
from app.jobs.models import ChapterRecord, JobRecord, SequenceRecord
from app.jobs.processor import JobProcessor
from app.jobs.story import StoryJobHandler
from app.services.webhooks import CompletionPayload
from tests.fakes import InMemoryStore, ScriptedModel, fast_policy, make_outline, metadata_reply, outline_text


def _prose(prompt: str, _system_prompt: str | None) -> str:
  point = prompt.rsplit('plot point: "', 1)[1].split('"', 1)[0]
  return f"Prose for {point}."


class RecordingWebhook:
  def __init__(self) -> None:
    self.payloads: list[CompletionPayload] = []

  async def notify_job_completion(self, payload: CompletionPayload) -> bool:
    self.payloads.append(payload)
    return True


class Harness:
  def __init__(self, store: InMemoryStore, *, outline_replies: list[object] | None = None, outline_default: Callable[[str, str | None], str] | None = None) -> None:
    self.store = store
    self.outline_model = ScriptedModel("outline", outline_replies or [], default=outline_default)
    self.prose_model = ScriptedModel("prose", default=_prose)
    self.metadata_model = ScriptedModel("metadata", default=metadata_reply)
    self.webhook = RecordingWebhook()
    metadata_gateway = GenerationGateway(self.metadata_model, retry_policy=fast_policy())
    self.handler = StoryJobHandler(
      jobs_repo=store.jobs_repo,
      chapters_repo=store.chapters_repo,
      sequences_repo=store.sequences_repo,
      outline_engine=OutlineEngine(GenerationGateway(self.outline_model, retry_policy=fast_policy()), rng=random.Random(3)),
      content_engine=ContentEngine(GenerationGateway(self.prose_model, retry_policy=fast_policy()), chapters_repo=store.chapters_repo),
      metadata_engine=MetadataEngine(metadata_gateway),
      # No OpenAI key: embeddings degrade to zeros.
      embedding_client=EmbeddingClient(api_key=None),
      quirk_picker=WritingQuirkPicker(metadata_gateway, rng=random.Random(3)),
      webhook=self.webhook,
      clock=lambda: 1700000000.0,
    )
    registry = JobProcessorRegistry({"story_generation": self.handler, "chapter_generation": self.handler})
    self.processor = JobProcessor(jobs_repo=store.jobs_repo, registry=registry)


def _seed_new_story(store: InMemoryStore) -> JobRecord:
  store.add_sequence(SequenceRecord(id="seq-1", created_by="user-1", user_prompt_history=[UserPrompt(prompt="A lighthouse keeper and a storm chaser", story_length=0, spice_level=1, style=0)]))
  store.add_chapter(ChapterRecord(id="ch-1", generation_status="generating"), sequence_id="seq-1", index=0)
  return store.add_job(JobRecord(id="job-1", chapter_id="ch-1", status="pending", sequence_id="seq-1", user_id="user-1"))


@pytest.mark.anyio
async def test_first_chapter_of_a_new_short_story(store: InMemoryStore) -> None:
  job = _seed_new_story(store)
  harness = Harness(store, outline_replies=[outline_text(5, 3)])

  assert await harness.processor.process_job(job) is True
  await harness.processor.drain_background_tasks()

  saved_job = store.jobs["job-1"]
  assert (saved_job.status, saved_job.progress, saved_job.current_step) == ("completed", 100.0, "completed")
  assert saved_job.completed_at is not None

  chapter = store.chapters["ch-1"]
  assert chapter.content == "Prose for Point 1.1.\n\nProse for Point 1.2.\n\nProse for Point 1.3."
  assert (chapter.title, chapter.generation_status, chapter.generation_progress) == ("Title 1", "completed", 100.0)

  sequence = store.sequences["seq-1"]
  assert len(sequence.chapters) == 5
  assert sequence.name == "The Lighthouse Letters"
  assert sequence.tags[0] == "romance"
  assert sequence.embedding == "[" + ",".join(["0.0"] * EMBEDDING_DIMENSIONS) + "]"
  assert sequence.writing_quirk is not None
  assert sequence.user_prompt_history[0].processed is True
  assert sequence.user_prompt_history[0].processed_at == 1700000000000.0

  assert harness.webhook.payloads == [CompletionPayload(job_id="job-1", sequence_id="seq-1", chapter_id="ch-1", is_first_chapter=True)]
  assert sequence.writing_quirk in harness.prose_model.calls[0]["system_prompt"]


@pytest.mark.anyio
async def test_next_chapter_reuses_outline_and_parent_content(store: InMemoryStore) -> None:
  store.add_sequence(SequenceRecord(id="seq-1", chapters=make_outline(5, 3), user_prompt_history=[UserPrompt(prompt="p", processed=True)], writing_quirk="Salt - Everything tastes of salt"))
  store.add_chapter(ChapterRecord(id="ch-1", content="Earlier chapter prose.", generation_status="completed"), sequence_id="seq-1", index=0)
  store.add_chapter(ChapterRecord(id="ch-2", parent_id="ch-1", generation_status="generating"), sequence_id="seq-1", index=1)
  job = store.add_job(JobRecord(id="job-2", chapter_id="ch-2", status="pending", sequence_id="seq-1", user_id="user-1", job_type="chapter_generation"))
  harness = Harness(store)

  assert await harness.processor.process_job(job) is True
  await harness.processor.drain_background_tasks()

  assert harness.outline_model.calls == []
  assert harness.metadata_model.calls == []
  assert store.chapters["ch-2"].content.endswith("Prose for Point 2.3.")
  assert "Earlier chapter prose." in harness.prose_model.calls[0]["prompt"]
  assert harness.webhook.payloads[0].is_first_chapter is False


@pytest.mark.anyio
async def test_new_prompt_regenerates_from_its_insertion_chapter(store: InMemoryStore) -> None:
  history = [UserPrompt(prompt="p", processed=True), UserPrompt(prompt="Add a rival keeper", insertion_chapter_index=2)]
  store.add_sequence(SequenceRecord(id="seq-1", chapters=make_outline(5, 3), user_prompt_history=history, writing_quirk="Salt - Everything tastes of salt"))
  store.add_chapter(ChapterRecord(id="ch-2", content="Chapter two prose."), sequence_id="seq-1", index=1)
  store.add_chapter(ChapterRecord(id="ch-3", parent_id="ch-2", generation_status="generating"), sequence_id="seq-1", index=2)
  job = store.add_job(JobRecord(id="job-3", chapter_id="ch-3", status="pending", sequence_id="seq-1"))
  harness = Harness(store, outline_replies=[outline_text(3, 3, first_chapter=3).replace("Title", "Rival")])

  assert await harness.processor.process_job(job) is True
  await harness.processor.drain_background_tasks()

  sequence = store.sequences["seq-1"]
  assert [chapter.name for chapter in sequence.chapters] == ["Title 1", "Title 2", "Rival 3", "Rival 4", "Rival 5"]
  assert sequence.user_prompt_history[1].processed is True
  assert store.chapters["ch-3"].title == "Rival 3"
  # An existing quirk is kept.
  assert sequence.writing_quirk == "Salt - Everything tastes of salt"


@pytest.mark.anyio
async def test_missing_parent_content_fails_the_job(store: InMemoryStore) -> None:
  store.add_sequence(SequenceRecord(id="seq-1", chapters=make_outline(5, 3), user_prompt_history=[UserPrompt(prompt="p", processed=True)]))
  store.add_chapter(ChapterRecord(id="ch-1", content=""), sequence_id="seq-1", index=0)
  store.add_chapter(ChapterRecord(id="ch-2", parent_id="ch-1", generation_status="generating"), sequence_id="seq-1", index=1)
  job = store.add_job(JobRecord(id="job-2", chapter_id="ch-2", status="pending", sequence_id="seq-1"))
  harness = Harness(store)

  assert await harness.processor.process_job(job) is False
  saved = store.jobs["job-2"]
  assert (saved.status, saved.current_step) == ("failed", "failed")
  assert "Failed to fetch parent chapter content" in saved.error_message
  assert harness.prose_model.calls == []


@pytest.mark.anyio
async def test_outline_exhaustion_marks_the_job_failed(store: InMemoryStore) -> None:
  job = _seed_new_story(store)
  harness = Harness(store, outline_replies=["Sorry, no outline."] * 3)

  assert await harness.processor.process_job(job) is False
  saved = store.jobs["job-1"]
  assert saved.status == "failed"
  assert saved.error_message.startswith("generate_outline failed after 3 attempts")
  # Nothing is rolled back or forward; the chapter is repaired by the startup sweep.
  assert store.chapters["ch-1"].generation_status == "generating"
  assert store.sequences["seq-1"].user_prompt_history[0].processed is False


@pytest.mark.anyio
async def test_concurrent_claims_run_the_job_once(store: InMemoryStore) -> None:
  job = _seed_new_story(store)
  harness = Harness(store, outline_replies=[outline_text(5, 3)])

  results = await asyncio.gather(harness.processor.process_job(job), harness.processor.process_job(job))

  assert sorted(results) == [False, True]
  await harness.processor.drain_background_tasks()
  assert store.jobs_repo.claims == ["job-1"]
  assert len(harness.outline_model.calls) == 1


@pytest.mark.anyio
async def test_unknown_job_type_fails(store: InMemoryStore) -> None:
  job = _seed_new_story(store)
  job.job_type = "audio_generation"  # type: ignore[assignment]
  harness = Harness(store)

  assert await harness.processor.process_job(job) is False
  assert store.jobs["job-1"].error_message == "Unsupported job type: audio_generation"


@pytest.mark.anyio
async def test_prompts_added_during_generation_are_kept(store: InMemoryStore) -> None:
  job = _seed_new_story(store)

  def _outline_while_the_reader_adds_a_prompt(_prompt: str, _system_prompt: str | None) -> str:
    sequence = store.sequences["seq-1"]
    added = UserPrompt(prompt="Add a rival keeper", insertion_chapter_index=2)
    store.sequences["seq-1"] = replace(sequence, user_prompt_history=[*sequence.user_prompt_history, added])
    return outline_text(5, 3)

  harness = Harness(store, outline_default=_outline_while_the_reader_adds_a_prompt)

  assert await harness.processor.process_job(job) is True
  await harness.processor.drain_background_tasks()

  history = store.sequences["seq-1"].user_prompt_history
  assert [entry.prompt for entry in history] == ["A lighthouse keeper and a storm chaser", "Add a rival keeper"]
  assert [entry.processed for entry in history] == [True, False]
