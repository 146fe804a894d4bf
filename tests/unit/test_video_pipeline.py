from __future__ import annotations

import pytest

from app.ai.errors import ContentPolicyError, EmptyGenerationError, GenerationError
from app.ai.gateway import GenerationGateway
from app.generation.video.enhancer import VideoPromptContext, VideoPromptEnhancer, build_enhancer_prompt, clean_video_prompt, locate_quote
from app.generation.video.pipeline import VideoGenerationService, video_object_name
from app.generation.video.sanitizer import SanitizationLevel, VideoPromptSanitizer, level_for_attempt
from tests.fakes import RecordingSleep, ScriptedModel, fast_policy, make_outline


class FakeGenerator:
  def __init__(self, outcomes: list[object]) -> None:
    self._outcomes = list(outcomes)
    self.prompts: list[str] = []

  async def generate(self, prompt: str) -> str:
    self.prompts.append(prompt)
    outcome = self._outcomes.pop(0)
    if isinstance(outcome, Exception):
      raise outcome
    return str(outcome)


class FakeStorage:
  def __init__(self) -> None:
    self.uploads: list[tuple[bytes, str, str]] = []

  async def upload_bytes(self, data: bytes, object_name: str, *, content_type: str = "video/mp4", cache_control: str = "public, max-age=3600") -> str:
    self.uploads.append((data, object_name, content_type))
    return f"https://storage.example/videos/{object_name}"


def _service(model: ScriptedModel, generator: FakeGenerator, sleep: RecordingSleep, storage: FakeStorage | None = None) -> VideoGenerationService:
  gateway = GenerationGateway(model, retry_policy=fast_policy())

  async def _download(url: str) -> bytes:
    return b"video-bytes:" + url.encode()

  return VideoGenerationService(
    enhancer=VideoPromptEnhancer(gateway),
    sanitizer=VideoPromptSanitizer(gateway),
    generator=generator,
    storage=storage or FakeStorage(),
    retry_policy=fast_policy(3, sleep=sleep),
    downloader=_download,
    clock=lambda: 1700000000.5,
  )


@pytest.mark.anyio
async def test_policy_rejections_escalate_mild_then_strong() -> None:
  model = ScriptedModel(replies=["Mild rewrite", "Strong rewrite"])
  generator = FakeGenerator([ContentPolicyError("flagged as sensitive"), ContentPolicyError("E005 flagged"), "https://replicate.delivery/out.mp4"])
  sleep = RecordingSleep()

  url = await _service(model, generator, sleep).generate_video("Enhanced prompt")

  assert url == "https://replicate.delivery/out.mp4"
  assert generator.prompts == ["Enhanced prompt", "Mild rewrite", "Strong rewrite"]
  # Both rewrites start from the enhanced prompt.
  assert all("Enhanced prompt" in call["prompt"] for call in model.calls)
  assert "SANITIZATION LEVEL 1" in model.calls[0]["system_prompt"]
  assert "SANITIZATION LEVEL 2" in model.calls[1]["system_prompt"]
  assert sleep.delays == []


@pytest.mark.anyio
async def test_transient_errors_back_off_without_rewriting() -> None:
  model = ScriptedModel()
  generator = FakeGenerator([RuntimeError("502 bad gateway"), "https://replicate.delivery/out.mp4"])
  sleep = RecordingSleep()

  assert await _service(model, generator, sleep).generate_video("Enhanced prompt") == "https://replicate.delivery/out.mp4"
  assert generator.prompts == ["Enhanced prompt", "Enhanced prompt"]
  assert sleep.delays == [1.0]
  assert model.calls == []


@pytest.mark.anyio
async def test_attempt_budget_is_shared() -> None:
  model = ScriptedModel(replies=["Mild rewrite"])
  generator = FakeGenerator([ContentPolicyError("nsfw"), RuntimeError("timeout"), RuntimeError("timeout")])
  with pytest.raises(GenerationError, match="generate_video failed after 3 attempts: timeout"):
    await _service(model, generator, RecordingSleep()).generate_video("Enhanced prompt")
  assert len(generator.prompts) == 3


@pytest.mark.anyio
async def test_store_video_uploads_under_a_timestamped_name() -> None:
  storage = FakeStorage()
  public_url = await _service(ScriptedModel(), FakeGenerator([]), RecordingSleep(), storage).store_video("q-9", "https://replicate.delivery/out.mp4")

  assert public_url == "https://storage.example/videos/quote_q-9_1700000000500.mp4"
  assert storage.uploads == [(b"video-bytes:https://replicate.delivery/out.mp4", "quote_q-9_1700000000500.mp4", "video/mp4")]
  assert video_object_name("a", 5) == "quote_a_5.mp4"


@pytest.mark.anyio
async def test_enhancer_clips_and_unquotes() -> None:
  model = ScriptedModel(replies=['"' + "x" * 600 + '"'])
  enhanced = await VideoPromptEnhancer(GenerationGateway(model, retry_policy=fast_policy())).enhance(VideoPromptContext(quote_text="Hello"))
  assert len(enhanced) == 500
  assert enhanced.endswith("...")
  assert not enhanced.startswith('"')


def test_clean_video_prompt_rejects_empty_text() -> None:
  with pytest.raises(EmptyGenerationError):
    clean_video_prompt('  ""  ')


def test_sanitizer_ceiling_is_applied() -> None:
  assert len(clean_video_prompt("y" * 400, 280)) == 280
  assert level_for_attempt(1) is SanitizationLevel.MILD
  assert level_for_attempt(2) is SanitizationLevel.STRONG
  assert level_for_attempt(5) is SanitizationLevel.STRONG
  with pytest.raises(ValueError):
    level_for_attempt(0)


def test_locate_quote_positions() -> None:
  content = "a" * 50 + "His eyes met hers" + "b" * 50
  location = locate_quote(content, "his EYES met hers")
  assert location.position == "middle"
  assert location.content_before_quote == "a" * 50

  assert locate_quote("Quote first. " + "c" * 100, "Quote first").position == "beginning"
  assert locate_quote("d" * 100 + "the end", "the end").position == "end"


def test_locate_quote_falls_back_to_prefix_then_tail() -> None:
  long_quote = "She whispered that the lighthouse had always been hers to keep, " + "and then more words that differ"
  content = "intro " + long_quote[:60] + " and something else entirely"
  assert locate_quote(content, long_quote).content_before_quote == "intro"

  missing = locate_quote("z" * 3000, "never written")
  assert missing.position == "end"
  assert missing.content_before_quote == "z" * 2000


def test_enhancer_prompt_includes_outline_and_context() -> None:
  prompt = build_enhancer_prompt(VideoPromptContext(quote_text="Stay", chapter_content="Rain fell. Stay, he said.", context_sentence="At the pier", sequence_title="Tides", chapters=make_outline(2, 1)))
  assert 'QUOTE: "Stay"' in prompt
  assert "CONTEXT: At the pier" in prompt
  assert "## Chapter 2: Title 2" in prompt
  assert "<story_content_leading_to_quote>\nRain fell.\n</story_content_leading_to_quote>" in prompt
