from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.storage import postgres_story_repo
from app.storage.errors import RecordNotFoundError
from app.storage.postgres_story_repo import PostgresSequencesRepository


def _repo_with_history(monkeypatch: pytest.MonkeyPatch, stored: object) -> tuple[PostgresSequencesRepository, AsyncMock]:
  session = AsyncMock()
  locked = MagicMock()
  locked.one_or_none.return_value = None if stored is None else (stored,)
  session.execute.side_effect = [locked, MagicMock()]
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  monkeypatch.setattr(postgres_story_repo, "get_session_factory", lambda: factory)
  return PostgresSequencesRepository(), session


@pytest.mark.anyio
async def test_marking_a_prompt_rereads_the_history_under_a_lock(monkeypatch: pytest.MonkeyPatch) -> None:
  # The stored history already holds a prompt the job never saw.
  stored = [{"prompt": "A lighthouse keeper"}, {"prompt": "Add a rival keeper", "insertion_chapter_index": 2}]
  repo, session = _repo_with_history(monkeypatch, stored)

  await repo.mark_prompt_processed("seq-1", 0, processed_at_ms=1700000000000.0)

  select_stmt, update_stmt = (call.args[0] for call in session.execute.await_args_list)
  assert "FOR UPDATE" in str(select_stmt)
  assert str(update_stmt).startswith("UPDATE sequences")
  written = update_stmt.compile().params["user_prompt_history"]
  assert [entry["prompt"] for entry in written] == ["A lighthouse keeper", "Add a rival keeper"]
  assert [entry["processed"] for entry in written] == [True, False]
  assert written[0]["processed_at"] == 1700000000000.0
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_marking_a_prompt_on_a_missing_sequence_raises(monkeypatch: pytest.MonkeyPatch) -> None:
  repo, session = _repo_with_history(monkeypatch, None)

  with pytest.raises(RecordNotFoundError):
    await repo.mark_prompt_processed("seq-1", 0, processed_at_ms=1.0)
  session.commit.assert_not_awaited()
