"""Typed failures raised by the outline and content engines."""

from __future__ import annotations


class OutlineParseError(ValueError):
  """Raised when generated outline text contains no chapter headers."""

  def __init__(self, message: str = "No chapters found in response") -> None:
    super().__init__(message)


class OutlineCountMismatchError(ValueError):
  """Raised when an outline does not match its length tier."""

  def __init__(self, *, expected: int, actual: int, chapter_number: int | None = None) -> None:
    self.expected = expected
    self.actual = actual
    self.chapter_number = chapter_number
    if chapter_number is None:
      message = f"Chapter count mismatch: expected {expected}, got {actual}"
    else:
      message = f"Chapter {chapter_number} plot point count mismatch: expected {expected}, got {actual}"
    super().__init__(message)


class ChapterNotInOutlineError(LookupError):
  """Raised when a chapter index has no entry in the sequence outline."""

  def __init__(self, chapter_index: int, chapter_count: int) -> None:
    self.chapter_index = chapter_index
    self.chapter_count = chapter_count
    super().__init__(f"Chapter index {chapter_index} not found in outline with {chapter_count} chapters")
