"""Schema package exports."""

from .sql import Chapter, ChapterSequenceMap, FeaturedQuote, GenerationJob, Sequence

__all__ = ["Chapter", "ChapterSequenceMap", "FeaturedQuote", "GenerationJob", "Sequence"]
