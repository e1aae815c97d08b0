"""Models package — re-export all ORM classes for metadata auto-detection."""
from cfr_cache.models.snapshot import TitleSnapshot  # noqa: F401
from cfr_cache.models.word_count import TitleWordCount  # noqa: F401
