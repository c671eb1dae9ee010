"""Interactive-fiction chapter player."""

from .errors import ChapterError, ChapterLoadError, MissingNodeError

__all__ = ['ChapterError', 'ChapterLoadError', 'MissingNodeError']
