"""Bootstrap utilities: load a chapter JSON and build a ready GameManager."""
from __future__ import annotations
from pathlib import Path
from typing import Optional, Tuple, Union

from config import get_assets_dir
from chapterplayer.chapter import ChapterData, load_chapter
from chapterplayer.core import GameManager, LocatorAssetResolver, Presentation

DEFAULT_CHAPTER = "sample_chapter.json"


def chapters_dir() -> Path:
    return get_assets_dir() / "chapters"


def resolve_chapter_path(chapter: Union[str, Path, None] = None) -> Path:
    """Bare names are looked up in the chapters directory."""
    if chapter is None:
        return chapters_dir() / DEFAULT_CHAPTER
    path = Path(chapter)
    if path.exists() or path.is_absolute():
        return path
    return chapters_dir() / path


def create_game(presentation: Optional[Presentation] = None,
                chapter: Union[str, Path, None] = None) -> Tuple[GameManager, ChapterData]:
    """Load a chapter and build a GameManager resolving assets from the assets directory.

    Raises:
        ChapterLoadError: If the chapter file is missing or invalid
    """
    chapter_data = load_chapter(resolve_chapter_path(chapter))
    manager = GameManager(presentation, resolver=LocatorAssetResolver(get_assets_dir()))
    return manager, chapter_data
