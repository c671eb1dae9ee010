"""Chapter document package: models, conditions, schema and loading."""

from .model import (
    GameState, Condition, Effect, BranchCase, Choice, AnnotatedChoice, ChapterNode,
    AssetManifest, ChapterData, PlayerProgress, CharacterState,
    SetEffect, IncEffect, DecEffect, BookmarkEffect, DialogueEffect, NarrationEffect,
    BackgroundEffect, CharacterEffect, ShowCGEffect, SfxEffect, MusicEffect,
    GotoEffect, BranchEffect, EndChapterEffect, VfxEffect, UnknownEffect, MalformedEffect,
)
from .dsl import check, check_all
from .loader import load_chapter, parse_chapter, parse_effect, progress_from_dict
from .validator import validate_schema, validate_chapter_structure, find_broken_references

__all__ = [
    'GameState', 'Condition', 'Effect', 'BranchCase', 'Choice', 'AnnotatedChoice', 'ChapterNode',
    'AssetManifest', 'ChapterData', 'PlayerProgress', 'CharacterState',
    'SetEffect', 'IncEffect', 'DecEffect', 'BookmarkEffect', 'DialogueEffect', 'NarrationEffect',
    'BackgroundEffect', 'CharacterEffect', 'ShowCGEffect', 'SfxEffect', 'MusicEffect',
    'GotoEffect', 'BranchEffect', 'EndChapterEffect', 'VfxEffect', 'UnknownEffect', 'MalformedEffect',
    'check', 'check_all',
    'load_chapter', 'parse_chapter', 'parse_effect', 'progress_from_dict',
    'validate_schema', 'validate_chapter_structure', 'find_broken_references',
]
