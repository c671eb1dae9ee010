"""Chapter loader from structured JSON documents.

This module turns chapter JSON (a file or an already parsed dict) into
ChapterData, converting every raw effect into its typed variant. Structural
problems and broken node references are fatal; a single effect with bad
arguments is not, it is kept as a MalformedEffect and skipped at run time.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import jsonschema

from chapterplayer.errors import ChapterLoadError
from .model import (
    AssetManifest, BackgroundEffect, BookmarkEffect, BranchCase, BranchEffect,
    ChapterData, ChapterNode, CharacterEffect, Choice, Condition, DecEffect,
    DialogueEffect, Effect, EndChapterEffect, GotoEffect, IncEffect, MalformedEffect,
    MusicEffect, NarrationEffect, PlayerProgress, SetEffect, SfxEffect, ShowCGEffect,
    UnknownEffect, VfxEffect,
)
from .validator import find_broken_references, validate_chapter_structure, validate_progress_schema

logger = logging.getLogger(__name__)

def load_chapter(chapter_file_path: Union[str, Path]) -> ChapterData:
    """Load a chapter from a JSON file.

    Args:
        chapter_file_path: Path to the chapter JSON file

    Returns:
        Parsed ChapterData

    Raises:
        ChapterLoadError: If the file is missing, not JSON, or invalid
    """
    chapter_path = Path(chapter_file_path)
    if not chapter_path.exists():
        raise ChapterLoadError(f"Chapter file not found: {chapter_file_path}")

    try:
        with open(chapter_path, 'r', encoding='utf-8') as f:
            chapter_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ChapterLoadError(f"Invalid JSON in chapter file: {e}") from e

    return parse_chapter(chapter_data)

def parse_chapter(chapter_data: Dict[str, Any]) -> ChapterData:
    """Validate and convert a raw chapter document.

    Args:
        chapter_data: Chapter document (camelCase keys)

    Returns:
        Parsed ChapterData

    Raises:
        ChapterLoadError: On schema violations or broken node references
    """
    problems = validate_chapter_structure(chapter_data)
    if problems:
        raise ChapterLoadError("Chapter document does not match the schema", problems)

    nodes = {}
    for node_id, node_data in chapter_data['nodes'].items():
        nodes[node_id] = _parse_node(node_id, node_data)

    chapter = ChapterData(
        start_node_id=chapter_data['startNodeId'],
        nodes=nodes,
        asset_manifest=_parse_manifest(chapter_data.get('assetManifest', {})),
        character_customization=chapter_data.get('characterCustomization'),
    )

    broken = find_broken_references(chapter)
    if broken:
        raise ChapterLoadError("Chapter references nodes that do not exist", broken)

    return chapter

def _parse_node(node_id: str, node_data: Dict[str, Any]) -> ChapterNode:
    on_enter = [parse_effect(e, context=f"{node_id}.onEnter[{i}]")
                for i, e in enumerate(node_data.get('onEnter', []))]
    choices = [_parse_choice(c, node_id) for c in node_data.get('choices', [])]
    return ChapterNode(id=node_id, on_enter=on_enter, choices=choices)

def _parse_choice(choice_data: Dict[str, Any], node_id: str) -> Choice:
    choice_id = choice_data['id']
    effects = [parse_effect(e, context=f"{node_id}.choices.{choice_id}[{i}]")
               for i, e in enumerate(choice_data.get('effects', []))]
    return Choice(
        id=choice_id,
        text=choice_data.get('text', ''),
        effects=effects,
        cost=choice_data.get('cost'),
        cost_type=choice_data.get('costType'),
    )

def _parse_manifest(manifest_data: Dict[str, Any]) -> AssetManifest:
    return AssetManifest(
        images=dict(manifest_data.get('images', {})),
        characters={
            character: {emotion: dict(outfits) for emotion, outfits in emotions.items()}
            for character, emotions in manifest_data.get('characters', {}).items()
        },
        audio=dict(manifest_data.get('audio', {})),
    )

def parse_condition(condition_data: Dict[str, Any]) -> Condition:
    """Parse a condition clause ({"var", "op", "value"})."""
    return Condition(
        var=condition_data.get('var', ''),
        op=condition_data.get('op', ''),
        value=condition_data.get('value'),
    )

def _parse_conditions(raw: Any) -> List[Condition]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ValueError("conditions must be a list")
    return [parse_condition(c) for c in raw if isinstance(c, dict)]

# --- Per-op argument parsing ----------------------------------------------------

def _require_str(args: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = args.get(name)
        if isinstance(value, str) and value:
            return value
    raise ValueError(f"'{names[0]}' must be a non-empty string")

def _optional_str(args: Dict[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string if provided")
    return value

def _amount(args: Dict[str, Any]) -> float:
    value = args.get('value', 1)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("'value' must be a number")
    return value

def _parse_character(args: Dict[str, Any], when: List[Condition]) -> CharacterEffect:
    action = args.get('action')
    if action not in ("show", "hide", "update"):
        raise ValueError("'action' must be one of show, hide, update")
    position = args.get('position')
    if position is not None and not isinstance(position, (str, dict)):
        raise ValueError("'position' must be a slot name or a coordinate object")
    return CharacterEffect(
        character_key=_require_str(args, 'characterKey'),
        action=action,
        position=position,
        emotion=_optional_str(args, 'emotion'),
        outfit=_optional_str(args, 'outfit'),
        when=when,
    )

def _parse_music(args: Dict[str, Any], when: List[Condition]) -> MusicEffect:
    action = args.get('action')
    if action not in ("play", "stop"):
        raise ValueError("'action' must be play or stop")
    return MusicEffect(
        action=action,
        src_key=_require_str(args, 'srcKey'),
        loop=bool(args.get('loop', True)),
        when=when,
    )

def _parse_branch(args: Dict[str, Any], when: List[Condition]) -> BranchEffect:
    raw_cases = args.get('conditions')
    if not isinstance(raw_cases, list):
        raise ValueError("'conditions' must be a list")
    cases = []
    for raw_case in raw_cases:
        if not isinstance(raw_case, dict):
            raise ValueError("each branch case must be an object")
        cases.append(BranchCase(
            when=_parse_conditions(raw_case.get('when')),
            target=_require_str(raw_case, 'target'),
        ))
    return BranchEffect(cases=cases, default=_optional_str(args, 'default'), when=when)

def _parse_vfx(args: Dict[str, Any], when: List[Condition]) -> VfxEffect:
    extra = {k: v for k, v in args.items() if k != 'type'}
    return VfxEffect(type=str(args.get('type', 'unknown')), args=extra, when=when)

_EFFECT_PARSERS: Dict[str, Callable[[Dict[str, Any], List[Condition]], Effect]] = {
    "set": lambda a, w: SetEffect(var=_require_str(a, 'var'), value=a.get('value'), when=w),
    "inc": lambda a, w: IncEffect(var=_require_str(a, 'var'), amount=_amount(a), when=w),
    "dec": lambda a, w: DecEffect(var=_require_str(a, 'var'), amount=_amount(a), when=w),
    "bookmark": lambda a, w: BookmarkEffect(label=_optional_str(a, 'label'), when=w),
    # 'speaker' is accepted for older text-only chapters
    "dialogue": lambda a, w: DialogueEffect(
        character=_require_str(a, 'character', 'speaker'), text=_require_str(a, 'text'), when=w),
    "narration": lambda a, w: NarrationEffect(text=_require_str(a, 'text'), when=w),
    "bg": lambda a, w: BackgroundEffect(
        image_key=_require_str(a, 'imageKey'), transition=_optional_str(a, 'transition'), when=w),
    "character": _parse_character,
    "showCG": lambda a, w: ShowCGEffect(image_key=_require_str(a, 'imageKey'), when=w),
    "sfx": lambda a, w: SfxEffect(src_key=_require_str(a, 'srcKey'), when=w),
    "music": _parse_music,
    "goto": lambda a, w: GotoEffect(target=_require_str(a, 'target'), when=w),
    "branch": _parse_branch,
    "endChapter": lambda a, w: EndChapterEffect(when=w),
    "vfx": _parse_vfx,
}

def parse_effect(effect_data: Dict[str, Any], context: str = "") -> Effect:
    """Convert a raw effect into its typed variant.

    Args:
        effect_data: Raw effect ({"op", "args", "when"?})
        context: Location used in diagnostics

    Returns:
        The typed effect; UnknownEffect for an op outside the vocabulary,
        MalformedEffect when the args of a known op cannot be interpreted
    """
    op = effect_data.get('op', '')
    args = effect_data.get('args') or {}

    try:
        when = _parse_conditions(effect_data.get('when'))
    except ValueError as e:
        logger.warning("Malformed guard on effect %s (%s): %s", op, context, e)
        return MalformedEffect(op=op, args=args, reason=str(e))

    parser = _EFFECT_PARSERS.get(op)
    if parser is None:
        return UnknownEffect(op=op, args=args, when=when)

    try:
        return parser(args, when)
    except ValueError as e:
        logger.warning("Malformed '%s' effect at %s: %s", op, context or "<effect>", e)
        return MalformedEffect(op=op, args=args, reason=str(e), when=when)

def progress_from_dict(progress_data: Dict[str, Any]) -> PlayerProgress:
    """Build PlayerProgress from the host's camelCase document.

    Raises:
        ValueError: If the document does not match the progress schema
    """
    try:
        validate_progress_schema(progress_data)
    except jsonschema.ValidationError as e:
        raise ValueError(f"Invalid progress document: {e.message}") from e

    customization = progress_data.get('customization')
    return PlayerProgress(
        story_id=progress_data.get('storyId', ''),
        chapter_id=progress_data.get('chapterId', ''),
        resume_node_id=progress_data.get('resumeNodeId', ''),
        variables=dict(progress_data.get('variables') or {}),
        customization={k: dict(v) for k, v in customization.items()} if customization else None,
    )
