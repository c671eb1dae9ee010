"""Chapter document validation.

Validates both JSON schema compliance of a raw chapter document and the
referential integrity of a parsed chapter (every node a transition can
reach must exist).
"""
from typing import Any, Dict, Iterable, List

import jsonschema

from .model import BranchEffect, ChapterData, Effect, GotoEffect
from .schema import CHAPTER_SCHEMA, PROGRESS_SCHEMA

_CHAPTER_VALIDATOR = jsonschema.Draft7Validator(CHAPTER_SCHEMA)

def validate_schema(payload: Dict[str, Any]) -> bool:
    """Validate payload against the chapter schema (raises ValidationError)."""
    jsonschema.validate(payload, CHAPTER_SCHEMA, cls=jsonschema.Draft7Validator)
    return True

def validate_progress_schema(payload: Dict[str, Any]) -> bool:
    """Validate a progress document (raises ValidationError)."""
    jsonschema.validate(payload, PROGRESS_SCHEMA, cls=jsonschema.Draft7Validator)
    return True

def validate_chapter_structure(payload: Any) -> List[str]:
    """Collect every schema problem of a raw chapter document.

    Args:
        payload: Parsed chapter JSON

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    for error in sorted(_CHAPTER_VALIDATOR.iter_errors(payload), key=lambda e: [str(p) for p in e.absolute_path]):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors

def _targets(effects: Iterable[Effect]) -> Iterable[str]:
    for effect in effects:
        if isinstance(effect, GotoEffect):
            yield effect.target
        elif isinstance(effect, BranchEffect):
            for case in effect.cases:
                yield case.target
            if effect.default is not None:
                yield effect.default

def find_broken_references(chapter: ChapterData) -> List[str]:
    """List every goto/branch/start reference to a node that does not exist.

    Args:
        chapter: Parsed chapter

    Returns:
        List of error messages (empty if every reference resolves)
    """
    errors = []
    if chapter.start_node_id not in chapter.nodes:
        errors.append(f"startNodeId '{chapter.start_node_id}' is not a node")

    for node_id, node in chapter.nodes.items():
        for target in _targets(node.on_enter):
            if target not in chapter.nodes:
                errors.append(f"node '{node_id}' onEnter references missing node '{target}'")
        for choice in node.choices:
            for target in _targets(choice.effects):
                if target not in chapter.nodes:
                    errors.append(
                        f"node '{node_id}' choice '{choice.id}' references missing node '{target}'"
                    )
    return errors
