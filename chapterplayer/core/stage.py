"""UI-facing stage bookkeeping.

Stage mirrors what a renderer shows: the characters on screen (derived from
`character` effects), the current background and the CG overlay. It is
ephemeral and never persisted.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import DEFAULT_OUTFIT, DEFAULT_POSITION, NEUTRAL_EMOTION, PLAYER_CHARACTER_KEY
from chapterplayer.chapter.model import CharacterEffect, CharacterState
from .assets import AssetManager
from .state import StateManager


@dataclass
class Portrait:
    image: Optional[Any]
    layers: Dict[str, str] = field(default_factory=dict)  # customization slot -> part id


class Stage:
    def __init__(self):
        self.characters: Dict[str, CharacterState] = {}
        self.background: Optional[str] = None
        self.cg: Optional[str] = None

    def apply(self, effect: CharacterEffect) -> Optional[CharacterState]:
        """Apply a character effect and return the resulting state.

        Hidden characters keep their outfit, emotion and position with
        visible=False. Returns None for an update or hide of a character
        that never appeared.
        """
        key = effect.character_key
        if effect.action == "show":
            self.characters[key] = CharacterState(
                character_key=key,
                outfit=effect.outfit or DEFAULT_OUTFIT,
                emotion=effect.emotion or NEUTRAL_EMOTION,
                position=effect.position or DEFAULT_POSITION,
            )
            return self.characters[key]

        existing = self.characters.get(key)
        if existing is None:
            return None
        if effect.action == "hide":
            existing.visible = False
        elif effect.action == "update":
            if effect.outfit:
                existing.outfit = effect.outfit
            if effect.emotion:
                existing.emotion = effect.emotion
            if effect.position:
                existing.position = effect.position
        return existing

    def apply_args(self, args: Dict[str, Any]) -> Optional[CharacterState]:
        """Same as apply() for the argument bag handed to on_character_action."""
        return self.apply(CharacterEffect(
            character_key=args["characterKey"],
            action=args.get("action", "show"),
            position=args.get("position"),
            emotion=args.get("emotion"),
            outfit=args.get("outfit"),
        ))

    def visible_characters(self) -> Dict[str, CharacterState]:
        return {key: state for key, state in self.characters.items() if state.visible}

    def speaker_position(self, name: Optional[str]) -> str:
        # Explicit coordinates have no named slot
        if name:
            wanted = name.lower()
            for key, state in self.visible_characters().items():
                if key.lower() == wanted or state.character_key.lower() == wanted:
                    return state.position if isinstance(state.position, str) else DEFAULT_POSITION
        return DEFAULT_POSITION

    def portrait(self, assets: AssetManager, state: StateManager, character_key: str) -> Optional[Portrait]:
        """Image (with neutral fallback) and paper-doll layers for a character on stage."""
        character = self.characters.get(character_key)
        if character is None or not character.visible:
            return None
        image = assets.get_character_image(character_key, character.outfit, character.emotion)
        layers: Dict[str, str] = {}
        if character_key == PLAYER_CHARACTER_KEY:
            layers = state.get_customization(character_key) or {}
        return Portrait(image=image, layers=layers)

    def clear(self) -> None:
        self.characters.clear()
        self.background = None
        self.cg = None
