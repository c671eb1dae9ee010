"""Chapter data models for the chapter player.

This module defines the chapter document structures (nodes, choices, asset
manifest), the player progress record and one dataclass per effect op.
Effects are a closed set of variants: the processor dispatches on the
variant type and anything it cannot interpret ends up as UnknownEffect or
MalformedEffect.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Literal, Optional, Tuple, Union

# Lifecycle states for the GameManager FSM
GameState = Literal["LOADING", "PLAYING", "PAUSED", "ENDED"]

CostType = Literal["diamonds", "tickets"]

@dataclass
class Condition:
    """A single comparison against a player variable.

    Examples:
        {"var": "Empathy", "op": "gte", "value": 5}
        {"var": "met_patty", "op": "eq", "value": True}
    """
    var: str
    op: str
    value: Any = None

# --- Effect variants ---------------------------------------------------------

@dataclass
class SetEffect:
    op: ClassVar[str] = "set"
    var: str
    value: Any = None
    when: List[Condition] = field(default_factory=list)

@dataclass
class IncEffect:
    op: ClassVar[str] = "inc"
    var: str
    amount: float = 1
    when: List[Condition] = field(default_factory=list)

@dataclass
class DecEffect:
    op: ClassVar[str] = "dec"
    var: str
    amount: float = 1
    when: List[Condition] = field(default_factory=list)

@dataclass
class BookmarkEffect:
    """Checkpoint marker: the host may persist progress here."""
    op: ClassVar[str] = "bookmark"
    label: Optional[str] = None
    when: List[Condition] = field(default_factory=list)

@dataclass
class DialogueEffect:
    op: ClassVar[str] = "dialogue"
    character: str
    text: str
    when: List[Condition] = field(default_factory=list)

@dataclass
class NarrationEffect:
    op: ClassVar[str] = "narration"
    text: str
    when: List[Condition] = field(default_factory=list)

@dataclass
class BackgroundEffect:
    op: ClassVar[str] = "bg"
    image_key: str
    transition: Optional[str] = None
    when: List[Condition] = field(default_factory=list)

@dataclass
class CharacterEffect:
    """Show, hide or update a character on stage."""
    op: ClassVar[str] = "character"
    character_key: str
    action: Literal["show", "hide", "update"] = "show"
    position: Union[str, Dict[str, float], None] = None  # named slot or {"x", "y", "scale"}
    emotion: Optional[str] = None
    outfit: Optional[str] = None
    when: List[Condition] = field(default_factory=list)

    def to_args(self) -> Dict[str, Any]:
        """Argument bag handed to the presentation layer."""
        return {
            "characterKey": self.character_key,
            "action": self.action,
            "position": self.position,
            "emotion": self.emotion,
            "outfit": self.outfit,
        }

@dataclass
class ShowCGEffect:
    op: ClassVar[str] = "showCG"
    image_key: str
    when: List[Condition] = field(default_factory=list)

@dataclass
class SfxEffect:
    op: ClassVar[str] = "sfx"
    src_key: str
    when: List[Condition] = field(default_factory=list)

@dataclass
class MusicEffect:
    op: ClassVar[str] = "music"
    action: Literal["play", "stop"]
    src_key: str
    loop: bool = True
    when: List[Condition] = field(default_factory=list)

@dataclass
class GotoEffect:
    op: ClassVar[str] = "goto"
    target: str
    when: List[Condition] = field(default_factory=list)

@dataclass
class BranchCase:
    """One arm of a branch: first arm whose conditions all hold wins."""
    when: List[Condition]
    target: str

@dataclass
class BranchEffect:
    op: ClassVar[str] = "branch"
    cases: List[BranchCase] = field(default_factory=list)
    default: Optional[str] = None
    when: List[Condition] = field(default_factory=list)

@dataclass
class EndChapterEffect:
    op: ClassVar[str] = "endChapter"
    when: List[Condition] = field(default_factory=list)

@dataclass
class VfxEffect:
    """Visual flourish (shake, flash...). Extra args are passed through."""
    op: ClassVar[str] = "vfx"
    type: str = "unknown"
    args: Dict[str, Any] = field(default_factory=dict)
    when: List[Condition] = field(default_factory=list)

@dataclass
class UnknownEffect:
    """Effect whose op is not part of the vocabulary."""
    op: str
    args: Dict[str, Any] = field(default_factory=dict)
    when: List[Condition] = field(default_factory=list)

@dataclass
class MalformedEffect:
    """Known op whose args could not be interpreted."""
    op: str
    args: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    when: List[Condition] = field(default_factory=list)

Effect = Union[
    SetEffect, IncEffect, DecEffect, BookmarkEffect,
    DialogueEffect, NarrationEffect, BackgroundEffect, CharacterEffect, ShowCGEffect,
    SfxEffect, MusicEffect,
    GotoEffect, BranchEffect, EndChapterEffect,
    VfxEffect, UnknownEffect, MalformedEffect,
]

# --- Chapter document ------------------------------------------------------------

@dataclass
class Choice:
    """A player-selectable option on a node."""
    id: str
    text: str
    effects: List[Effect] = field(default_factory=list)
    cost: Optional[float] = None
    cost_type: Optional[CostType] = None  # None means the configured default currency

@dataclass
class AnnotatedChoice:
    """Choice as published to the presentation layer."""
    choice: Choice
    can_afford: bool = True

    @property
    def id(self) -> str:
        return self.choice.id

    @property
    def text(self) -> str:
        return self.choice.text

@dataclass
class ChapterNode:
    id: str
    on_enter: List[Effect] = field(default_factory=list)
    choices: List[Choice] = field(default_factory=list)

@dataclass
class AssetManifest:
    """Every asset key a chapter may reference."""
    images: Dict[str, str] = field(default_factory=dict)  # key -> locator
    characters: Dict[str, Dict[str, Dict[str, str]]] = field(default_factory=dict)  # char -> emotion -> outfit -> locator
    audio: Dict[str, str] = field(default_factory=dict)  # key -> locator

    def entry_count(self) -> int:
        count = len(self.images) + len(self.audio)
        for emotions in self.characters.values():
            for outfits in emotions.values():
                count += len(outfits)
        return count

    def iter_character_images(self) -> Iterator[Tuple[str, str, str, str]]:
        """Yield (character, outfit, emotion, locator) for every portrait."""
        for character_key, emotions in self.characters.items():
            for emotion_key, outfits in emotions.items():
                for outfit_key, locator in outfits.items():
                    yield character_key, outfit_key, emotion_key, locator

@dataclass
class ChapterData:
    """Immutable chapter document for one attempt."""
    start_node_id: str
    nodes: Dict[str, ChapterNode] = field(default_factory=dict)
    asset_manifest: AssetManifest = field(default_factory=AssetManifest)
    character_customization: Optional[Dict[str, Dict[str, str]]] = None  # default paper-doll layers

    def get_node(self, node_id: str) -> Optional[ChapterNode]:
        return self.nodes.get(node_id)

# --- Player progress ---------------------------------------------------------------

@dataclass
class PlayerProgress:
    """Persistent player state for one chapter attempt."""
    story_id: str = ""
    chapter_id: str = ""
    resume_node_id: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    customization: Optional[Dict[str, Dict[str, str]]] = None  # character -> slot -> part id

    def to_dict(self) -> Dict[str, Any]:
        """Document shape handed to the persistence collaborator."""
        data: Dict[str, Any] = {
            "storyId": self.story_id,
            "chapterId": self.chapter_id,
            "resumeNodeId": self.resume_node_id,
            "variables": dict(self.variables),
        }
        if self.customization is not None:
            data["customization"] = {k: dict(v) for k, v in self.customization.items()}
        return data

@dataclass
class CharacterState:
    """UI-facing state of one character on stage (not persisted)."""
    character_key: str
    outfit: str
    emotion: str
    position: Union[str, Dict[str, float]]
    visible: bool = True
