"""Presentation callback contract.

The host registers these callables before a chapter starts. Awaited
handlers may return an awaitable (the effect list suspends until it
completes) or None (treated as already complete). Notifications are plain
synchronous calls.
"""
from __future__ import annotations
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from chapterplayer.chapter.model import AnnotatedChoice, GameState, PlayerProgress

MaybeAwaitable = Optional[Awaitable[Any]]


async def settle(result: Any) -> Any:
    """Await result if the collaborator handed back an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass
class Presentation:
    # Awaited presentation effects
    on_dialogue: Optional[Callable[[str, str], MaybeAwaitable]] = None
    on_narration: Optional[Callable[[str], MaybeAwaitable]] = None
    on_background_change: Optional[Callable[[str, Optional[str]], MaybeAwaitable]] = None
    on_character_action: Optional[Callable[[Dict[str, Any]], MaybeAwaitable]] = None
    on_show_cg: Optional[Callable[[str], MaybeAwaitable]] = None

    # Fire-and-forget
    on_bookmark: Optional[Callable[[PlayerProgress], None]] = None
    on_vfx: Optional[Callable[[str, Dict[str, Any]], None]] = None

    # Lifecycle notifications
    on_show_choices: Optional[Callable[[List[AnnotatedChoice]], None]] = None
    on_hide_choices: Optional[Callable[[], None]] = None
    on_state_change: Optional[Callable[[GameState], None]] = None
    on_loading_progress: Optional[Callable[[float], None]] = None
    on_node_enter: Optional[Callable[[str], None]] = None
