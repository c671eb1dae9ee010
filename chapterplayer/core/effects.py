"""Effect list interpreter.

EffectsProcessor runs one ordered list of effects against the StateManager,
the AssetManager and the presentation layer. Effects run strictly in order;
awaited presentation effects suspend the list until the host completes
them; the first flow-control effect that fires ends the list.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Type

from chapterplayer.chapter.model import (
    BackgroundEffect, BookmarkEffect, BranchEffect, CharacterEffect, DecEffect,
    DialogueEffect, Effect, EndChapterEffect, GotoEffect, IncEffect, MalformedEffect,
    MusicEffect, NarrationEffect, SetEffect, SfxEffect, ShowCGEffect, UnknownEffect,
    VfxEffect,
)
from .assets import AssetManager
from .presentation import Presentation, settle
from .state import StateManager

logger = logging.getLogger(__name__)


@dataclass
class FlowSignal:
    """Returned by a flow-control handler to stop the current list.

    target is the next node id, or None when the chapter ends. A signal
    with notify=False halts the list without requesting a transition.
    """
    target: Optional[str]
    notify: bool = True


class EffectsProcessor:
    """Sequential interpreter for effect lists."""

    def __init__(self, state_manager: StateManager, asset_manager: AssetManager,
                 presentation: Optional[Presentation] = None):
        self.state_manager = state_manager
        self.asset_manager = asset_manager
        self.presentation = presentation or Presentation()

        # Orchestrator hook
        self.on_node_complete: Optional[Callable[[Optional[str]], None]] = None

        self._executing = False
        self._pending: Optional[asyncio.Future] = None
        self._handlers: Dict[Type[Any], Callable[[Any], Awaitable[Optional[FlowSignal]]]] = {
            SetEffect: self._apply_set,
            IncEffect: self._apply_inc,
            DecEffect: self._apply_dec,
            BookmarkEffect: self._apply_bookmark,
            DialogueEffect: self._apply_dialogue,
            NarrationEffect: self._apply_narration,
            BackgroundEffect: self._apply_background,
            CharacterEffect: self._apply_character,
            ShowCGEffect: self._apply_show_cg,
            SfxEffect: self._apply_sfx,
            MusicEffect: self._apply_music,
            GotoEffect: self._apply_goto,
            BranchEffect: self._apply_branch,
            EndChapterEffect: self._apply_end_chapter,
            VfxEffect: self._apply_vfx,
            UnknownEffect: self._apply_unknown,
            MalformedEffect: self._apply_malformed,
        }

    # --- Execution ---

    def is_executing(self) -> bool:
        return self._executing

    async def execute(self, effects: Iterable[Effect]) -> Optional[Effect]:
        """Run effects in order.

        Returns:
            The flow-control effect that ended the list, or None if the list
            ran to completion (or the call was refused)
        """
        if self._executing:
            logger.warning("EffectsProcessor is already processing effects, call refused")
            return None

        self._executing = True
        try:
            for effect in effects:
                if effect.when and not self.state_manager.evaluate_conditions(effect.when):
                    logger.debug("Skipping '%s', guard not satisfied", effect.op)
                    continue

                signal = await self._process_effect(effect)
                if signal is not None:
                    # Cleared before signalling so the next node is never refused
                    self._executing = False
                    if signal.notify:
                        self._signal_node_complete(signal.target)
                    return effect
            return None
        finally:
            self._executing = False

    async def _process_effect(self, effect: Effect) -> Optional[FlowSignal]:
        handler = self._handlers.get(type(effect))
        if handler is None:
            logger.warning("Unknown effect operation: %s", getattr(effect, "op", effect))
            return None
        logger.debug("Processing effect: %s", effect)
        try:
            return await handler(effect)
        except Exception as e:
            logger.warning("Effect '%s' failed, continuing: %s", effect.op, e)
            return None

    def _signal_node_complete(self, target: Optional[str]) -> None:
        if self.on_node_complete is None:
            return
        try:
            self.on_node_complete(target)
        except Exception:
            logger.exception("on_node_complete hook failed")

    def stop(self) -> None:
        """Emergency abort for teardown: clears state without completing anything."""
        self._executing = False
        self._pending = None

    # --- Pending acknowledgement slot ---

    @property
    def pending(self) -> Optional[asyncio.Future]:
        return self._pending

    def wait_for_acknowledgement(self) -> asyncio.Future:
        """Create the single outstanding completion handle.

        A presentation handler returns this future to keep the list suspended
        until the host calls acknowledge().
        """
        if self._pending is not None and not self._pending.done():
            logger.warning("An acknowledgement is already pending, reusing it")
            return self._pending
        self._pending = asyncio.get_running_loop().create_future()
        return self._pending

    def acknowledge(self) -> bool:
        """Complete the pending operation.

        Returns:
            True if something was waiting for the acknowledgement
        """
        pending, self._pending = self._pending, None
        if pending is None or pending.done():
            return False
        pending.set_result(None)
        return True

    async def _await_handler(self, name: str, *args: Any) -> None:
        handler = getattr(self.presentation, name)
        if handler is None:
            logger.warning("%s handler not set, treating as complete", name)
            return
        try:
            await settle(handler(*args))
        except Exception as e:
            logger.warning("%s handler failed: %s", name, e)
        finally:
            if self._pending is not None and self._pending.done():
                self._pending = None

    # --- Instant state mutation ---

    async def _apply_set(self, effect: SetEffect) -> None:
        self.state_manager.set_variable(effect.var, effect.value)

    async def _apply_inc(self, effect: IncEffect) -> None:
        self.state_manager.increment_variable(effect.var, effect.amount)

    async def _apply_dec(self, effect: DecEffect) -> None:
        self.state_manager.decrement_variable(effect.var, effect.amount)

    # --- Fire-and-forget ---

    async def _apply_bookmark(self, effect: BookmarkEffect) -> None:
        logger.info("Bookmark reached%s", f" ({effect.label})" if effect.label else "")
        if self.presentation.on_bookmark is None:
            return
        try:
            self.presentation.on_bookmark(self.state_manager.get_progress())
        except Exception as e:
            logger.warning("Bookmark handler failed: %s", e)

    async def _apply_sfx(self, effect: SfxEffect) -> None:
        try:
            self.asset_manager.play_sound(effect.src_key)
        except Exception as e:
            logger.warning("Sound effect error for %s: %s", effect.src_key, e)

    async def _apply_vfx(self, effect: VfxEffect) -> None:
        if self.presentation.on_vfx is None:
            logger.debug("Visual effect: %s", effect.type)
            return
        try:
            self.presentation.on_vfx(effect.type, dict(effect.args))
        except Exception as e:
            logger.warning("Visual effect %s failed: %s", effect.type, e)

    # --- Awaited presentation ---

    async def _apply_dialogue(self, effect: DialogueEffect) -> None:
        await self._await_handler("on_dialogue", effect.character, effect.text)

    async def _apply_narration(self, effect: NarrationEffect) -> None:
        await self._await_handler("on_narration", effect.text)

    async def _apply_background(self, effect: BackgroundEffect) -> None:
        await self._await_handler("on_background_change", effect.image_key, effect.transition)

    async def _apply_character(self, effect: CharacterEffect) -> None:
        await self._await_handler("on_character_action", effect.to_args())

    async def _apply_show_cg(self, effect: ShowCGEffect) -> None:
        await self._await_handler("on_show_cg", effect.image_key)

    # --- Audio ---

    async def _apply_music(self, effect: MusicEffect) -> None:
        try:
            if effect.action == "play":
                await self.asset_manager.play_music(effect.src_key, effect.loop)
            else:
                await self.asset_manager.stop_music(effect.src_key)
        except Exception as e:
            logger.warning("Music playback error for %s: %s", effect.src_key, e)

    # --- Flow control ---

    async def _apply_goto(self, effect: GotoEffect) -> FlowSignal:
        logger.info("goto %s", effect.target)
        self.state_manager.set_current_node(effect.target)
        return FlowSignal(effect.target)

    async def _apply_branch(self, effect: BranchEffect) -> FlowSignal:
        current = self.state_manager.get_current_node()
        target = self.state_manager.match_branch(effect)
        if target is None:
            logger.warning("Branch on node %s matched no case and has no default, staying", current)
            return FlowSignal(current, notify=False)
        logger.info("branch %s -> %s", current, target)
        self.state_manager.set_current_node(target)
        return FlowSignal(target)

    async def _apply_end_chapter(self, effect: EndChapterEffect) -> FlowSignal:
        logger.info("Chapter end requested")
        return FlowSignal(None)

    # --- Residual cases ---

    async def _apply_unknown(self, effect: UnknownEffect) -> None:
        logger.warning("Unknown effect operation: %s", effect.op)

    async def _apply_malformed(self, effect: MalformedEffect) -> None:
        logger.warning("Skipping malformed '%s' effect: %s", effect.op, effect.reason)
