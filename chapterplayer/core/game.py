"""Chapter lifecycle orchestration.

GameManager owns the LOADING -> PLAYING -> {PAUSED <-> PLAYING} -> ENDED
state machine. It waits for the AssetManager to settle, walks nodes through
the EffectsProcessor and publishes choice sets.

Node transitions requested while a node (or a choice) is being processed go
into a single pending slot that the processing loop drains once the current
cycle unwinds. A second request before the drain replaces the first.
"""
from __future__ import annotations
import asyncio
import dataclasses
import logging
from typing import Any, Callable, List, Optional, Set

from chapterplayer.chapter.model import (
    AnnotatedChoice, ChapterData, ChapterNode, Choice, GameState, PlayerProgress,
)
from chapterplayer.errors import MissingNodeError
from .assets import AssetManager
from .effects import EffectsProcessor
from .presentation import Presentation
from .resolvers import AssetResolver, AudioBackend
from .state import StateManager

logger = logging.getLogger(__name__)

StateListener = Callable[[GameState], None]


class GameManager:
    """Drives one chapter attempt from loading to the end."""

    def __init__(self, presentation: Optional[Presentation] = None, *,
                 resolver: Optional[AssetResolver] = None,
                 audio: Optional[AudioBackend] = None,
                 state_manager: Optional[StateManager] = None,
                 asset_manager: Optional[AssetManager] = None):
        self.presentation = presentation or Presentation()
        self.state_manager = state_manager or StateManager()
        self.asset_manager = asset_manager or AssetManager(resolver, audio)
        self.effects_processor = EffectsProcessor(self.state_manager, self.asset_manager, self.presentation)
        self.effects_processor.on_node_complete = self._on_node_complete

        self._state: GameState = "LOADING"
        self._state_listeners: Set[StateListener] = set()
        self._chapter: Optional[ChapterData] = None
        self._choices: List[AnnotatedChoice] = []

        self._processing_node = False
        self._pending_node: Optional[str] = None
        self._last_node: Optional[str] = None

        self.asset_manager.on_progress(self._on_loading_progress)

    # --- Accessors ---

    def get_state(self) -> GameState:
        return self._state

    def get_state_manager(self) -> StateManager:
        return self.state_manager

    def get_asset_manager(self) -> AssetManager:
        return self.asset_manager

    def get_effects_processor(self) -> EffectsProcessor:
        return self.effects_processor

    @property
    def chapter(self) -> Optional[ChapterData]:
        return self._chapter

    @property
    def current_choices(self) -> List[AnnotatedChoice]:
        """Choice set currently published to the presentation layer."""
        return list(self._choices)

    # --- Lifecycle state ---

    def on_game_state_change(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.add(listener)
        return lambda: self._state_listeners.discard(listener)

    def _set_state(self, state: GameState) -> None:
        if state == self._state:
            return
        logger.info("Game state %s -> %s", self._state, state)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Game state listener failed")
        self._notify("on_state_change", state)

    def _notify(self, name: str, *args: Any) -> None:
        handler = getattr(self.presentation, name)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            logger.warning("%s handler failed: %s", name, e)

    def _on_loading_progress(self, progress: float) -> None:
        self._notify("on_loading_progress", progress)
        if progress >= 1.0 and self._state == "LOADING" and self._chapter is not None:
            self._set_state("PLAYING")

    # --- Entry points ---

    async def initialize_chapter(self, progress: PlayerProgress, chapter: ChapterData) -> None:
        """Start (or resume) a chapter attempt.

        Resumes at progress.resume_node_id, or at the chapter's start node
        when the progress carries no cursor. Returns once the first node
        cycle has finished.

        Raises:
            MissingNodeError: If the resume node is not part of the chapter
        """
        start = progress.resume_node_id or chapter.start_node_id
        if chapter.get_node(start) is None:
            logger.error("Cannot start chapter at unknown node %s", start)
            raise MissingNodeError(start)

        logger.info("Initializing chapter %s/%s at %s", progress.story_id, progress.chapter_id, start)
        self._chapter = chapter
        self._choices = []
        self._pending_node = None
        self._last_node = None
        self._set_state("LOADING")
        progress = dataclasses.replace(progress, resume_node_id=start)
        if not progress.customization and chapter.character_customization:
            # Chapter-supplied paper-doll defaults for a player with none saved
            progress = dataclasses.replace(progress, customization={
                key: dict(slots) for key, slots in chapter.character_customization.items()
            })
        self.state_manager.update_progress(progress)

        await self.asset_manager.load_assets(chapter.asset_manifest)
        if self._state == "LOADING" and self.asset_manager.is_loaded():
            self._set_state("PLAYING")
        if self._state == "PLAYING":
            await self._process_current_node()

    async def load_chapter_from_data(self, chapter: ChapterData, story_id: str = "", chapter_id: str = "") -> None:
        """Fresh attempt at the chapter's start node."""
        progress = PlayerProgress(story_id=story_id, chapter_id=chapter_id, resume_node_id=chapter.start_node_id)
        await self.initialize_chapter(progress, chapter)

    async def goto_node(self, node_id: str) -> None:
        """Request a transition from outside the effect lists.

        Raises:
            MissingNodeError: If node_id is not part of the chapter
        """
        if self._chapter is None or self._state in ("LOADING", "ENDED"):
            logger.warning("Ignoring transition to %s while %s", node_id, self._state)
            return
        if self._chapter.get_node(node_id) is None:
            logger.error("Transition to unknown node %s", node_id)
            raise MissingNodeError(node_id, self.state_manager.get_current_node())

        if self._processing_node or self.effects_processor.is_executing():
            self._request_node(node_id)
            return
        self.state_manager.set_current_node(node_id)
        await self._process_current_node()

    async def select_choice(self, choice_id: str) -> bool:
        """Resolve a player choice on the current node.

        Returns:
            True if the choice was accepted and its effects ran
        """
        if self._state != "PLAYING" or self._chapter is None:
            logger.warning("Choice %s ignored, game is %s", choice_id, self._state)
            return False
        if self._processing_node or self.effects_processor.is_executing():
            logger.warning("Choice %s ignored, effects are still executing", choice_id)
            return False

        node = self._chapter.get_node(self.state_manager.get_current_node())
        if node is None or not node.choices:
            logger.warning("Choice %s ignored, current node has no choices", choice_id)
            return False
        choice = next((c for c in node.choices if c.id == choice_id), None)
        if choice is None:
            logger.warning("Unknown choice %s on node %s", choice_id, node.id)
            return False

        # Affordability is re-checked here, never trusted from the published set
        if choice.cost and not self.state_manager.spend_currency(choice.cost, choice.cost_type):
            logger.warning(
                "Cannot afford choice %s (cost %s %s)",
                choice_id, choice.cost, choice.cost_type or "default currency",
            )
            return False

        logger.info("Choice selected: %s", choice_id)
        self._hide_choices()
        self._processing_node = True
        try:
            await self.effects_processor.execute(choice.effects)
            if self._pending_node is not None:
                await self._drain_pending()
            elif self._state != "ENDED" and self._chapter is not None:
                # No transition: the player stays on this node
                self._show_choices(node)
        finally:
            self._processing_node = False
        return True

    def pause(self) -> None:
        if self._state != "PLAYING":
            logger.warning("Cannot pause while %s", self._state)
            return
        self._set_state("PAUSED")

    def resume(self) -> None:
        if self._state != "PAUSED":
            logger.warning("Cannot resume while %s", self._state)
            return
        self._set_state("PLAYING")

    def end_chapter(self) -> None:
        if self._state == "ENDED":
            return
        logger.info("Chapter ended at node %s", self.state_manager.get_current_node())
        self._pending_node = None
        self._hide_choices()
        self._set_state("ENDED")

    async def cleanup(self) -> None:
        """Tear down the attempt. Safe to call more than once."""
        self.effects_processor.stop()
        await self.asset_manager.cleanup()
        self._chapter = None
        self._choices = []
        self._pending_node = None
        self._last_node = None
        self._processing_node = False
        self._set_state("LOADING")

    # --- Node processing ---

    def _on_node_complete(self, target: Optional[str]) -> None:
        if target is None:
            self.end_chapter()
            return
        self._request_node(target)

    def _request_node(self, node_id: str) -> None:
        if self._pending_node is not None and self._pending_node != node_id:
            logger.info("Pending transition %s replaced by %s", self._pending_node, node_id)
        else:
            logger.debug("Deferring transition to %s", node_id)
        self._pending_node = node_id

    async def _process_current_node(self) -> None:
        if self._processing_node:
            logger.debug("Node processing already active")
            return
        self._processing_node = True
        try:
            await self._enter_node(self.state_manager.get_current_node())
            await self._drain_pending()
        finally:
            self._processing_node = False

    async def _drain_pending(self) -> None:
        while self._pending_node is not None and self._state != "ENDED" and self._chapter is not None:
            # Let the unwinding cycle finish before entering the next node
            await asyncio.sleep(0)
            target, self._pending_node = self._pending_node, None
            if target is None or self._chapter is None:
                break
            await self._enter_node(target)

    async def _enter_node(self, node_id: str) -> None:
        if self._chapter is None:
            return
        node = self._chapter.get_node(node_id)
        if node is None:
            raise self._recover_missing_node(node_id)

        if self.state_manager.get_current_node() != node_id:
            self.state_manager.set_current_node(node_id)
        self._last_node = node_id
        self._hide_choices()
        logger.info("Entering node %s", node_id)
        self._notify("on_node_enter", node_id)

        await self.effects_processor.execute(node.on_enter)

        if self._state == "ENDED" or self._chapter is None:
            return
        if self._pending_node is not None or self.state_manager.get_current_node() != node_id:
            # A transition fired, so this node's choices are never shown
            return
        if not node.choices:
            logger.info("Node %s has no transition and no choices", node_id)
            self.end_chapter()
            return
        self._show_choices(node)

    def _recover_missing_node(self, node_id: str) -> MissingNodeError:
        previous = self._last_node
        logger.error("Node not found: %s", node_id)
        self._pending_node = None
        if previous is not None and self._chapter is not None:
            self.state_manager.set_current_node(previous)
            node = self._chapter.get_node(previous)
            if node is not None and node.choices:
                self._show_choices(node)
        return MissingNodeError(node_id, previous)

    # --- Choices ---

    def _can_afford(self, choice: Choice) -> bool:
        if not choice.cost:
            return True
        return self.state_manager.can_afford(choice.cost, choice.cost_type)

    def _show_choices(self, node: ChapterNode) -> None:
        self._choices = [AnnotatedChoice(c, self._can_afford(c)) for c in node.choices]
        logger.debug("Publishing %d choices for %s", len(self._choices), node.id)
        self._notify("on_show_choices", list(self._choices))

    def _hide_choices(self) -> None:
        if not self._choices:
            return
        self._choices = []
        self._notify("on_hide_choices")
