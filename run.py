"""Text-only terminal player for chapter files.

Usage (example):
    python run.py
    python run.py assets/chapters/sample_chapter.json
Press Enter to advance narration and dialogue, type a choice number to pick
it. Other commands: stats, quit.
"""
from __future__ import annotations
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

try:
    # Force UTF-8 output on Windows consoles
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')
except Exception:
    pass

from config import CURRENCY_KEYS, get_log_level
from chapterplayer.chapter import AnnotatedChoice, PlayerProgress
from chapterplayer.core import GameManager, Presentation, Stage
from chapterplayer.errors import ChapterError
from game.bootstrap import create_game

PROMPT = "> "

logger = logging.getLogger(__name__)


def format_choice(index: int, choice: AnnotatedChoice) -> str:
    line = f" {index}. {choice.text}"
    cost = choice.choice.cost
    if cost:
        line += f" ({cost:g} {choice.choice.cost_type or 'diamonds'})"
    if not choice.can_afford:
        line += " [locked]"
    return line


def format_stats(variables: Dict[str, Any]) -> str:
    stats = [f"{k}: {v}" for k, v in variables.items() if k not in CURRENCY_KEYS]
    currencies = [f"{k}: {variables.get(k, 0)}" for k in CURRENCY_KEYS]
    return " | ".join(stats + currencies)


class TerminalPlayer:
    """Wires a Presentation that prints to stdout and waits on stdin."""

    def __init__(self):
        self.stage = Stage()
        self.game: Optional[GameManager] = None
        self.presentation = Presentation(
            on_dialogue=self.show_dialogue,
            on_narration=self.show_narration,
            on_background_change=self.change_background,
            on_character_action=self.character_action,
            on_show_cg=self.show_cg,
            on_bookmark=self.bookmark,
            on_vfx=self.vfx,
            on_show_choices=self.show_choices,
            on_state_change=self.state_change,
            on_loading_progress=self.loading_progress,
        )

    async def wait_for_enter(self) -> None:
        await asyncio.to_thread(input, "")

    async def show_dialogue(self, character: str, text: str) -> None:
        side = self.stage.speaker_position(character)
        print(f"[{side}] {character}: {text}")
        await self.wait_for_enter()

    async def show_narration(self, text: str) -> None:
        print(f"  {text}")
        await self.wait_for_enter()

    async def change_background(self, image_key: str, transition: Optional[str]) -> None:
        self.stage.background = image_key
        print(f"-- Scene: {image_key}" + (f" ({transition})" if transition else "") + " --")

    async def character_action(self, args: Dict[str, Any]) -> None:
        state = self.stage.apply_args(args)
        name = args["characterKey"].capitalize()
        if args["action"] == "hide":
            print(f"[{name} leaves]")
        elif state is not None and args["action"] == "show":
            print(f"[{name} appears on the {state.position}, looking {state.emotion}]")

    async def show_cg(self, image_key: str) -> None:
        self.stage.cg = image_key
        print(f"== {image_key} ==")
        await self.wait_for_enter()
        self.stage.cg = None

    def bookmark(self, progress: PlayerProgress) -> None:
        logger.info("Checkpoint at %s: %s", progress.resume_node_id, progress.variables)

    def vfx(self, effect_type: str, args: Dict[str, Any]) -> None:
        print(f"*{effect_type}*")

    def show_choices(self, choices: List[AnnotatedChoice]) -> None:
        print()
        for index, choice in enumerate(choices, 1):
            print(format_choice(index, choice))

    def state_change(self, state: str) -> None:
        if state == "ENDED":
            print("\n*** Chapter complete ***")

    def loading_progress(self, progress: float) -> None:
        if progress >= 1.0:
            print("Loading... done")

    async def read_choice(self) -> bool:
        """Handle one line of player input. Returns False to quit."""
        game = self.game
        raw = (await asyncio.to_thread(input, PROMPT)).strip().lower()
        if raw in ("quit", "exit"):
            return False
        if raw == "stats":
            print(format_stats(game.get_state_manager().get_variables()))
            return True
        choices = game.current_choices
        try:
            choice = choices[int(raw) - 1]
        except (ValueError, IndexError):
            print(f"Pick a number between 1 and {len(choices)}.")
            return True
        if not choice.can_afford:
            print("You can't afford that choice.")
            return True
        await game.select_choice(choice.id)
        return True

    async def play(self, chapter: Optional[str] = None) -> None:
        self.game, chapter_data = create_game(self.presentation, chapter)
        try:
            await self.game.load_chapter_from_data(chapter_data, story_id="local", chapter_id="chapter_1")
            while self.game.get_state() != "ENDED":
                if not self.game.current_choices:
                    break
                if not await self.read_choice():
                    break
            print(format_stats(self.game.get_state_manager().get_variables()))
        finally:
            await self.game.cleanup()


def main(argv: List[str]) -> int:
    logging.basicConfig(level=get_log_level(), format="%(levelname)s %(name)s: %(message)s")
    chapter = argv[1] if len(argv) > 1 else None
    try:
        asyncio.run(TerminalPlayer().play(chapter))
    except ChapterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nBye.")
    return 0


def cli() -> None:
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    cli()
