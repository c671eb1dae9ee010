"""Tests for the EffectsProcessor: ordering, suspension and flow control."""

import asyncio
import logging

import pytest

from chapterplayer.chapter.loader import parse_effect
from chapterplayer.chapter.model import (
    AssetManifest, BookmarkEffect, BranchCase, BranchEffect, CharacterEffect, Condition,
    DialogueEffect, EndChapterEffect, GotoEffect, IncEffect, MalformedEffect, MusicEffect,
    NarrationEffect, PlayerProgress, SetEffect, SfxEffect, ShowCGEffect, BackgroundEffect,
    UnknownEffect, VfxEffect,
)
from chapterplayer.core.assets import AssetManager
from chapterplayer.core.effects import EffectsProcessor
from chapterplayer.core.presentation import Presentation
from chapterplayer.core.resolvers import MappingAssetResolver, SilentAudioBackend
from chapterplayer.core.state import StateManager


@pytest.fixture
def audio():
    return SilentAudioBackend()


@pytest.fixture
def state():
    return StateManager(PlayerProgress(resume_node_id="A", variables={"Empathy": 3}))


@pytest.fixture
def assets(audio):
    manager = AssetManager(MappingAssetResolver({"ding": b"ding", "theme": b"theme"}), audio)
    asyncio.run(manager.load_assets(AssetManifest(audio={"ding": "ding.mp3", "theme": "theme.mp3"})))
    return manager


@pytest.fixture
def log():
    return []


@pytest.fixture
def presentation(log):
    """Presentation whose awaited handlers complete immediately."""
    return Presentation(
        on_dialogue=lambda character, text: log.append(("dialogue", character, text)),
        on_narration=lambda text: log.append(("narration", text)),
        on_background_change=lambda key, transition: log.append(("bg", key, transition)),
        on_character_action=lambda args: log.append(("character", args)),
        on_show_cg=lambda key: log.append(("cg", key)),
        on_bookmark=lambda progress: log.append(("bookmark", progress.variables["Empathy"])),
        on_vfx=lambda effect_type, args: log.append(("vfx", effect_type, args)),
    )


@pytest.fixture
def processor(state, assets, presentation):
    processor = EffectsProcessor(state, assets, presentation)
    processor.completed = []
    processor.on_node_complete = processor.completed.append
    return processor


def use_acknowledgements(processor, log):
    """Make every awaited handler suspend until acknowledge() is called."""
    def suspend(name):
        def handler(*args):
            log.append((name,) + args)
            return processor.wait_for_acknowledgement()
        return handler

    presentation = processor.presentation
    presentation.on_dialogue = suspend("dialogue")
    presentation.on_narration = suspend("narration")
    presentation.on_background_change = suspend("bg")
    presentation.on_character_action = suspend("character")
    presentation.on_show_cg = suspend("cg")


async def run_acknowledging(processor, effects):
    """Execute effects, acknowledging every suspension. Returns (result, suspensions)."""
    task = asyncio.ensure_future(processor.execute(effects))
    suspensions = 0
    while not task.done():
        await asyncio.sleep(0)
        if processor.pending is not None and not processor.pending.done():
            assert processor.acknowledge() is True
            suspensions += 1
    return task.result(), suspensions


def test_trailing_effects_after_goto_never_run(processor, state, assets, log):
    """set, narration, goto B, sfx: the sfx is never executed."""
    effects = [
        parse_effect({"op": "set", "args": {"var": "Confidence", "value": 0}}),
        parse_effect({"op": "narration", "args": {"text": "Hello"}}),
        parse_effect({"op": "goto", "args": {"target": "B"}}),
        parse_effect({"op": "sfx", "args": {"srcKey": "ding"}}),
    ]
    state.set_variable("Confidence", 7)

    result = asyncio.run(processor.execute(effects))

    assert state.get_variable("Confidence") == 0
    assert log == [("narration", "Hello")]
    assert state.get_current_node() == "B"
    assert isinstance(result, GotoEffect)
    assert processor.completed == ["B"]
    assert assets.get_sound("ding").play_count == 0
    assert not processor.is_executing()


def test_every_effect_runs_once_in_order(processor, state, log):
    effects = [
        BackgroundEffect("park", "fade"),
        CharacterEffect("patty", "show", position="left"),
        DialogueEffect("Patty", "Hi"),
        IncEffect("Empathy", 2),
        NarrationEffect("Later"),
        ShowCGEffect("cg_kiss"),
    ]
    result = asyncio.run(processor.execute(effects))

    assert result is None
    assert [entry[0] for entry in log] == ["bg", "character", "dialogue", "narration", "cg"]
    assert log[1][1] == {
        "characterKey": "patty", "action": "show", "position": "left", "emotion": None, "outfit": None,
    }
    assert state.get_variable("Empathy") == 5
    assert processor.completed == []


def test_suspension_count_matches_awaited_effects(processor, state, log):
    use_acknowledgements(processor, log)
    effects = [
        SetEffect("Confidence", 1),
        BackgroundEffect("park"),
        DialogueEffect("Brad", "Hey"),
        IncEffect("Confidence"),
        CharacterEffect("brad", "update", emotion="happy"),
        NarrationEffect("..."),
        ShowCGEffect("cg"),
        VfxEffect("shake"),
    ]
    result, suspensions = asyncio.run(run_acknowledging(processor, effects))

    assert result is None
    assert suspensions == 5
    assert state.get_variable("Confidence") == 2


def test_list_waits_for_acknowledgement(processor, state, log):
    use_acknowledgements(processor, log)
    effects = [NarrationEffect("Wait for it"), SetEffect("done", True)]

    async def scenario():
        task = asyncio.ensure_future(processor.execute(effects))
        for _ in range(5):
            await asyncio.sleep(0)
        assert processor.pending is not None
        assert processor.is_executing()
        assert state.get_variable("done") is None

        assert processor.acknowledge() is True
        await task
        assert state.get_variable("done") is True
        assert processor.pending is None
        assert processor.acknowledge() is False

    asyncio.run(scenario())


def test_guard_is_reevaluated_per_effect(processor, state):
    guard = [Condition("Empathy", "lt", 5)]
    effects = [IncEffect("Empathy", when=guard) for _ in range(4)]
    asyncio.run(processor.execute(effects))
    assert state.get_variable("Empathy") == 5


def test_guarded_effect_skipped_silently(processor, log, caplog):
    effects = [
        DialogueEffect("Patty", "VIP!", when=[Condition("vip", "eq", True)]),
        NarrationEffect("After"),
    ]
    with caplog.at_level(logging.WARNING):
        asyncio.run(processor.execute(effects))
    assert log == [("narration", "After")]
    assert caplog.text == ""


def test_guarded_flow_control(processor, state):
    effects = [
        GotoEffect("kind", when=[Condition("Empathy", "gte", 5)]),
        GotoEffect("cold"),
    ]
    asyncio.run(processor.execute(effects))
    assert state.get_current_node() == "cold"
    assert processor.completed == ["cold"]


def test_missing_handler_counts_as_complete(state, assets, caplog):
    processor = EffectsProcessor(state, assets)
    with caplog.at_level(logging.WARNING):
        asyncio.run(processor.execute([DialogueEffect("Brad", "Hey"), SetEffect("after", 1)]))
    assert state.get_variable("after") == 1
    assert "on_dialogue handler not set" in caplog.text


def test_failing_handler_does_not_stop_the_list(processor, state, caplog):
    def broken(text):
        raise RuntimeError("renderer crashed")

    processor.presentation.on_narration = broken
    with caplog.at_level(logging.WARNING):
        asyncio.run(processor.execute([NarrationEffect("x"), SetEffect("after", 1)]))
    assert state.get_variable("after") == 1
    assert "renderer crashed" in caplog.text


def test_async_handlers_are_awaited(processor, log):
    async def slow_narration(text):
        await asyncio.sleep(0)
        log.append(("narration", text))

    processor.presentation.on_narration = slow_narration
    asyncio.run(processor.execute([NarrationEffect("one"), NarrationEffect("two")]))
    assert log == [("narration", "one"), ("narration", "two")]


def test_unknown_and_malformed_effects_are_skipped(processor, state, caplog):
    effects = [
        UnknownEffect("teleport"),
        MalformedEffect("goto", reason="'target' must be a non-empty string"),
        SetEffect("after", 1),
    ]
    with caplog.at_level(logging.WARNING):
        result = asyncio.run(processor.execute(effects))
    assert result is None
    assert state.get_variable("after") == 1
    assert "Unknown effect operation: teleport" in caplog.text
    assert "Skipping malformed 'goto' effect" in caplog.text


def test_arithmetic_on_text_variable_is_skipped(processor, state, caplog):
    state.set_variable("route", "kind")
    with caplog.at_level(logging.WARNING):
        asyncio.run(processor.execute([IncEffect("route"), SetEffect("after", 1)]))
    assert state.get_variable("route") == "kind"
    assert state.get_variable("after") == 1
    assert "not numeric" in caplog.text


def test_reentrant_execute_is_refused(processor, state, log, caplog):
    use_acknowledgements(processor, log)

    async def scenario():
        first = asyncio.ensure_future(processor.execute([NarrationEffect("first"), SetEffect("a", 1)]))
        for _ in range(5):
            await asyncio.sleep(0)
        with caplog.at_level(logging.WARNING):
            second = await processor.execute([SetEffect("b", 1)])
        assert second is None
        processor.acknowledge()
        await first

    asyncio.run(scenario())
    assert state.get_variable("a") == 1
    assert state.get_variable("b") is None
    assert "already processing" in caplog.text


def test_flag_cleared_before_transition_signal(processor):
    seen = []
    processor.on_node_complete = lambda target: seen.append((target, processor.is_executing()))
    asyncio.run(processor.execute([GotoEffect("B")]))
    assert seen == [("B", False)]


def test_only_first_flow_control_takes_effect(processor, state):
    asyncio.run(processor.execute([GotoEffect("B"), GotoEffect("C"), EndChapterEffect()]))
    assert state.get_current_node() == "B"
    assert processor.completed == ["B"]


class TestBranch:
    def test_default_when_no_case_matches(self, processor, state):
        """Empathy 3 against a gte 5 case goes to the default."""
        branch = BranchEffect(
            cases=[BranchCase(when=[Condition("Empathy", "gte", 5)], target="kind_path")],
            default="neutral_path",
        )
        result = asyncio.run(processor.execute([branch, SetEffect("after", 1)]))
        assert result is branch
        assert state.get_current_node() == "neutral_path"
        assert processor.completed == ["neutral_path"]
        assert state.get_variable("after") is None

    def test_matching_case(self, processor, state):
        branch = BranchEffect(cases=[BranchCase(when=[Condition("Empathy", "gte", 3)], target="kind_path")])
        asyncio.run(processor.execute([branch]))
        assert state.get_current_node() == "kind_path"

    def test_no_match_and_no_default_halts_in_place(self, processor, state, caplog):
        branch = BranchEffect(cases=[BranchCase(when=[Condition("Empathy", "gt", 10)], target="x")])
        with caplog.at_level(logging.WARNING):
            result = asyncio.run(processor.execute([branch, SetEffect("after", 1)]))
        assert result is branch
        assert state.get_current_node() == "A"
        assert processor.completed == []
        assert state.get_variable("after") is None

    def test_explicit_target_on_current_node_signals(self, processor, state):
        """A case naming the node being processed is a real transition."""
        branch = BranchEffect(cases=[BranchCase(when=[Condition("Empathy", "gte", 3)], target="A")])
        asyncio.run(processor.execute([branch]))
        assert state.get_current_node() == "A"
        assert processor.completed == ["A"]

    def test_default_on_current_node_signals(self, processor):
        branch = BranchEffect(
            cases=[BranchCase(when=[Condition("Empathy", "gt", 10)], target="x")],
            default="A",
        )
        asyncio.run(processor.execute([branch]))
        assert processor.completed == ["A"]


def test_end_chapter_signals_no_target(processor):
    result = asyncio.run(processor.execute([EndChapterEffect(), SetEffect("after", 1)]))
    assert isinstance(result, EndChapterEffect)
    assert processor.completed == [None]


def test_music_delegates_to_asset_manager(processor, assets, audio):
    async def scenario():
        await processor.execute([MusicEffect("play", "theme")])
        assert assets.current_music == "theme"
        await processor.execute([MusicEffect("stop", "theme")])

    asyncio.run(scenario())
    assert assets.current_music is None
    assert audio.playing() == []


def test_missing_music_does_not_stop_the_list(processor, state):
    asyncio.run(processor.execute([MusicEffect("play", "opera"), SetEffect("after", 1)]))
    assert state.get_variable("after") == 1


def test_sfx_plays_sound(processor, assets):
    asyncio.run(processor.execute([SfxEffect("ding")]))
    assert assets.get_sound("ding").play_count == 1


def test_bookmark_hands_out_current_progress(processor, log):
    asyncio.run(processor.execute([IncEffect("Empathy"), BookmarkEffect("checkpoint")]))
    assert log == [("bookmark", 4)]


def test_bookmark_failure_is_swallowed(processor, state):
    def broken(progress):
        raise IOError("disk full")

    processor.presentation.on_bookmark = broken
    asyncio.run(processor.execute([BookmarkEffect(), SetEffect("after", 1)]))
    assert state.get_variable("after") == 1


def test_vfx(processor, log):
    asyncio.run(processor.execute([VfxEffect("shake", {"intensity": 0.4})]))
    assert log == [("vfx", "shake", {"intensity": 0.4})]


def test_vfx_without_handler(state, assets):
    processor = EffectsProcessor(state, assets)
    assert asyncio.run(processor.execute([VfxEffect("flash")])) is None


def test_stop_clears_state(processor, log):
    use_acknowledgements(processor, log)

    async def scenario():
        task = asyncio.ensure_future(processor.execute([NarrationEffect("stuck")]))
        for _ in range(5):
            await asyncio.sleep(0)
        pending = processor.pending
        processor.stop()
        assert not processor.is_executing()
        assert processor.pending is None
        assert not pending.done()
        task.cancel()

    asyncio.run(scenario())
