"""Asset loading, caching and audio playback for a chapter.

AssetManager resolves every manifest entry through an AssetResolver, keeps
the resulting resources in memory and mediates audio playback through an
AudioBackend. Loading is best-effort: a failed entry is logged and still
counted as attempted, so progress always reaches 1.0.
"""
from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config import NEUTRAL_EMOTION
from chapterplayer.chapter.model import AssetManifest
from .presentation import settle
from .resolvers import AssetResolver, AudioBackend, LocatorAssetResolver, SilentAudioBackend

logger = logging.getLogger(__name__)

ProgressListener = Callable[[float], None]


def _log_background_failure(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Background audio call failed: %s", error)


class AssetManager:
    """Resolves and caches chapter assets; owns the current music slot."""

    def __init__(self, resolver: Optional[AssetResolver] = None, audio: Optional[AudioBackend] = None):
        self._resolver = resolver if resolver is not None else LocatorAssetResolver()
        self._audio = audio if audio is not None else SilentAudioBackend()
        self._images: Dict[str, Any] = {}
        self._sounds: Dict[str, Any] = {}
        self._loading: Dict[str, "asyncio.Future[None]"] = {}
        self._listeners: Set[ProgressListener] = set()
        self._total_assets = 0
        self._attempted_assets = 0
        self._settled = False
        self._current_music: Optional[str] = None
        # Bumped by cleanup() so loads started before it settle quietly
        self._generation = 0

    # --- Progress ---

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        """Subscribe to loading progress updates (0.0 - 1.0)."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def get_progress(self) -> float:
        if self._settled:
            return 1.0
        if self._total_assets <= 0:
            return 0.0
        return min(1.0, self._attempted_assets / self._total_assets)

    def is_loaded(self) -> bool:
        """True once every manifest entry has been attempted."""
        return self._settled

    def _notify_progress(self) -> None:
        progress = self.get_progress()
        for listener in list(self._listeners):
            try:
                listener(progress)
            except Exception:
                logger.exception("Progress listener failed")

    # --- Loading ---

    async def load_assets(self, manifest: AssetManifest) -> None:
        """Attempt to resolve every image, portrait and audio entry.

        Never raises for individual failures; progress is forced to 1.0 once
        all attempts have settled. A cleanup() while loading aborts the load
        without raising; the manager is then left unloaded.
        """
        generation = self._generation
        self._total_assets = manifest.entry_count()
        self._attempted_assets = 0
        self._settled = False
        logger.info(
            "Loading %d assets (%d images, %d audio)",
            self._total_assets, len(manifest.images), len(manifest.audio),
        )

        jobs: List[Awaitable[None]] = []
        for key, locator in manifest.images.items():
            jobs.append(self._load("image", key, locator, generation))
        for character_key, outfit, emotion, locator in manifest.iter_character_images():
            key = self.build_character_key(character_key, outfit, emotion)
            jobs.append(self._load("image", key, locator, generation))
        for key, locator in manifest.audio.items():
            jobs.append(self._load("audio", key, locator, generation))

        # Cancelling this task still raises here; only cleanup() cancels the jobs
        results = await asyncio.gather(*jobs, return_exceptions=True)
        if generation != self._generation:
            logger.info("Asset loading aborted by cleanup")
            return
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        self._attempted_assets = self._total_assets
        self._settled = True
        self._notify_progress()

    async def _load(self, kind: str, key: str, locator: str, generation: int) -> None:
        try:
            cache = self._sounds if kind == "audio" else self._images
            if key in cache:
                logger.debug("Asset %s already cached", key)
                return
            in_flight = self._loading.get(key)
            if in_flight is None:
                in_flight = asyncio.ensure_future(self._resolve_into(kind, key, locator))
                self._loading[key] = in_flight
                in_flight.add_done_callback(lambda task, k=key: self._forget_in_flight(k, task))
            await in_flight
        except Exception as e:
            logger.warning("Failed to load %s %s: %s", kind, key, e)
        finally:
            if generation == self._generation:
                self._attempted_assets += 1
                self._notify_progress()

    def _forget_in_flight(self, key: str, task: "asyncio.Future[None]") -> None:
        if self._loading.get(key) is task:
            del self._loading[key]

    async def _resolve_into(self, kind: str, key: str, locator: str) -> None:
        resource = await settle(self._resolver.resolve(key, locator))
        if resource is None:
            logger.warning("%s asset not found: %s (%s)", kind.capitalize(), key, locator)
            return
        if kind == "audio":
            self._sounds[key] = await settle(self._audio.load(key, resource))
        else:
            self._images[key] = resource

    # --- Lookup ---

    def get_image(self, key: str) -> Optional[Any]:
        return self._images.get(key)

    def get_sound(self, key: str) -> Optional[Any]:
        return self._sounds.get(key)

    @staticmethod
    def build_character_key(character_key: str, outfit: str, emotion: str) -> str:
        return f"{character_key}_{outfit}_{emotion}"

    def get_character_image(self, character_key: str, outfit: str, emotion: str) -> Optional[Any]:
        """Portrait for the exact emotion, falling back to the neutral one."""
        image = self.get_image(self.build_character_key(character_key, outfit, emotion))
        if image is None and emotion != NEUTRAL_EMOTION:
            image = self.get_image(self.build_character_key(character_key, outfit, NEUTRAL_EMOTION))
        return image

    # --- Audio ---

    @property
    def current_music(self) -> Optional[str]:
        return self._current_music

    def play_sound(self, key: str) -> None:
        """Fire-and-forget playback of a short sound; failures are only logged."""
        sound = self.get_sound(key)
        if sound is None:
            logger.warning("Sound not found: %s", key)
            return
        try:
            result = self._audio.play(sound, False)
            if inspect.isawaitable(result):
                asyncio.ensure_future(result).add_done_callback(_log_background_failure)
        except Exception as e:
            logger.warning("Failed to play sound %s: %s", key, e)

    async def play_music(self, key: str, loop: bool = True) -> None:
        """Start a track, stopping whichever track this manager was playing."""
        if self._current_music and self._current_music != key:
            logger.info("Stopping current music: %s", self._current_music)
            await self.stop_music(self._current_music)
            # The slot is exclusive even if the backend refused to stop
            self._current_music = None

        sound = self.get_sound(key)
        if sound is None:
            logger.warning("Music not found: %s", key)
            return
        try:
            await settle(self._audio.play(sound, loop))
            self._current_music = key
            logger.info("Started playing music: %s", key)
        except Exception as e:
            logger.warning("Failed to play music %s: %s", key, e)

    async def stop_music(self, key: str) -> None:
        sound = self.get_sound(key)
        if sound is None:
            return
        try:
            await settle(self._audio.stop(sound))
            if self._current_music == key:
                self._current_music = None
            logger.info("Stopped music: %s", key)
        except Exception as e:
            logger.warning("Failed to stop music %s: %s", key, e)

    async def stop_all_music(self) -> None:
        if self._current_music:
            await self.stop_music(self._current_music)

    # --- Teardown ---

    async def cleanup(self) -> None:
        """Release every cached resource and reset counters (idempotent)."""
        self._generation += 1
        for task in self._loading.values():
            if not task.done():
                task.cancel()
        for key, sound in list(self._sounds.items()):
            try:
                await settle(self._audio.unload(sound))
            except Exception as e:
                logger.warning("Error unloading sound %s: %s", key, e)

        self._images.clear()
        self._sounds.clear()
        self._loading.clear()
        self._total_assets = 0
        self._attempted_assets = 0
        self._settled = False
        self._current_music = None
