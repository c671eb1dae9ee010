"""Asset resolution and audio playback backends.

The AssetManager only knows the capability contracts defined here:
resolvers turn a manifest key + locator into a loadable resource (or None),
audio backends play and stop resources. Where the bytes come from (bundled
table, local file, HTTP) stays behind these classes.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union

import requests

from config import get_assets_dir, get_http_enabled, get_http_timeout

logger = logging.getLogger(__name__)

Resource = Any


class AssetResolver(Protocol):
    def resolve(self, key: str, locator: str) -> Union[Optional[Resource], Awaitable[Optional[Resource]]]:
        """Return a loadable resource for key, or None when unavailable."""
        ...


class AudioBackend(Protocol):
    def load(self, key: str, resource: Resource) -> Any: ...
    def play(self, handle: Any, loop: bool = False) -> Any: ...
    def stop(self, handle: Any) -> Any: ...
    def unload(self, handle: Any) -> Any: ...


def is_remote(locator: str) -> bool:
    return locator.startswith(("http://", "https://"))


class MappingAssetResolver:
    """Static key -> resource table (assets bundled with the host)."""

    def __init__(self, mapping: Optional[Dict[str, Resource]] = None):
        self.mapping: Dict[str, Resource] = dict(mapping or {})

    def resolve(self, key: str, locator: str) -> Optional[Resource]:
        return self.mapping.get(key)


class FileAssetResolver:
    """Resolve locators to files under a base directory."""

    def __init__(self, base_dir: Union[str, Path, None] = None):
        self.base_dir = Path(base_dir) if base_dir is not None else get_assets_dir()

    def resolve(self, key: str, locator: str) -> Optional[Path]:
        if not locator or is_remote(locator):
            return None
        candidate = Path(locator)
        if not candidate.is_absolute():
            # Chapter files written for the app reference "../assets/..."
            parts = [p for p in candidate.parts if p not in ("..", ".")]
            if parts and parts[0] == "assets":
                parts = parts[1:]
            candidate = self.base_dir.joinpath(*parts) if parts else self.base_dir
        if candidate.is_file():
            return candidate
        logger.debug("Asset file for %s not found at %s", key, candidate)
        return None


class HttpAssetResolver:
    """Fetch http(s) locators with requests, off the event loop."""

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.timeout = timeout if timeout is not None else get_http_timeout()
        self._session = session or requests.Session()

    def fetch(self, url: str) -> Optional[bytes]:
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Failed to fetch asset %s: %s", url, e)
            return None
        if response.status_code != 200:
            logger.warning("Asset request %s returned HTTP %s", url, response.status_code)
            return None
        return response.content

    async def resolve(self, key: str, locator: str) -> Optional[bytes]:
        if not is_remote(locator):
            return None
        return await asyncio.to_thread(self.fetch, locator)

    def close(self) -> None:
        self._session.close()


class LocatorAssetResolver:
    """Route by locator scheme: http(s) to HttpAssetResolver, the rest to files."""

    def __init__(self, base_dir: Union[str, Path, None] = None, *,
                 http: Optional[HttpAssetResolver] = None, http_enabled: Optional[bool] = None):
        self.files = FileAssetResolver(base_dir)
        self.http_enabled = get_http_enabled() if http_enabled is None else http_enabled
        self.http = http or (HttpAssetResolver() if self.http_enabled else None)

    async def resolve(self, key: str, locator: str) -> Optional[Resource]:
        if is_remote(locator):
            if self.http is None:
                logger.warning("Remote asset %s skipped, HTTP fetching is disabled", key)
                return None
            return await self.http.resolve(key, locator)
        return self.files.resolve(key, locator)


@dataclass
class SilentSound:
    key: str
    resource: Resource
    playing: bool = False
    looping: bool = False
    unloaded: bool = False
    play_count: int = 0


class SilentAudioBackend:
    """Audio backend that tracks playback state without producing sound."""

    def __init__(self):
        self.sounds: List[SilentSound] = []

    def load(self, key: str, resource: Resource) -> SilentSound:
        sound = SilentSound(key=key, resource=resource)
        self.sounds.append(sound)
        return sound

    def play(self, handle: SilentSound, loop: bool = False) -> None:
        if handle.unloaded:
            raise RuntimeError(f"Sound {handle.key} was unloaded")
        handle.playing = True
        handle.looping = loop
        handle.play_count += 1

    def stop(self, handle: SilentSound) -> None:
        handle.playing = False

    def unload(self, handle: SilentSound) -> None:
        handle.playing = False
        handle.unloaded = True

    def playing(self) -> List[str]:
        """Keys of every sound currently marked as playing."""
        return [s.key for s in self.sounds if s.playing and not s.unloaded]
