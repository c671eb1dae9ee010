"""Tests for asset resolvers and the silent audio backend."""

import asyncio
import logging

import pytest
import requests

from chapterplayer.core.resolvers import (
    FileAssetResolver, HttpAssetResolver, LocatorAssetResolver, MappingAssetResolver,
    SilentAudioBackend, is_remote,
)


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """Stands in for requests.Session."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


@pytest.fixture
def assets_dir(tmp_path):
    images = tmp_path / "images"
    images.mkdir()
    (images / "park.png").write_bytes(b"png")
    return tmp_path


def test_is_remote():
    assert is_remote("https://cdn.example.com/a.png")
    assert is_remote("http://cdn.example.com/a.png")
    assert not is_remote("../assets/a.png")


def test_mapping_resolver():
    resolver = MappingAssetResolver({"park": "bundled://park"})
    assert resolver.resolve("park", "ignored") == "bundled://park"
    assert resolver.resolve("lake", "ignored") is None


class TestFileAssetResolver:
    def test_relative_locator(self, assets_dir):
        resolver = FileAssetResolver(assets_dir)
        assert resolver.resolve("park", "images/park.png") == assets_dir / "images" / "park.png"

    def test_app_style_locator(self, assets_dir):
        """'../assets/...' locators are rooted at the assets directory."""
        resolver = FileAssetResolver(assets_dir)
        assert resolver.resolve("park", "../assets/images/park.png") == assets_dir / "images" / "park.png"

    def test_missing_file(self, assets_dir):
        assert FileAssetResolver(assets_dir).resolve("lake", "images/lake.png") is None

    def test_remote_and_empty_locators(self, assets_dir):
        resolver = FileAssetResolver(assets_dir)
        assert resolver.resolve("park", "https://cdn.example.com/park.png") is None
        assert resolver.resolve("park", "") is None

    def test_default_base_dir_from_env(self, assets_dir, monkeypatch):
        monkeypatch.setenv("CP_ASSETS_DIR", str(assets_dir))
        assert FileAssetResolver().base_dir == assets_dir


class TestHttpAssetResolver:
    def test_fetch_success(self):
        session = FakeSession(FakeResponse(200, b"bytes"))
        resolver = HttpAssetResolver(timeout=3.0, session=session)
        assert resolver.fetch("https://cdn.example.com/a.png") == b"bytes"
        assert session.calls == [("https://cdn.example.com/a.png", 3.0)]

    def test_http_error_status(self, caplog):
        resolver = HttpAssetResolver(session=FakeSession(FakeResponse(404)))
        with caplog.at_level(logging.WARNING):
            assert resolver.fetch("https://cdn.example.com/a.png") is None
        assert "HTTP 404" in caplog.text

    def test_request_exception(self, caplog):
        resolver = HttpAssetResolver(session=FakeSession(error=requests.ConnectionError("offline")))
        with caplog.at_level(logging.WARNING):
            assert resolver.fetch("https://cdn.example.com/a.png") is None
        assert "offline" in caplog.text

    def test_resolve_runs_off_loop(self):
        resolver = HttpAssetResolver(session=FakeSession(FakeResponse(200, b"ok")))
        assert asyncio.run(resolver.resolve("a", "https://cdn.example.com/a.png")) == b"ok"
        assert asyncio.run(resolver.resolve("a", "images/a.png")) is None

    def test_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("CP_HTTP_TIMEOUT", "2.5")
        assert HttpAssetResolver(session=FakeSession()).timeout == 2.5

    def test_close(self):
        session = FakeSession()
        HttpAssetResolver(session=session).close()
        assert session.closed


class TestLocatorAssetResolver:
    def test_routes_by_scheme(self, assets_dir):
        http = HttpAssetResolver(session=FakeSession(FakeResponse(200, b"remote")))
        resolver = LocatorAssetResolver(assets_dir, http=http)

        async def resolve_both():
            return (
                await resolver.resolve("theme", "https://cdn.example.com/theme.mp3"),
                await resolver.resolve("park", "images/park.png"),
            )

        remote, local = asyncio.run(resolve_both())
        assert remote == b"remote"
        assert local == assets_dir / "images" / "park.png"

    def test_http_disabled(self, assets_dir, caplog):
        resolver = LocatorAssetResolver(assets_dir, http_enabled=False)
        assert resolver.http is None
        with caplog.at_level(logging.WARNING):
            assert asyncio.run(resolver.resolve("theme", "https://cdn.example.com/theme.mp3")) is None
        assert "HTTP fetching is disabled" in caplog.text


class TestSilentAudioBackend:
    def test_play_stop_unload(self):
        backend = SilentAudioBackend()
        handle = backend.load("theme", b"mp3")

        backend.play(handle, True)
        assert handle.looping
        assert backend.playing() == ["theme"]

        backend.stop(handle)
        assert backend.playing() == []

        backend.unload(handle)
        with pytest.raises(RuntimeError):
            backend.play(handle)
