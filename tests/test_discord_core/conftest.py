"""Fakes and fixtures for the reading core."""

import asyncio
from typing import Optional

import pytest

from readaloud.app import AppContext
from readaloud.core.config import Settings
from readaloud.core.errors import VoiceConnectFailure
from readaloud.discord.interfaces import (
    Notifier,
    TrackHandle,
    VoiceConnection,
    VoiceDirectory,
    VoiceTransport,
)
from readaloud.discord.stores import InMemoryGuildSettingsStore, InMemoryUserProfileStore
from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.catalog import ModelCatalog
from readaloud.tts.models import AudioClip, BackendKind, CatalogEntry

BOT_ID = 999
GUILD = 1
VOICE = 100
OTHER_VOICE = 101
TEXT = 200
OTHER_TEXT = 201
USER = 10
OTHER_USER = 11


class FakeTrack(TrackHandle):
    def __init__(self):
        self.gain: Optional[float] = None

    def set_gain(self, gain):
        self.gain = gain


class FakeConnection(VoiceConnection):
    def __init__(self, directory: "FakeDirectory", guild_id: int, channel_id: int):
        self.directory = directory
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.played: list[bytes] = []
        self.tracks: list[FakeTrack] = []
        self.stopped = 0
        self.left = False
        self.leave_error: Optional[Exception] = None

    def play(self, data):
        self.played.append(data)
        track = FakeTrack()
        self.tracks.append(track)
        return track

    def stop(self):
        self.stopped += 1

    async def leave(self):
        if self.leave_error is not None:
            raise self.leave_error
        self.left = True
        self.directory.move(self.guild_id, BOT_ID, None)


class FakeTransport(VoiceTransport):
    def __init__(self, directory: "FakeDirectory"):
        self.directory = directory
        self.connections: list[FakeConnection] = []
        self.fail = False

    async def join(self, guild_id, channel_id):
        if self.fail:
            raise VoiceConnectFailure("connect timed out")
        connection = FakeConnection(self.directory, guild_id, channel_id)
        self.connections.append(connection)
        self.directory.move(guild_id, BOT_ID, channel_id)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class FakeDirectory(VoiceDirectory):
    def __init__(self):
        self.voice: dict[tuple[int, int], int] = {}

    @property
    def bot_user_id(self):
        return BOT_ID

    def move(self, guild_id, user_id, channel_id):
        if channel_id is None:
            self.voice.pop((guild_id, user_id), None)
        else:
            self.voice[(guild_id, user_id)] = channel_id

    def voice_channel_of(self, guild_id, user_id):
        return self.voice.get((guild_id, user_id))

    def members_in(self, guild_id, channel_id):
        return [u for (g, u), c in self.voice.items() if g == guild_id and c == channel_id]

    def display_name(self, guild_id, user_id):
        return f"user{user_id}"


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent: list[tuple[int, str]] = []

    async def send(self, channel_id, text):
        self.sent.append((channel_id, text))


class FakeBackend(BaseTTSBackend):
    """Returns the text as audio; can fail or block per text."""

    def __init__(self, kind: BackendKind = BackendKind.REMOTE):
        super().__init__(ModelCatalog([
            CatalogEntry.build(0, "amitaro", {"amitaro": 0}, {"Neutral": 0}),
            CatalogEntry.build(1, "koharune", {"koharune": 0}, {"Neutral": 0, "Happy": 1}),
        ]))
        self.kind = kind
        self.requests = []
        self.fail_with: Optional[Exception] = None
        self.gates: dict[str, asyncio.Event] = {}
        self.reloads = 0
        self.reload_error: Optional[Exception] = None

    async def synthesize(self, text, profile):
        self.requests.append((text, profile))
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return AudioClip(data=text.encode(), backend_kind=self.kind)

    async def reload(self):
        self.reloads += 1
        if self.reload_error is not None:
            raise self.reload_error


class FakeClock:
    """Pacing sleep that records durations and can be held open."""

    def __init__(self):
        self.sleeps: list[float] = []
        self.gate: Optional[asyncio.Event] = None

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)


@pytest.fixture
def settings():
    return Settings(_env_file=None, discord_token="test", default_model="")


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def transport(directory):
    return FakeTransport(directory)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profiles():
    return InMemoryUserProfileStore()


@pytest.fixture
def guild_settings():
    return InMemoryGuildSettingsStore()


@pytest.fixture
def app(settings, backend, transport, directory, notifier, profiles, guild_settings, clock):
    return AppContext.build(
        settings,
        backend,
        transport=transport,
        directory=directory,
        notifier=notifier,
        profiles=profiles,
        guild_settings=guild_settings,
        sleep=clock.sleep,
    )
