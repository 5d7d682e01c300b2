"""Tests for the playback scheduler."""

import asyncio
import logging

import pytest

from readaloud.app import AppContext
from readaloud.core.errors import BackendUnreachable, SynthesisFailure
from readaloud.discord.models import GuildOptions, GuildSettings
from readaloud.tts.local import LocalTTSBackend
from readaloud.tts.model_cache import InferenceEngine
from readaloud.tts.models import BackendKind, SpeakingProfile

GUILD = 1
VOICE = 100
TEXT = 200
USER = 10


async def connect(app, directory):
    directory.move(GUILD, USER, VOICE)
    return await app.presence.join(GUILD, USER, TEXT)


class TestEnqueue:
    """Test the producer side."""

    @pytest.mark.asyncio
    async def test_no_session_is_noop(self, app, backend):
        """Test enqueue without a session does nothing."""
        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "hello") is False
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_plays_with_remote_gain(self, app, directory, transport, clock):
        """Test a clip is played, gain set and paced by its duration."""
        await connect(app, directory)

        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "hello") is True

        connection = transport.last
        assert connection.played == [b"hello"]
        assert connection.tracks[0].gain == pytest.approx(0.1)
        assert clock.sleeps == [pytest.approx(len(b"hello") * 8 / (44100 * 16))]
        assert app.scheduler.active_drain_loops(GUILD) == 0

    @pytest.mark.asyncio
    async def test_local_gain(self, app, directory, transport, backend):
        """Test local clips use the local gain."""
        backend.kind = BackendKind.LOCAL
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "hello")

        assert transport.last.tracks[0].gain == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_profile_resolution(self, app, directory, backend, profiles):
        """Test the user's profile is resolved with fallbacks."""
        profiles.set(USER, SpeakingProfile(model_name="koharune", style_name="Happy", rate=1.3))
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "hello")

        _, profile = backend.requests[0]
        assert profile.model_name == "koharune"
        assert profile.style_name == "Happy"
        assert profile.speaker_name == "koharune"
        assert profile.rate == 1.3

    @pytest.mark.asyncio
    async def test_guild_default_model(self, app, directory, backend, profiles, guild_settings):
        """Test an unknown model falls back to the guild default."""
        profiles.set(USER, SpeakingProfile(model_name="deleted"))
        guild_settings.set(GuildSettings(guild_id=GUILD, default_model="koharune"))
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "hello")

        assert backend.requests[0][1].model_name == "koharune"

    @pytest.mark.asyncio
    async def test_stale_guild_default_uses_global_default(
        self, app, directory, backend, profiles, guild_settings, settings
    ):
        """Test a guild default missing from the catalog falls to the global one."""
        settings.default_model = "koharune"
        profiles.set(USER, SpeakingProfile(model_name="deleted"))
        guild_settings.set(GuildSettings(guild_id=GUILD, default_model="gone"))
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "hello")

        assert backend.requests[0][1].model_name == "koharune"

    @pytest.mark.asyncio
    async def test_build_request(self, app, profiles):
        """Test the request pairs the text with the resolved profile."""
        profiles.set(USER, SpeakingProfile(model_name="koharune"))

        request = await app.scheduler.build_request(GUILD, USER, "hello")

        assert request.text == "hello"
        assert request.profile.model_name == "koharune"

    @pytest.mark.asyncio
    async def test_long_message_read_fast(self, app, directory, backend, guild_settings):
        """Test long messages are downgraded to the fast rate."""
        guild_settings.set(
            GuildSettings(guild_id=GUILD, options=GuildOptions(read_long_fast=True))
        )
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "a" * 30)
        await app.scheduler.enqueue(GUILD, TEXT, USER, "a" * 29)

        assert backend.requests[0][1].rate == 0.5
        assert backend.requests[1][1].rate == 1.0

    @pytest.mark.asyncio
    async def test_long_message_normal_when_disabled(self, app, directory, backend):
        """Test the fast read is off by default."""
        await connect(app, directory)

        await app.scheduler.enqueue(GUILD, TEXT, USER, "a" * 100)

        assert backend.requests[0][1].rate == 1.0


class TestDrainLoop:
    """Test the consumer side."""

    @pytest.mark.asyncio
    async def test_fifo_and_single_loop(self, app, directory, transport, clock):
        """Test clips play in completion order with one drain loop."""
        await connect(app, directory)
        clock.gate = asyncio.Event()

        first = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "one"))
        while not clock.sleeps:
            await asyncio.sleep(0)

        # The first producer is now draining; later pushes only queue
        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "two") is True
        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "three") is True
        assert app.scheduler.active_drain_loops(GUILD) == 1

        clock.gate.set()
        await first

        assert transport.last.played == [b"one", b"two", b"three"]
        assert app.scheduler.peak_drain_loops[GUILD] == 1
        assert app.scheduler.active_drain_loops(GUILD) == 0

    @pytest.mark.asyncio
    async def test_order_follows_completion(self, app, directory, transport, backend):
        """Test a slow synthesis plays after a later, faster one."""
        await connect(app, directory)
        backend.gates["slow"] = asyncio.Event()

        slow = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "slow"))
        await asyncio.sleep(0)
        await app.scheduler.enqueue(GUILD, TEXT, USER, "fast")
        backend.gates["slow"].set()
        await slow

        assert transport.last.played == [b"fast", b"slow"]

    @pytest.mark.asyncio
    async def test_concurrent_producers_one_loop(self, app, directory, transport, backend):
        """Test simultaneous completions never start two loops."""
        await connect(app, directory)
        gate = asyncio.Event()
        texts = [f"m{i}" for i in range(5)]
        for text in texts:
            backend.gates[text] = gate

        tasks = [
            asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, text))
            for text in texts
        ]
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(*tasks)

        assert sorted(transport.last.played) == sorted(t.encode() for t in texts)
        assert app.scheduler.peak_drain_loops[GUILD] == 1


class TestFailurePath:
    """Test failure-induced leave."""

    @pytest.mark.asyncio
    async def test_synthesis_failure_leaves(self, app, directory, transport, backend, notifier):
        """Test a failed synthesis tears down and notifies once."""
        await connect(app, directory)
        connection = transport.last
        backend.fail_with = SynthesisFailure("inference crashed")

        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "hello") is False

        assert await app.registry.get(GUILD) is None
        assert connection.left is True
        assert connection.played == []
        assert notifier.sent == [(TEXT, app.messages.failed_infer)]

    @pytest.mark.asyncio
    async def test_one_notice_per_failed_request(self, app, directory, transport, backend, notifier):
        """Test two concurrent failures tear down once and notify twice."""
        await connect(app, directory)
        gate = asyncio.Event()
        backend.gates["a"] = gate
        backend.gates["b"] = gate
        backend.fail_with = BackendUnreachable("connection refused")

        tasks = [
            asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, text))
            for text in ("a", "b")
        ]
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(*tasks)

        assert len(transport.connections) == 1
        assert notifier.sent == [(TEXT, app.messages.failed_infer)] * 2

    @pytest.mark.asyncio
    async def test_failure_after_rejoin_keeps_new_session(
        self, app, directory, transport, backend, notifier
    ):
        """Test a late failure does not tear down a newer session."""
        await connect(app, directory)
        gate = asyncio.Event()
        backend.gates["late"] = gate
        backend.fail_with = SynthesisFailure("boom")

        task = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "late"))
        await asyncio.sleep(0)
        await app.presence.leave(GUILD)
        new_session = await app.presence.join(GUILD, USER, TEXT)
        gate.set()
        await task

        assert await app.registry.get(GUILD) is new_session
        assert transport.last.left is False

    @pytest.mark.asyncio
    async def test_vanished_session_is_noop(self, app, directory, transport, backend, notifier):
        """Test a result arriving after leave is dropped silently."""
        await connect(app, directory)
        connection = transport.last
        backend.gates["late"] = asyncio.Event()

        task = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "late"))
        await asyncio.sleep(0)
        await app.presence.leave(GUILD)
        backend.gates["late"].set()

        assert await task is False
        assert connection.played == []
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_vanished_session_drop_is_logged(self, app, directory, backend, caplog):
        """Test a dropped late result is logged as a warning."""
        await connect(app, directory)
        backend.gates["late"] = asyncio.Event()

        task = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "late"))
        await asyncio.sleep(0)
        await app.presence.leave(GUILD)
        with caplog.at_level(logging.WARNING, logger="readaloud.discord.playback"):
            backend.gates["late"].set()
            await task

        assert any(
            r.levelno == logging.WARNING and "dropping clip" in r.getMessage()
            for r in caplog.records
        )

    @pytest.mark.asyncio
    async def test_clear_keeps_playing_clip(self, app, directory, transport, clock):
        """Test clearing drops queued clips and stops playback."""
        await connect(app, directory)
        clock.gate = asyncio.Event()

        first = asyncio.create_task(app.scheduler.enqueue(GUILD, TEXT, USER, "one"))
        while not clock.sleeps:
            await asyncio.sleep(0)
        await app.scheduler.enqueue(GUILD, TEXT, USER, "two")
        await app.scheduler.enqueue(GUILD, TEXT, USER, "three")

        dropped = await app.presence.clear_queue(GUILD, USER)
        clock.gate.set()
        await first

        assert dropped == 2
        assert transport.last.stopped == 1
        assert transport.last.played == [b"one"]


class EvictionFailingEngine(InferenceEngine):
    """Engine whose models can be loaded but never released."""

    def load(self, model_name, path):
        pass

    def unload(self, model_name):
        raise RuntimeError("device busy")

    def synthesize(self, model_name, text, length_scale):
        return text.encode()


class TestLocalFailurePath:
    """Test in-process engine errors reach the failure path."""

    @pytest.fixture
    def local_backend(self, tmp_path):
        for name in ("a", "b"):
            (tmp_path / f"{name}.sbv2").write_bytes(b"PK")
        backend = LocalTTSBackend(EvictionFailingEngine(), tmp_path, max_loaded_models=1)
        yield backend
        backend.worker.shutdown()

    @pytest.mark.asyncio
    async def test_eviction_failure_leaves(
        self, settings, local_backend, transport, directory, notifier, profiles, clock
    ):
        """Test a failed eviction tears down the session and notifies once."""
        app = AppContext.build(
            settings,
            local_backend,
            transport=transport,
            directory=directory,
            notifier=notifier,
            profiles=profiles,
            sleep=clock.sleep,
        )
        await connect(app, directory)
        connection = transport.last

        profiles.set(USER, SpeakingProfile(model_name="a"))
        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "first") is True

        profiles.set(USER, SpeakingProfile(model_name="b"))
        assert await app.scheduler.enqueue(GUILD, TEXT, USER, "second") is False

        assert await app.registry.get(GUILD) is None
        assert connection.left is True
        assert connection.played == [b"first"]
        assert notifier.sent == [(TEXT, app.messages.failed_infer)]
        assert local_backend.cache.resident == []
