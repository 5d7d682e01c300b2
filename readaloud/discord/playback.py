"""Per-guild synthesis queue and drain loop."""

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from readaloud.core.errors import TTSError
from readaloud.discord.interfaces import GuildSettingsStore, UserProfileStore
from readaloud.discord.session import GuildSession, SessionRegistry
from readaloud.tts.base import BaseTTSBackend
from readaloud.tts.models import AudioClip, SynthesisRequest, ValidProfile

if TYPE_CHECKING:
    from readaloud.core.config import Settings

logger = logging.getLogger(__name__)

# (guild_id, channel_id, session, error) -> None
FailureHandler = Callable[[int, int, GuildSession, Exception], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class PlaybackScheduler:
    """Turns chat text into queued clips and plays them in order.

    Producers synthesize concurrently; clips are queued in the order their
    synthesis finishes. The producer whose push makes a guild's queue
    non-empty runs that guild's drain loop inline, so at most one loop
    per guild is ever active.
    """

    def __init__(
        self,
        backend: BaseTTSBackend,
        registry: SessionRegistry,
        profiles: UserProfileStore,
        guild_settings: GuildSettingsStore,
        settings: "Settings",
        sleep: Sleep = asyncio.sleep,
        on_failure: Optional[FailureHandler] = None,
    ):
        """Initialize the scheduler.

        Args:
            backend: Synthesis backend.
            registry: Shared session registry.
            profiles: Per-user speaking profile lookup.
            guild_settings: Per-guild configuration lookup.
            settings: Application settings (gain, fast-read thresholds).
            sleep: Pacing sleep; tests inject a fake clock.
            on_failure: Called once per failed synthesis request.
        """
        self.backend = backend
        self.registry = registry
        self.profiles = profiles
        self.guild_settings = guild_settings
        self.settings = settings
        self._sleep = sleep
        self.on_failure = on_failure

        self._active_loops: dict[int, int] = defaultdict(int)
        self.peak_drain_loops: dict[int, int] = defaultdict(int)

    def active_drain_loops(self, guild_id: int) -> int:
        """Number of drain loops currently running for a guild."""
        return self._active_loops[guild_id]

    async def resolve_profile(self, guild_id: int, user_id: int, text: str) -> ValidProfile:
        """Resolve the user's profile, applying the long-message fast read."""
        requested = await self.profiles.get(user_id)
        guild = await self.guild_settings.get(guild_id)

        rate = requested.rate
        if guild.options.read_long_fast and len(text) >= self.settings.fast_read_threshold():
            rate = self.settings.fast_read_rate

        return self.backend.resolve_profile(
            requested.model_name,
            requested.speaker_name,
            requested.style_name,
            default_model=guild.default_model,
            fallback_model=self.settings.default_model or None,
            rate=rate,
        )

    async def build_request(self, guild_id: int, user_id: int, text: str) -> SynthesisRequest:
        """Pair the text with the profile it will be spoken in."""
        profile = await self.resolve_profile(guild_id, user_id, text)
        return SynthesisRequest(text=text, profile=profile)

    async def enqueue(self, guild_id: int, channel_id: int, user_id: int, text: str) -> bool:
        """Synthesize ``text`` in the user's voice and queue it for playback.

        Args:
            guild_id: Guild whose session receives the clip.
            channel_id: Text channel that triggered the request.
            user_id: Author whose speaking profile is used.
            text: Text to read.

        Returns:
            True if the clip was queued, False if it was dropped.
        """
        session = await self.registry.get(guild_id)
        if session is None:
            logger.debug(f"No session for guild {guild_id}, dropping utterance")
            return False

        try:
            request = await self.build_request(guild_id, user_id, text)
            clip = await self.backend.synthesize(request.text, request.profile)
        except TTSError as e:
            logger.error(f"Synthesis failed for guild {guild_id}: {e}")
            if self.on_failure is not None:
                await self.on_failure(guild_id, channel_id, session, e)
            return False

        if not await session.push(clip):
            if session.closed:
                logger.warning(f"Session for guild {guild_id} closed, dropping clip")
                return False
            return True

        await self._drain(session)
        return True

    async def _drain(self, session: GuildSession) -> None:
        guild_id = session.guild_id
        self._active_loops[guild_id] += 1
        self.peak_drain_loops[guild_id] = max(
            self.peak_drain_loops[guild_id], self._active_loops[guild_id]
        )
        try:
            while True:
                clip = await session.peek()
                if clip is None:
                    break
                try:
                    await self._play(session, clip)
                except Exception as e:
                    logger.error(f"Playback failed in guild {guild_id}: {e}")
                if session.closed:
                    break
                if not await session.pop():
                    break
        finally:
            self._active_loops[guild_id] -= 1

    async def _play(self, session: GuildSession, clip: AudioClip) -> None:
        # Pacing is an estimate from byte length; there is no end-of-track signal
        track = session.connection.play(clip.data)
        track.set_gain(self.settings.gain_for(clip.backend_kind))
        await self._sleep(clip.duration_seconds)

    async def clear(self, guild_id: int) -> int:
        """Drop queued clips for a guild, keeping the one now playing.

        Returns:
            Number of clips dropped.
        """
        session = await self.registry.get(guild_id)
        if session is None:
            return 0
        return await session.clear(keep_head=True)
