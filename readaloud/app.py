"""Application context owning every shared registry and component."""

import logging
from typing import Optional

from readaloud.core.config import Settings
from readaloud.discord.interfaces import (
    GuildSettingsStore,
    Notifier,
    UserProfileStore,
    VoiceDirectory,
    VoiceTransport,
)
from readaloud.discord.message_router import MessageRouter, TextCleanup, identity_cleanup
from readaloud.discord.messages import Messages
from readaloud.discord.playback import PlaybackScheduler, Sleep
from readaloud.discord.presence import PresenceMachine
from readaloud.discord.session import SessionRegistry
from readaloud.discord.stores import InMemoryGuildSettingsStore, InMemoryUserProfileStore
from readaloud.tts.base import BaseTTSBackend

logger = logging.getLogger(__name__)


class AppContext:
    """Everything one bot process shares, passed by reference.

    Nothing here is a module-level global, so tests can build as many
    independent contexts as they like.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BaseTTSBackend,
        registry: SessionRegistry,
        profiles: UserProfileStore,
        guild_settings: GuildSettingsStore,
        scheduler: PlaybackScheduler,
        presence: PresenceMachine,
        router: MessageRouter,
        messages: Messages,
    ):
        self.settings = settings
        self.backend = backend
        self.registry = registry
        self.profiles = profiles
        self.guild_settings = guild_settings
        self.scheduler = scheduler
        self.presence = presence
        self.router = router
        self.messages = messages

    @classmethod
    def build(
        cls,
        settings: Settings,
        backend: BaseTTSBackend,
        transport: VoiceTransport,
        directory: VoiceDirectory,
        notifier: Notifier,
        profiles: Optional[UserProfileStore] = None,
        guild_settings: Optional[GuildSettingsStore] = None,
        messages: Optional[Messages] = None,
        cleanup: TextCleanup = identity_cleanup,
        sleep: Optional[Sleep] = None,
    ) -> "AppContext":
        """Wire the reading core together.

        Args:
            settings: Application settings.
            backend: Synthesis backend chosen at startup.
            transport: Voice connection factory.
            directory: Voice occupancy lookup.
            notifier: Text channel sender.
            profiles: User profile store (in-memory if omitted).
            guild_settings: Guild settings store (in-memory if omitted).
            messages: User-facing texts (English defaults if omitted).
            cleanup: Text normalization applied before reading.
            sleep: Pacing sleep override for tests.

        Returns:
            A fully wired context.
        """
        registry = SessionRegistry()
        profiles = profiles or InMemoryUserProfileStore()
        guild_settings = guild_settings or InMemoryGuildSettingsStore()
        messages = messages or Messages()

        scheduler_kwargs = {"sleep": sleep} if sleep is not None else {}
        scheduler = PlaybackScheduler(
            backend,
            registry,
            profiles,
            guild_settings,
            settings,
            **scheduler_kwargs,
        )
        presence = PresenceMachine(
            registry,
            transport,
            directory,
            notifier,
            guild_settings,
            scheduler,
            messages=messages,
        )
        scheduler.on_failure = presence.fail

        router = MessageRouter(
            presence,
            scheduler,
            registry,
            backend,
            guild_settings,
            notifier,
            command_prefix=settings.command_prefix,
            read_limit=settings.read_limit,
            messages=messages,
            cleanup=cleanup,
        )

        logger.debug(f"Application context built with {backend.kind.value} backend")
        return cls(
            settings=settings,
            backend=backend,
            registry=registry,
            profiles=profiles,
            guild_settings=guild_settings,
            scheduler=scheduler,
            presence=presence,
            router=router,
            messages=messages,
        )

    async def aclose(self) -> None:
        """Leave every voice channel and release the backend."""
        for guild_id in list(self.registry.guild_ids()):
            try:
                await self.presence.leave(guild_id)
            except Exception as e:
                logger.error(f"Error leaving guild {guild_id} on shutdown: {e}")
        await self.backend.aclose()
