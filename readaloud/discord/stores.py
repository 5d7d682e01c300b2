"""In-memory profile and settings stores."""

import logging
from typing import Optional

from readaloud.discord.interfaces import GuildSettingsStore, UserProfileStore
from readaloud.discord.models import GuildSettings
from readaloud.tts.models import SpeakingProfile

logger = logging.getLogger(__name__)


class InMemoryUserProfileStore(UserProfileStore):
    """Speaking profiles kept for the lifetime of the process."""

    def __init__(self, profiles: Optional[dict[int, SpeakingProfile]] = None):
        self._profiles: dict[int, SpeakingProfile] = dict(profiles or {})

    async def get(self, user_id: int) -> SpeakingProfile:
        return self._profiles.get(user_id, SpeakingProfile())

    def set(self, user_id: int, profile: SpeakingProfile) -> None:
        self._profiles[user_id] = profile


class InMemoryGuildSettingsStore(GuildSettingsStore):
    """Guild settings kept for the lifetime of the process."""

    def __init__(self, settings: Optional[dict[int, GuildSettings]] = None):
        self._settings: dict[int, GuildSettings] = dict(settings or {})

    async def get(self, guild_id: int) -> GuildSettings:
        settings = self._settings.get(guild_id)
        if settings is None:
            settings = GuildSettings(guild_id=guild_id)
            self._settings[guild_id] = settings
        return settings

    def set(self, settings: GuildSettings) -> None:
        logger.debug(f"Guild settings updated for {settings.guild_id}")
        self._settings[settings.guild_id] = settings
