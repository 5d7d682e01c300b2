"""Collaborator interfaces consumed by the reading core.

The core never touches discord.py directly; the adapter in
``bot_manager`` implements these, and tests substitute fakes.
"""

from abc import ABC, abstractmethod
from typing import Optional

from readaloud.discord.models import GuildSettings
from readaloud.tts.models import SpeakingProfile


class TrackHandle(ABC):
    """A clip that has been handed to the voice connection."""

    @abstractmethod
    def set_gain(self, gain: float) -> None:
        """Set the output gain (1.0 = unchanged)."""


class VoiceConnection(ABC):
    """An established voice connection in one guild."""

    channel_id: int

    @abstractmethod
    def play(self, data: bytes) -> TrackHandle:
        """Start playing encoded audio bytes."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the clip now playing, if any."""

    @abstractmethod
    async def leave(self) -> None:
        """Disconnect from the voice channel."""


class VoiceTransport(ABC):
    """Opens voice connections."""

    @abstractmethod
    async def join(self, guild_id: int, channel_id: int) -> VoiceConnection:
        """Connect to a voice channel.

        Raises:
            VoiceConnectFailure: The low-level connect call failed.
        """


class VoiceDirectory(ABC):
    """Read-only view of voice channel occupancy."""

    @property
    @abstractmethod
    def bot_user_id(self) -> int:
        """User id of the bot itself."""

    @abstractmethod
    def voice_channel_of(self, guild_id: int, user_id: int) -> Optional[int]:
        """Voice channel the user currently occupies, if any."""

    @abstractmethod
    def members_in(self, guild_id: int, channel_id: int) -> list[int]:
        """User ids present in a voice channel, bots included."""

    @abstractmethod
    def display_name(self, guild_id: int, user_id: int) -> str:
        """Name to use when announcing a user."""


class Notifier(ABC):
    """Sends text to chat channels."""

    @abstractmethod
    async def send(self, channel_id: int, text: str) -> None:
        """Post a message to a text channel."""


class UserProfileStore(ABC):
    """Per-user speaking profile lookup."""

    @abstractmethod
    async def get(self, user_id: int) -> SpeakingProfile:
        """Return the user's profile (a default one if never set)."""


class GuildSettingsStore(ABC):
    """Per-guild configuration lookup."""

    @abstractmethod
    async def get(self, guild_id: int) -> GuildSettings:
        """Return the guild's settings (defaults if never set)."""
