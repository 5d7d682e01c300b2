"""Discord reading layer: sessions, playback, voice presence and routing."""

from readaloud.discord.message_router import DiscordMessageHandler, MessageRouter
from readaloud.discord.messages import Messages
from readaloud.discord.models import GuildOptions, GuildSettings, InboundMessage, PresenceChange
from readaloud.discord.playback import PlaybackScheduler
from readaloud.discord.presence import PresenceMachine
from readaloud.discord.session import GuildSession, SessionRegistry
from readaloud.discord.stores import InMemoryGuildSettingsStore, InMemoryUserProfileStore

__all__ = [
    # Models
    "GuildOptions",
    "GuildSettings",
    "InboundMessage",
    "PresenceChange",
    "Messages",
    # Core classes
    "GuildSession",
    "SessionRegistry",
    "PlaybackScheduler",
    "PresenceMachine",
    "MessageRouter",
    "DiscordMessageHandler",
    # Stores
    "InMemoryGuildSettingsStore",
    "InMemoryUserProfileStore",
]
