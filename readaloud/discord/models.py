"""Data models for the Discord reading layer."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class GuildOptions(BaseModel):
    """Per-guild feature toggles."""

    read_long_fast: bool = False  # read messages over the length threshold fast
    entrance_exit_log: bool = False  # post joins/leaves to the read channels
    entrance_exit_speak: bool = False  # speak joins/leaves in voice
    notice_attachment: bool = False  # announce that a message has attachments


class GuildSettings(BaseModel):
    """Persisted configuration for one guild."""

    guild_id: int
    default_model: Optional[str] = None
    auto_join_enabled: bool = True
    # Voice channel id -> text channels to read when auto-joining it
    auto_join_channels: dict[int, list[int]] = Field(default_factory=dict)
    options: GuildOptions = Field(default_factory=GuildOptions)

    def auto_join_targets(self, voice_channel_id: int) -> list[int]:
        """Text channels mapped to a voice channel, in configured order."""
        if not self.auto_join_enabled:
            return []
        return list(self.auto_join_channels.get(voice_channel_id, []))


class PresenceChange(str, Enum):
    """Direction of a user's voice presence change."""

    ENTRANCE = "entrance"
    EXIT = "exit"


class InboundMessage(BaseModel):
    """A chat message reduced to what the router needs."""

    guild_id: Optional[int] = None
    channel_id: int
    author_id: int
    author_is_bot: bool = False
    author_is_owner: bool = False
    content: str
    attachment_count: int = 0
