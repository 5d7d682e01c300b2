"""discord.py adapter: voice transport, directory, notifier and the bot itself."""

import asyncio
import io
import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord.ext import commands

from readaloud.core.errors import VoiceConnectFailure
from readaloud.discord.interfaces import (
    Notifier,
    TrackHandle,
    VoiceConnection,
    VoiceDirectory,
    VoiceTransport,
)
from readaloud.discord.message_router import DiscordMessageHandler

if TYPE_CHECKING:
    from readaloud.app import AppContext

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0


def _log_playback_error(error: Optional[Exception]) -> None:
    if error is not None:
        logger.error(f"Playback error: {error}")


class DiscordTrackHandle(TrackHandle):
    """Volume control of a clip handed to discord.py."""

    def __init__(self, source: discord.PCMVolumeTransformer):
        self.source = source

    def set_gain(self, gain: float) -> None:
        self.source.volume = gain


class DiscordVoiceConnection(VoiceConnection):
    """Wraps a connected ``discord.VoiceClient``."""

    def __init__(self, voice_client: discord.VoiceClient):
        self.voice_client = voice_client

    @property
    def channel_id(self) -> int:
        return self.voice_client.channel.id

    def play(self, data: bytes) -> TrackHandle:
        # FFmpeg reads the encoded clip from an in-memory pipe
        source = discord.PCMVolumeTransformer(
            discord.FFmpegPCMAudio(io.BytesIO(data), pipe=True)
        )
        if self.voice_client.is_playing():
            self.voice_client.stop()
        self.voice_client.play(source, after=_log_playback_error)
        return DiscordTrackHandle(source)

    def stop(self) -> None:
        if self.voice_client.is_playing():
            self.voice_client.stop()

    async def leave(self) -> None:
        await self.voice_client.disconnect()


class DiscordVoiceTransport(VoiceTransport):
    """Connects to voice channels through the bot's gateway session."""

    def __init__(self, bot: commands.Bot, self_deaf: bool = True):
        self.bot = bot
        self.self_deaf = self_deaf

    async def join(self, guild_id: int, channel_id: int) -> VoiceConnection:
        guild = self.bot.get_guild(guild_id)
        channel = guild.get_channel(channel_id) if guild else None
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise VoiceConnectFailure(f"voice channel {channel_id} not found")

        try:
            voice_client = await channel.connect(
                timeout=CONNECT_TIMEOUT, self_deaf=self.self_deaf
            )
        except (discord.ClientException, asyncio.TimeoutError) as e:
            logger.error(f"Failed to join voice channel {channel_id}: {e}")
            raise VoiceConnectFailure(str(e)) from e

        logger.debug(f"Joined voice channel {channel.name} ({channel_id})")
        return DiscordVoiceConnection(voice_client)


class DiscordVoiceDirectory(VoiceDirectory):
    """Voice occupancy read from the gateway cache."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def bot_user_id(self) -> int:
        return self.bot.user.id

    def voice_channel_of(self, guild_id: int, user_id: int) -> Optional[int]:
        guild = self.bot.get_guild(guild_id)
        member = guild.get_member(user_id) if guild else None
        if member is None or member.voice is None or member.voice.channel is None:
            return None
        return member.voice.channel.id

    def members_in(self, guild_id: int, channel_id: int) -> list[int]:
        guild = self.bot.get_guild(guild_id)
        channel = guild.get_channel(channel_id) if guild else None
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            return []
        return list(channel.voice_states.keys())

    def display_name(self, guild_id: int, user_id: int) -> str:
        guild = self.bot.get_guild(guild_id)
        member = guild.get_member(user_id) if guild else None
        if member is not None:
            return member.display_name
        user = self.bot.get_user(user_id)
        return user.display_name if user else str(user_id)


class DiscordNotifier(Notifier):
    """Posts messages to text channels."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def send(self, channel_id: int, text: str) -> None:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            logger.warning(f"Channel {channel_id} not found")
            return
        try:
            await channel.send(content=text)
        except discord.HTTPException as e:
            logger.error(f"Failed to send message to {channel_id}: {e}")


class ReadAloudBot:
    """The Discord bot process: gateway client plus the reading core."""

    def __init__(self, command_prefix: str = "!"):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True
        intents.voice_states = True

        self.bot = commands.Bot(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None,
            description="Reads chat messages aloud in voice channels",
        )
        self.transport = DiscordVoiceTransport(self.bot)
        self.directory = DiscordVoiceDirectory(self.bot)
        self.notifier = DiscordNotifier(self.bot)
        self.ready = False
        self._handler: Optional[DiscordMessageHandler] = None

    def attach(self, app: "AppContext") -> None:
        """Wire gateway events to an application context."""
        self._handler = DiscordMessageHandler(app.router, is_owner=self.bot.is_owner)
        self._setup_bot_events(app)

    def _setup_bot_events(self, app: "AppContext"):
        """Configure event handlers."""
        bot = self.bot

        @bot.event
        async def on_ready():
            logger.info(f"Logged in as {bot.user} ({bot.user.id})")
            self.ready = True

        @bot.event
        async def on_message(message):
            # Don't read own messages
            if message.author == bot.user:
                return

            try:
                await self._handler.handle_message(message)
            except Exception as e:
                logger.error(f"Error handling message {message.id}: {e}")

        @bot.event
        async def on_voice_state_update(member, before, after):
            try:
                await app.presence.on_voice_presence_changed(
                    member.guild.id,
                    member.id,
                    before.channel.id if before.channel else None,
                    after.channel.id if after.channel else None,
                )
            except Exception as e:
                logger.error(f"Error handling voice update for {member.id}: {e}")

        @bot.event
        async def on_disconnect():
            logger.warning("Disconnected from Discord gateway")
            self.ready = False

    async def start(self, token: str):
        """Log in and run until closed."""
        if self._handler is None:
            raise RuntimeError("attach() must be called before start()")

        logger.info("Starting bot")
        try:
            await self.bot.start(token)
        except Exception as e:
            logger.error(f"Failed to start bot: {e}")
            raise

    async def close(self):
        await self.bot.close()
        self.ready = False
        logger.info("Stopped bot")
