"""Voice presence state machine: when the bot joins and leaves voice."""

import asyncio
import logging
from collections import defaultdict
from typing import Optional

from readaloud.core.errors import (
    AlreadyConnected,
    InvokerNotInVoice,
    SessionAbsent,
    VoiceConnectFailure,
)
from readaloud.discord.interfaces import (
    GuildSettingsStore,
    Notifier,
    VoiceDirectory,
    VoiceTransport,
)
from readaloud.discord.messages import Messages
from readaloud.discord.models import PresenceChange
from readaloud.discord.playback import PlaybackScheduler
from readaloud.discord.session import GuildSession, SessionRegistry

logger = logging.getLogger(__name__)


class PresenceMachine:
    """Drives Disconnected <-> Connected transitions per guild.

    Explicit commands raise ``PresenceError`` subclasses whose
    ``message_key`` names the reply. Ambient transitions (autojoin,
    autoleave, failure-induced leave) never raise to the caller.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: VoiceTransport,
        directory: VoiceDirectory,
        notifier: Notifier,
        guild_settings: GuildSettingsStore,
        scheduler: PlaybackScheduler,
        messages: Optional[Messages] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.directory = directory
        self.notifier = notifier
        self.guild_settings = guild_settings
        self.scheduler = scheduler
        self.messages = messages or Messages()

        # Serializes join/leave transitions within a guild
        self._transition_locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # -------------------------------------------------------------------------
    # Explicit commands
    # -------------------------------------------------------------------------

    async def join(self, guild_id: int, user_id: int, text_channel_id: int) -> GuildSession:
        """Join the invoker's voice channel and read ``text_channel_id``.

        Raises:
            AlreadyConnected: The guild already has a session.
            InvokerNotInVoice: The invoker is not in a voice channel.
            VoiceConnectFailure: The connect call failed.
        """
        async with self._transition_locks[guild_id]:
            if await self.registry.get(guild_id) is not None:
                raise AlreadyConnected()

            voice_channel_id = self.directory.voice_channel_of(guild_id, user_id)
            if voice_channel_id is None:
                raise InvokerNotInVoice()

            connection = await self.transport.join(guild_id, voice_channel_id)
            session = await self.registry.create(guild_id, connection, [text_channel_id])

        logger.info(f"Joined voice channel {voice_channel_id} in guild {guild_id}")
        return session

    async def leave(self, guild_id: int) -> None:
        """Disconnect and discard the session.

        Raises:
            SessionAbsent: The bot is not connected in this guild.
        """
        async with self._transition_locks[guild_id]:
            session = await self.registry.get(guild_id)
            if session is None:
                raise SessionAbsent()
            await self._teardown(guild_id, session)

        logger.info(f"Left voice in guild {guild_id}")

    async def register_read_channel(self, guild_id: int, user_id: int, channel_id: int) -> bool:
        """Start reading ``channel_id`` in the active session.

        Returns:
            False if the channel was already being read.
        """
        session = await self._session_for_command(guild_id, user_id)
        return session.add_read_channel(channel_id)

    async def unregister_read_channel(self, guild_id: int, user_id: int, channel_id: int) -> bool:
        """Stop reading ``channel_id``.

        Returns:
            False if the channel was not being read.
        """
        session = await self._session_for_command(guild_id, user_id)
        return session.remove_read_channel(channel_id)

    async def clear_queue(self, guild_id: int, user_id: int) -> int:
        """Drop pending clips and skip the one now playing."""
        session = await self._session_for_command(guild_id, user_id)
        dropped = await self.scheduler.clear(guild_id)
        session.connection.stop()
        logger.debug(f"Cleared {dropped} queued clips in guild {guild_id}")
        return dropped

    async def _session_for_command(self, guild_id: int, user_id: int) -> GuildSession:
        if self.directory.voice_channel_of(guild_id, user_id) is None:
            raise InvokerNotInVoice()
        session = await self.registry.get(guild_id)
        if session is None:
            raise SessionAbsent()
        return session

    # -------------------------------------------------------------------------
    # Voice events
    # -------------------------------------------------------------------------

    async def on_voice_presence_changed(
        self,
        guild_id: int,
        user_id: int,
        old_channel_id: Optional[int],
        new_channel_id: Optional[int],
    ) -> None:
        """React to a user entering, leaving or moving between voice channels."""
        if old_channel_id == new_channel_id:
            return

        if user_id == self.directory.bot_user_id and new_channel_id is None:
            # Disconnected from outside (kicked or channel deleted)
            async with self._transition_locks[guild_id]:
                session = await self.registry.get(guild_id)
                if session is None or self.directory.voice_channel_of(guild_id, user_id) is not None:
                    return
                session = await self.registry.remove(guild_id, expected=session)
            if session is not None:
                logger.info(f"Voice connection dropped in guild {guild_id}")
            return

        tasks = []
        if old_channel_id is not None:
            tasks.append(self.announce(guild_id, user_id, old_channel_id, PresenceChange.EXIT))
        if new_channel_id is not None:
            tasks.append(self.announce(guild_id, user_id, new_channel_id, PresenceChange.ENTRANCE))
            tasks.append(self.auto_join(guild_id, user_id, new_channel_id))
        if old_channel_id is not None:
            tasks.append(self.auto_leave(guild_id))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error handling voice update in guild {guild_id}: {result}")

    async def auto_join(self, guild_id: int, user_id: int, voice_channel_id: int) -> bool:
        """Join a mapped voice channel when its first occupant arrives.

        Returns:
            True if the bot joined.
        """
        if user_id == self.directory.bot_user_id:
            return False

        async with self._transition_locks[guild_id]:
            if await self.registry.get(guild_id) is not None:
                return False

            # Only when the entering user is alone, never mid-conversation
            if len(self.directory.members_in(guild_id, voice_channel_id)) != 1:
                return False

            settings = await self.guild_settings.get(guild_id)
            targets = settings.auto_join_targets(voice_channel_id)
            if not targets:
                return False

            try:
                connection = await self.transport.join(guild_id, voice_channel_id)
            except VoiceConnectFailure as e:
                logger.error(f"Auto join failed in guild {guild_id}: {e}")
                return False

            await self.registry.create(guild_id, connection, targets)

        logger.info(f"Auto joined voice channel {voice_channel_id} in guild {guild_id}")

        text = self.messages.join_connected
        await asyncio.gather(
            *(self.notifier.send(channel_id, text) for channel_id in targets),
            self.scheduler.enqueue(guild_id, targets[0], user_id, text),
        )
        return True

    async def auto_leave(self, guild_id: int) -> bool:
        """Leave silently when the bot is the last one in its channel.

        Returns:
            True if the bot left.
        """
        async with self._transition_locks[guild_id]:
            session = await self.registry.get(guild_id)
            if session is None:
                return False

            bot_id = self.directory.bot_user_id
            channel_id = self.directory.voice_channel_of(guild_id, bot_id)
            if channel_id is None:
                channel_id = session.connection.channel_id

            others = [m for m in self.directory.members_in(guild_id, channel_id) if m != bot_id]
            if others:
                return False

            await self._teardown(guild_id, session)

        logger.info(f"Auto left voice channel {channel_id} in guild {guild_id}")
        return True

    async def fail(
        self,
        guild_id: int,
        channel_id: int,
        session: GuildSession,
        error: Exception,
    ) -> None:
        """Failure-induced leave after a synthesis error.

        Tears down ``session`` if it is still the guild's session, then
        posts one failure notice to the channel that triggered the request.
        """
        async with self._transition_locks[guild_id]:
            await self._teardown(guild_id, session)

        await self.notifier.send(channel_id, self.messages.failed_infer)

    async def _teardown(self, guild_id: int, session: GuildSession) -> None:
        removed = await self.registry.remove(guild_id, expected=session)
        if removed is None:
            return
        try:
            await removed.connection.leave()
        except Exception as e:
            logger.error(f"Failed to leave voice in guild {guild_id}: {e}")

    # -------------------------------------------------------------------------
    # Announcements
    # -------------------------------------------------------------------------

    async def announce(
        self,
        guild_id: int,
        user_id: int,
        channel_id: int,
        change: PresenceChange,
    ) -> None:
        """Log and/or speak a join or leave in the bot's voice channel."""
        if user_id == self.directory.bot_user_id:
            return

        session = await self.registry.get(guild_id)
        if session is None or session.connection.channel_id != channel_id:
            return

        read_channels = session.ordered_read_channels
        if not read_channels:
            return

        options = (await self.guild_settings.get(guild_id)).options
        name = self.directory.display_name(guild_id, user_id)
        entering = change == PresenceChange.ENTRANCE

        tasks = []
        if options.entrance_exit_log:
            template = self.messages.entrance_log if entering else self.messages.exit_log
            text = template.format(name=name)
            tasks.extend(self.notifier.send(ch, text) for ch in read_channels)

        if options.entrance_exit_speak:
            template = self.messages.entrance_speak if entering else self.messages.exit_speak
            tasks.append(
                self.scheduler.enqueue(
                    guild_id, read_channels[0], user_id, template.format(name=name)
                )
            )

        if tasks:
            await asyncio.gather(*tasks)
