"""Message router: prefix commands and read-aloud of chat text."""

import logging
from typing import Awaitable, Callable, Optional

from readaloud.core.errors import PresenceError, TTSError
from readaloud.discord.interfaces import GuildSettingsStore, Notifier
from readaloud.discord.messages import Messages
from readaloud.discord.models import InboundMessage
from readaloud.discord.playback import PlaybackScheduler
from readaloud.discord.presence import PresenceMachine
from readaloud.discord.session import SessionRegistry
from readaloud.tts.base import BaseTTSBackend

logger = logging.getLogger(__name__)

# Messages starting with this are never read
SKIP_PREFIX = ";"

TextCleanup = Callable[[str], str]


def identity_cleanup(text: str) -> str:
    return text


def truncate_text(text: str, limit: int, template: str) -> str:
    """Cut text longer than ``limit`` characters and mark it as omitted."""
    if len(text) <= limit:
        return text
    return template.format(text=text[:limit])


class MessageRouter:
    """Routes chat messages to commands or to the playback scheduler.

    Handles:
    - Prefix commands (join, leave, read_add, read_remove, clear, reload)
    - Plain messages in a session's read channels
    """

    def __init__(
        self,
        presence: PresenceMachine,
        scheduler: PlaybackScheduler,
        registry: SessionRegistry,
        backend: BaseTTSBackend,
        guild_settings: GuildSettingsStore,
        notifier: Notifier,
        command_prefix: str = "!",
        read_limit: int = 100,
        messages: Optional[Messages] = None,
        cleanup: TextCleanup = identity_cleanup,
    ):
        """Initialize the router.

        Args:
            presence: Voice presence state machine.
            scheduler: Playback scheduler receiving utterances.
            registry: Shared session registry.
            backend: Synthesis backend, reloaded by the reload command.
            guild_settings: Per-guild configuration lookup.
            notifier: Sends command replies.
            command_prefix: Prefix marking a command.
            read_limit: Maximum characters read per message.
            messages: Reply texts.
            cleanup: Text normalization applied before reading.
        """
        self.presence = presence
        self.scheduler = scheduler
        self.registry = registry
        self.backend = backend
        self.guild_settings = guild_settings
        self.notifier = notifier
        self.command_prefix = command_prefix
        self.read_limit = read_limit
        self.messages = messages or Messages()
        self.cleanup = cleanup

        self._commands: dict[str, Callable[[InboundMessage], Awaitable[Optional[str]]]] = {
            "join": self._cmd_join,
            "leave": self._cmd_leave,
            "read_add": self._cmd_read_add,
            "read_remove": self._cmd_read_remove,
            "clear": self._cmd_clear,
            "reload": self._cmd_reload,
        }

    async def route(self, message: InboundMessage) -> None:
        """Handle one incoming chat message."""
        if message.author_is_bot:
            return

        if message.content.startswith(self.command_prefix):
            await self.handle_command(message)
        else:
            await self.handle_text(message)

    async def handle_command(self, message: InboundMessage) -> Optional[str]:
        """Run a prefix command and post its reply.

        Returns:
            The reply text, or None for unknown commands.
        """
        parts = message.content[len(self.command_prefix):].split()
        if not parts:
            return None

        handler = self._commands.get(parts[0])
        if handler is None:
            return None

        logger.debug(f"Command used: {parts[0]} by {message.author_id}")

        if message.guild_id is None and parts[0] != "reload":
            reply = self.messages.guild_only
        else:
            try:
                reply = await handler(message)
            except PresenceError as e:
                reply = self.messages.lookup(e.message_key)

        if reply:
            await self.notifier.send(message.channel_id, reply)
        return reply

    async def handle_text(self, message: InboundMessage) -> bool:
        """Read a plain message if it was posted in a read channel.

        Returns:
            True if anything was handed to the scheduler.
        """
        if message.content.startswith(SKIP_PREFIX) or message.guild_id is None:
            return False

        session = await self.registry.get(message.guild_id)
        if session is None or message.channel_id not in session.read_channels:
            return False

        text = truncate_text(
            self.cleanup(message.content), self.read_limit, self.messages.omitted
        )

        settings = await self.guild_settings.get(message.guild_id)
        queued = False
        if message.attachment_count and settings.options.notice_attachment:
            await self.scheduler.enqueue(
                message.guild_id, message.channel_id, message.author_id, self.messages.attachments
            )
            queued = True

        if text.strip():
            await self.scheduler.enqueue(
                message.guild_id, message.channel_id, message.author_id, text
            )
            queued = True

        return queued

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def _cmd_join(self, message: InboundMessage) -> Optional[str]:
        await self.presence.join(message.guild_id, message.author_id, message.channel_id)
        await self.notifier.send(message.channel_id, self.messages.join_connected)
        await self.scheduler.enqueue(
            message.guild_id, message.channel_id, message.author_id, self.messages.join_connected
        )
        # Reply already sent before the spoken confirmation
        return None

    async def _cmd_leave(self, message: InboundMessage) -> Optional[str]:
        await self.presence.leave(message.guild_id)
        return self.messages.leave_disconnected

    async def _cmd_read_add(self, message: InboundMessage) -> Optional[str]:
        added = await self.presence.register_read_channel(
            message.guild_id, message.author_id, message.channel_id
        )
        return self.messages.read_add_registered if added else self.messages.read_add_already

    async def _cmd_read_remove(self, message: InboundMessage) -> Optional[str]:
        removed = await self.presence.unregister_read_channel(
            message.guild_id, message.author_id, message.channel_id
        )
        return self.messages.read_remove_removed if removed else self.messages.read_remove_already

    async def _cmd_clear(self, message: InboundMessage) -> Optional[str]:
        await self.presence.clear_queue(message.guild_id, message.author_id)
        return self.messages.clear_cleared

    async def _cmd_reload(self, message: InboundMessage) -> Optional[str]:
        if not message.author_is_owner:
            return self.messages.owner_only
        try:
            await self.backend.reload()
        except TTSError as e:
            logger.error(f"Model reload failed: {e}")
            return self.messages.reload_failed
        return self.messages.reload_executed


class DiscordMessageHandler:
    """Handler for Discord message events.

    Converts discord.py messages into ``InboundMessage`` and hands them to
    the router.
    """

    def __init__(
        self,
        router: MessageRouter,
        is_owner: Optional[Callable[[object], Awaitable[bool]]] = None,
    ):
        """Initialize the message handler.

        Args:
            router: Core message router.
            is_owner: Async check whether a user owns the bot application.
        """
        self.router = router
        self._is_owner = is_owner

    async def handle_message(self, message) -> None:
        """Handle an incoming Discord message.

        Args:
            message: Discord message object.
        """
        content = message.content
        author = message.author

        is_owner = False
        if self._is_owner is not None and content.startswith(self.router.command_prefix):
            is_owner = await self._is_owner(author)

        inbound = InboundMessage(
            guild_id=message.guild.id if message.guild else None,
            channel_id=message.channel.id,
            author_id=author.id,
            author_is_bot=author.bot,
            author_is_owner=is_owner,
            content=content,
            attachment_count=len(message.attachments),
        )
        await self.router.route(inbound)
