"""Per-guild playback sessions and the registry that owns them."""

import asyncio
import logging
from collections import deque
from typing import Iterable, Optional

from readaloud.discord.interfaces import VoiceConnection
from readaloud.tts.models import AudioClip

logger = logging.getLogger(__name__)


class GuildSession:
    """An active reading session: one voice connection plus its clip queue.

    Once ``closed`` is set the session is dead; pushes are rejected and any
    drain loop still holding a reference exits at its next check.
    """

    def __init__(
        self,
        guild_id: int,
        connection: VoiceConnection,
        read_channels: Iterable[int] = (),
    ):
        self.guild_id = guild_id
        self.connection = connection
        self._channel_order: list[int] = list(dict.fromkeys(read_channels))
        self.read_channels: frozenset[int] = frozenset(self._channel_order)
        self.queue: deque[AudioClip] = deque()
        self.lock = asyncio.Lock()
        self.closed = False
        self.drain_loops = 0

    @property
    def first_read_channel(self) -> Optional[int]:
        """Earliest registered read channel still being read."""
        return self._channel_order[0] if self._channel_order else None

    @property
    def ordered_read_channels(self) -> list[int]:
        return list(self._channel_order)

    def add_read_channel(self, channel_id: int) -> bool:
        """Start reading a channel. Returns False if already read."""
        if channel_id in self.read_channels:
            return False
        self._channel_order.append(channel_id)
        self.read_channels = frozenset(self._channel_order)
        return True

    def remove_read_channel(self, channel_id: int) -> bool:
        """Stop reading a channel. Returns False if it was not read."""
        if channel_id not in self.read_channels:
            return False
        self._channel_order.remove(channel_id)
        self.read_channels = frozenset(self._channel_order)
        return True

    async def push(self, clip: AudioClip) -> bool:
        """Append a clip.

        Returns:
            True if the queue went from empty to non-empty, meaning the
            caller must start the drain loop. False otherwise, including
            when the session is already closed.
        """
        async with self.lock:
            if self.closed:
                return False
            self.queue.append(clip)
            return len(self.queue) == 1

    async def peek(self) -> Optional[AudioClip]:
        async with self.lock:
            if self.closed or not self.queue:
                return None
            return self.queue[0]

    async def pop(self) -> bool:
        """Drop the head clip.

        Returns:
            True if more clips remain.
        """
        async with self.lock:
            if self.queue:
                self.queue.popleft()
            return not self.closed and bool(self.queue)

    async def clear(self, keep_head: bool = True) -> int:
        """Drop queued clips, optionally keeping the one now playing.

        Returns:
            Number of clips dropped.
        """
        async with self.lock:
            head = self.queue[0] if keep_head and self.queue else None
            dropped = len(self.queue) - (1 if head is not None else 0)
            self.queue.clear()
            if head is not None:
                self.queue.append(head)
            return dropped

    def close(self) -> None:
        self.closed = True
        self.queue.clear()


class SessionRegistry:
    """Guild id -> active session map.

    The lock is held only for the duration of a single lookup or mutation.
    """

    def __init__(self):
        self._sessions: dict[int, GuildSession] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def guild_ids(self) -> list[int]:
        return list(self._sessions)

    async def get(self, guild_id: int) -> Optional[GuildSession]:
        async with self._lock:
            return self._sessions.get(guild_id)

    async def create(
        self,
        guild_id: int,
        connection: VoiceConnection,
        read_channels: Iterable[int] = (),
    ) -> GuildSession:
        """Register a new session, closing any previous one."""
        session = GuildSession(guild_id, connection, read_channels)
        async with self._lock:
            previous = self._sessions.get(guild_id)
            self._sessions[guild_id] = session
        if previous is not None:
            previous.close()
        logger.debug(f"Session created for guild {guild_id}")
        return session

    async def remove(
        self,
        guild_id: int,
        expected: Optional[GuildSession] = None,
    ) -> Optional[GuildSession]:
        """Remove and close a guild's session.

        Args:
            guild_id: Guild to remove.
            expected: If given, only remove when it is still the registered
                session.

        Returns:
            The removed session, or None if nothing was removed.
        """
        async with self._lock:
            session = self._sessions.get(guild_id)
            if session is None:
                return None
            if expected is not None and session is not expected:
                return None
            del self._sessions[guild_id]
        session.close()
        logger.debug(f"Session removed for guild {guild_id}")
        return session
