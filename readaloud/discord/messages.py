"""User-facing strings.

Defaults are English. Replace the ``Messages`` instance on the app context
to localize.
"""

from pydantic import BaseModel


class Messages(BaseModel):
    """Texts posted to chat or spoken by the bot."""

    join_connected: str = "Connected."
    join_already: str = "Already connected to a voice channel in this server."
    join_cannot_connect: str = "Could not connect to the voice channel."
    user_not_in_voice: str = "Join a voice channel first, then use this command."
    guild_only: str = "This command can only be used in a server."

    leave_disconnected: str = "Disconnected."
    not_connected: str = "Not connected to a voice channel."
    command_failed: str = "The command failed."

    read_add_registered: str = "This channel will now be read aloud."
    read_add_already: str = "This channel is already being read aloud."
    read_remove_removed: str = "This channel will no longer be read aloud."
    read_remove_already: str = "This channel is not being read aloud."

    clear_cleared: str = "Cleared the reading queue."

    reload_executed: str = "Model list reloaded."
    reload_failed: str = "Failed to reload the model list."
    owner_only: str = "Only the bot owner can use this command."

    failed_infer: str = "Speech synthesis failed, leaving the voice channel."
    omitted: str = "{text}, omitted"
    attachments: str = "Attachment"

    entrance_log: str = "> **{name}** joined."
    exit_log: str = "> **{name}** left."
    entrance_speak: str = "{name} joined."
    exit_speak: str = "{name} left."

    def lookup(self, key: str) -> str:
        """Message for a ``PresenceError.message_key``."""
        return getattr(self, key, self.command_failed)
