"""
Conversation Cog for free-text transaction messages.

Handles the on_message event for DMs and mentions, plus the /cancel and
/draft commands. All conversation logic lives behind the Dispatcher.
"""

import logging

import discord
from discord import app_commands
from discord.ext import commands

from fireflybot.bot.dispatcher import Dispatcher, InboundMessage, chat_identity
from fireflybot.config import DISCORD_MESSAGE_MAX_LENGTH
from fireflybot.conversation import ConversationService

logger = logging.getLogger(__name__)


def split_message(text: str, limit: int = DISCORD_MESSAGE_MAX_LENGTH) -> list[str]:
    """Split ``text`` into chunks Discord accepts, preferring line breaks."""
    chunks = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text:
        chunks.append(text)
    return chunks


class ConversationCog(commands.Cog):
    """Cog that routes chat messages into the conversation."""

    def __init__(
        self,
        bot: commands.Bot,
        dispatcher: Dispatcher,
        service: ConversationService,
    ):
        self.bot = bot
        self.dispatcher = dispatcher
        self.service = service

    def _is_dm(self, interaction: discord.Interaction) -> bool:
        """Check if interaction is in a DM."""
        return interaction.guild is None

    def _interaction_chat(self, interaction: discord.Interaction) -> str:
        return chat_identity(
            interaction.channel_id, interaction.user.id, self._is_dm(interaction)
        )

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Handle regular messages as conversation input."""
        try:
            # Ignore bot messages, including our own
            if message.author.bot or self.bot.user is None:
                return

            # In DMs, process all messages; in channels, require mention
            is_dm = isinstance(message.channel, discord.DMChannel)
            is_mentioned = self.bot.user in message.mentions
            if not is_dm and not is_mentioned:
                return

            content = message.content
            if is_mentioned:
                content = content.replace(f"<@{self.bot.user.id}>", "")
                content = content.replace(f"<@!{self.bot.user.id}>", "").strip()

            if not content.strip():
                return

            inbound = InboundMessage(
                chat_id=chat_identity(message.channel.id, message.author.id, is_dm),
                text=content,
                event_id=str(message.id),
                received_at=message.created_at,
            )

            async with message.channel.typing():
                replies = await self.dispatcher.dispatch(inbound)

            for chunk in split_message("\n\n".join(replies)):
                await message.reply(chunk)
        except discord.HTTPException as e:
            logger.error(f"Discord API error in on_message: {e}", exc_info=True)
            # Don't reply if we can't send messages
        except Exception as e:
            logger.error(f"Error in on_message: {e}", exc_info=True)
            try:
                await message.reply(
                    "❌ An error occurred while processing your message. Please try again."
                )
            except discord.HTTPException:
                logger.error("Could not send error message to user")

    @app_commands.command(name="cancel", description="Drop the transaction in progress")
    async def cancel_command(self, interaction: discord.Interaction):
        """Cancel the current conversation."""
        replies = await self.dispatcher.cancel(
            self._interaction_chat(interaction), now=interaction.created_at
        )
        await interaction.response.send_message(
            "\n\n".join(replies) or "Nothing to cancel.",
            ephemeral=not self._is_dm(interaction),
        )

    @app_commands.command(name="draft", description="Show the transaction in progress")
    async def draft_command(self, interaction: discord.Interaction):
        """Show the current draft and state."""
        try:
            text = await self.service.describe(self._interaction_chat(interaction))
        except Exception as e:
            logger.error(f"Error in draft_command: {e}", exc_info=True)
            text = "❌ Couldn't load your transaction right now. Please try again."
        await interaction.response.send_message(
            text, ephemeral=not self._is_dm(interaction)
        )
