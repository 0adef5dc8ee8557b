"""
General Cog for help and utility commands.

Handles the /help and /ping commands.
"""

import discord
from discord import app_commands
from discord.ext import commands

HELP_TEXT = """
**Firefly Bot** 🧾

Tell me about a transaction in plain words and I'll record it in Firefly III.
I ask for anything that's missing and show you the result before saving.

**📝 Recording Transactions**
• DM me, or mention me in a channel, with your transaction
• Reply `yes` to save, or tell me what to change (e.g. `amount 25`)
• `/cancel` - Drop the transaction in progress
• `/draft` - Show the transaction in progress

**🔧 Utility**
• `/ping` - Check if the bot is responsive
• `/help` - Show this help message

**Example messages:**
• `spent 20 on lunch from checking`
• `got 1500 salary into savings yesterday`
• `transfer 200 from checking to savings`
• `paid 12.50 eur to the bakery`

**Quick entry:** `Amount, Description, Source, Destination`
• `20, lunch, checking, cafe` fills in a whole withdrawal in one message
• Source and destination are optional: `20, lunch`

**Supported formats:**
• Amounts: `20`, `$12.50`, `1.5k`, `25 eur`; at most two decimal places
• Separators: `1,500` and `1.500` both mean 1500; `1,50` and `1.50` both mean 1.50
• Dates: `today`, `yesterday`, `3 days ago`, `last friday`, `2024-05-01`, `3 may`
• Keywords: `from`, `to`, `for`, `on`
"""


class GeneralCog(commands.Cog):
    """Cog for general bot commands."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    def _is_dm(self, interaction: discord.Interaction) -> bool:
        """Check if interaction is in a DM."""
        return interaction.guild is None

    @app_commands.command(name="help", description="Show help for using the Firefly bot")
    async def help_command(self, interaction: discord.Interaction):
        """Show help information."""
        await interaction.response.send_message(
            HELP_TEXT.strip(), ephemeral=not self._is_dm(interaction)
        )

    @app_commands.command(name="ping", description="Check if the bot is responsive")
    async def ping_command(self, interaction: discord.Interaction):
        """Check bot latency."""
        latency = round(self.bot.latency * 1000)
        await interaction.response.send_message(
            f"🏓 Pong! Latency: {latency}ms",
            ephemeral=not self._is_dm(interaction),
        )
