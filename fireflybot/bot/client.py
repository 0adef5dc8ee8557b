"""
Discord Bot Client for the Firefly bot.

This module provides the Discord bot interface using a cogs-based architecture
for better separation of concerns.
"""

import logging
from datetime import timedelta
from typing import Optional

import discord
from discord.ext import commands

from fireflybot.clients import FireflyClient, IntentExtractor, WitIntentExtractor
from fireflybot.config import Settings
from fireflybot.conversation import ConversationMachine, ConversationService
from fireflybot.db import SessionRepository
from fireflybot.services import LocalIntentExtractor

from .cogs import ConversationCog, GeneralCog
from .dispatcher import Dispatcher
from .scheduler import SessionJanitor

logger = logging.getLogger(__name__)


def build_extractor(settings: Settings) -> IntentExtractor:
    """Wit.ai when a token is configured, the local spaCy extractor otherwise."""
    if settings.wit_token:
        return WitIntentExtractor(settings.wit_token)
    logger.info("WIT_TOKEN not set, using the local intent extractor")
    return LocalIntentExtractor()


def build_service(settings: Settings) -> ConversationService:
    """Wire the conversation service from settings."""
    machine = ConversationMachine(
        idle_timeout=timedelta(seconds=settings.session_idle_timeout),
        max_field_retries=settings.max_field_retries,
        max_commit_attempts=settings.max_commit_attempts,
        default_currency=settings.default_currency,
    )
    store = SessionRepository(settings.storage_path)
    logger.info(f"Session store initialized: {store.db_path}")

    ledger = FireflyClient(settings.firefly_url, settings.firefly_token)
    logger.info(f"Firefly client initialized: {ledger.base_url}")

    extractor = build_extractor(settings)
    logger.info(f"Intent extractor initialized: {extractor.name}")

    return ConversationService(
        machine=machine,
        store=store,
        extractor=extractor,
        ledger=ledger,
        default_currency=settings.default_currency,
    )


class FireflyBot(commands.Bot):
    """Discord bot client that records transactions in Firefly III."""

    def __init__(
        self, settings: Settings, service: Optional[ConversationService] = None
    ):
        intents = discord.Intents.default()
        intents.message_content = True

        super().__init__(command_prefix="!", intents=intents)

        self.settings = settings
        try:
            self.service = service or build_service(settings)
            self.dispatcher = Dispatcher(self.service, admin_reporter=self.notify_admin)
            self.janitor = SessionJanitor(self)
        except Exception as e:
            logger.error(f"Failed to initialize bot services: {e}", exc_info=True)
            raise

    async def setup_hook(self):
        """Called when the bot is ready to set up cogs and commands."""
        try:
            logger.info("Starting bot setup...")

            await self.add_cog(GeneralCog(self))
            logger.info("Added GeneralCog")

            await self.add_cog(ConversationCog(self, self.dispatcher, self.service))
            logger.info("Added ConversationCog")

            self.janitor.start()

            # Sync commands with Discord
            await self.tree.sync()
            logger.info("Synced command tree with Discord")
        except Exception as e:
            logger.error(f"Error in setup_hook: {e}", exc_info=True)
            raise

    async def on_ready(self):
        """Called when the bot has successfully connected."""
        if self.user:
            message = f"Logged in as {self.user} (ID: {self.user.id})"
            logger.info(message)
            logger.info(f"Loaded cogs: {', '.join(self.cogs.keys())}")
            print(message)
            print("------")
        else:
            logger.warning("Bot user is None in on_ready")

    async def on_error(self, event_method: str, *args, **kwargs):
        """Called when an event handler raises an exception."""
        logger.error(f"Error in event handler '{event_method}'", exc_info=True)

    async def notify_admin(self, text: str):
        """Send ``text`` to the administrator by DM."""
        admin_id = self.settings.admin_id
        user = self.get_user(admin_id) or await self.fetch_user(admin_id)
        try:
            await user.send(text)
        except discord.Forbidden:
            logger.warning(f"Cannot send DM to administrator {admin_id} - DMs may be disabled")
        except discord.HTTPException as e:
            logger.error(f"Discord API error notifying administrator: {e}")

    async def close(self):
        """Stop background tasks and release HTTP clients."""
        self.janitor.stop()
        await self.service.extractor.aclose()
        await self.service.ledger.aclose()
        await super().close()


def create_bot(settings: Settings) -> FireflyBot:
    """
    Create and configure the Discord bot.

    Args:
        settings: Runtime settings loaded from the environment

    Returns:
        Configured FireflyBot instance ready to run.
    """
    return FireflyBot(settings)
