"""
Scheduler module for background maintenance.

Periodically removes stored sessions that have been idle for too long, using
discord.ext.tasks.
"""

import logging
from typing import TYPE_CHECKING

from discord.ext import tasks

from fireflybot.config import SESSION_PURGE_INTERVAL
from fireflybot.errors import SessionStoreFailure

if TYPE_CHECKING:
    from fireflybot.bot.client import FireflyBot

logger = logging.getLogger(__name__)


class SessionJanitor:
    """Purges expired sessions from the session store."""

    def __init__(self, bot: "FireflyBot"):
        """
        Initialize the janitor.

        Args:
            bot: The FireflyBot instance
        """
        self.bot = bot
        self._started = False

    def start(self):
        """Start the purge task."""
        if not self._started:
            self.purge_task.start()
            self._started = True
            logger.info(
                f"Session janitor started. Runs every {SESSION_PURGE_INTERVAL} seconds."
            )

    def stop(self):
        """Stop the purge task."""
        if self._started:
            self.purge_task.cancel()
            self._started = False
            logger.info("Session janitor stopped")

    @tasks.loop(seconds=SESSION_PURGE_INTERVAL)
    async def purge_task(self):
        try:
            removed = self.bot.service.purge_expired()
            logger.debug(f"Session purge removed {removed} sessions")
        except SessionStoreFailure as e:
            logger.error(f"Session purge failed: {e.detail}", exc_info=True)

    @purge_task.before_loop
    async def before_purge(self):
        """Wait until the bot is ready before starting the task."""
        await self.bot.wait_until_ready()

    @purge_task.error
    async def purge_error(self, error: BaseException):
        logger.error(f"Error in purge_task: {error}", exc_info=True)
