"""
Bot runner script for the Firefly bot.

This module handles configuration loading and bot startup.
"""

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from fireflybot.config import (
    LOG_DIR,
    LOG_FILE,
    LOG_FORMAT,
    Settings,
    ensure_directories,
    get_log_level,
    load_settings,
)
from fireflybot.errors import ConfigError

from .client import create_bot

logger = logging.getLogger(__name__)


def configure_logging():
    """Log to a file under logs/ and to stdout."""
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_DIR / LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def get_settings() -> Settings:
    """
    Load settings from environment variables.

    Returns:
        The runtime settings.

    Raises:
        SystemExit: If a required value is missing or malformed.
    """
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Configuration error: {e.message}")
        print(f"Error: {e.message}.")
        print("")
        print("Please set it using one of these methods:")
        print(f"  1. Export it: export {e.key}='value'")
        print(f"  2. Create a .env file with: {e.key}=value")
        print("")
        print("Required: DISCORD_BOT_TOKEN, BOT_ADMIN_ID, FIREFLY_URL, FIREFLY_TOKEN")
        sys.exit(1)

    # Validate token format (basic check)
    if len(settings.discord_token) < 50:
        logger.error("Invalid Discord bot token format")
        print("Error: Discord bot token appears to be invalid.")
        print("Please check that you've copied the complete token.")
        sys.exit(1)

    logger.info("Settings loaded successfully")
    return settings


def run():
    """Run the Discord bot with comprehensive error handling."""
    configure_logging()
    try:
        # Load .env file if it exists
        env_path = Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.info(f"Loaded environment from {env_path}")
        else:
            logger.warning(f".env file not found at {env_path}")

        settings = get_settings()

        logger.info("Starting Firefly Discord Bot...")
        print("Starting Firefly Discord Bot...")

        try:
            bot = create_bot(settings)
        except Exception as e:
            logger.error(f"Unexpected error creating bot: {e}", exc_info=True)
            print(f"\nUnexpected error: {e}")
            sys.exit(1)

        try:
            bot.run(settings.discord_token, log_handler=None)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, shutting down...")
            print("\nShutting down...")
        except Exception as e:
            logger.error(f"Error running bot: {e}", exc_info=True)
            print(f"\nError running bot: {e}")
            print(f"Check {LOG_DIR / LOG_FILE} for more details.")
            sys.exit(1)
    except Exception as e:
        logger.critical(f"Critical error in run(): {e}", exc_info=True)
        print(f"\nCritical error: {e}")
        print(f"Check {LOG_DIR / LOG_FILE} for more details.")
        sys.exit(1)


if __name__ == "__main__":
    run()
