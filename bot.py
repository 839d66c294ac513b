import logging
import gettext

import discord
from discord.ext import commands

import config
from utils.config_validator import validate_config

# --- INTERNATIONALIZATION (i18n) SETUP ---
lang = getattr(config, "LANGUAGE", "en")
try:
    translation = gettext.translation("messages", localedir="locale", languages=[lang])
    translation.install()
    _ = translation.gettext
except FileNotFoundError:
    _ = gettext.gettext

# --- LOGGING SETUP ---
logging.basicConfig(
    level=logging.INFO, format="[%(asctime)s] [%(levelname)s] - %(message)s"
)

# --- BOT SETUP ---
intents = discord.Intents.default()
bot = commands.Bot(command_prefix="!", intents=intents)
bot._ = _

# --- COG LIST ---
# Add new cogs here
COGS_TO_LOAD = [
    "cogs.monitor",
]


async def setup_hook():
    """A coroutine to be called to setup the bot."""
    # Report every problem up front; each cog decides whether it can still run
    validate_config(config)

    # Load cogs
    for cog in COGS_TO_LOAD:
        try:
            await bot.load_extension(cog)
            logging.info(f"Loaded cog: {cog}")
        except Exception as e:
            logging.error(f"Failed to load cog {cog}: {e}", exc_info=True)


bot.setup_hook = setup_hook


# --- INITIALIZATION ---
if __name__ == "__main__":
    try:
        bot.run(config.STATUS_BOT_TOKEN)
    except Exception as e:
        logging.critical(_("Fatal error starting the bot: {error}").format(error=e))
