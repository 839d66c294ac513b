import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from bot import COGS_TO_LOAD
import cogs.monitor

# Mock the discord.py Bot class
class MockBot(MagicMock):
    pass

@pytest.fixture
def bot():
    """Fixture to create a mock bot instance."""
    mock_bot = MockBot()
    mock_bot._ = lambda s: s
    mock_bot.load_extension = AsyncMock()
    mock_bot.add_cog = AsyncMock()
    return mock_bot

@pytest.mark.asyncio
async def test_load_all_cogs(bot):
    """
    Tests that all cogs in the COGS_TO_LOAD list can be loaded without errors.
    """
    assert "cogs.monitor" in COGS_TO_LOAD
    for cog in COGS_TO_LOAD:
        try:
            await bot.load_extension(cog)
        except Exception as e:
            pytest.fail(f"Failed to load cog {cog}: {e}")

    # Verify that load_extension was called for each cog
    assert bot.load_extension.call_count == len(COGS_TO_LOAD)
    for cog in COGS_TO_LOAD:
        bot.load_extension.assert_any_call(cog)

@pytest.mark.asyncio
async def test_monitor_extension_setup_adds_cog(bot):
    """The dummy config from conftest is valid, so setup registers the cog."""
    with patch("discord.ext.tasks.Loop.start"):
        await cogs.monitor.setup(bot)

    bot.add_cog.assert_awaited_once()
    cog = bot.add_cog.call_args.args[0]
    assert isinstance(cog, cogs.monitor.MonitorCog)
    assert cog.ctx.supervisor is None
    cog.monitor_task.cancel()
    cog.snapshot_task.cancel()

@pytest.mark.asyncio
async def test_monitor_extension_skips_invalid_config(bot):
    with patch("cogs.monitor.load_monitor_settings", return_value=None):
        await cogs.monitor.setup(bot)

    bot.add_cog.assert_not_awaited()
