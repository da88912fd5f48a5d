"""
BotRunner - process bootstrap for a real-time bot.

The runner owns:
- Token and configuration loading
- Startup / shutdown status messages
- Built-in diagnostics listener
- Signal handling and the event loop

You provide:
- config: Bot name, version, status channel, etc.
- setup: Function (bot) -> None that registers listeners and hooks
"""

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .bot import Bot
from .transport import API_URL

logger = logging.getLogger(__name__)


@dataclass
class BotConfig:
    """Configuration for a bot.

    Required:
        bot_name: Bot display name used in status and diagnostics messages
        version: Version string

    Optional:
        status_channel: Channel name or ID for status messages
        ping_interval: Seconds between keep-alive pings (None disables them)
        api_url: Web API base URL
        rtm_params: Extra parameters passed to ``rtm.start``
        diagnostic_commands: Commands that trigger diagnostic info
    """

    bot_name: str
    version: str
    status_channel: Optional[str] = None
    ping_interval: Optional[float] = 30.0
    api_url: str = API_URL
    rtm_params: Dict[str, Any] = field(default_factory=dict)
    diagnostic_commands: List[str] = field(
        default_factory=lambda: [
            "status", "info", "diag", "diagnostics", "version", "health", "ping"
        ]
    )


class BotRunner:
    """
    Builds a Bot from config and runs it until SIGINT / SIGTERM.

        config = BotConfig(bot_name="Deploy Bot", version="1.0.0")

        def setup(bot):
            bot.listen(r"deploy (\\w+)", deploy)

        BotRunner(config=config, setup=setup).start()
    """

    def __init__(
        self,
        config: BotConfig,
        setup: Optional[Callable[[Bot], None]] = None,
        slack_bot_token: Optional[str] = None,
        bot: Optional[Bot] = None,
    ):
        """
        Initialize the runner.

        Args:
            config: Bot configuration
            setup: Called with the bot before it connects
            slack_bot_token: Override SLACK_BOT_TOKEN env var
            bot: Pre-built bot (mainly for tests)
        """
        self.config = config
        self.slack_bot_token = slack_bot_token or os.environ.get("SLACK_BOT_TOKEN")

        if bot is None and not self.slack_bot_token:
            raise ValueError("Missing SLACK_BOT_TOKEN")

        self.bot = bot or Bot(
            self.slack_bot_token,
            api_url=config.api_url,
            ping_interval=config.ping_interval,
        )
        self._start_time = 0.0
        self._stopping: Optional[asyncio.Event] = None

        self.bot.listen(self._handle_diagnostics)
        if setup is not None:
            setup(self.bot)

    async def _handle_diagnostics(self, message):
        """Answer diagnostic commands addressed to the bot."""
        command = message["match"].string.strip().lower()
        if command in self.config.diagnostic_commands:
            await message.reply(self._get_diagnostic_info())

    def _get_diagnostic_info(self) -> str:
        """Generate diagnostic information."""
        uptime_seconds = int(time.time() - self._start_time) if self._start_time else 0
        hours, remainder = divmod(uptime_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        uptime_str = f"{hours}h {minutes}m {seconds}s"

        return f"""*{self.config.bot_name} Diagnostics*

:robot_face: *Version:* {self.config.version}
:clock1: *Uptime:* {uptime_str}
:busts_in_silhouette: *Listeners:* {len(self.bot.dispatcher)}
"""

    async def _post_status(self, message: str):
        """Post to status channel if configured."""
        if not self.config.status_channel:
            return
        try:
            await self.bot.send_message(self.config.status_channel, message, websocket=False)
        except Exception as e:
            logger.error(f"Error posting status message: {e}")

    def _shutdown_handler(self):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received...")
        if self._stopping is not None:
            self._stopping.set()

    async def run(self):
        """Connect, post the online status and wait for a shutdown signal."""
        self._stopping = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._shutdown_handler)
            except NotImplementedError:
                logger.debug(f"Signal handlers not supported; {sig.name} not registered")

        self._start_time = time.time()
        logger.info(f"Starting {self.config.bot_name} v{self.config.version}...")

        await self.bot.start(**self.config.rtm_params)
        self.bot.on("close", self._stopping.set)
        await self._post_status(
            f":white_check_mark: {self.config.bot_name} v{self.config.version} is online!"
        )

        await self._stopping.wait()

        await self._post_status(
            f":warning: {self.config.bot_name} v{self.config.version} is shutting down..."
        )
        await self.bot.close()

    def start(self):
        """Start the bot and block until it stops."""
        asyncio.run(self.run())


def main():
    """Run a bare bot from environment variables (diagnostics only)."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = BotConfig(
        bot_name=os.environ.get("BOT_NAME", "bot"),
        version=os.environ.get("BOT_VERSION", "0.0.0"),
        status_channel=os.environ.get("STATUS_CHANNEL"),
    )
    BotRunner(config=config).start()


if __name__ == "__main__":
    main()
