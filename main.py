# pulseclient - Main Entry Point
# Console client for the heartbeat request/response protocol

"""
pulseclient - Main Entry Point

Program flow:
1. Load and validate configuration
2. Log in to the server (offer a retry on failure)
3. Run console commands one at a time (count, time, help, quit)
4. Log out on quit, end of input or SIGTERM
"""

import asyncio
import signal
import sys
from typing import Optional

from pulseclient.connection.connection_manager import ConnectionManager
from pulseclient.connection.errors import LoginError, RequestError
from pulseclient.ui.console import ConsoleUI
from pulseclient.utils.config import load_config, validate_config
from pulseclient.utils.logger import SessionLog, setup_logger


class ClientApp:
    """
    Main application class - wires config, session log, connection and UI
    """

    def __init__(
        self,
        config: dict,
        ui: Optional[ConsoleUI] = None,
        session_log: Optional[SessionLog] = None
    ):
        self.config = config
        logging_config = config.get('logging', {})
        self.logger = setup_logger("ClientApp", logging_config.get('level', 'INFO'))
        self.session_log = session_log or SessionLog(log_file=logging_config.get('session_log'))

        server_config = config['server']
        conn_config = config['connection']
        self.connection = ConnectionManager(
            host=server_config['host'],
            port=server_config['port'],
            login_name=server_config['login_name'],
            id_tag=server_config['id_tag'],
            heartbeat_window=conn_config['heartbeat_window'],
            request_timeout=conn_config['request_timeout'],
            ready_retry_interval=conn_config['ready_retry_interval'],
            ready_retry_attempts=conn_config['ready_retry_attempts'],
            reconnect_delay=conn_config['reconnect_delay'],
            max_reconnect_delay=conn_config['max_reconnect_delay'],
            max_reconnect_attempts=conn_config['max_reconnect_attempts'],
            connect_timeout=conn_config['connect_timeout'],
            session_log=self.session_log
        )
        self.ui = ui or ConsoleUI()
        self.shutdown_event = asyncio.Event()

        self.stats = {
            'commands': 0,
            'command_errors': 0
        }

    async def login(self) -> bool:
        """
        Log in, asking the user whether to retry after each failure

        Returns:
            True once logged in, False if the user gave up
        """
        while True:
            try:
                info = await self.connection.login()
                self.ui.show_connected(info)
                return True
            except LoginError as e:
                self.ui.show_login_error(e, f"{self.connection.host}:{self.connection.port}")
                if not await self.ui.ask_retry():
                    return False

    async def handle_command(self, command: str) -> bool:
        """
        Run one console command

        Returns:
            False when the app should stop
        """
        if command == "quit":
            return False

        self.stats['commands'] += 1
        try:
            if command == "count":
                self.ui.show_count(await self.connection.get_request_count())
            elif command == "time":
                self.ui.show_time(await self.connection.get_time())
            elif command == "help":
                self.ui.show("commands")
        except RequestError as e:
            self.stats['command_errors'] += 1
            self.ui.show_command_error(e, command)

        return True

    async def run(self):
        """Run the client until quit or shutdown"""
        self.ui.show("header")
        self.session_log.msg("*" * 20 + " Starting pulseclient " + "*" * 20)

        try:
            if not await self.login():
                return

            while not self.shutdown_event.is_set():
                command = await self._next_command()
                if command is None or not await self.handle_command(command):
                    break

        finally:
            await self.connection.logout()
            self.logger.info(f"Connection stats: {self.connection.get_stats()}")
            self.ui.show("closed")

    async def _next_command(self) -> Optional[str]:
        """Wait for the next command, or None if shutdown was requested"""
        read_task = asyncio.create_task(self.ui.next_command())
        stop_task = asyncio.create_task(self.shutdown_event.wait())
        done, pending = await asyncio.wait(
            {read_task, stop_task},
            return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if read_task in done:
            return read_task.result()
        return None


async def main() -> int:
    """Main entry point"""
    logger = setup_logger("Main", "INFO")

    logger.info("Loading configuration...")
    config = load_config()

    is_valid, errors = validate_config(config)
    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    app = ClientApp(config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, app.shutdown_event.set)
    except NotImplementedError:
        logger.debug("Signal handlers not supported on this platform")

    await app.run()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nGoodbye!")
