# Console UI - Line-based command prompt
# Reads one command at a time and prints results and errors

"""
Console UI Module

Commands: count, time, help, quit

Commands are read strictly one at a time: the app asks for the next
command only after the previous one has finished.
"""

import asyncio
from typing import Callable, Optional

from ..connection.connection_manager import ConnectionInfo, ServerTime
from ..connection.errors import ClientError


class ConsoleUI:
    """
    Console front end for the client app
    """

    PROMPT = "Cmd? "
    COMMANDS = ("count", "time", "help", "quit")

    MESSAGES = {
        "header": "pulseclient - heartbeat protocol client",
        "connected": "Logged in to server at {0}",
        "connection_error": "Could not log in to server at {0}",
        "commands": "Command list: count, time, help, quit",
        "invalid_command": 'Command "{0}" not recognized',
        "command_error": 'Error Processing Command "{0}"',
        "retry": "Retry (y or n)? ",
        "closed": "pulseclient closed"
    }

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print
    ):
        """
        Initialize console UI

        Args:
            input_func: Blocking line reader (called in a worker thread)
            output_func: Line writer
        """
        self.input_func = input_func
        self.output_func = output_func

    async def read_line(self, prompt: str) -> Optional[str]:
        """Read one line without blocking the event loop (None on EOF)"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.input_func, prompt)
        except EOFError:
            return None

    async def next_command(self) -> str:
        """
        Prompt until a known command is entered

        Returns:
            The command; "quit" on end of input
        """
        while True:
            line = await self.read_line(self.PROMPT)
            if line is None:
                return "quit"
            command = line.strip().lower()
            if not command:
                continue
            if command in self.COMMANDS:
                return command
            self.show("invalid_command", line.strip())

    async def ask_retry(self) -> bool:
        reply = await self.read_line(self.MESSAGES["retry"])
        return bool(reply) and reply.strip()[:1].lower() == "y"

    def show(self, message_id: str, *subs):
        self.output_func(self.MESSAGES[message_id].format(*subs))

    def show_connected(self, info: ConnectionInfo):
        self.show("connected", f"{info.host}:{info.port}")
        self.show("commands")

    def show_login_error(self, error: ClientError, address: str):
        self.show("connection_error", address)
        self.show_error(error)

    def show_command_error(self, error: ClientError, command: str):
        self.show("command_error", command)
        self.show_error(error)

    def show_count(self, count: int):
        self.output_func(f"Request count: {count}")

    def show_time(self, server_time: ServerTime):
        self.output_func(f"Server time: {server_time.time}, random number: {server_time.random}")

    def show_error(self, error: ClientError):
        self.output_func(f"  [{error.code}] {error}")
