"""Command routing for gator."""

from typing import Dict, Iterable, Optional

from .types import Command, CommandContext
from ..errors import ValidationError
from ..logging import get_logger

logger = get_logger(__name__)


class CommandRouter:
    """Routes a parsed command line to its handler.

    Handles:
    - Argument count validation
    - Resolving the current user for login-only commands
    """

    def __init__(self, commands: Iterable[Command] = ()):
        self._commands: Dict[str, Command] = {}
        for command in commands:
            self.register_command(command)

    def register_command(self, command: Command) -> None:
        self._commands[command.name.lower()] = command
        logger.debug(f"Registered command: {command.name}")

    def get_commands(self) -> Dict[str, Command]:
        """Get all registered commands."""
        return self._commands.copy()

    def get_command(self, name: str) -> Optional[Command]:
        return self._commands.get((name or '').lower())

    def route(self, context: CommandContext) -> Optional[str]:
        """Run the handler for context.command.

        Returns:
            The handler's response text, if any

        Raises:
            ValidationError: Unknown command, missing arguments or nobody logged in
            NotFound: The current user no longer exists
        """
        command = self.get_command(context.command)
        if not command:
            raise ValidationError(
                f"Unknown command: {context.command}. Available: {', '.join(sorted(self.get_commands()))}"
            )

        if len(context.args) < command.min_args:
            raise ValidationError(f"Usage: gator {command.usage or command.name}")

        if command.requires_login:
            user_name = context.config.current_user_name
            if not user_name:
                raise ValidationError(f"'{command.name}' requires a logged in user (gator login <name>)")
            context.user = context.repo.get_user(user_name)

        try:
            return command.handler(context)
        except Exception as e:
            logger.debug(f"Command handler error for {command.name}: {e}")
            raise

    def get_help_text(self) -> str:
        lines = []
        for name, cmd in sorted(self._commands.items()):
            line = f"{cmd.usage or name} - {cmd.description}"
            if cmd.requires_login:
                line += " (login)"
            lines.append(line)
        return "\n".join(lines)
