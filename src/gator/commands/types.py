"""Type definitions for the command layer."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config import Config
from ..database.models import User
from ..database.repository import FeedRepository


@dataclass
class Command:
    """Definition of a gator command.

    Attributes:
        name: Command name (e.g., "addfeed")
        description: Human-readable description
        handler: Function to call when command is invoked
        requires_login: Whether a current user must be set and exist
        min_args: Minimum number of positional arguments
        usage: Usage example (e.g., "addfeed <name> <url>")
    """
    name: str
    description: str
    handler: Callable[["CommandContext"], Optional[str]]
    requires_login: bool = False
    min_args: int = 0
    usage: Optional[str] = None


@dataclass
class CommandContext:
    """Context for executing a command.

    Attributes:
        config: Loaded config; carries the current user name
        repo: Database repository
        command: The command that was invoked
        args: Positional arguments after the command name
        user: The current user, resolved by the router for login-only commands
    """
    config: Config
    repo: FeedRepository
    command: str
    args: List[str] = field(default_factory=list)
    user: Optional[User] = None
