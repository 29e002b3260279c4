"""Command table and routing for the gator CLI."""

from .types import Command, CommandContext
from .router import CommandRouter
from .handlers import COMMANDS, build_router

__all__ = ["Command", "CommandContext", "CommandRouter", "COMMANDS", "build_router"]
