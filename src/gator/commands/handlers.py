"""Command handlers and the fixed command table."""

from datetime import datetime
from typing import Optional

import click

from .router import CommandRouter
from .types import Command, CommandContext
from ..errors import ValidationError
from ..scheduler.jobs import AggregationScheduler, parse_interval
from ..subscriptions import SubscriptionManager

DEFAULT_BROWSE_LIMIT = 2


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%d %H:%M') if value else "unknown"


def _parse_positive_int(value: str, what: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{what} must be a whole number: {value!r}")
    if number < 1:
        raise ValidationError(f"{what} must be at least 1: {value!r}")
    return number


# ==================== Users ====================

def handle_register(ctx: CommandContext) -> str:
    user = ctx.repo.create_user(ctx.args[0])
    ctx.config.set_user(user.name)
    return f"User was created: {user.name} ({user.id})"


def handle_login(ctx: CommandContext) -> str:
    user = ctx.repo.get_user(ctx.args[0])
    ctx.config.set_user(user.name)
    return f"Logged in as {user.name}"


def handle_reset(ctx: CommandContext) -> str:
    ctx.repo.reset()
    return "Database has been reset!"


def handle_users(ctx: CommandContext) -> str:
    lines = []
    for user in ctx.repo.list_users():
        suffix = " (current)" if user.name == ctx.config.current_user_name else ""
        lines.append(f"* {user.name}{suffix}")
    return "\n".join(lines) or "No users registered"


# ==================== Feeds ====================

def handle_agg(ctx: CommandContext) -> Optional[str]:
    interval = parse_interval(ctx.args[0]) if ctx.args else None
    concurrency = _parse_positive_int(ctx.args[1], "Concurrency") if len(ctx.args) > 1 else None

    scheduler = AggregationScheduler(ctx.repo, interval_seconds=interval, concurrency=concurrency)
    click.echo(f"Collecting feeds every {scheduler.interval:g}s ({scheduler.concurrency} per tick). Ctrl+C to stop.")
    scheduler.run_forever()
    return "Aggregator stopped."


def handle_addfeed(ctx: CommandContext) -> str:
    name, url = ctx.args[0], ctx.args[1]
    feed, _ = SubscriptionManager(ctx.repo).add_feed(ctx.user.id, name, url)
    return f"Added feed {feed.name} ({feed.url}), followed by {ctx.user.name}"


def handle_feeds(ctx: CommandContext) -> str:
    lines = [f"* {feed.name} ({feed.url}) <{owner}>" for feed, owner in ctx.repo.list_feeds()]
    return "\n".join(lines) or "No feeds registered"


# ==================== Follows ====================

def handle_follow(ctx: CommandContext) -> str:
    url = ctx.args[0]
    SubscriptionManager(ctx.repo).follow(ctx.user.id, url)
    return f"{ctx.user.name} now follows {url}"


def handle_following(ctx: CommandContext) -> str:
    follows = SubscriptionManager(ctx.repo).following(ctx.user.id)
    lines = [f"Feeds for user: {ctx.user.name}"]
    lines.extend(f"* {name} ({url})" for name, url in follows)
    return "\n".join(lines)


def handle_unfollow(ctx: CommandContext) -> str:
    feed = SubscriptionManager(ctx.repo).unfollow(ctx.user.id, ctx.args[0])
    return f"Unfollowed feed '{feed.name}' for user: {ctx.user.name}"


def handle_browse(ctx: CommandContext) -> str:
    limit = _parse_positive_int(ctx.args[0], "Limit") if ctx.args else DEFAULT_BROWSE_LIMIT
    posts = ctx.repo.list_posts_for_user(ctx.user.id, limit=limit)
    if not posts:
        return f"No posts for user: {ctx.user.name}"

    blocks = []
    for post, feed_name in posts:
        block = [
            f"{post.title or 'Untitled'}",
            f"  from {feed_name}, published {_format_date(post.published_at)}",
            f"  {post.url}",
        ]
        if post.description:
            block.append(f"  {post.description}")
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)


def handle_help(ctx: CommandContext) -> str:
    return CommandRouter(COMMANDS).get_help_text()


COMMANDS = (
    Command("register", "Create a user and log in as them", handle_register, min_args=1, usage="register <name>"),
    Command("login", "Switch the current user", handle_login, min_args=1, usage="login <name>"),
    Command("reset", "Delete all users, feeds, follows and posts", handle_reset),
    Command("users", "List registered users", handle_users),
    Command("agg", "Fetch due feeds on an interval", handle_agg, usage="agg [interval] [concurrency]"),
    Command("addfeed", "Add a feed and follow it", handle_addfeed, requires_login=True, min_args=2,
            usage="addfeed <name> <url>"),
    Command("feeds", "List all feeds", handle_feeds),
    Command("follow", "Follow an existing feed", handle_follow, requires_login=True, min_args=1,
            usage="follow <url>"),
    Command("following", "List feeds the current user follows", handle_following, requires_login=True),
    Command("unfollow", "Stop following a feed", handle_unfollow, requires_login=True, min_args=1,
            usage="unfollow <url>"),
    Command("browse", "Show the newest posts from followed feeds", handle_browse, requires_login=True,
            usage="browse [limit]"),
    Command("help", "Show available commands", handle_help),
)


def build_router() -> CommandRouter:
    """Router over the fixed command table."""
    return CommandRouter(COMMANDS)
