"""Slash commands offered by the compose box."""
from dataclasses import dataclass


@dataclass(frozen=True)
class SlashCommand:
    name: str
    description: str
    usage: str
    examples: tuple[str, ...]


SLASH_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("/help", "Show all available commands", "/help", ("/help",)),
    SlashCommand("/status", "Show system status, uptime, and agent health", "/status", ("/status",)),
    SlashCommand("/agents", "List all agents with their current status and model", "/agents", ("/agents",)),
    SlashCommand(
        "/cost",
        "Show current session cost and token usage",
        "/cost [period]",
        ("/cost", "/cost today", "/cost week"),
    ),
    SlashCommand(
        "/memory",
        "Search or browse agent memories",
        "/memory [search query]",
        ("/memory", "/memory eidrix", "/memory recent"),
    ),
    SlashCommand("/projects", "List active projects and their status", "/projects", ("/projects",)),
    SlashCommand(
        "/task",
        "Create a new task or list tasks",
        "/task [create <title>] | /task list",
        ("/task list", "/task create Fix mobile layout"),
    ),
    SlashCommand(
        "/research",
        "Run a research query through the pipeline",
        "/research <query>",
        ("/research contractor AI tools 2026", "/research competitor analysis"),
    ),
    SlashCommand(
        "/email",
        "Check email inbox or send an email",
        "/email [inbox|send <to> <subject>]",
        ("/email inbox", "/email unread"),
    ),
    SlashCommand("/clear", "Clear the current chat thread", "/clear", ("/clear",)),
)

CLEAR_COMMAND = "/clear"


def match_commands(text: str) -> list[SlashCommand]:
    """Commands whose name starts with the input, or whose description contains it (sans '/')."""
    if not text.startswith("/"):
        return []
    query = text.lower()
    return [
        cmd
        for cmd in SLASH_COMMANDS
        if cmd.name.startswith(query) or query[1:] in cmd.description.lower()
    ]
